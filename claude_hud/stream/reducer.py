"""
HUD State Reducer
=================

Pure transition ``reduce_hud_state(state, action) -> state``.

Invariants:
- A toolUseId identifies at most one running ToolRecord
- Only the most recently opened running agent is "current"; a
  SubagentStop closes it, deeper nesting is not modelled
- HudState.errors never holds more than MAX_ERRORS records (FIFO)
- session_phase is re-derived from (is_idle, connection_status) after
  every action
- The prior state is never mutated; unknown actions return it unchanged
"""

from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Tuple, Union

import structlog

from claude_hud.core.models import (
    MAX_ERRORS,
    AgentRecord,
    AgentStatus,
    ConnectionStatus,
    ContextUsage,
    CostEstimate,
    ErrorRecord,
    HudState,
    SchemaBanner,
    SessionPhase,
    TodoItem,
    ToolRecord,
    ToolStatus,
)
from claude_hud.core.schemas import (
    ContextFilesSnapshot,
    HudConfig,
    HudEvent,
    SettingsSnapshot,
)

logger = structlog.get_logger()


# Tool names with side effects on todo/agent state
TODO_TOOL = "TodoWrite"
TASK_TOOL = "Task"


# ==========================================================================
# Actions
# ==========================================================================

@dataclass(frozen=True)
class EventAction:
    event: HudEvent
    now: float


@dataclass(frozen=True)
class ModelAction:
    model: Optional[str]


@dataclass(frozen=True)
class TickAction:
    now: float


@dataclass(frozen=True)
class ErrorAction:
    error: ErrorRecord


@dataclass(frozen=True)
class ParseErrorAction:
    pass


@dataclass(frozen=True)
class SafeModeAction:
    safe_mode: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class ConnectionAction:
    status: ConnectionStatus


@dataclass(frozen=True)
class ConfigAction:
    config: Optional[HudConfig]


@dataclass(frozen=True)
class ContextFilesAction:
    context_files: Optional[ContextFilesSnapshot]


@dataclass(frozen=True)
class SettingsAction:
    settings: Optional[SettingsSnapshot]


@dataclass(frozen=True)
class ContextAction:
    context: ContextUsage


@dataclass(frozen=True)
class CostAction:
    cost: CostEstimate


@dataclass(frozen=True)
class BannerAction:
    banner: SchemaBanner


HudAction = Union[
    EventAction,
    ModelAction,
    TickAction,
    ErrorAction,
    ParseErrorAction,
    SafeModeAction,
    ConnectionAction,
    ConfigAction,
    ContextFilesAction,
    SettingsAction,
    ContextAction,
    CostAction,
    BannerAction,
]


# ==========================================================================
# Helpers
# ==========================================================================

def derive_session_phase(is_idle: bool, connection_status: ConnectionStatus) -> SessionPhase:
    if connection_status == ConnectionStatus.ERROR:
        return SessionPhase.ERROR
    if not is_idle and connection_status == ConnectionStatus.CONNECTED:
        return SessionPhase.ACTIVE
    return SessionPhase.IDLE


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _response_is_error(response: Optional[Dict[str, Any]]) -> bool:
    if not response:
        return False
    return bool(response.get("error")) or response.get("is_error") is True


def _parse_todos(tool_input: Optional[Dict[str, Any]]) -> Tuple[TodoItem, ...]:
    raw = (tool_input or {}).get("todos")
    if not isinstance(raw, list):
        return ()
    todos = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        content = item.get("content")
        status = item.get("status")
        if isinstance(content, str) and isinstance(status, str):
            todos.append(TodoItem(content=content, status=status))
    return tuple(todos)


def _input_str(tool_input: Optional[Dict[str, Any]], key: str, default: str) -> str:
    value = (tool_input or {}).get(key)
    return value if isinstance(value, str) and value else default


def _tool_use_id(event: HudEvent) -> str:
    if event.tool_use_id:
        return event.tool_use_id
    return f"{event.tool or 'tool'}-{event.ts}"


def _with_advisory_fields(state: HudState, event: HudEvent) -> HudState:
    info = state.session_info
    updates: Dict[str, Any] = {"session_id": event.session or info.session_id}
    if event.prompt is not None:
        updates["prompt"] = event.prompt
    if event.permission_mode is not None:
        updates["permission_mode"] = event.permission_mode
    if event.cwd is not None:
        updates["cwd"] = event.cwd
    if event.transcript_path is not None:
        updates["transcript_path"] = event.transcript_path
    return replace(state, session_info=replace(info, **updates))


def _set_idle(state: HudState, is_idle: bool) -> HudState:
    if state.session_info.is_idle == is_idle:
        return state
    return replace(state, session_info=replace(state.session_info, is_idle=is_idle))


# ==========================================================================
# Event Handlers
# ==========================================================================

def _pre_tool_use(state: HudState, event: HudEvent, now: float) -> HudState:
    tool_id = _tool_use_id(event)
    tool_name = event.tool or "unknown"
    current = state.current_agent

    record = ToolRecord(
        id=tool_id,
        tool=tool_name,
        status=ToolStatus.RUNNING,
        start_ts=now,
        agent_id=current.id if current else None,
    )

    if tool_id in state.running_tools:
        # Replace the running record rather than tracking the id twice
        tools = tuple(
            record if t.id == tool_id and t.status == ToolStatus.RUNNING else t
            for t in state.tools
        )
    else:
        tools = state.tools + (record,)

    state = replace(
        state,
        tools=tools,
        running_tools=state.running_tools | {tool_id},
    )

    if tool_name == TODO_TOOL:
        state = replace(state, todos=_parse_todos(event.input))

    if tool_name == TASK_TOOL:
        agent = AgentRecord(
            id=tool_id,
            subagent_type=_input_str(event.input, "subagent_type", "unknown"),
            description=_input_str(event.input, "description", ""),
            status=AgentStatus.RUNNING,
            start_ts=now,
        )
        state = replace(state, agents=state.agents + (agent,))

    return _set_idle(state, False)


def _post_tool_use(state: HudState, event: HudEvent, now: float) -> HudState:
    tool_id = _tool_use_id(event)
    response = event.response
    status = ToolStatus.ERROR if _response_is_error(response) else ToolStatus.COMPLETE

    index: Optional[int] = None
    if tool_id in state.running_tools:
        for i in range(len(state.tools) - 1, -1, -1):
            t = state.tools[i]
            if t.id == tool_id and t.status == ToolStatus.RUNNING:
                index = i
                break

    current = state.current_agent

    if index is None:
        # PreToolUse was lost or reordered: record it as already finished
        start = now
        base = ToolRecord(
            id=tool_id,
            tool=event.tool or "unknown",
            start_ts=start,
            agent_id=current.id if current else None,
        )
    else:
        base = state.tools[index]
        start = base.start_ts

    duration_ms = (response or {}).get("duration_ms")
    duration = duration_ms if _is_number(duration_ms) else max(now - start, 0)

    finished = replace(base, status=status, end_ts=now, duration=duration)

    if index is None:
        tools = state.tools + (finished,)
    else:
        tools = state.tools[:index] + (finished,) + state.tools[index + 1:]

    agents = state.agents
    if current is not None and current.id != tool_id:
        owned = tuple(t for t in current.tools if t.id != tool_id) + (finished,)
        agents = tuple(
            replace(a, tools=owned) if a is current else a
            for a in state.agents
        )

    return replace(
        state,
        tools=tools,
        agents=agents,
        running_tools=state.running_tools - {tool_id},
    )


def _subagent_stop(state: HudState, event: HudEvent, now: float) -> HudState:
    current = state.current_agent
    if current is None:
        return state
    closed = replace(current, status=AgentStatus.COMPLETE, end_ts=now)
    return replace(
        state,
        agents=tuple(closed if a is current else a for a in state.agents),
    )


_EVENT_HANDLERS: Dict[str, Callable[[HudState, HudEvent, float], HudState]] = {
    "PreToolUse": _pre_tool_use,
    "PostToolUse": _post_tool_use,
    "SubagentStop": _subagent_stop,
}


def _apply_event(state: HudState, action: EventAction) -> HudState:
    event = action.event
    state = _with_advisory_fields(state, event)

    handler = _EVENT_HANDLERS.get(event.event)
    if handler is not None:
        return handler(state, event, action.now)

    if event.event == "UserPromptSubmit":
        return _set_idle(state, False)
    if event.event == "Stop":
        return _set_idle(state, True)
    return state


def _append_error(state: HudState, action: ErrorAction) -> HudState:
    errors = (state.errors + (action.error,))[-MAX_ERRORS:]
    return replace(state, errors=errors)


_ACTION_HANDLERS: Dict[type, Callable[[HudState, Any], HudState]] = {
    EventAction: _apply_event,
    ModelAction: lambda s, a: replace(s, model=a.model),
    TickAction: lambda s, a: replace(s, now=a.now),
    ErrorAction: _append_error,
    ParseErrorAction: lambda s, a: replace(s, parse_error_count=s.parse_error_count + 1),
    SafeModeAction: lambda s, a: replace(s, safe_mode=a.safe_mode, safe_mode_reason=a.reason),
    ConnectionAction: lambda s, a: replace(s, connection_status=a.status),
    ConfigAction: lambda s, a: replace(s, config=a.config),
    ContextFilesAction: lambda s, a: replace(s, context_files=a.context_files),
    SettingsAction: lambda s, a: replace(s, settings=a.settings),
    ContextAction: lambda s, a: replace(s, context=a.context),
    CostAction: lambda s, a: replace(s, cost=a.cost),
    BannerAction: lambda s, a: replace(s, schema_banner=a.banner),
}


# ==========================================================================
# Reducer
# ==========================================================================

def reduce_hud_state(state: HudState, action: HudAction) -> HudState:
    """Apply one action. Never raises for a well-formed action."""
    handler = _ACTION_HANDLERS.get(type(action))
    if handler is None:
        logger.debug("Ignoring unknown action", action=type(action).__name__)
        return state

    next_state = handler(state, action)

    phase = derive_session_phase(
        next_state.session_info.is_idle,
        next_state.connection_status,
    )
    if phase != next_state.session_phase:
        next_state = replace(next_state, session_phase=phase)
    return next_state
