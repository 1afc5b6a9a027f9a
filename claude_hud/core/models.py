"""
Claude HUD - State Models
=========================

In-memory data model for one tracked session. Every record is a frozen
dataclass and every collection is a tuple or frozenset, so a reduced state
never shares a mutable container with the state it was derived from.

All timestamps are epoch milliseconds, like the ``ts`` field on the wire.
"""

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple

from claude_hud.core.schemas import (
    ContextFilesSnapshot,
    HudConfig,
    SettingsSnapshot,
)


# Maximum structured errors kept in HudState.errors
MAX_ERRORS = 10

# Maximum samples kept in ContextUsage.token_history
MAX_TOKEN_HISTORY = 60


def now_ms() -> float:
    """Wall clock in epoch milliseconds."""
    return time.time() * 1000


# ==========================================================================
# Enums
# ==========================================================================

class ToolStatus(str, enum.Enum):
    """Lifecycle of one tool invocation."""
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


class AgentStatus(str, enum.Enum):
    """Lifecycle of one sub-agent run."""
    RUNNING = "running"
    COMPLETE = "complete"


class ContextStatus(str, enum.Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class ConnectionStatus(str, enum.Enum):
    """State of the pipe reader."""
    CONNECTING = "connecting"      # Waiting for the pipe to open
    CONNECTED = "connected"        # Reading lines
    DISCONNECTED = "disconnected"  # Pipe closed, will retry
    ERROR = "error"                # Pipe unavailable or broken


class SessionPhase(str, enum.Enum):
    """Derived from (is_idle, connection_status), never stored on its own."""
    ACTIVE = "active"
    IDLE = "idle"
    ERROR = "error"


# ==========================================================================
# Records
# ==========================================================================

@dataclass(frozen=True)
class ToolRecord:
    """One tool invocation, keyed by its toolUseId."""
    id: str
    tool: str
    status: ToolStatus = ToolStatus.RUNNING
    start_ts: float = 0
    end_ts: Optional[float] = None
    duration: Optional[float] = None
    agent_id: Optional[str] = None


@dataclass(frozen=True)
class AgentRecord:
    """One sub-agent run opened by a Task tool call."""
    id: str
    subagent_type: str
    description: str = ""
    status: AgentStatus = AgentStatus.RUNNING
    start_ts: float = 0
    end_ts: Optional[float] = None
    tools: Tuple[ToolRecord, ...] = ()


@dataclass(frozen=True)
class TodoItem:
    content: str
    status: str


@dataclass(frozen=True)
class ContextBreakdown:
    tool_outputs: int = 0
    tool_inputs: int = 0
    messages: int = 0
    other: int = 0


@dataclass(frozen=True)
class ContextUsage:
    """Context window telemetry for the session."""
    tokens: int = 0
    percent: int = 0
    remaining: int = 0
    max_tokens: int = 0
    burn_rate: float = 0.0
    status: ContextStatus = ContextStatus.HEALTHY
    should_compact: bool = False
    breakdown: ContextBreakdown = field(default_factory=ContextBreakdown)
    session_start: float = 0
    last_update: float = 0
    token_history: Tuple[Tuple[float, int], ...] = ()


@dataclass(frozen=True)
class CostEstimate:
    input_tokens: int = 0
    output_tokens: int = 0
    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0


@dataclass(frozen=True)
class ErrorRecord:
    """A structured diagnostic shown in the rolling error list."""
    code: str
    message: str
    ts: float
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionInfo:
    session_id: str = ""
    permission_mode: str = "default"
    cwd: str = ""
    transcript_path: str = ""
    prompt: Optional[str] = None
    is_idle: bool = True


@dataclass(frozen=True)
class SchemaBanner:
    """Visibility of the schema-mismatch banner."""
    visible: bool = False
    schema_version: Optional[int] = None
    expected: Optional[int] = None


# ==========================================================================
# Aggregate Root
# ==========================================================================

@dataclass(frozen=True)
class HudState:
    """Everything the view layer can read about the tracked session."""

    tools: Tuple[ToolRecord, ...] = ()
    todos: Tuple[TodoItem, ...] = ()
    agents: Tuple[AgentRecord, ...] = ()
    running_tools: FrozenSet[str] = frozenset()

    context: ContextUsage = field(default_factory=ContextUsage)
    cost: CostEstimate = field(default_factory=CostEstimate)

    session_info: SessionInfo = field(default_factory=SessionInfo)
    session_phase: SessionPhase = SessionPhase.IDLE
    connection_status: ConnectionStatus = ConnectionStatus.CONNECTING

    # Degradation
    safe_mode: bool = False
    safe_mode_reason: Optional[str] = None
    errors: Tuple[ErrorRecord, ...] = ()
    parse_error_count: int = 0
    schema_banner: SchemaBanner = field(default_factory=SchemaBanner)

    # Cached snapshots
    settings: Optional[SettingsSnapshot] = None
    config: Optional[HudConfig] = None
    context_files: Optional[ContextFilesSnapshot] = None

    model: Optional[str] = None
    now: float = 0

    @property
    def current_agent(self) -> Optional[AgentRecord]:
        """The most recently opened agent that is still running."""
        for agent in reversed(self.agents):
            if agent.status == AgentStatus.RUNNING:
                return agent
        return None


def create_initial_state(
    session_id: str = "",
    transcript_path: Optional[str] = None,
    now: float = 0,
) -> HudState:
    """Fresh state for a newly followed session."""
    return HudState(
        session_info=SessionInfo(
            session_id=session_id,
            transcript_path=transcript_path or "",
        ),
        now=now,
    )
