"""
Claude HUD - Runtime
====================

Process entry point for the streaming HUD.

HudRuntime owns every long-lived resource:
- the log sink
- the state store and degradation controller
- the cached config/settings readers
- the session manager (pipe reader and handover triggers)
- the clock tick and reader refresh loops

Everything is acquired through one AsyncExitStack and released on any exit.
"""

import argparse
import asyncio
import signal
import sys
from contextlib import AsyncExitStack
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from claude_hud.core.config import Settings, get_settings
from claude_hud.core.errors import ErrorCode, StartupError
from claude_hud.core.logger import LogSink, configure_logging
from claude_hud.core.models import ContextBreakdown, ErrorRecord, create_initial_state, now_ms
from claude_hud.readers.cached_reader import ReadStatus
from claude_hud.readers.hud_config import HudConfigReader
from claude_hud.readers.settings_reader import SettingsReader
from claude_hud.stream.degradation import (
    DegradationController,
    SafeModePolicy,
    SchemaBannerPolicy,
)
from claude_hud.stream.reducer import (
    ConfigAction,
    ContextAction,
    CostAction,
    ErrorAction,
    ModelAction,
    SettingsAction,
    TickAction,
)
from claude_hud.stream.session_manager import (
    PipeOpener,
    SessionManager,
    SessionTarget,
    open_fifo,
)
from claude_hud.stream.store import HudStore
from claude_hud.stream.telemetry import compute_context_usage, estimate_cost

logger = structlog.get_logger()


# ==========================================================================
# Runtime
# ==========================================================================

class HudRuntime:
    """Wires the streaming core together for one HUD process."""

    def __init__(
        self,
        settings: Settings,
        target: SessionTarget,
        opener: PipeOpener = open_fifo,
        clock: Callable[[], float] = now_ms,
        watch: bool = True,
        handle_signals: bool = True,
    ):
        self.settings = settings
        self._clock = clock
        self._handle_signals = handle_signals

        self.log_sink = LogSink(
            settings.log_file,
            debug=settings.DEBUG,
            max_bytes=settings.LOG_MAX_BYTES,
            backup_count=settings.LOG_BACKUP_COUNT,
        )
        self.store = HudStore(create_initial_state(
            session_id=target.session_id,
            transcript_path=target.transcript_path,
            now=clock(),
        ))
        self.controller = DegradationController(
            self.store.dispatch,
            safe_mode=SafeModePolicy(
                threshold=settings.SAFE_MODE_THRESHOLD,
                window_ms=settings.SAFE_MODE_WINDOW_SECONDS * 1000,
            ),
            banner=SchemaBannerPolicy(
                visible_ms=settings.SCHEMA_BANNER_VISIBLE_SECONDS * 1000,
                suppress_ms=settings.SCHEMA_BANNER_SUPPRESS_SECONDS * 1000,
            ),
            clock=clock,
        )
        self.config_reader = HudConfigReader(settings.config_file)
        self.settings_reader = SettingsReader(settings.SETTINGS_PATH)

        handover_path = (
            settings.handover_file(target.terminal_id) if target.terminal_id else None
        )
        self.manager = SessionManager(
            self.store,
            self.controller,
            target,
            handover_path=handover_path,
            poll_interval=settings.REFRESH_POLL_SECONDS,
            retry_interval=settings.PIPE_RETRY_SECONDS,
            line_limit=settings.PIPE_LINE_LIMIT_BYTES,
            opener=opener,
            clock=clock,
            watch=watch,
            handle_signal=handle_signals,
            on_handover=self._on_handover,
        )

        self._stop_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        # Last error reported per document, so a persistent fault is logged once
        self._reported_errors: Dict[str, Optional[str]] = {}

    # ==========================================================================
    # Snapshots
    # ==========================================================================

    def _report_read_error(self, key: str, code: ErrorCode, status: ReadStatus) -> None:
        if status.error == self._reported_errors.get(key):
            return
        self._reported_errors[key] = status.error
        if status.error is not None:
            self.store.dispatch(ErrorAction(ErrorRecord(
                code=code.value,
                message=status.error,
                ts=self._clock(),
            )))

    def _apply_snapshots(self, config_status: ReadStatus, settings_status: ReadStatus) -> None:
        self._report_read_error("config", ErrorCode.CONFIG_READ_FAILED, config_status)
        self._report_read_error("settings", ErrorCode.SETTINGS_READ_FAILED, settings_status)

        snapshot = settings_status.data
        self.store.dispatch(ConfigAction(config_status.data))
        self.store.dispatch(SettingsAction(snapshot))
        self.store.dispatch(ModelAction(snapshot.model if snapshot else None))

    async def load_snapshots(self) -> None:
        """Read config and settings (cached) and push them into the store."""
        self._apply_snapshots(
            await self.config_reader.read_with_status_async(),
            await self.settings_reader.read_with_status_async(),
        )

    async def refresh_snapshots(self) -> None:
        """Re-read config and settings from disk."""
        self._apply_snapshots(
            await self.config_reader.refresh_with_status_async(),
            await self.settings_reader.refresh_with_status_async(),
        )

    def _on_handover(self, target: SessionTarget) -> None:
        # The store was replaced wholesale; restore the session-independent snapshots
        self._reported_errors.clear()
        self._apply_snapshots(
            self.config_reader.read_with_status(),
            self.settings_reader.read_with_status(),
        )

    # ==========================================================================
    # Telemetry
    # ==========================================================================

    def record_usage(
        self,
        tokens: int,
        max_tokens: int,
        input_tokens: int = 0,
        output_tokens: int = 0,
        breakdown: Optional[ContextBreakdown] = None,
    ) -> None:
        """
        Fold a token sample into context and cost.

        The pipe carries no token counts. This is the entry point for the
        external read-transcript collaborator, which calls it with usage taken
        from the session transcript. Until one is attached, context and cost
        keep their initial values.
        """
        state = self.store.state
        now = self._clock()
        self.store.dispatch(ContextAction(
            compute_context_usage(state.context, tokens, max_tokens, now, breakdown)
        ))

        pricing_table = state.config.pricing if state.config else None
        pricing = pricing_table.for_model(state.model) if pricing_table else None
        self.store.dispatch(CostAction(estimate_cost(input_tokens, output_tokens, pricing)))

    # ==========================================================================
    # Loops
    # ==========================================================================

    def tick(self) -> None:
        now = self._clock()
        self.store.dispatch(TickAction(now))
        self.controller.on_tick(now)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.TICK_INTERVAL_SECONDS)
            self.tick()

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.READER_REFRESH_SECONDS)
            try:
                await self.refresh_snapshots()
            except Exception as e:
                logger.error("Snapshot refresh failed", error=str(e))

    async def _cancel_tasks(self) -> None:
        tasks = self._tasks
        self._tasks = []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _install_stop_signals(self) -> List[int]:
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError, ValueError):
                continue
            installed.append(sig)
        return installed

    def _remove_stop_signals(self, installed: List[int]) -> None:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Run until stop() is called; release everything on the way out."""
        async with AsyncExitStack() as stack:
            stack.enter_context(self.log_sink)
            stack.callback(self.config_reader.close)
            stack.callback(self.settings_reader.close)

            logger.info(
                "Starting Claude HUD",
                version=self.settings.APP_VERSION,
                session_id=self.manager.target.session_id,
            )

            if self._handle_signals:
                installed = self._install_stop_signals()
                stack.callback(self._remove_stop_signals, installed)

            await self.load_snapshots()
            await stack.enter_async_context(self.manager)

            stack.push_async_callback(self._cancel_tasks)
            self._tasks = [
                asyncio.create_task(self._tick_loop()),
                asyncio.create_task(self._refresh_loop()),
            ]

            await self._stop_event.wait()
            logger.info("Shutting down Claude HUD")


# ==========================================================================
# Startup
# ==========================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claude-hud",
        description="Live status dashboard for a Claude Code session.",
    )
    parser.add_argument("--session", default="", help="Session id to follow")
    parser.add_argument("--fifo", default=None, help="Named pipe the host writes events to")
    parser.add_argument("--terminal-id", dest="terminal_id", default=None,
                        help="Terminal id naming the handover file")
    parser.add_argument("--transcript", default=None, help="Transcript path of the session")
    return parser


def startup_target(args: argparse.Namespace) -> SessionTarget:
    """Validate startup arguments. A missing pipe path is fatal."""
    if not args.fifo:
        raise StartupError("--fifo is required")
    return SessionTarget(
        session_id=args.session or "",
        pipe_path=args.fifo,
        terminal_id=args.terminal_id,
        transcript_path=args.transcript,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        target = startup_target(args)
    except StartupError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    settings = get_settings()
    configure_logging(json_logs=settings.is_production)

    runtime = HudRuntime(settings, target)
    try:
        asyncio.run(runtime.run())
    except KeyboardInterrupt:
        pass
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(main())
