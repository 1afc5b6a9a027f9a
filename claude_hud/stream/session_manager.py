"""
Session Manager
===============

Keeps the store pinned to the one live pipe of the current host session.

The host rewrites ``refresh-<terminalId>.json`` whenever it rotates to a new
session. Three independent triggers re-check that file:

1. SIGUSR1 sent by the host
2. A directory watch on the HUD dir, filtered to the handover filename
3. A fixed-interval poll

All three only enqueue a request; one consumer task drains the queue and
runs recheck(), which compares the (session, pipe, transcript) triple with
the active one and hands over only when it differs. Redundant or bursty
triggers therefore collapse into at most one handover.

Pipe lines go through the event codec. Malformed lines are counted by the
degradation controller and never end the stream.
"""

import asyncio
import os
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Callable,
    List,
    Optional,
)

import structlog
from watchfiles import awatch

from claude_hud.core.errors import ErrorCode, HudError
from claude_hud.core.models import ConnectionStatus, create_initial_state, now_ms
from claude_hud.core.schemas import HandoverDocument
from claude_hud.readers.cached_reader import CachedDocumentReader
from claude_hud.stream.degradation import DegradationController
from claude_hud.stream.event_codec import ParseIssue, ParseResult, parse_event_result
from claude_hud.stream.reducer import ConnectionAction, ErrorAction, EventAction
from claude_hud.stream.store import HudStore

logger = structlog.get_logger()


DEFAULT_LINE_LIMIT = 1024 * 1024


# ==========================================================================
# Session Target
# ==========================================================================

@dataclass(frozen=True)
class SessionTarget:
    """The session/pipe pair the manager is following."""
    session_id: str
    pipe_path: str
    terminal_id: Optional[str] = None
    transcript_path: Optional[str] = None

    def same_stream(self, other: Optional["SessionTarget"]) -> bool:
        if other is None:
            return False
        return (
            self.session_id == other.session_id
            and self.pipe_path == other.pipe_path
            and (self.transcript_path or None) == (other.transcript_path or None)
        )

    @classmethod
    def from_document(
        cls,
        doc: HandoverDocument,
        terminal_id: Optional[str] = None,
    ) -> "SessionTarget":
        return cls(
            session_id=doc.session_id,
            pipe_path=doc.pipe_path,
            terminal_id=doc.terminal_id or terminal_id,
            transcript_path=doc.transcript_path,
        )


class HandoverFileReader(CachedDocumentReader[HandoverDocument]):
    """The host's side-channel file. Absent means no pending handover."""

    error_code = ErrorCode.HANDOVER_READ_FAILED

    def parse(self, raw: Any) -> HandoverDocument:
        if not isinstance(raw, dict):
            raise ValueError("handover document is not an object")
        return HandoverDocument.model_validate(raw)


# ==========================================================================
# Pipe Opener
# ==========================================================================

PipeOpener = Callable[[str, int], AsyncContextManager[asyncio.StreamReader]]


@asynccontextmanager
async def open_fifo(path: str, limit: int = DEFAULT_LINE_LIMIT) -> AsyncIterator[asyncio.StreamReader]:
    """
    Open a named pipe for line reading on the running loop.

    A write handle is held next to the read handle so the pipe never reports
    EOF while the host restarts its writer.
    """
    loop = asyncio.get_running_loop()
    read_fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
    pipe = os.fdopen(read_fd, "rb", buffering=0)
    keepalive_fd: Optional[int] = None
    transport = None
    try:
        try:
            keepalive_fd = os.open(path, os.O_WRONLY | os.O_NONBLOCK)
        except OSError as e:
            logger.warning("Pipe keep-alive unavailable", pipe_path=path, error=str(e))

        reader = asyncio.StreamReader(limit=limit)
        transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader),
            pipe,
        )
        yield reader
    finally:
        if transport is not None:
            transport.close()
        else:
            pipe.close()
        if keepalive_fd is not None:
            os.close(keepalive_fd)


# ==========================================================================
# Session Manager
# ==========================================================================

class SessionManager:
    """
    Streams the live pipe into the store and follows session rotation.

    Use as an async context manager, or call start()/stop() explicitly.
    """

    def __init__(
        self,
        store: HudStore,
        controller: DegradationController,
        target: SessionTarget,
        handover_path: Optional[Path] = None,
        poll_interval: float = 5.0,
        retry_interval: float = 1.0,
        line_limit: int = DEFAULT_LINE_LIMIT,
        opener: PipeOpener = open_fifo,
        clock: Callable[[], float] = now_ms,
        watch: bool = True,
        handle_signal: bool = True,
        on_handover: Optional[Callable[[SessionTarget], None]] = None,
    ):
        self.store = store
        self.controller = controller
        self.target = target
        self.handover_path = Path(handover_path) if handover_path else None
        self.poll_interval = poll_interval
        self.retry_interval = retry_interval
        self.line_limit = line_limit
        self._opener = opener
        self._clock = clock
        self._watch_enabled = watch
        self._signal_enabled = handle_signal
        self._on_handover = on_handover

        self._handover_reader = (
            HandoverFileReader(self.handover_path) if self.handover_path else None
        )
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._stop_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._reader_task: Optional[asyncio.Task] = None
        self._signal: Optional[int] = None
        self._running = False

        self.handover_count = 0
        self.recheck_count = 0

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stop_event.clear()

        self._start_reader()
        self._tasks.append(asyncio.create_task(self._consume_requests()))

        if self._handover_reader is not None:
            self._tasks.append(asyncio.create_task(self._poll_loop()))
            if self._watch_enabled:
                self._tasks.append(asyncio.create_task(self._watch_loop(self.handover_path)))
            if self._signal_enabled:
                self._install_signal_handler()
            self.request_recheck("startup")

        logger.info(
            "Session manager started",
            session_id=self.target.session_id,
            pipe_path=self.target.pipe_path,
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._stop_event.set()
        self._remove_signal_handler()

        tasks = self._tasks
        self._tasks = []
        if self._reader_task is not None:
            tasks.append(self._reader_task)
            self._reader_task = None

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._handover_reader is not None:
            self._handover_reader.close()
        logger.info("Session manager stopped", session_id=self.target.session_id)

    async def run(self) -> None:
        """Run until stop() is called or the task is cancelled."""
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()

    async def __aenter__(self) -> "SessionManager":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @property
    def is_running(self) -> bool:
        return self._running

    # ==========================================================================
    # Triggers
    # ==========================================================================

    def request_recheck(self, source: str) -> None:
        """Ask for a handover check. Safe to call from any trigger, any number of times."""
        self._queue.put_nowait(source)

    def _install_signal_handler(self) -> None:
        sig = getattr(signal, "SIGUSR1", None)
        if sig is None:
            return
        try:
            asyncio.get_running_loop().add_signal_handler(sig, self.request_recheck, "signal")
        except (NotImplementedError, RuntimeError, ValueError) as e:
            logger.warning("Signal trigger unavailable", error=str(e))
            return
        self._signal = sig

    def _remove_signal_handler(self) -> None:
        if self._signal is None:
            return
        try:
            asyncio.get_running_loop().remove_signal_handler(self._signal)
        except (NotImplementedError, RuntimeError, ValueError):
            pass
        self._signal = None

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            self.request_recheck("poll")

    async def _watch_loop(self, handover_path: Path) -> None:
        directory = handover_path.parent
        filename = handover_path.name

        def only_handover_file(_change: Any, path: str) -> bool:
            return Path(path).name == filename

        while not self._stop_event.is_set():
            try:
                directory.mkdir(parents=True, exist_ok=True)
                async for _changes in awatch(
                    directory,
                    watch_filter=only_handover_file,
                    stop_event=self._stop_event,
                    recursive=False,
                ):
                    self.request_recheck("watch")
            except (OSError, RuntimeError) as e:
                # The poll still covers us; retry the watch later
                logger.warning("Handover watch failed", directory=str(directory), error=str(e))
                await asyncio.sleep(self.poll_interval)

    async def _consume_requests(self) -> None:
        while True:
            source = await self._queue.get()
            # Collapse a burst of triggers into one check
            while not self._queue.empty():
                self._queue.get_nowait()
            try:
                await self.recheck(source)
            except Exception as e:
                logger.error("Handover check failed", source=source, error=str(e))

    # ==========================================================================
    # Handover
    # ==========================================================================

    async def recheck(self, source: str = "manual") -> bool:
        """Read the handover file; hand over if it names a different stream."""
        if self._handover_reader is None:
            return False

        status = await self._handover_reader.refresh_with_status_async()
        self.recheck_count += 1
        if status.data is None:
            return False

        candidate = SessionTarget.from_document(status.data, self.target.terminal_id)
        if candidate.same_stream(self.target):
            return False

        await self._handover(candidate, source)
        return True

    async def _handover(self, candidate: SessionTarget, source: str) -> None:
        logger.info(
            "Session handover",
            source=source,
            previous_session_id=self.target.session_id,
            session_id=candidate.session_id,
            pipe_path=candidate.pipe_path,
        )
        await self._stop_reader()

        self.target = candidate
        self.controller.reset()
        self.store.reset(create_initial_state(
            session_id=candidate.session_id,
            transcript_path=candidate.transcript_path,
            now=self._clock(),
        ))
        self.handover_count += 1

        if self._on_handover is not None:
            self._on_handover(candidate)

        if self._running:
            self._start_reader()

    # ==========================================================================
    # Pipe Reading
    # ==========================================================================

    def _start_reader(self) -> None:
        self._reader_task = asyncio.create_task(self._read_pipe(self.target))

    async def _stop_reader(self) -> None:
        task = self._reader_task
        self._reader_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _set_connection(self, status: ConnectionStatus) -> None:
        if self.store.state.connection_status != status:
            self.store.dispatch(ConnectionAction(status))

    async def _read_pipe(self, target: SessionTarget) -> None:
        while True:
            connected = False
            try:
                async with self._opener(target.pipe_path, self.line_limit) as reader:
                    connected = True
                    self._set_connection(ConnectionStatus.CONNECTED)
                    logger.info("Pipe connected", session_id=target.session_id, pipe_path=target.pipe_path)
                    await self._consume_lines(reader)
                self._set_connection(ConnectionStatus.DISCONNECTED)
                logger.info("Pipe closed", session_id=target.session_id)
            except (OSError, ValueError) as e:
                code = ErrorCode.PIPE_READ_FAILED if connected else ErrorCode.PIPE_UNAVAILABLE
                self._report_pipe_fault(target, e, code)

            await asyncio.sleep(self.retry_interval)

    def _report_pipe_fault(self, target: SessionTarget, exc: Exception, code: ErrorCode) -> None:
        # One error record per outage, not one per retry
        if self.store.state.connection_status == ConnectionStatus.ERROR:
            logger.debug("Pipe still unavailable", pipe_path=target.pipe_path, error=str(exc))
            return
        event = "Pipe read failed" if code == ErrorCode.PIPE_READ_FAILED else "Pipe unavailable"
        logger.error(event, pipe_path=target.pipe_path, error=str(exc))
        error = HudError(f"{event}: {exc}", code, {"pipePath": target.pipe_path})
        self.store.dispatch(ErrorAction(error.to_record(self._clock())))
        self._set_connection(ConnectionStatus.ERROR)

    async def _consume_lines(self, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                raw = await reader.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                # EOF, possibly after an unterminated last line
                if e.partial:
                    self.ingest_line(e.partial.decode("utf-8", errors="replace"))
                return
            except asyncio.LimitOverrunError as e:
                self.controller.on_parse_error(ParseIssue(
                    code=ErrorCode.EVENT_PARSE_FAILED.value,
                    message=f"Line exceeds {self.line_limit} bytes",
                ))
                await self._skip_line(reader, e.consumed)
                continue
            self.ingest_line(raw.decode("utf-8", errors="replace"))

    @staticmethod
    async def _skip_line(reader: asyncio.StreamReader, pending: int) -> None:
        """Drop the rest of an over-long line, however many chunks it spans."""
        while True:
            await reader.readexactly(pending)
            try:
                await reader.readuntil(b"\n")
                return
            except asyncio.IncompleteReadError:
                return
            except asyncio.LimitOverrunError as e:
                pending = e.consumed

    def ingest_line(self, line: str, now: Optional[float] = None) -> Optional[ParseResult]:
        """Decode one line and dispatch what it yields. Never raises."""
        line = line.strip()
        if not line:
            return None

        result = parse_event_result(line)
        if not result.ok:
            self.controller.on_parse_error(result.error)
            return result

        if result.event is None:
            return result
        self.store.dispatch(EventAction(
            event=result.event,
            now=self._clock() if now is None else now,
        ))
        if result.warning is not None:
            self.controller.on_schema_warning(result.warning)
        return result
