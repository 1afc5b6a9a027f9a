"""
Cached Document Reader
======================

Base class for readers that own one JSON document on disk.

- read() / read_with_status() parse on first access, then serve the cache
  until force_refresh() or until the optional TTL expires
- A missing file is "no data", never an error
- A failed re-read keeps the last good snapshot and reports the error
- Every access has an async twin that runs the file I/O in a thread
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generic, Optional, TypeVar

import structlog
from pydantic import ValidationError

from claude_hud.core.errors import DocumentReadError, ErrorCode

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class ReadStatus(Generic[T]):
    """Snapshot plus the error of the last read attempt, if any."""
    data: Optional[T] = None
    error: Optional[str] = None


class CachedDocumentReader(ABC, Generic[T]):
    """Reads, validates and caches one JSON document."""

    error_code: ErrorCode = ErrorCode.CONFIG_READ_FAILED

    def __init__(
        self,
        path: Path,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.path = Path(path)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._status: Optional[ReadStatus[T]] = None
        self._loaded_at = 0.0

    @abstractmethod
    def parse(self, raw: Any) -> T:
        """Turn decoded JSON into the typed snapshot. May raise ValueError."""

    # ==========================================================================
    # Loading
    # ==========================================================================

    def _load(self) -> Optional[T]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentReadError(str(self.path), str(e), self.error_code) from e

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise DocumentReadError(str(self.path), f"invalid JSON: {e}", self.error_code) from e

        try:
            return self.parse(raw)
        except (ValidationError, ValueError, TypeError) as e:
            raise DocumentReadError(str(self.path), f"invalid document: {e}", self.error_code) from e

    def _refresh(self) -> ReadStatus[T]:
        try:
            status: ReadStatus[T] = ReadStatus(data=self._load())
        except DocumentReadError as e:
            logger.error("Document read failed", path=e.path, reason=e.reason, code=e.code.value)
            previous = self._status.data if self._status else None
            status = ReadStatus(data=previous, error=e.message)

        self._status = status
        self._loaded_at = self._clock()
        return status

    def _is_fresh(self) -> bool:
        if self._status is None:
            return False
        if self.ttl_seconds is None:
            return True
        return self._clock() - self._loaded_at < self.ttl_seconds

    # ==========================================================================
    # Sync Access
    # ==========================================================================

    def read(self) -> Optional[T]:
        return self.read_with_status().data

    def read_with_status(self) -> ReadStatus[T]:
        if self._is_fresh():
            return self._status  # type: ignore[return-value]
        return self._refresh()

    def force_refresh(self) -> Optional[T]:
        return self._refresh().data

    def refresh_with_status(self) -> ReadStatus[T]:
        """Re-read now, bypassing the cache."""
        return self._refresh()

    # ==========================================================================
    # Async Access
    # ==========================================================================

    async def read_async(self) -> Optional[T]:
        return (await self.read_with_status_async()).data

    async def read_with_status_async(self) -> ReadStatus[T]:
        if self._is_fresh():
            return self._status  # type: ignore[return-value]
        return await asyncio.to_thread(self._refresh)

    async def force_refresh_async(self) -> Optional[T]:
        return (await self.refresh_with_status_async()).data

    async def refresh_with_status_async(self) -> ReadStatus[T]:
        return await asyncio.to_thread(self._refresh)

    def close(self) -> None:
        """Drop the cached snapshot."""
        self._status = None
        self._loaded_at = 0.0
