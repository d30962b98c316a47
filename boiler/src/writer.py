"""
Durable writer: persists each reading with bounded retry and backoff.

Each persist call runs a small state machine::

    IDLE -> RETRYING(attempt) -> SUCCEEDED | FAILED

- Up to ``max_attempts`` attempts (default 3).
- Before attempt n+1 the writer sleeps ``backoff_base_s * n``
  (1s, 2s, ... with the default base).
- TerminalWriteError (device not registered) stops immediately, marks the
  device link broken and the storage degraded.
- Any other failure is transient; once attempts are exhausted the storage
  is flagged degraded.
- A success clears the storage flags.

``submit()`` runs persist as a background task so message handling never
waits on the store.  Writes may complete out of arrival order under
retries; rows are keyed by timestamp so this is harmless.

CHANGELOG:
- 2026-10-17: Replace doubling backoff with base * attempt (STORY-006)
- 2026-10-17: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from boiler.src.errors import TerminalWriteError

if TYPE_CHECKING:
    from boiler.src.health import HealthMonitor
    from boiler.src.models import CanonicalReading
    from boiler.src.store import ReadingStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS: int = 3
DEFAULT_BACKOFF_BASE_S: float = 1.0


class WriteState(StrEnum):
    """States of a single reading's write."""

    IDLE = "idle"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class WriteResult:
    """Outcome of :meth:`DurableWriter.persist`.

    Attributes:
        state: SUCCEEDED or FAILED.
        attempts: Number of store calls made.
        terminal: True when the failure was not retryable.
        error: Message of the last failure, if any.
    """

    state: WriteState
    attempts: int
    terminal: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is WriteState.SUCCEEDED


class RetryStateMachine:
    """Tracks attempts for one write and decides when to stop.

    Args:
        max_attempts: Total attempts allowed (>= 1).
        backoff_base_s: Backoff unit in seconds.
    """

    def __init__(self, max_attempts: int, backoff_base_s: float) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff_base_s = backoff_base_s
        self.state = WriteState.IDLE
        self.attempt = 0

    def begin_attempt(self) -> int:
        """Move to the next attempt and return its number (1-based)."""
        if self.state in (WriteState.SUCCEEDED, WriteState.FAILED):
            raise RuntimeError(f"write already finished ({self.state})")
        self.attempt += 1
        self.state = WriteState.RETRYING
        return self.attempt

    def succeed(self) -> None:
        self.state = WriteState.SUCCEEDED

    def fail_terminal(self) -> None:
        self.state = WriteState.FAILED

    def fail_transient(self) -> float | None:
        """Record a transient failure.

        Returns:
            Seconds to wait before the next attempt, or ``None`` when the
            attempts are exhausted (state becomes FAILED).
        """
        if self.attempt >= self.max_attempts:
            self.state = WriteState.FAILED
            return None
        return self.backoff_base_s * self.attempt


class DurableWriter:
    """Persists readings through a :class:`ReadingStore` with retry.

    Args:
        store: Store exposing ``async insert_reading(reading)``.
        health: Health monitor whose storage flags this writer drives.
        max_attempts: Attempts per reading (default 3).
        backoff_base_s: Backoff unit in seconds (default 1).
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        store: ReadingStore,
        health: HealthMonitor,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base_s: float = DEFAULT_BACKOFF_BASE_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._store = store
        self._health = health
        self._max_attempts = max_attempts
        self._backoff_base_s = backoff_base_s
        self._sleep = sleep
        self._pending: set[asyncio.Task[WriteResult]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        """Number of background writes still running."""
        return len(self._pending)

    async def persist(self, reading: CanonicalReading) -> WriteResult:
        """Write *reading*, retrying transient failures.

        Never raises for store failures; the outcome is returned and the
        health flags are updated.
        """
        machine = RetryStateMachine(self._max_attempts, self._backoff_base_s)

        while True:
            attempt = machine.begin_attempt()
            try:
                await self._store.insert_reading(reading)
            except TerminalWriteError as exc:
                machine.fail_terminal()
                logger.warning(
                    "Write rejected for device %s, not retrying: %s",
                    reading.device_id,
                    exc,
                )
                self._health.mark_device_link_broken(str(exc))
                return WriteResult(
                    state=machine.state,
                    attempts=attempt,
                    terminal=True,
                    error=str(exc),
                )
            except Exception as exc:
                delay = machine.fail_transient()
                if delay is None:
                    logger.error(
                        "Write failed for device %s after %d attempts: %s",
                        reading.device_id,
                        attempt,
                        exc,
                    )
                    self._health.mark_storage_degraded(str(exc))
                    return WriteResult(
                        state=machine.state,
                        attempts=attempt,
                        error=str(exc),
                    )
                logger.warning(
                    "Write attempt %d failed, retrying in %.1fs: %s",
                    attempt,
                    delay,
                    exc,
                )
                await self._sleep(delay)
                continue

            machine.succeed()
            self._health.record_persist()
            return WriteResult(state=machine.state, attempts=attempt)

    def submit(self, reading: CanonicalReading) -> asyncio.Task[WriteResult]:
        """Schedule :meth:`persist` in the background and return the task."""
        task = asyncio.create_task(self.persist(reading))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for pending writes; cancel whatever is left after *timeout*."""
        if not self._pending:
            return
        pending = list(self._pending)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning("Cancelled %d unfinished writes at shutdown", len(not_done))
            await asyncio.gather(*not_done, return_exceptions=True)
