"""Progress tracking for file transfers.

Transfers report byte counts to a TransferProgressTracker, which turns
them into throttled TransferProgress events for a progress sink. The
sink is optional: the engine uses NullProgressSink when none is given,
and nothing a sink does can change the outcome of a transfer.
"""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from ..utils import PROGRESS_INTERVAL

if TYPE_CHECKING:
    from .protocols import ProgressSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferProgress:
    """A progress event for one file transfer."""

    identifier: str
    """Relative path of the file being transferred"""

    bytes_moved: int
    """Bytes transferred so far"""

    total_bytes: int
    """Expected size in bytes (0 if unknown)"""

    speed: float
    """Bytes per second since the previous event"""

    percentage: float
    """Completion in percent (0-100)"""


class NullProgressSink:
    """Progress sink that discards every event."""

    def start(self, identifier: str, total_bytes: int) -> None:
        pass

    def update(self, event: TransferProgress) -> None:
        pass

    def finish(self, identifier: str, success: bool) -> None:
        pass


class TransferProgressTracker:
    """Throttles byte-count updates into progress events.

    The first read of at least one byte is reported immediately; after
    that at most one event is emitted per ``interval`` seconds. complete()
    always emits a final event. Speed is measured between emitted events,
    not averaged over the whole transfer.

    A retried transfer reuses its tracker through restart(). Bytes of the
    new attempt only count once they pass what was already reported, so
    ``bytes_moved`` never decreases.
    """

    def __init__(
        self,
        identifier: str,
        total_bytes: int,
        callback: Callable[[TransferProgress], None],
        interval: float = PROGRESS_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the tracker.

        Args:
            identifier: Relative path of the transferred file
            total_bytes: Expected size in bytes (0 if unknown)
            callback: Receives each emitted event
            interval: Minimum seconds between throttled events
            clock: Monotonic clock, injectable for tests
        """
        self.identifier = identifier
        self.total_bytes = total_bytes
        self._callback = callback
        self._interval = interval
        self._clock = clock
        self.bytes_moved = 0
        self.events_emitted = 0
        self._attempt_bytes = 0
        self._last_time = clock()
        self._last_bytes = 0

    def _percentage(self, final: bool) -> float:
        if self.total_bytes > 0:
            return min(100.0, self.bytes_moved * 100.0 / self.total_bytes)
        return 100.0 if final else 0.0

    def _emit(self, now: float, final: bool = False) -> None:
        elapsed = now - self._last_time
        moved = self.bytes_moved - self._last_bytes
        speed = moved / elapsed if elapsed > 0 else 0.0
        event = TransferProgress(
            identifier=self.identifier,
            bytes_moved=self.bytes_moved,
            total_bytes=self.total_bytes,
            speed=speed,
            percentage=self._percentage(final),
        )
        self._last_time = now
        self._last_bytes = self.bytes_moved
        self.events_emitted += 1
        try:
            self._callback(event)
        except Exception as e:
            logger.debug(f"Progress sink failed for {self.identifier}: {e}")

    def advance(self, nbytes: int) -> None:
        """Record ``nbytes`` more transferred bytes."""
        if nbytes <= 0:
            return
        self._attempt_bytes += nbytes
        if self._attempt_bytes <= self.bytes_moved:
            return
        self.bytes_moved = self._attempt_bytes
        now = self._clock()
        if self.events_emitted == 0 or now - self._last_time >= self._interval:
            self._emit(now)

    def restart(self, total_bytes: int = 0) -> None:
        """Begin another attempt of the same transfer.

        Args:
            total_bytes: Expected size, if known now (keeps the old one if 0)
        """
        self._attempt_bytes = 0
        if total_bytes > 0:
            self.total_bytes = total_bytes

    def complete(self) -> None:
        """Emit the mandatory final event."""
        self._emit(self._clock(), final=True)


@contextmanager
def track_transfer(
    sink: Optional["ProgressSink"], identifier: str, total_bytes: int
) -> Iterator[Callable[[TransferProgress], None]]:
    """Register a transfer with a sink for the duration of the block.

    finish() is called on every exit path; success is False when the
    block raised.

    Yields:
        The callback to hand to TransferProgressTracker
    """
    if sink is None:
        sink = NullProgressSink()
    _safe_call(sink.start, identifier, total_bytes)
    success = False
    try:
        yield sink.update
        success = True
    finally:
        _safe_call(sink.finish, identifier, success)


def _safe_call(func: Callable, *args: object) -> None:
    try:
        func(*args)
    except Exception as e:
        logger.debug(f"Progress sink call {func!r} failed: {e}")
