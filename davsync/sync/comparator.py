"""File comparison logic for sync operations."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..utils import MTIME_TOLERANCE
from .scanner import Entry


class SyncAction(str, Enum):
    """Actions that can be taken for a source file."""

    TRANSFER = "transfer"
    """Copy the source file over the destination"""

    SKIP = "skip"
    """Destination is up to date"""


@dataclass
class SyncDecision:
    """Represents a decision about how to sync a file."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    relative_path: str
    """Relative path of the file"""

    source: Entry
    """Source entry"""

    destination: Optional[Entry] = None
    """Destination entry (if it exists)"""

    @property
    def needs_transfer(self) -> bool:
        return self.action == SyncAction.TRANSFER


class FileComparator:
    """Decides whether a source file must be copied to the destination.

    The comparison is one-way: the source side of the current run always
    wins, and only modification times are compared. Timestamps within
    ``tolerance`` seconds of each other (inclusive) count as equal, which
    absorbs the coarse mtime resolution of some filesystems and servers.
    """

    def __init__(
        self, compare_content: bool = False, tolerance: float = MTIME_TOLERANCE
    ):
        """Initialize file comparator.

        Args:
            compare_content: Check sizes before timestamps. Only a size
                mismatch is detected; no content hashing is done.
            tolerance: Maximum mtime difference (seconds) still
                considered unchanged
        """
        self.compare_content = compare_content
        self.tolerance = tolerance

    def decide(
        self,
        source: Entry,
        dest_exists: Callable[[], bool],
        dest_lookup: Callable[[], Entry],
    ) -> SyncDecision:
        """Compare a source file with its destination counterpart.

        Args:
            source: Source file entry
            dest_exists: Returns whether the destination path exists
            dest_lookup: Returns the destination entry; only called when
                the destination exists

        Returns:
            SyncDecision for this file
        """
        if not dest_exists():
            return SyncDecision(
                action=SyncAction.TRANSFER,
                reason="Destination does not exist",
                relative_path=source.path,
                source=source,
            )

        destination = dest_lookup()

        if self.compare_content and source.size != destination.size:
            return SyncDecision(
                action=SyncAction.TRANSFER,
                reason=f"Sizes differ ({source.size} vs {destination.size})",
                relative_path=source.path,
                source=source,
                destination=destination,
            )

        time_diff = abs(source.mtime - destination.mtime)
        if time_diff <= self.tolerance:
            return SyncDecision(
                action=SyncAction.SKIP,
                reason="Unchanged (modification times match)",
                relative_path=source.path,
                source=source,
                destination=destination,
            )

        return SyncDecision(
            action=SyncAction.TRANSFER,
            reason=f"Modification times differ by {time_diff:.3f}s",
            relative_path=source.path,
            source=source,
            destination=destination,
        )

    def needs_transfer(
        self,
        source: Entry,
        dest_exists: Callable[[], bool],
        dest_lookup: Callable[[], Entry],
    ) -> bool:
        """Return True if the source file has to be transferred."""
        return self.decide(source, dest_exists, dest_lookup).needs_transfer
