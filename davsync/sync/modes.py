"""Sync directions."""

from enum import Enum


class SyncDirection(str, Enum):
    """Which side of a sync run is the source of truth."""

    PUSH = "backup"
    """Local tree is the source; the remote tree is updated (local -> WebDAV)"""

    PULL = "restore"
    """Remote tree is the source; the local tree is updated (WebDAV -> local)"""

    @classmethod
    def from_string(cls, value: str) -> "SyncDirection":
        """Parse a direction name or alias.

        Accepts "backup"/"push" and "restore"/"pull" (case-insensitive).

        Raises:
            ValueError: If the value names no direction
        """
        normalized = value.strip().lower()
        aliases = {
            "backup": cls.PUSH,
            "push": cls.PUSH,
            "restore": cls.PULL,
            "pull": cls.PULL,
        }
        if normalized not in aliases:
            valid = ", ".join(sorted(aliases))
            raise ValueError(f"Invalid sync mode '{value}'. Valid modes: {valid}")
        return aliases[normalized]

    @property
    def source_label(self) -> str:
        return "local" if self is SyncDirection.PUSH else "remote"

    @property
    def destination_label(self) -> str:
        return "remote" if self is SyncDirection.PUSH else "local"
