"""Directory scanning utilities for sync operations."""

import logging
import os
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..exceptions import EnumerationError, NotFoundError, TransportError
from ..utils import join_relative, join_remote_path

if TYPE_CHECKING:
    from .protocols import RemoteStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entry:
    """One node of a local or remote tree."""

    path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    is_dir: bool
    """Whether the node is a directory"""

    mtime: float
    """Last modification time (Unix timestamp)"""

    size: int = 0
    """File size in bytes (0 for directories)"""

    @property
    def name(self) -> str:
        """Last component of the path."""
        return posixpath.basename(self.path)

    @classmethod
    def from_path(cls, file_path: Path, base_path: Path) -> "Entry":
        """Create an Entry by stating a local path.

        Args:
            file_path: Absolute path to the file or directory
            base_path: Base path for calculating relative paths

        Returns:
            Entry instance
        """
        stat = file_path.stat()
        is_dir = file_path.is_dir()
        return cls(
            # Use as_posix() to ensure forward slashes on all platforms
            path=file_path.relative_to(base_path).as_posix(),
            is_dir=is_dir,
            mtime=stat.st_mtime,
            size=0 if is_dir else stat.st_size,
        )


class DirectoryScanner:
    """Lists and enumerates local and remote trees.

    Listing returns one directory level as Entry objects and is what the
    sync engine walks. Enumeration flattens a whole tree into relative
    paths and is only used to compute deletion candidates.

    Examples:
        >>> scanner = DirectoryScanner(client)
        >>> scanner.enumerate_local(Path("/sync/folder"))
        ['docs', 'docs/a.txt']
    """

    def __init__(self, client: Optional["RemoteStore"] = None):
        """Initialize directory scanner.

        Args:
            client: Remote store used for the remote variants
        """
        self.client = client

    def _require_client(self) -> "RemoteStore":
        if self.client is None:
            raise ValueError("A remote store is required for remote scanning")
        return self.client

    def list_local(self, root: Path, relative_path: str = "") -> list[Entry]:
        """List one level of a local directory.

        Symlinked directories are skipped so a link cycle cannot recurse;
        symlinked files are read through.

        Args:
            root: Root of the local tree
            relative_path: Directory to list, relative to root

        Returns:
            Entries with paths relative to root

        Raises:
            EnumerationError: If the directory cannot be read
        """
        directory = root / relative_path if relative_path else root
        try:
            items = list(directory.iterdir())
        except OSError as e:
            raise EnumerationError(relative_path, e) from e

        entries: list[Entry] = []
        for item in items:
            if _is_linked_dir(item):
                logger.warning(f"Skipping symlinked directory {item}")
                continue
            try:
                entries.append(Entry.from_path(item, root))
            except OSError as e:
                # Broken symlinks and files removed mid-scan
                logger.warning(f"Skipping unreadable path {item}: {e}")
        return entries

    def list_remote(self, root: str, relative_path: str = "") -> list[Entry]:
        """List one level of a remote directory.

        Args:
            root: Remote root of the tree
            relative_path: Directory to list, relative to root

        Returns:
            Entries with paths relative to root

        Raises:
            EnumerationError: If the remote listing fails
        """
        client = self._require_client()
        try:
            listing = client.list(join_remote_path(root, relative_path))
        except TransportError as e:
            raise EnumerationError(relative_path, e) from e

        return [
            Entry(
                path=join_relative(relative_path, entry.name),
                is_dir=entry.is_dir,
                mtime=entry.mtime,
                size=entry.size,
            )
            for entry in listing
        ]

    def enumerate_local(self, root: Path) -> list[str]:
        """Recursively collect every path below a local root.

        The root itself is not included. A missing root yields an empty
        list.

        Args:
            root: Root of the local tree

        Returns:
            Relative slash-separated paths of all files and directories

        Raises:
            EnumerationError: If a directory cannot be read
        """
        if not root.exists():
            logger.debug(f"Local root {root} does not exist, nothing to enumerate")
            return []

        paths: list[str] = []
        self._walk_local(root, root, paths)
        return paths

    def _walk_local(self, directory: Path, root: Path, paths: list[str]) -> None:
        try:
            items = list(directory.iterdir())
        except OSError as e:
            relative = directory.relative_to(root).as_posix()
            raise EnumerationError("" if relative == "." else relative, e) from e

        for item in items:
            paths.append(item.relative_to(root).as_posix())
            if item.is_dir() and not item.is_symlink():
                self._walk_local(item, root, paths)

    def enumerate_remote(self, root: str) -> list[str]:
        """Recursively collect every path below a remote root.

        The root itself is not included. A root that does not exist on
        the server yields an empty list.

        Args:
            root: Remote root of the tree

        Returns:
            Relative slash-separated paths of all files and directories

        Raises:
            EnumerationError: If a remote listing fails
        """
        try:
            return self._walk_remote(root, "")
        except EnumerationError as e:
            if e.path == "" and isinstance(e.cause, NotFoundError):
                logger.debug(f"Remote root {root} does not exist, nothing to enumerate")
                return []
            raise

    def _walk_remote(self, root: str, relative_path: str) -> list[str]:
        paths: list[str] = []
        for entry in self.list_remote(root, relative_path):
            paths.append(entry.path)
            if entry.is_dir:
                paths.extend(self._walk_remote(root, entry.path))
        return paths


def _is_linked_dir(path: Path) -> bool:
    """Whether path is a symlink pointing at a directory."""
    try:
        return path.is_symlink() and path.is_dir()
    except OSError:
        return False
