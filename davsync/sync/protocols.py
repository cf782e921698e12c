"""Interfaces the sync engine consumes."""

from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager
from typing import Optional, Protocol

from .progress import TransferProgress
from .scanner import Entry


class RemoteStore(Protocol):
    """Remote storage the engine synchronizes against.

    Paths are slash-separated and relative to the store root; a leading
    slash is accepted. Every method may raise TransportError, and
    NotFoundError when the path does not exist.
    """

    def list(self, path: str) -> list[Entry]:
        """List the direct children of a directory."""
        ...

    def exists(self, path: str) -> bool:
        """Check whether a file or directory exists."""
        ...

    def stat(self, path: str) -> Entry:
        """Return metadata of a single path."""
        ...

    def read_stream(self, path: str) -> AbstractContextManager[Iterator[bytes]]:
        """Open a file for streaming; the context yields byte chunks."""
        ...

    def write_stream(
        self, path: str, chunks: Iterable[bytes], mtime: Optional[float] = None
    ) -> None:
        """Store a file from an iterable of byte chunks."""
        ...

    def make_dir(self, path: str) -> None:
        """Create a directory and any missing parents (idempotent)."""
        ...

    def remove(self, path: str) -> None:
        """Remove a file or an empty directory."""
        ...

    def remove_all(self, path: str) -> None:
        """Remove a path recursively; a missing path is not an error."""
        ...


class ProgressSink(Protocol):
    """Receives transfer progress; must never affect transfer results."""

    def start(self, identifier: str, total_bytes: int) -> None: ...

    def update(self, event: TransferProgress) -> None: ...

    def finish(self, identifier: str, success: bool) -> None: ...
