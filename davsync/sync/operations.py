"""Sync operations wrapper for unified upload/download interface."""

import logging
import os
import posixpath
import shutil
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from ..exceptions import LocalIOError
from ..utils import DOWNLOAD_SUFFIX, TRANSFER_BUFFER_SIZE, normalize_remote_path
from .progress import TransferProgress, TransferProgressTracker
from .protocols import RemoteStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[TransferProgress], None]


class SyncOperations:
    """Moves single files between the local filesystem and a remote store."""

    def __init__(self, client: RemoteStore):
        """Initialize sync operations.

        Args:
            client: Remote store client
        """
        self.client = client
        self._remote_dirs: set[str] = {"/"}
        self._remote_dirs_lock = threading.Lock()

    def ensure_remote_dir(self, remote_path: str) -> None:
        """Create a remote directory (and parents) unless already known.

        Args:
            remote_path: Remote directory path
        """
        remote_path = normalize_remote_path(remote_path)
        with self._remote_dirs_lock:
            if remote_path in self._remote_dirs:
                return
        self.client.make_dir(remote_path)
        with self._remote_dirs_lock:
            self._remote_dirs.add(remote_path)

    def ensure_local_dir(self, local_path: Path) -> None:
        """Create a local directory and its parents (idempotent).

        Raises:
            LocalIOError: If the directory cannot be created
        """
        try:
            local_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalIOError(f"Failed to create directory {local_path}: {e}") from e

    def download_file(
        self,
        remote_path: str,
        local_path: Path,
        mtime: float,
        total_bytes: int = 0,
        identifier: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
        tracker: Optional[TransferProgressTracker] = None,
    ) -> Path:
        """Download a remote file atomically.

        Content is streamed into a temporary sibling file which replaces
        the destination only after the stream completed. On any failure
        the temporary file is removed and an existing destination keeps
        its previous content. The modification time of the result is set
        to ``mtime``.

        Args:
            remote_path: Remote file path
            local_path: Local path where file should be saved
            mtime: Remote modification time (Unix timestamp)
            total_bytes: Expected size for progress reporting
            identifier: Name used in progress events (defaults to remote_path)
            progress_callback: Optional receiver of progress events
            tracker: Tracker shared by earlier attempts of the same
                transfer; used instead of progress_callback

        Returns:
            Path where file was saved

        Raises:
            TransportError: If reading the remote file fails
            LocalIOError: If writing the local file fails
        """
        tracker = self._make_tracker(
            identifier or remote_path, total_bytes, progress_callback, tracker
        )
        self.ensure_local_dir(local_path.parent)
        tmp_path = local_path.with_name(local_path.name + DOWNLOAD_SUFFIX)

        try:
            with self.client.read_stream(remote_path) as chunks:
                with open(tmp_path, "wb") as f:
                    for chunk in chunks:
                        f.write(chunk)
                        if tracker:
                            tracker.advance(len(chunk))
            os.replace(tmp_path, local_path)
        except OSError as e:
            self._discard(tmp_path)
            raise LocalIOError(f"Failed to write {local_path}: {e}") from e
        except BaseException:
            self._discard(tmp_path)
            raise

        try:
            os.utime(local_path, (mtime, mtime))
        except OSError as e:
            raise LocalIOError(
                f"Failed to set modification time of {local_path}: {e}"
            ) from e

        if tracker:
            tracker.complete()
        return local_path

    def upload_file(
        self,
        local_path: Path,
        remote_path: str,
        mtime: float,
        identifier: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
        tracker: Optional[TransferProgressTracker] = None,
    ) -> None:
        """Upload a local file, creating missing remote parent directories.

        Atomicity on the remote side is whatever the server provides.

        Args:
            local_path: Local file to upload
            remote_path: Remote destination path
            mtime: Local modification time, sent along for servers that
                keep client timestamps
            identifier: Name used in progress events (defaults to remote_path)
            progress_callback: Optional receiver of progress events
            tracker: Tracker shared by earlier attempts of the same
                transfer; used instead of progress_callback

        Raises:
            TransportError: If the remote store rejects the upload
            LocalIOError: If the local file cannot be read
        """
        remote_dir = posixpath.dirname(normalize_remote_path(remote_path))
        if remote_dir not in ("", "/"):
            self.ensure_remote_dir(remote_dir)

        try:
            total_bytes = local_path.stat().st_size
            f = open(local_path, "rb")
        except OSError as e:
            raise LocalIOError(f"Failed to open {local_path}: {e}") from e

        tracker = self._make_tracker(
            identifier or remote_path, total_bytes, progress_callback, tracker
        )
        try:
            with f:
                self.client.write_stream(
                    remote_path, _read_chunks(f, tracker), mtime=mtime
                )
        except OSError as e:
            raise LocalIOError(f"Failed to read {local_path}: {e}") from e

        if tracker:
            tracker.complete()

    def delete_local(self, local_path: Path) -> None:
        """Delete a local file or directory tree; missing paths are ignored.

        Raises:
            LocalIOError: If the path cannot be removed
        """
        try:
            if local_path.is_dir() and not local_path.is_symlink():
                shutil.rmtree(local_path)
            else:
                local_path.unlink(missing_ok=True)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise LocalIOError(f"Failed to delete {local_path}: {e}") from e

    def delete_remote(self, remote_path: str) -> None:
        """Delete a remote file or directory tree; missing paths are ignored."""
        self.client.remove_all(remote_path)

    @staticmethod
    def _make_tracker(
        identifier: str,
        total_bytes: int,
        progress_callback: Optional[ProgressCallback],
        tracker: Optional[TransferProgressTracker] = None,
    ) -> Optional[TransferProgressTracker]:
        if tracker is not None:
            tracker.restart(total_bytes)
            return tracker
        if progress_callback is None:
            return None
        return TransferProgressTracker(identifier, total_bytes, progress_callback)

    @staticmethod
    def _discard(tmp_path: Path) -> None:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove temporary file {tmp_path}: {e}")


def _read_chunks(
    f: BinaryIO, tracker: Optional[TransferProgressTracker]
) -> Iterator[bytes]:
    """Yield a file's content in fixed-size chunks, reporting progress."""
    while True:
        chunk = f.read(TRANSFER_BUFFER_SIZE)
        if not chunk:
            break
        if tracker:
            tracker.advance(len(chunk))
        yield chunk
