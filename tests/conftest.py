"""Shared fixtures for davsync tests."""

import posixpath
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import pytest

from davsync.exceptions import NotFoundError, TransportError
from davsync.output import OutputFormatter
from davsync.sync.scanner import Entry
from davsync.utils import normalize_remote_path


class MemoryStore:
    """In-memory RemoteStore with fault injection and call recording."""

    def __init__(self, op_delay: float = 0.0, chunk_size: int = 4):
        self.files: dict[str, tuple[bytes, float]] = {}
        self.dirs: set[str] = {"/"}
        self.op_delay = op_delay
        self.chunk_size = chunk_size
        self.lock = threading.Lock()
        self.calls: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

        # Fault injection
        self.read_failures: dict[str, int] = {}
        """path -> number of read_stream calls that fail before one succeeds"""
        self.midstream_failures: set[str] = set()
        """Paths whose stream breaks after the first chunk"""
        self.broken_streams: dict[str, int] = {}
        """path -> bytes delivered before the next stream breaks (once)"""
        self.list_failures: set[str] = set()
        self.remove_failures: set[str] = set()

    # -- helpers used by tests -------------------------------------------

    def add_dir(self, path: str) -> None:
        path = normalize_remote_path(path)
        while path not in self.dirs:
            self.dirs.add(path)
            path = posixpath.dirname(path)

    def add_file(self, path: str, content: bytes = b"", mtime: float = 1_700_000_000.0):
        path = normalize_remote_path(path)
        self.add_dir(posixpath.dirname(path))
        self.files[path] = (content, mtime)

    def content(self, path: str) -> bytes:
        return self.files[normalize_remote_path(path)][0]

    def paths(self) -> set[str]:
        """All files and directories except the root."""
        return (set(self.files) | self.dirs) - {"/"}

    def calls_of(self, name: str) -> list[str]:
        return [path for op, path in self.calls if op == name]

    @contextmanager
    def _op(self, name: str, path: str):
        with self.lock:
            self.calls.append((name, path))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.op_delay:
                time.sleep(self.op_delay)
            yield
        finally:
            with self.lock:
                self.active -= 1

    # -- RemoteStore -------------------------------------------------------

    def list(self, path: str) -> list[Entry]:
        path = normalize_remote_path(path)
        with self._op("list", path):
            if path in self.list_failures:
                raise TransportError(f"Simulated listing failure for {path}")
            if path not in self.dirs:
                raise NotFoundError(f"Remote path not found: {path}")
            with self.lock:
                entries = [
                    Entry(path=d, is_dir=True, mtime=0.0)
                    for d in self.dirs
                    if d != path and posixpath.dirname(d) == path
                ]
                entries.extend(
                    Entry(path=f, is_dir=False, mtime=mtime, size=len(data))
                    for f, (data, mtime) in self.files.items()
                    if posixpath.dirname(f) == path
                )
            return entries

    def stat(self, path: str) -> Entry:
        path = normalize_remote_path(path)
        with self._op("stat", path):
            if path in self.dirs:
                return Entry(path=path, is_dir=True, mtime=0.0)
            if path in self.files:
                data, mtime = self.files[path]
                return Entry(path=path, is_dir=False, mtime=mtime, size=len(data))
            raise NotFoundError(f"Remote path not found: {path}")

    def exists(self, path: str) -> bool:
        try:
            self.stat(path)
        except NotFoundError:
            return False
        return True

    @contextmanager
    def read_stream(self, path: str):
        path = normalize_remote_path(path)
        with self._op("read", path):
            if path not in self.files:
                raise NotFoundError(f"Remote path not found: {path}")
            with self.lock:
                remaining = self.read_failures.get(path, 0)
                if remaining:
                    self.read_failures[path] = remaining - 1
                break_at = self.broken_streams.pop(path, None)
            if remaining:
                raise TransportError(f"Simulated read failure for {path}")
            if break_at is None and path in self.midstream_failures:
                break_at = self.chunk_size
            yield self._chunks(path, break_at)

    def _chunks(self, path: str, break_at: Optional[int]):
        data = self.files[path][0]
        for i in range(0, len(data), self.chunk_size):
            if break_at is not None and i >= break_at:
                raise TransportError(f"Connection lost while reading {path}")
            yield data[i : i + self.chunk_size]

    def write_stream(self, path: str, chunks, mtime: Optional[float] = None) -> None:
        path = normalize_remote_path(path)
        with self._op("write", path):
            if posixpath.dirname(path) not in self.dirs:
                raise TransportError(f"Parent of {path} does not exist")
            data = b"".join(chunks)
            with self.lock:
                self.files[path] = (data, time.time() if mtime is None else mtime)

    def make_dir(self, path: str) -> None:
        path = normalize_remote_path(path)
        with self._op("mkdir", path):
            with self.lock:
                current = path
                while current != "/":
                    if current in self.files:
                        raise TransportError(f"A file exists at {current}")
                    current = posixpath.dirname(current)
                self.add_dir(path)

    def remove(self, path: str) -> None:
        path = normalize_remote_path(path)
        with self._op("remove", path):
            if path in self.files:
                del self.files[path]
            elif path in self.dirs:
                self.dirs.discard(path)
            else:
                raise NotFoundError(f"Remote path not found: {path}")

    def remove_all(self, path: str) -> None:
        path = normalize_remote_path(path)
        with self._op("remove_all", path):
            if path in self.remove_failures:
                raise TransportError(f"Simulated delete failure for {path}")
            prefix = path.rstrip("/") + "/"
            self.files = {
                p: v
                for p, v in self.files.items()
                if p != path and not p.startswith(prefix)
            }
            self.dirs = {
                d
                for d in self.dirs
                if d == "/" or (d != path and not d.startswith(prefix))
            }

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


@pytest.fixture
def memory_store():
    """Provide an empty in-memory remote store."""
    return MemoryStore()


@pytest.fixture
def quiet_output():
    """Output formatter that prints nothing but errors."""
    return OutputFormatter(quiet=True)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store_factory():
    """Provide the MemoryStore class for tests that need custom settings."""
    return MemoryStore
