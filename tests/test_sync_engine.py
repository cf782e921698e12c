"""Tests for the sync engine."""

import os
import threading
import time
from functools import partial
from unittest.mock import Mock, patch

import pytest

from davsync.exceptions import (
    EnumerationError,
    TransferExhaustedError,
    TransportError,
)
from davsync.output import OutputFormatter
from davsync.sync import RunResult, SyncConfig, SyncDirection, SyncEngine
from davsync.sync.progress import TransferProgressTracker


def _write(path, content: bytes, mtime: float) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    os.utime(path, (mtime, mtime))


class TestSyncEngine:
    """Test SyncEngine setup and results."""

    @pytest.fixture
    def mock_output(self):
        """Create a mock output formatter."""
        output = Mock(spec=OutputFormatter)
        output.quiet = True  # Suppress output during tests
        return output

    def test_create_sync_engine(self, memory_store, mock_output):
        engine = SyncEngine(memory_store, mock_output)

        assert engine.client is memory_store
        assert engine.output is mock_output
        assert engine.operations is not None
        assert engine.scanner.client is memory_store

    def test_summary_is_shown_when_not_quiet(self, memory_store, temp_dir):
        output = Mock(spec=OutputFormatter)
        output.quiet = False
        engine = SyncEngine(memory_store, output)

        engine.run(SyncConfig(temp_dir, "/", SyncDirection.PUSH))

        output.success.assert_called_with("Sync complete!")

    def test_result_summary_with_errors(self):
        result = RunResult(
            direction=SyncDirection.PUSH,
            errors=[TransportError("down"), TransportError("again")],
        )

        assert not result.ok
        assert result.summary() == (
            "2 error(s) occurred during sync, first error: down"
        )
        assert result.to_dict()["errors"] == ["down", "again"]
        assert result.to_dict()["direction"] == "backup"


class TestPush:
    """Push (backup): local -> remote."""

    def test_push_docs_tree(self, memory_store, quiet_output, temp_dir):
        """Both files are uploaded and the directory is created first."""
        _write(temp_dir / "docs" / "a.txt", b"aaa", 100)
        _write(temp_dir / "docs" / "b.txt", b"bbbb", 200)
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PUSH, max_concurrent=2)
        )

        assert result.success_count == 2
        assert result.errors == []
        assert result.directories == 1
        assert memory_store.files["/docs/a.txt"] == (b"aaa", 100.0)
        assert memory_store.files["/docs/b.txt"] == (b"bbbb", 200.0)

        calls = memory_store.calls
        mkdir_index = calls.index(("mkdir", "/docs"))
        write_indexes = [i for i, (op, _) in enumerate(calls) if op == "write"]
        assert len(write_indexes) == 2
        assert all(mkdir_index < i for i in write_indexes)

    def test_push_is_idempotent(self, memory_store, quiet_output, temp_dir):
        _write(temp_dir / "docs" / "a.txt", b"aaa", 100)
        _write(temp_dir / "top.txt", b"t", 300)
        engine = SyncEngine(memory_store, quiet_output)
        config = SyncConfig(temp_dir, "/backup", SyncDirection.PUSH)

        first = engine.run(config)
        writes_after_first = len(memory_store.calls_of("write"))
        second = engine.run(config)

        assert first.transferred == 2
        assert second.transferred == 0
        assert second.skipped == 2
        assert len(memory_store.calls_of("write")) == writes_after_first

    def test_push_overwrites_changed_file(self, memory_store, quiet_output, temp_dir):
        _write(temp_dir / "a.txt", b"new", 500)
        memory_store.add_file("/a.txt", b"old", mtime=100)
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(SyncConfig(temp_dir, "/", SyncDirection.PUSH))

        assert result.transferred == 1
        assert memory_store.content("/a.txt") == b"new"

    def test_push_missing_local_root_is_fatal(
        self, memory_store, quiet_output, temp_dir
    ):
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir / "missing", "/", SyncDirection.PUSH)
        )

        assert result.fatal
        assert isinstance(result.first_error, EnumerationError)

    def test_symlinked_directory_loop_is_not_followed(
        self, memory_store, quiet_output, temp_dir
    ):
        _write(temp_dir / "a" / "f.txt", b"f", 100)
        os.symlink(temp_dir / "a", temp_dir / "a" / "loop")
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(SyncConfig(temp_dir, "/", SyncDirection.PUSH))

        assert result.ok
        assert result.transferred == 1
        assert memory_store.paths() == {"/a", "/a/f.txt"}

    def test_push_into_remote_root_dir(self, memory_store, quiet_output, temp_dir):
        _write(temp_dir / "x" / "y" / "z.txt", b"z", 10)
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(SyncConfig(temp_dir, "/backup/", SyncDirection.PUSH))

        assert result.ok
        assert "/backup/x/y/z.txt" in memory_store.files
        assert result.directories == 2


class TestPull:
    """Pull (restore): remote -> local."""

    def test_pull_tree(self, memory_store, quiet_output, temp_dir):
        memory_store.add_file("/docs/a.txt", b"aaa", mtime=100)
        memory_store.add_file("/docs/sub/b.txt", b"bb", mtime=200)
        memory_store.add_file("/c.txt", b"c", mtime=300)
        memory_store.add_dir("/empty")
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(SyncConfig(temp_dir, "/", SyncDirection.PULL))

        assert result.ok
        assert result.transferred == 3
        assert result.directories == 3
        assert (temp_dir / "docs" / "a.txt").read_bytes() == b"aaa"
        assert (temp_dir / "docs" / "sub" / "b.txt").read_bytes() == b"bb"
        assert (temp_dir / "c.txt").stat().st_mtime == pytest.approx(300)
        assert (temp_dir / "empty").is_dir()

    def test_pull_is_idempotent(self, memory_store, quiet_output, temp_dir):
        memory_store.add_file("/docs/a.txt", b"aaa", mtime=100)
        memory_store.add_file("/b.txt", b"b", mtime=200)
        engine = SyncEngine(memory_store, quiet_output)
        config = SyncConfig(temp_dir, "/", SyncDirection.PULL)

        engine.run(config)
        reads_after_first = len(memory_store.calls_of("read"))
        second = engine.run(config)

        assert second.transferred == 0
        assert second.skipped == 2
        assert len(memory_store.calls_of("read")) == reads_after_first

    def test_pull_missing_remote_root_is_fatal(
        self, memory_store, quiet_output, temp_dir
    ):
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(SyncConfig(temp_dir, "/nope", SyncDirection.PULL))

        assert result.fatal
        assert not result.ok

    def test_subdirectory_listing_failure_is_isolated(
        self, memory_store, quiet_output, temp_dir
    ):
        memory_store.add_file("/bad/x.txt", b"x")
        memory_store.add_file("/good/y.txt", b"y")
        memory_store.add_file("/z.txt", b"z")
        memory_store.list_failures.add("/bad")
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(SyncConfig(temp_dir, "/", SyncDirection.PULL))

        assert not result.fatal
        assert result.transferred == 2
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], EnumerationError)
        assert result.errors[0].path == "bad"
        assert (temp_dir / "good" / "y.txt").exists()

    def test_failed_file_does_not_stop_siblings(
        self, memory_store, quiet_output, temp_dir
    ):
        memory_store.add_file("/a.txt", b"a")
        memory_store.add_file("/b.txt", b"b")
        memory_store.add_file("/c.txt", b"c")
        memory_store.read_failures["/b.txt"] = 10
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PULL, max_retries=2, retry_delay=0)
        )

        assert result.transferred == 2
        assert len(result.errors) == 1
        error = result.errors[0]
        assert isinstance(error, TransferExhaustedError)
        assert error.attempts == 2
        assert not (temp_dir / "b.txt").exists()

    def test_transient_failures_are_retried(self, memory_store, quiet_output, temp_dir):
        memory_store.add_file("/a.txt", b"a")
        memory_store.read_failures["/a.txt"] = 2
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PULL, max_retries=3, retry_delay=0)
        )

        assert result.ok
        assert result.transferred == 1
        assert memory_store.calls_of("read") == ["/a.txt"] * 3

    def test_errors_follow_enumeration_order(
        self, memory_store, quiet_output, temp_dir
    ):
        for name in ("d.txt", "b.txt", "a.txt", "c.txt"):
            memory_store.add_file(f"/{name}", b"x")
            memory_store.read_failures[f"/{name}"] = 1
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PULL, max_retries=1)
        )

        assert [e.last_error.args[0] for e in result.errors] == [
            "Simulated read failure for /a.txt",
            "Simulated read failure for /b.txt",
            "Simulated read failure for /c.txt",
            "Simulated read failure for /d.txt",
        ]


class TestConcurrency:
    """Tests for the concurrency bound."""

    def test_operations_never_exceed_limit(self, store_factory, quiet_output, temp_dir):
        store = store_factory(op_delay=0.01)
        for i in range(12):
            store.add_file(f"/flat/file{i:02d}.txt", b"data")
        for i in range(4):
            store.add_file(f"/nested/d{i}/f.txt", b"data")
        engine = SyncEngine(store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PULL, max_concurrent=3)
        )

        assert result.ok
        assert result.transferred == 16
        assert store.max_active <= 3

    def test_deep_tree_with_single_slot(self, memory_store, quiet_output, temp_dir):
        """Nesting deeper than max_concurrent still completes."""
        memory_store.add_file("/a/b/c/d/e/f/leaf.txt", b"leaf")
        memory_store.add_file("/a/b/side.txt", b"side")
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PULL, max_concurrent=1)
        )

        assert result.ok
        assert result.transferred == 2
        assert (temp_dir / "a/b/c/d/e/f/leaf.txt").read_bytes() == b"leaf"

    def test_wide_tree_keeps_thread_count_bounded(
        self, memory_store, quiet_output, temp_dir
    ):
        for i in range(300):
            memory_store.add_file(f"/d{i:03d}/f.txt", b"x")
        engine = SyncEngine(memory_store, quiet_output)
        stop = threading.Event()
        samples = [threading.active_count()]

        def sample() -> None:
            while not stop.is_set():
                samples.append(threading.active_count())
                time.sleep(0.001)

        sampler = threading.Thread(target=sample)
        sampler.start()
        baseline = threading.active_count()
        try:
            result = engine.run(
                SyncConfig(temp_dir, "/", SyncDirection.PULL, max_concurrent=2)
            )
        finally:
            stop.set()
            sampler.join()

        assert result.ok
        assert result.transferred == 300
        assert result.directories == 300
        assert max(samples) <= baseline + 2

    def test_retried_transfer_progress_never_goes_back(
        self, memory_store, quiet_output, temp_dir
    ):
        memory_store.add_file("/a.txt", b"0123456789ab")
        memory_store.broken_streams["/a.txt"] = 8
        sink = Mock()
        engine = SyncEngine(memory_store, quiet_output)
        unthrottled = partial(TransferProgressTracker, interval=0)

        with patch("davsync.sync.engine.TransferProgressTracker", unthrottled):
            result = engine.run(
                SyncConfig(
                    temp_dir, "/", SyncDirection.PULL, max_retries=2, retry_delay=0
                ),
                progress=sink,
            )

        assert result.ok
        assert memory_store.calls_of("read") == ["/a.txt", "/a.txt"]
        moved = [c.args[0].bytes_moved for c in sink.update.call_args_list]
        assert moved == [4, 8, 12, 12]
        sink.finish.assert_called_once_with("a.txt", True)

    def test_progress_sink_receives_every_transfer(
        self, memory_store, quiet_output, temp_dir
    ):
        memory_store.add_file("/a.txt", b"aaaa")
        memory_store.add_file("/b.txt", b"bb")
        sink = Mock()
        engine = SyncEngine(memory_store, quiet_output)

        engine.run(SyncConfig(temp_dir, "/", SyncDirection.PULL), progress=sink)

        started = sorted(c.args for c in sink.start.call_args_list)
        finished = sorted(c.args for c in sink.finish.call_args_list)
        assert started == [("a.txt", 4), ("b.txt", 2)]
        assert finished == [("a.txt", True), ("b.txt", True)]


class TestMirrorDeletes:
    """Tests for sync with mirror deletion."""

    def test_push_removes_extra_remote_entries(
        self, memory_store, quiet_output, temp_dir
    ):
        _write(temp_dir / "x.txt", b"x", 100)
        memory_store.add_file("/x.txt", b"x", mtime=100)
        memory_store.add_file("/y.txt", b"y")
        memory_store.add_file("/old/z.txt", b"z")
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PUSH, mirror_deletes=True)
        )

        assert result.ok
        assert memory_store.paths() == {"/x.txt"}
        removed = memory_store.calls_of("remove_all")
        assert removed.index("/old/z.txt") < removed.index("/old")
        assert result.deleted == 3

    def test_pull_removes_extra_local_entries(
        self, memory_store, quiet_output, temp_dir
    ):
        memory_store.add_file("/x.txt", b"x", mtime=100)
        _write(temp_dir / "x.txt", b"x", 100)
        _write(temp_dir / "y.txt", b"y", 100)
        _write(temp_dir / "old" / "z.txt", b"z", 100)
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PULL, mirror_deletes=True)
        )

        assert result.ok
        assert sorted(p.name for p in temp_dir.iterdir()) == ["x.txt"]
        assert result.deleted == 3

    def test_transfer_errors_do_not_block_deletion(
        self, memory_store, quiet_output, temp_dir
    ):
        memory_store.add_file("/broken.txt", b"b")
        memory_store.read_failures["/broken.txt"] = 5
        _write(temp_dir / "stale.txt", b"s", 100)
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(
                temp_dir,
                "/",
                SyncDirection.PULL,
                mirror_deletes=True,
                max_retries=1,
            )
        )

        assert len(result.errors) == 1
        assert not (temp_dir / "stale.txt").exists()

    def test_fatal_listing_skips_deletion(self, memory_store, quiet_output, temp_dir):
        memory_store.list_failures.add("/")
        _write(temp_dir / "keep.txt", b"k", 100)
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PULL, mirror_deletes=True)
        )

        assert result.fatal
        assert (temp_dir / "keep.txt").exists()

    def test_deletion_failures_are_collected(
        self, memory_store, quiet_output, temp_dir
    ):
        memory_store.add_file("/stale.txt", b"s")
        memory_store.add_file("/other.txt", b"o")
        memory_store.remove_failures.add("/stale.txt")
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PUSH, mirror_deletes=True)
        )

        assert result.ok
        assert len(result.deletion_errors) == 1
        assert isinstance(result.deletion_errors[0], TransportError)
        assert "/other.txt" not in memory_store.files
        assert "/stale.txt" in memory_store.files

    def test_files_created_by_the_pass_survive(
        self, memory_store, quiet_output, temp_dir
    ):
        _write(temp_dir / "new" / "file.txt", b"n", 100)
        engine = SyncEngine(memory_store, quiet_output)

        engine.run(SyncConfig(temp_dir, "/", SyncDirection.PUSH, mirror_deletes=True))

        assert memory_store.paths() == {"/new", "/new/file.txt"}


class TestDryRun:
    """Tests for dry runs."""

    def test_dry_run_changes_nothing(self, memory_store, quiet_output, temp_dir):
        memory_store.add_file("/docs/a.txt", b"a")
        _write(temp_dir / "stale.txt", b"s", 100)
        engine = SyncEngine(memory_store, quiet_output)

        result = engine.run(
            SyncConfig(temp_dir, "/", SyncDirection.PULL, mirror_deletes=True),
            dry_run=True,
        )

        assert result.dry_run
        assert result.transferred == 1
        assert result.deleted == 1
        assert memory_store.calls_of("read") == []
        assert sorted(p.name for p in temp_dir.iterdir()) == ["stale.txt"]
