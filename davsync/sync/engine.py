"""Core sync engine for executing sync operations."""

import logging
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from ..exceptions import EnumerationError, NotFoundError
from ..output import OutputFormatter
from ..utils import format_size, join_remote_path
from .comparator import FileComparator, SyncAction
from .config import SyncConfig
from .modes import SyncDirection
from .operations import SyncOperations
from .progress import TransferProgressTracker, track_transfer
from .protocols import ProgressSink, RemoteStore
from .reconciler import DeletionReconciler
from .retry import retry
from .scanner import DirectoryScanner, Entry

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Aggregate outcome of one sync run.

    A failed task never rolls back or blocks other tasks, so a run can
    finish with some files transferred and some errors recorded.
    """

    direction: SyncDirection
    transferred: int = 0
    skipped: int = 0
    directories: int = 0
    deleted: int = 0
    errors: list[Exception] = field(default_factory=list)
    """Task errors in enumeration order"""
    deletion_errors: list[Exception] = field(default_factory=list)
    fatal: bool = False
    """The pass was aborted (root listing or snapshot failed)"""
    dry_run: bool = False
    elapsed: float = 0.0

    @property
    def success_count(self) -> int:
        """Number of files transferred successfully."""
        return self.transferred

    @property
    def first_error(self) -> Optional[Exception]:
        return self.errors[0] if self.errors else None

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        """One-line description of the outcome."""
        if self.errors:
            return (
                f"{len(self.errors)} error(s) occurred during sync, "
                f"first error: {self.first_error}"
            )
        return f"Sync complete: {self.transferred} transferred, {self.skipped} skipped"

    def to_dict(self) -> dict[str, Any]:
        """Convert the result to a JSON-serializable dictionary."""
        return {
            "direction": self.direction.value,
            "transferred": self.transferred,
            "skipped": self.skipped,
            "directories": self.directories,
            "deleted": self.deleted,
            "errors": [str(e) for e in self.errors],
            "deletion_errors": [str(e) for e in self.deletion_errors],
            "fatal": self.fatal,
            "dry_run": self.dry_run,
            "elapsed": round(self.elapsed, 3),
        }


@dataclass
class _LevelOutcome:
    """Counts and errors of one directory level and its subtree."""

    transferred: int = 0
    skipped: int = 0
    directories: int = 0
    errors: list[Exception] = field(default_factory=list)

    def merge(self, other: "_LevelOutcome") -> None:
        self.transferred += other.transferred
        self.skipped += other.skipped
        self.directories += other.directories
        self.errors.extend(other.errors)


class SyncEngine:
    """Core sync engine that orchestrates file synchronization."""

    def __init__(
        self,
        client: RemoteStore,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize sync engine.

        Args:
            client: Remote store client
            output: Output formatter for displaying progress/status
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.operations = SyncOperations(client)
        self.scanner = DirectoryScanner(client)

    def run(
        self,
        config: SyncConfig,
        progress: Optional[ProgressSink] = None,
        dry_run: bool = False,
    ) -> RunResult:
        """Synchronize the destination tree with the source tree.

        Args:
            config: Settings of this run
            progress: Optional sink receiving per-file progress events
            dry_run: If True, only report what would be done

        Returns:
            RunResult with counts and every collected error

        Examples:
            >>> engine = SyncEngine(client)
            >>> cfg = SyncConfig(Path("./sync"), "/", SyncDirection.PULL)
            >>> result = engine.run(cfg)
            >>> print(result.summary())
        """
        start_time = time.time()
        result = RunResult(direction=config.direction, dry_run=dry_run)

        logger.info(
            f"Running {config.direction.value}: {config.direction.source_label} "
            f"({config.source_root}) -> {config.direction.destination_label} "
            f"({config.dest_root})"
        )
        if not self.output.quiet:
            self.output.info(
                f"Syncing {config.direction.source_label} {config.source_root} -> "
                f"{config.direction.destination_label} {config.dest_root}"
            )
            if dry_run:
                self.output.info("Dry run: No changes will be made")

        try:
            source_paths: list[str] = []
            dest_paths: list[str] = []
            if config.mirror_deletes:
                # Snapshot both trees before anything is transferred
                source_paths, dest_paths = self._snapshot(config)

            with ThreadPoolExecutor(
                max_workers=config.max_concurrent, thread_name_prefix="davsync"
            ) as executor:
                sync_run = _SyncRun(self, config, executor, progress, dry_run)
                outcome = sync_run.sync_tree()
        except EnumerationError as e:
            logger.error(f"Sync aborted: {e}")
            result.fatal = True
            result.errors.append(e)
            result.elapsed = time.time() - start_time
            if not self.output.quiet:
                self.output.error(f"Sync aborted: {e}")
            return result

        result.transferred = outcome.transferred
        result.skipped = outcome.skipped
        result.directories = outcome.directories
        result.errors.extend(outcome.errors)

        if config.mirror_deletes:
            self._mirror_deletions(config, source_paths, dest_paths, result, dry_run)

        result.elapsed = time.time() - start_time
        if result.errors:
            logger.error(f"Sync finished with errors: {result.summary()}")
        else:
            logger.info(f"Sync complete in {result.elapsed:.2f}s")

        if not self.output.quiet:
            self._display_summary(result)

        return result

    def _snapshot(self, config: SyncConfig) -> tuple[list[str], list[str]]:
        """Enumerate source and destination trees.

        Returns:
            Tuple of (source paths, destination paths)
        """
        local_paths = self.scanner.enumerate_local(config.local_root)
        remote_paths = self.scanner.enumerate_remote(config.remote_root)
        logger.debug(
            f"Snapshot: {len(local_paths)} local path(s), "
            f"{len(remote_paths)} remote path(s)"
        )
        if config.direction is SyncDirection.PUSH:
            return local_paths, remote_paths
        return remote_paths, local_paths

    def _mirror_deletions(
        self,
        config: SyncConfig,
        source_paths: list[str],
        dest_paths: list[str],
        result: RunResult,
        dry_run: bool,
    ) -> None:
        """Remove destination entries that were absent from the source."""
        if config.direction is SyncDirection.PUSH:

            def remover(path: str) -> None:
                remote_path = join_remote_path(config.remote_root, path)
                self.operations.delete_remote(remote_path)

        else:

            def remover(path: str) -> None:
                self.operations.delete_local(config.local_root / path)

        label = config.direction.destination_label
        if dry_run:
            planned = DeletionReconciler.plan(source_paths, dest_paths)
            for path in planned:
                logger.info(f"Would delete {label}: {path}")
            result.deleted = len(planned)
            return

        logger.info(f"Removing extra {label} entries...")
        reconciler = DeletionReconciler(remover, label=label)
        result.deletion_errors = reconciler.reconcile(source_paths, dest_paths)
        result.deleted = len(reconciler.deleted)

    def _display_summary(self, result: RunResult) -> None:
        """Display sync summary.

        Args:
            result: Outcome of the run
        """
        self.output.print("")
        if result.dry_run:
            self.output.success("Dry run complete!")
        elif result.ok:
            self.output.success("Sync complete!")
        else:
            self.output.error(result.summary())

        verb = "Would transfer" if result.dry_run else "Transferred"
        self.output.info(f"  {verb}: {result.transferred}")
        self.output.info(f"  Unchanged: {result.skipped}")
        if result.deleted:
            verb = "Would delete" if result.dry_run else "Deleted"
            self.output.info(f"  {verb}: {result.deleted}")
        if result.deletion_errors:
            self.output.warning(f"  Failed deletions: {len(result.deletion_errors)}")
        self.output.info(f"  Elapsed: {result.elapsed:.1f}s")


@dataclass
class _Level:
    """One source directory and the tasks dispatched below it."""

    path: str
    future: Future = field(init=False)
    created: bool = False
    """The destination directory was created (or would be, in a dry run)"""
    children: list[Any] = field(default_factory=list)
    """Child levels and file futures, in dispatch order"""


class _SyncRun:
    """State of one running pass: config, semaphore and worker pool.

    The calling thread walks the tree. Opening a directory (creating its
    destination and listing its source) and syncing a file are both tasks
    on one pool of ``max_concurrent`` workers. No task waits for another,
    so the number of threads does not grow with the size of the tree.
    Once a directory is open its subdirectories (in path order) and then
    its files (in path order) are dispatched, and results are gathered in
    that same order after every task has finished. All filesystem and
    network work holds a slot of one run-wide semaphore.
    """

    def __init__(
        self,
        engine: SyncEngine,
        config: SyncConfig,
        executor: ThreadPoolExecutor,
        progress: Optional[ProgressSink],
        dry_run: bool,
    ):
        self.config = config
        self.client = engine.client
        self.scanner = engine.scanner
        self.operations = engine.operations
        self.executor = executor
        self.progress = progress
        self.dry_run = dry_run
        self.semaphore = threading.BoundedSemaphore(config.max_concurrent)
        self.comparator = FileComparator(compare_content=config.compare_content)
        self.push = config.direction is SyncDirection.PUSH
        self._done: "queue.SimpleQueue[Future]" = queue.SimpleQueue()
        self._outstanding = 0

    # -- tree traversal ---------------------------------------------------

    def sync_tree(self) -> _LevelOutcome:
        """Sync every directory and file below the source root.

        Raises:
            EnumerationError: If the root directory cannot be listed
        """
        root = _Level("")
        levels = {self._dispatch_level(root): root}

        while self._outstanding:
            future = self._done.get()
            self._outstanding -= 1
            level = levels.pop(future, None)
            if level is None or future.exception() is not None:
                continue

            entries = future.result()
            directories = sorted((e for e in entries if e.is_dir), key=lambda e: e.path)
            files = sorted((e for e in entries if not e.is_dir), key=lambda e: e.path)
            for entry in directories:
                child = _Level(entry.path)
                levels[self._dispatch_level(child)] = child
                level.children.append(child)
            for entry in files:
                level.children.append(self._submit(self._sync_file, entry))

        return self._collect(root)

    def _submit(self, func: Callable[[Any], Any], arg: Any) -> Future:
        future = self.executor.submit(func, arg)
        self._outstanding += 1
        future.add_done_callback(self._done.put)
        return future

    def _dispatch_level(self, level: _Level) -> Future:
        level.future = self._submit(self._open_directory, level)
        return level.future

    def _collect(self, level: _Level) -> _LevelOutcome:
        """Merge the outcome of a level and its subtree in dispatch order."""
        outcome = _LevelOutcome()
        if level.created:
            outcome.directories += 1

        error = level.future.exception()
        if error is not None:
            if not level.path or not isinstance(error, Exception):
                raise error
            outcome.errors.append(error)
            return outcome

        for child in level.children:
            if isinstance(child, _Level):
                outcome.merge(self._collect(child))
                continue
            error = child.exception()
            if error is not None:
                outcome.errors.append(error)
            elif child.result() == SyncAction.TRANSFER:
                outcome.transferred += 1
            else:
                outcome.skipped += 1
        return outcome

    def _open_directory(self, level: _Level) -> list[Entry]:
        """Create the destination of a level and list its source."""
        with self.semaphore:
            if level.path:
                try:
                    self._ensure_dest_dir(level.path)
                except Exception as e:
                    logger.error(f"Failed to create directory {level.path}: {e}")
                    raise
                level.created = True
            try:
                return self._list_source(level.path)
            except EnumerationError as e:
                if level.path:
                    logger.error(f"Skipping subtree: {e}")
                raise

    def _sync_file(self, entry: Entry) -> SyncAction:
        with self.semaphore:
            try:
                return self._sync_file_locked(entry)
            except Exception as e:
                logger.error(f"Failed to sync {entry.path}: {e}")
                raise

    def _sync_file_locked(self, entry: Entry) -> SyncAction:
        exists, lookup = self._dest_probe(entry.path)
        decision = self.comparator.decide(entry, exists, lookup)

        if not decision.needs_transfer:
            logger.info(f"Skipping unchanged file: {entry.path}")
            return SyncAction.SKIP

        verb = "Uploading" if self.push else "Downloading"
        if self.dry_run:
            logger.info(f"Would transfer {entry.path}: {decision.reason}")
            return SyncAction.TRANSFER

        logger.info(
            f"{verb} {entry.path} ({format_size(entry.size)}): {decision.reason}"
        )
        with track_transfer(self.progress, entry.path, entry.size) as callback:
            # Shared by all attempts so reported byte counts never go back
            tracker = TransferProgressTracker(entry.path, entry.size, callback)
            retry(
                self.config.max_retries,
                self.config.retry_delay,
                lambda: self._transfer(entry, tracker),
                description=f"{verb} {entry.path}",
            )
        logger.info(f"Finished {entry.path} ({format_size(entry.size)})")
        return SyncAction.TRANSFER

    # -- direction-specific primitives ------------------------------------

    def _list_source(self, relative_path: str) -> list[Entry]:
        if self.push:
            return self.scanner.list_local(self.config.local_root, relative_path)
        return self.scanner.list_remote(self.config.remote_root, relative_path)

    def _remote_path(self, relative_path: str) -> str:
        return join_remote_path(self.config.remote_root, relative_path)

    def _local_path(self, relative_path: str) -> Path:
        return self.config.local_root / relative_path

    def _ensure_dest_dir(self, relative_path: str) -> None:
        if self.dry_run:
            return
        if self.push:
            logger.debug(f"Ensuring remote directory: {relative_path}")
            self.operations.ensure_remote_dir(self._remote_path(relative_path))
        else:
            self.operations.ensure_local_dir(self._local_path(relative_path))

    def _dest_probe(
        self, relative_path: str
    ) -> tuple[Callable[[], bool], Callable[[], Entry]]:
        """Build the existence check and lookup of a destination file."""
        if not self.push:
            local_path = self._local_path(relative_path)
            root = self.config.local_root
            return local_path.exists, lambda: Entry.from_path(local_path, root)

        remote_path = self._remote_path(relative_path)
        found: dict[str, Entry] = {}

        # One PROPFIND answers both questions
        def exists() -> bool:
            try:
                found["entry"] = self.client.stat(remote_path)
            except NotFoundError:
                return False
            return True

        def lookup() -> Entry:
            return found.get("entry") or self.client.stat(remote_path)

        return exists, lookup

    def _transfer(self, entry: Entry, tracker: TransferProgressTracker) -> None:
        if self.push:
            self.operations.upload_file(
                self._local_path(entry.path),
                self._remote_path(entry.path),
                entry.mtime,
                tracker=tracker,
            )
        else:
            self.operations.download_file(
                self._remote_path(entry.path),
                self._local_path(entry.path),
                entry.mtime,
                total_bytes=entry.size,
                tracker=tracker,
            )
