"""CLI progress display for sync operations.

This module provides a Rich-based progress display that receives the
per-file TransferProgress events of the sync engine.
"""

import threading
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TransferSpeedColumn,
)

from .sync.config import SyncConfig
from .sync.engine import RunResult, SyncEngine
from .sync.progress import TransferProgress


class TransferProgressDisplay:
    """Rich-based progress display for file transfers.

    Every in-flight transfer gets its own progress row, added on start
    and removed on finish. Transfers report from several worker threads,
    so the task table is guarded by a lock.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        """Initialize the progress display.

        Args:
            console: Console to render on (defaults to stderr)
        """
        self._console = console or Console(stderr=True)
        self._progress: Optional[Progress] = None
        self._tasks: dict[str, TaskID] = {}
        self._lock = threading.Lock()
        self.completed = 0
        self.failed = 0

    def start(self, identifier: str, total_bytes: int) -> None:
        with self._lock:
            if self._progress is None:
                return
            self._tasks[identifier] = self._progress.add_task(
                escape(identifier),
                total=total_bytes or None,
            )

    def update(self, event: TransferProgress) -> None:
        with self._lock:
            if self._progress is None:
                return
            task_id = self._tasks.get(event.identifier)
            if task_id is None:
                return
            self._progress.update(task_id, completed=event.bytes_moved)

    def finish(self, identifier: str, success: bool) -> None:
        with self._lock:
            if success:
                self.completed += 1
            else:
                self.failed += 1
            task_id = self._tasks.pop(identifier, None)
            if self._progress is not None and task_id is not None:
                self._progress.remove_task(task_id)

    def __enter__(self) -> "TransferProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            TextColumn("[bold blue]{task.description}", justify="left"),
            BarColumn(),
            TaskProgressColumn(),
            DownloadColumn(binary_units=True),
            TransferSpeedColumn(),
            console=self._console,
            refresh_per_second=4,
            transient=True,
        )
        self._progress.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        with self._lock:
            progress = self._progress
            self._progress = None
            self._tasks.clear()
        if progress is not None:
            progress.__exit__(exc_type, exc_val, exc_tb)


def run_sync_with_progress(
    engine: SyncEngine,
    sync_config: SyncConfig,
    dry_run: bool = False,
) -> RunResult:
    """Run sync with a Rich progress display.

    Args:
        engine: SyncEngine instance
        sync_config: Settings of the run
        dry_run: If True, only show what would be done

    Returns:
        RunResult of the run
    """
    # Nothing is transferred in a dry run
    if dry_run:
        return engine.run(sync_config, dry_run=True)

    with TransferProgressDisplay() as display:
        return engine.run(sync_config, progress=display)
