"""Sync engine for davsync - one-way mirroring between a local and a WebDAV tree."""

from .comparator import FileComparator, SyncAction, SyncDecision
from .config import SyncConfig
from .engine import RunResult, SyncEngine
from .modes import SyncDirection
from .operations import SyncOperations
from .progress import NullProgressSink, TransferProgress, TransferProgressTracker
from .protocols import ProgressSink, RemoteStore
from .reconciler import DeletionReconciler
from .retry import retry
from .scanner import DirectoryScanner, Entry

__all__ = [
    "SyncEngine",
    "RunResult",
    "SyncConfig",
    "SyncDirection",
    "SyncOperations",
    "DirectoryScanner",
    "Entry",
    "FileComparator",
    "SyncAction",
    "SyncDecision",
    "DeletionReconciler",
    "retry",
    "RemoteStore",
    "ProgressSink",
    "NullProgressSink",
    "TransferProgress",
    "TransferProgressTracker",
]
