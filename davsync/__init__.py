"""davsync - one-way sync between a local directory and a WebDAV share."""

from .exceptions import (
    AuthenticationError,
    ConfigError,
    DavSyncError,
    EnumerationError,
    LocalIOError,
    NotFoundError,
    PermissionDeniedError,
    SyncConfigError,
    TransferExhaustedError,
    TransportError,
)
from .sync import RunResult, SyncConfig, SyncDirection, SyncEngine
from .webdav import WebDAVClient

__version__ = "0.1.0"

__all__ = [
    "WebDAVClient",
    "SyncEngine",
    "SyncConfig",
    "SyncDirection",
    "RunResult",
    "DavSyncError",
    "ConfigError",
    "SyncConfigError",
    "TransportError",
    "NotFoundError",
    "AuthenticationError",
    "PermissionDeniedError",
    "LocalIOError",
    "EnumerationError",
    "TransferExhaustedError",
]
