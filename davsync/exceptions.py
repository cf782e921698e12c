"""Exceptions raised by davsync."""

from typing import Optional


class DavSyncError(Exception):
    """Base exception for all davsync errors."""


class ConfigError(DavSyncError):
    """Configuration file is missing, unreadable or invalid."""


class SyncConfigError(ConfigError):
    """Sync run configuration has invalid values."""


class TransportError(DavSyncError):
    """Remote store is unreachable or answered with a protocol failure."""


class NotFoundError(TransportError):
    """Remote path does not exist."""


class AuthenticationError(TransportError):
    """Remote store rejected the credentials."""


class PermissionDeniedError(TransportError):
    """Remote store refused access to a path."""


class LocalIOError(DavSyncError):
    """Local filesystem operation (open, create, rename, stat) failed."""


class EnumerationError(DavSyncError):
    """Directory listing failed; the affected subtree cannot be synced."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        message = f"Failed to list directory {path or '/'}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class TransferExhaustedError(DavSyncError):
    """All retry attempts of an operation failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Operation failed after {attempts} attempt(s): {last_error}")
