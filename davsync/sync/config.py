"""Configuration of a single sync run."""

from dataclasses import dataclass
from pathlib import Path

from ..exceptions import SyncConfigError
from ..utils import (
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    normalize_remote_path,
)
from .modes import SyncDirection


@dataclass(frozen=True)
class SyncConfig:
    """Immutable settings for one synchronization run.

    Examples:
        >>> cfg = SyncConfig(Path("./sync"), "/", SyncDirection.PULL)
        >>> cfg.max_concurrent
        5
    """

    local_root: Path
    """Root of the local tree"""

    remote_root: str
    """Root of the remote tree"""

    direction: SyncDirection
    """Push (local -> remote) or pull (remote -> local)"""

    mirror_deletes: bool = False
    """Delete destination entries that are missing from the source"""

    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    """Maximum simultaneously running filesystem/network operations"""

    max_retries: int = DEFAULT_MAX_RETRIES
    """Attempts per file transfer"""

    retry_delay: float = DEFAULT_RETRY_DELAY
    """Delay before the first retry in seconds (doubles per attempt)"""

    compare_content: bool = False
    """Compare file sizes before timestamps"""

    def __post_init__(self) -> None:
        if not isinstance(self.direction, SyncDirection):
            raise SyncConfigError(f"Invalid sync direction: {self.direction!r}")
        if self.max_concurrent < 1:
            raise SyncConfigError(
                f"max_concurrent must be at least 1, got {self.max_concurrent}"
            )
        if self.max_retries < 1:
            raise SyncConfigError(
                f"max_retries must be at least 1, got {self.max_retries}"
            )
        if self.retry_delay < 0:
            raise SyncConfigError(
                f"retry_delay must not be negative, got {self.retry_delay}"
            )
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "local_root", Path(self.local_root))
        object.__setattr__(self, "remote_root", normalize_remote_path(self.remote_root))

    @property
    def source_root(self) -> str:
        """Root of the source tree as a display string."""
        if self.direction is SyncDirection.PUSH:
            return str(self.local_root)
        return self.remote_root

    @property
    def dest_root(self) -> str:
        """Root of the destination tree as a display string."""
        if self.direction is SyncDirection.PUSH:
            return self.remote_root
        return str(self.local_root)
