"""Configuration management for davsync.

Settings are read from a TOML file (``config.toml`` by default) and can
be overridden by environment variables and command line flags, in that
order of increasing precedence.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional, Union

import toml

from .exceptions import ConfigError
from .sync.config import SyncConfig
from .sync.modes import SyncDirection
from .utils import (
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    parse_duration,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.toml"

# Environment variable -> config key
ENV_OVERRIDES = {
    "DAVSYNC_WEBDAV_URL": "webdav_url",
    "DAVSYNC_USERNAME": "webdav_username",
    "DAVSYNC_PASSWORD": "webdav_password",
    "DAVSYNC_LOCAL_DIR": "local_dir",
    "DAVSYNC_REMOTE_DIR": "remote_dir",
    "DAVSYNC_MODE": "mode",
}


@dataclass
class Config:
    """Settings of the davsync command line tool."""

    webdav_url: str = "http://localhost:5244/dav"
    webdav_username: str = "guest"
    webdav_password: str = "guest"
    local_dir: str = "./sync"
    remote_dir: str = "/"
    mode: str = SyncDirection.PULL.value
    """backup (local -> WebDAV) or restore (WebDAV -> local)"""
    sync_delete: bool = False
    """Delete destination entries that are missing from the source"""
    compare_content: bool = False
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    """Seconds; the file may also use duration strings such as "2s" """
    timeout: float = 30.0

    @classmethod
    def load(
        cls,
        path: Union[str, Path] = DEFAULT_CONFIG_FILE,
        env: Optional[Mapping[str, str]] = None,
    ) -> "Config":
        """Load configuration from a TOML file and the environment.

        Args:
            path: Path to the config file
            env: Environment to read overrides from (defaults to os.environ)

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If the config file does not exist
            ConfigError: If the file cannot be parsed or has invalid values
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = toml.load(f)
        except FileNotFoundError:
            raise
        except toml.TomlDecodeError as e:
            raise ConfigError(f"Failed to parse config file {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read config file {path}: {e}") from e

        config = cls.from_dict(data)
        config.apply_env(os.environ if env is None else env)
        config.normalize_mode()
        logger.debug(f"Loaded configuration from {path}")
        return config

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """Build a Config from parsed TOML data.

        Missing keys keep their defaults; unknown keys are ignored with a
        warning.

        Raises:
            ConfigError: If a value has the wrong type
        """
        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            values[key] = cls._coerce(key, value)
        return cls(**values)

    @staticmethod
    def _coerce(key: str, value: Any) -> Any:
        if key == "retry_delay":
            try:
                return parse_duration(value)
            except (ValueError, AttributeError) as e:
                raise ConfigError(f"Invalid value for {key}: {value!r}") from e
        if key in ("sync_delete", "compare_content"):
            if not isinstance(value, bool):
                raise ConfigError(f"{key} must be true or false, got {value!r}")
            return value
        if key in ("max_concurrent", "max_retries"):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{key} must be an integer, got {value!r}")
            return value
        if key == "timeout":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{key} must be a number, got {value!r}")
            return float(value)
        if not isinstance(value, str):
            raise ConfigError(f"{key} must be a string, got {value!r}")
        return value

    def apply_env(self, env: Mapping[str, str]) -> None:
        """Override settings from DAVSYNC_* environment variables."""
        for variable, key in ENV_OVERRIDES.items():
            value = env.get(variable)
            if value:
                logger.debug(f"Using {variable} for {key}")
                setattr(self, key, value)

    def normalize_mode(self) -> None:
        """Replace an invalid mode by restore, logging a warning."""
        try:
            self.mode = SyncDirection.from_string(self.mode).value
        except ValueError:
            logger.warning(
                f"Invalid sync mode '{self.mode}', using default mode "
                f"'{SyncDirection.PULL.value}'"
            )
            self.mode = SyncDirection.PULL.value

    @property
    def direction(self) -> SyncDirection:
        try:
            return SyncDirection.from_string(self.mode)
        except ValueError:
            return SyncDirection.PULL

    @property
    def local_path(self) -> Path:
        return Path(self.local_dir).expanduser()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def save(self, path: Union[str, Path]) -> None:
        """Write the configuration as TOML.

        Raises:
            ConfigError: If the file cannot be written
        """
        path = Path(path)
        data = self.to_dict()
        data["retry_delay"] = _format_seconds(self.retry_delay)
        try:
            if path.parent != Path():
                path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                toml.dump(data, f)
        except OSError as e:
            raise ConfigError(f"Failed to write config file {path}: {e}") from e
        logger.debug(f"Saved configuration to {path}")

    def ensure_local_dir(self) -> Path:
        """Create the local sync directory if it does not exist.

        Raises:
            ConfigError: If the directory cannot be created
        """
        path = self.local_path
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Failed to create local directory {path}: {e}") from e
        return path

    def to_sync_config(self) -> SyncConfig:
        """Build the settings of one sync run.

        Raises:
            SyncConfigError: If a value is out of range
        """
        return SyncConfig(
            local_root=self.local_path,
            remote_root=self.remote_dir,
            direction=self.direction,
            mirror_deletes=self.sync_delete,
            max_concurrent=self.max_concurrent,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            compare_content=self.compare_content,
        )


def _format_seconds(seconds: float) -> str:
    """Format seconds as a duration string understood by parse_duration."""
    if seconds == int(seconds):
        return f"{int(seconds)}s"
    return f"{int(round(seconds * 1000))}ms"
