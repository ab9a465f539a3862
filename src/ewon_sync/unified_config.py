"""Unified configuration for ewon-sync.

One configuration file is shared by the CLI, the background service and
the HTTP status server:

- Configuration: ~/.ewonsync/config.toml
- Checkpoint and history database: ~/.ewonsync/sync.db

Talk2M credentials may be kept out of the file and supplied through
``TALK2M_*`` environment variables instead.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from ewon_sync.engine.apply import LiveWritePolicy
from ewon_sync.engine.orchestrator import SyncSettings
from ewon_sync.transport.talk2m import DEFAULT_DATA_MAILBOX_URL, DEFAULT_M2WEB_URL

logger = logging.getLogger(__name__)

# Valid checkpoint key: alphanumeric, hyphens, underscores, dots
_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-\.]+$")

# Config field → environment variable overriding it
_TALK2M_ENV: dict[str, str] = {
    "account": "TALK2M_ACCOUNT",
    "username": "TALK2M_USERNAME",
    "password": "TALK2M_PASSWORD",
    "developer_id": "TALK2M_DEVELOPER_ID",
    "token": "TALK2M_TOKEN",
    "device_username": "TALK2M_DEVICE_USERNAME",
    "device_password": "TALK2M_DEVICE_PASSWORD",
}


def get_ewonsync_dir() -> Path:
    """Get ewon-sync data directory.

    Priority:
    1. EWONSYNC_DIR environment variable
    2. ~/.ewonsync/
    """
    env_dir = os.environ.get("EWONSYNC_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".ewonsync"


def _toml_str(value: str) -> str:
    # JSON string escaping is valid TOML basic-string escaping
    return json.dumps(value)


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def _clamp_float(raw: Any, default: float, low: float, high: float) -> float:
    try:
        return max(low, min(float(raw), high))
    except (ValueError, TypeError):
        return default


def _clamp_int(raw: Any, default: int, low: int, high: int) -> int:
    try:
        return max(low, min(int(raw), high))
    except (ValueError, TypeError):
        return default


@dataclass(frozen=True)
class Talk2MConfig:
    """Talk2M account and API endpoints."""

    account: str = ""
    username: str = ""
    password: str = ""
    developer_id: str = ""
    token: str = ""
    device_username: str = ""
    device_password: str = ""
    data_mailbox_url: str = DEFAULT_DATA_MAILBOX_URL
    m2web_url: str = DEFAULT_M2WEB_URL
    timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        """True if DataMailbox can authenticate (developer id plus token or login)."""
        if not self.developer_id:
            return False
        return bool(self.token) or bool(self.account and self.username and self.password)

    def with_env_overrides(self) -> Talk2MConfig:
        overrides = {
            name: os.environ[env]
            for name, env in _TALK2M_ENV.items()
            if os.environ.get(env)
        }
        return replace(self, **overrides) if overrides else self

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "username": self.username,
            "password": self.password,
            "developer_id": self.developer_id,
            "token": self.token,
            "device_username": self.device_username,
            "device_password": self.device_password,
            "data_mailbox_url": self.data_mailbox_url,
            "m2web_url": self.m2web_url,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Talk2MConfig:
        return cls(
            account=str(data.get("account", "")),
            username=str(data.get("username", "")),
            password=str(data.get("password", "")),
            developer_id=str(data.get("developer_id", "")),
            token=str(data.get("token", "")),
            device_username=str(data.get("device_username", "")),
            device_password=str(data.get("device_password", "")),
            data_mailbox_url=str(data.get("data_mailbox_url", DEFAULT_DATA_MAILBOX_URL)),
            m2web_url=str(data.get("m2web_url", DEFAULT_M2WEB_URL)),
            timeout=_clamp_float(data.get("timeout", 30.0), 30.0, 1.0, 600.0),
        )


@dataclass(frozen=True)
class SyncConfig:
    """Sync cadences and engine switches.

    A non-positive poll rate disables the corresponding loop.
    """

    poll_rate_minutes: float = 1.0
    live_poll_rate_seconds: float = 10.0
    history_enabled: bool = False
    history_provider: str = ""
    tag_names_contain_periods: bool = False
    read_all_realtime: bool = False
    live_write_policy: LiveWritePolicy = LiveWritePolicy.AUTO
    max_concurrent_devices: int = 1
    checkpoint_key: str = "default"

    def to_settings(self) -> SyncSettings:
        return SyncSettings(
            history_enabled=self.history_enabled,
            history_provider=self.history_provider,
            tag_names_contain_periods=self.tag_names_contain_periods,
            read_all_realtime=self.read_all_realtime,
            live_write_policy=self.live_write_policy,
            max_concurrent_devices=self.max_concurrent_devices,
            checkpoint_key=self.checkpoint_key,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "poll_rate_minutes": self.poll_rate_minutes,
            "live_poll_rate_seconds": self.live_poll_rate_seconds,
            "history_enabled": self.history_enabled,
            "history_provider": self.history_provider,
            "tag_names_contain_periods": self.tag_names_contain_periods,
            "read_all_realtime": self.read_all_realtime,
            "live_write_policy": self.live_write_policy.value,
            "max_concurrent_devices": self.max_concurrent_devices,
            "checkpoint_key": self.checkpoint_key,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Build from a TOML table.

        Raises:
            ValueError: If live_write_policy is not a known policy
        """
        raw_policy = str(data.get("live_write_policy", LiveWritePolicy.AUTO.value))
        try:
            policy = LiveWritePolicy(raw_policy.strip().lower())
        except ValueError:
            allowed = ", ".join(p.value for p in LiveWritePolicy)
            raise ValueError(
                f"Invalid live_write_policy {raw_policy!r}; expected one of: {allowed}"
            ) from None

        key = str(data.get("checkpoint_key", "default")).strip()
        if not _KEY_PATTERN.match(key):
            logger.warning("Invalid checkpoint_key %r, using 'default'", key)
            key = "default"

        return cls(
            poll_rate_minutes=_clamp_float(data.get("poll_rate_minutes", 1.0), 1.0, 0.0, 1440.0),
            live_poll_rate_seconds=_clamp_float(
                data.get("live_poll_rate_seconds", 10.0), 10.0, 0.0, 3600.0
            ),
            history_enabled=bool(data.get("history_enabled", False)),
            history_provider=str(data.get("history_provider", "")).strip(),
            tag_names_contain_periods=bool(data.get("tag_names_contain_periods", False)),
            read_all_realtime=bool(data.get("read_all_realtime", False)),
            live_write_policy=policy,
            max_concurrent_devices=_clamp_int(data.get("max_concurrent_devices", 1), 1, 1, 64),
            checkpoint_key=key,
        )


@dataclass(frozen=True)
class ServerConfig:
    """HTTP status server binding."""

    host: str = "127.0.0.1"
    port: int = 8800

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "port": self.port}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerConfig:
        return cls(
            host=str(data.get("host", "127.0.0.1")),
            port=_clamp_int(data.get("port", 8800), 8800, 1, 65535),
        )


@dataclass
class UnifiedConfig:
    """Unified configuration for ewon-sync.

    Storage location: ~/.ewonsync/config.toml
    """

    # Base directory for configuration and the sync database
    data_dir: Path = field(default_factory=get_ewonsync_dir)

    talk2m: Talk2MConfig = field(default_factory=Talk2MConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    version: str = "1.0"

    @classmethod
    def load(cls, config_path: Path | None = None) -> UnifiedConfig:
        """Load configuration from file, or create default if doesn't exist.

        Environment overrides for Talk2M credentials are applied after the
        file is read.
        """
        if config_path is None:
            data_dir = get_ewonsync_dir()
            config_path = data_dir / "config.toml"
        else:
            data_dir = config_path.parent

        if not config_path.exists():
            config = cls(data_dir=data_dir)
            config.save()
            logger.info("Created default configuration at %s", config_path)
            return replace(config, talk2m=config.talk2m.with_env_overrides())

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        return cls(
            data_dir=data_dir,
            talk2m=Talk2MConfig.from_dict(data.get("talk2m", {})).with_env_overrides(),
            sync=SyncConfig.from_dict(data.get("sync", {})),
            server=ServerConfig.from_dict(data.get("server", {})),
            version=data.get("version", "1.0"),
        )

    def save(self) -> None:
        """Save configuration to TOML file (atomic write via temp+rename)."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        config_path = self.config_path

        t2m = self.talk2m
        sync = self.sync
        lines = [
            "# ewon-sync Configuration",
            "# Shared by the CLI, the sync service and the status server",
            "",
            f"version = {_toml_str(self.version)}",
            "",
            "# Talk2M account (TALK2M_* environment variables take precedence)",
            "[talk2m]",
            f"account = {_toml_str(t2m.account)}",
            f"username = {_toml_str(t2m.username)}",
            f"password = {_toml_str(t2m.password)}",
            f"developer_id = {_toml_str(t2m.developer_id)}",
            f"token = {_toml_str(t2m.token)}",
            f"device_username = {_toml_str(t2m.device_username)}",
            f"device_password = {_toml_str(t2m.device_password)}",
            f"data_mailbox_url = {_toml_str(t2m.data_mailbox_url)}",
            f"m2web_url = {_toml_str(t2m.m2web_url)}",
            f"timeout = {float(t2m.timeout)}",
            "",
            "# Sync cadences and behaviour",
            "[sync]",
            f"poll_rate_minutes = {float(sync.poll_rate_minutes)}",
            f"live_poll_rate_seconds = {float(sync.live_poll_rate_seconds)}",
            f"history_enabled = {_toml_bool(sync.history_enabled)}",
            f"history_provider = {_toml_str(sync.history_provider)}",
            f"tag_names_contain_periods = {_toml_bool(sync.tag_names_contain_periods)}",
            f"read_all_realtime = {_toml_bool(sync.read_all_realtime)}",
            f"live_write_policy = {_toml_str(sync.live_write_policy.value)}",
            f"max_concurrent_devices = {sync.max_concurrent_devices}",
            f"checkpoint_key = {_toml_str(sync.checkpoint_key)}",
            "",
            "# HTTP status server",
            "[server]",
            f"host = {_toml_str(self.server.host)}",
            f"port = {self.server.port}",
        ]

        # Atomic write: write to temp file, then rename
        content = "\n".join(lines) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=str(self.data_dir), suffix=".toml.tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(tmp_path).replace(config_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    @property
    def config_path(self) -> Path:
        """Get path to config file."""
        return self.data_dir / "config.toml"

    @property
    def db_path(self) -> Path:
        """Get path to the checkpoint and history database."""
        return self.data_dir / "sync.db"

    def to_dict(self, *, redact: bool = True) -> dict[str, Any]:
        """Plain-dict view for display; secrets are masked unless redact is False."""
        talk2m = self.talk2m.to_dict()
        if redact:
            for secret in ("password", "token", "device_password"):
                if talk2m[secret]:
                    talk2m[secret] = "***"
        return {
            "version": self.version,
            "data_dir": str(self.data_dir),
            "talk2m": talk2m,
            "sync": self.sync.to_dict(),
            "server": self.server.to_dict(),
        }


# Singleton instance for easy access
_config: UnifiedConfig | None = None


def get_config(reload: bool = False) -> UnifiedConfig:
    """Get the unified configuration (singleton).

    Args:
        reload: Force reload from disk

    Returns:
        UnifiedConfig instance
    """
    global _config
    if _config is None or reload:
        _config = UnifiedConfig.load()
    return _config
