"""
Configuration management and loading.

Handles storage and notification settings read from a YAML file.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = "costlog.yaml"


@dataclass(frozen=True)
class StorageConfig:
    """Location of the local database and read-cache lifetime."""
    path: str = "costlog.db"
    cache_ttl_seconds: float = 5.0

    def __post_init__(self):
        if not self.path:
            raise ValueError("storage path cannot be empty")
        if self.cache_ttl_seconds < 0:
            raise ValueError("cache_ttl_seconds must be >= 0")


@dataclass(frozen=True)
class NotificationConfig:
    """Outbound delivery settings."""
    email_relay_url: Optional[str] = None
    timeout_seconds: float = 10.0
    max_workers: int = 4

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")


@dataclass(frozen=True)
class CostLogConfig:
    """Complete application configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)


def default_config() -> CostLogConfig:
    """Configuration used when no config file exists."""
    return CostLogConfig()


def load_config(path: str) -> CostLogConfig:
    """Load and validate configuration from a YAML file.

    Unknown keys are rejected so typos never fall back to defaults silently.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated CostLogConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    _check_keys(raw_config, {'storage', 'notifications'}, "configuration")

    if 'storage' not in raw_config:
        raise ValueError("Missing required 'storage' section")
    storage = _parse_storage(_section(raw_config, 'storage'))

    notifications = NotificationConfig()
    if 'notifications' in raw_config:
        notifications = _parse_notifications(_section(raw_config, 'notifications'))

    return CostLogConfig(storage=storage, notifications=notifications)


def load_config_or_default(path: str) -> CostLogConfig:
    """Load ``path`` if it exists, otherwise return the defaults."""
    if not Path(path).exists():
        return default_config()
    return load_config(path)


def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    data = raw_config[name]
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _check_keys(data: Dict[str, Any], allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _number(data: Dict[str, Any], key: str, path: str) -> float:
    value = data[key]
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' in {path} must be a number")
    return float(value)


def _parse_storage(data: Dict[str, Any]) -> StorageConfig:
    """Parse and validate the storage section.

    Raises:
        ValueError: If configuration is invalid
    """
    _check_keys(data, {'path', 'cache_ttl_seconds'}, "storage")

    if 'path' not in data:
        raise ValueError("Missing required 'path' in storage")
    if not isinstance(data['path'], str) or not data['path'].strip():
        raise ValueError("'path' in storage must be a non-empty string")

    cache_ttl = StorageConfig.cache_ttl_seconds
    if 'cache_ttl_seconds' in data:
        cache_ttl = _number(data, 'cache_ttl_seconds', "storage")

    return StorageConfig(path=data['path'], cache_ttl_seconds=cache_ttl)


def _parse_notifications(data: Dict[str, Any]) -> NotificationConfig:
    """Parse and validate the notifications section.

    Raises:
        ValueError: If configuration is invalid
    """
    _check_keys(data, {'email_relay_url', 'timeout_seconds', 'max_workers'}, "notifications")

    relay_url = data.get('email_relay_url')
    if relay_url is not None:
        if not isinstance(relay_url, str) or not relay_url.startswith(("http://", "https://")):
            raise ValueError("'email_relay_url' in notifications must be an http(s) URL")

    timeout = NotificationConfig.timeout_seconds
    if 'timeout_seconds' in data:
        timeout = _number(data, 'timeout_seconds', "notifications")

    max_workers = NotificationConfig.max_workers
    if 'max_workers' in data:
        value = data['max_workers']
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("'max_workers' in notifications must be an integer")
        max_workers = value

    return NotificationConfig(
        email_relay_url=relay_url,
        timeout_seconds=timeout,
        max_workers=max_workers,
    )
