"""Configuration loader for source tracking."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class ConfigError(Exception):
    """Raised when config validation fails."""

    pass


class Config:
    """Configuration object for a tracked project."""

    def __init__(self, config_dict: Dict[str, Any]):
        """Initialize config from dictionary."""
        self._config = config_dict
        self._validate()

    def _validate(self) -> None:
        """Validate required configuration fields."""
        if "project_path" not in self._config:
            raise ConfigError("Missing required config key: project_path")
        if not isinstance(self._config["project_path"], str):
            raise ConfigError("Config key 'project_path' must be a string")

        package_dirs = self._config.get("package_directories")
        if not package_dirs:
            raise ConfigError("Missing required config key: package_directories")
        if not isinstance(package_dirs, list):
            raise ConfigError("Config key 'package_directories' must be a list")

        for entry in package_dirs:
            if isinstance(entry, str):
                continue
            if not isinstance(entry, dict) or not isinstance(entry.get("path"), str):
                raise ConfigError(
                    f"Invalid package directory entry: {entry!r} (expected a path or a mapping with 'path')"
                )

        for key in ("metadata_types",):
            value = self._config.get(key)
            if value is not None and not isinstance(value, list):
                raise ConfigError(f"Config key '{key}' must be a list")

    @property
    def project_path(self) -> str:
        """Get project root path."""
        return self._config["project_path"]

    @property
    def package_directories(self) -> List[Dict[str, Any]]:
        """Get package directories as normalized mappings."""
        result = []
        for entry in self._config["package_directories"]:
            if isinstance(entry, str):
                result.append({"path": entry, "default": False})
            else:
                result.append({"path": entry["path"], "default": bool(entry.get("default", False))})
        return result

    @property
    def source_api_version(self) -> Optional[str]:
        """Get source API version stamped on component sets."""
        value = self._config.get("source_api_version")
        return str(value) if value is not None else None

    @property
    def push_package_directories_sequentially(self) -> bool:
        """Get project default for building one component set per package directory."""
        return bool(self._config.get("push_package_directories_sequentially", False))

    @property
    def ignore_extensions(self) -> list:
        """Get extensions to ignore."""
        items = self._config.get("ignore", {}).get("extensions", [])
        return [i for i in (items or []) if i]

    @property
    def ignore_filenames_prefix(self) -> list:
        """Get filename prefixes to ignore."""
        items = self._config.get("ignore", {}).get("filenames_prefix", [])
        return [i for i in (items or []) if i]

    @property
    def ignore_filenames_exact(self) -> list:
        """Get exact filenames to ignore."""
        items = self._config.get("ignore", {}).get("filenames_exact", [])
        return [i for i in (items or []) if i]

    @property
    def ignore_directories(self) -> list:
        """Get directory names to ignore."""
        items = self._config.get("ignore", {}).get("directories", [])
        return [i for i in (items or []) if i]

    @property
    def ignore_patterns(self) -> list:
        """Get glob patterns (project-relative) to ignore."""
        items = self._config.get("ignore", {}).get("patterns", [])
        return [i for i in (items or []) if i]

    @property
    def state_dir(self) -> str:
        """Get directory holding the tracking databases, relative to the project."""
        return self._config.get("tracking", {}).get("state_dir", ".sf/tracking")

    @property
    def subscribe_events(self) -> bool:
        """Get whether tracking hooks into deploy/retrieve notifications."""
        return bool(self._config.get("tracking", {}).get("subscribe_events", False))

    @property
    def ignore_conflicts(self) -> bool:
        """Get whether conflicts are ignored before deploy/retrieve."""
        return bool(self._config.get("tracking", {}).get("ignore_conflicts", False))

    @property
    def poll_timeout_seconds(self) -> float:
        """Get the bounded wait for remote revisions after a deploy."""
        return float(self._config.get("tracking", {}).get("poll_timeout_seconds", 120))

    @property
    def poll_interval_seconds(self) -> float:
        """Get the delay between remote polls."""
        return float(self._config.get("tracking", {}).get("poll_interval_seconds", 1.0))

    @property
    def metadata_types(self) -> List[Dict[str, Any]]:
        """Get additional metadata type definitions for the registry."""
        return list(self._config.get("metadata_types") or [])

    @property
    def log_file_path(self) -> Optional[str]:
        """Get log file path."""
        return self._config.get("logging", {}).get("file_path")

    @property
    def log_level(self) -> str:
        """Get log level."""
        return self._config.get("logging", {}).get("level", "INFO")

    @property
    def log_max_size_mb(self) -> int:
        """Get max log file size in MB before rotation."""
        return self._config.get("logging", {}).get("max_size_mb", 10)

    @property
    def log_backup_count(self) -> int:
        """Get number of rotated log files to keep."""
        return self._config.get("logging", {}).get("backup_count", 5)

    @property
    def log_rotation_enabled(self) -> bool:
        """Get whether log rotation is enabled."""
        return self._config.get("logging", {}).get("rotation_enabled", True)


def load_config(config_path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to the tracking config file

    Returns:
        Config object

    Raises:
        ConfigError: If config file doesn't exist or is invalid
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        config_dict = yaml.safe_load(f) or {}

    if not isinstance(config_dict, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    return Config(config_dict)


def load_config_from_env(env_var: str = "SOURCE_TRACKING_CONFIG") -> Config:
    """Load configuration from environment variable.

    Args:
        env_var: Name of environment variable containing config path

    Returns:
        Config object

    Raises:
        ConfigError: If environment variable not set or config invalid
    """
    config_path = os.getenv(env_var)
    if not config_path:
        raise ConfigError(f"Environment variable {env_var} not set")

    return load_config(config_path)
