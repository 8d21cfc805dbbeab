"""
Configuration management for fleetsync.

Handles loading and merging configuration from:
- Default configuration file (config/default.yaml)
- An optional operator-supplied YAML file
- Environment variables
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULTS: Dict[str, Any] = {
    "member": {"cluster_id": ""},
    "hub": {"namespace": ""},
    "controller": {
        "workers": 2,
        "retry_backoff_ms": 5,
        "retry_backoff_max_ms": 1000000,
        "retry_jitter_ms": 20,
    },
    "logging": {"level": "INFO", "format": "json"},
}


class ConfigError(Exception):
    """Raised when required configuration is missing or malformed."""
    pass


class Config:
    """Configuration manager for fleetsync."""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to configuration file. If None, only the
                defaults and environment are used.
        """
        self._config: Dict[str, Any] = self._deep_merge({}, DEFAULTS)
        self._load_default_config()

        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _load_default_config(self) -> None:
        """Load the default configuration file shipped next to the package."""
        default_config_path = Path(__file__).parent.parent.parent / "config" / "default.yaml"
        if default_config_path.exists():
            self._load_config_file(str(default_config_path))

    def _load_config_file(self, config_file: str) -> None:
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML configuration file

        Raises:
            ConfigError: If the file does not hold a mapping
        """
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f)

        if file_config is None:
            return
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_file}: top-level YAML value must be a mapping")

        self._config = self._deep_merge(self._config, file_config)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            elif isinstance(value, dict):
                result[key] = self._deep_merge({}, value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if cluster_id := os.getenv("MEMBER_CLUSTER_ID"):
            self.set("member.cluster_id", cluster_id)

        if hub_namespace := os.getenv("HUB_NAMESPACE"):
            self.set("hub.namespace", hub_namespace)

        if workers := os.getenv("CONTROLLER_WORKERS"):
            try:
                self.set("controller.workers", int(workers))
            except ValueError as e:
                raise ConfigError(f"CONTROLLER_WORKERS must be an integer, got {workers!r}") from e

        if log_level := os.getenv("LOG_LEVEL"):
            self.set("logging.level", log_level)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "hub.namespace")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self._config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def require(self, key: str) -> Any:
        """
        Get a configuration value that must be set and non-empty.

        Args:
            key: Configuration key in dot notation

        Returns:
            Configuration value

        Raises:
            ConfigError: If the key is missing or empty
        """
        value = self.get(key)
        if value is None or value == "":
            raise ConfigError(f"configuration key {key!r} is required")
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """
        Get entire configuration as dictionary.

        Returns:
            Configuration dictionary
        """
        return self._deep_merge({}, self._config)


_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get global configuration instance.

    Args:
        config_file: Optional configuration file path

    Returns:
        Configuration instance
    """
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
