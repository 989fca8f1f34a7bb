"""Configuration management - loads service.yaml and environment variables."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from dca_service.models import ServiceSettings


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


# Environment variable -> key in the scheduler section. Set by the command line
# entry point; validated together with the file values.
SCHEDULER_ENV_OVERRIDES = {
    "SCHEDULER_ENABLED": "enabled",
    "SCHEDULER_TICK_INTERVAL_SECONDS": "tick_interval_seconds",
    "SCHEDULER_DRAIN_TIMEOUT_SECONDS": "drain_timeout_seconds",
}


def _apply_env_overrides(raw_config: dict) -> None:
    scheduler = raw_config.get("scheduler") or {}
    for variable, key in SCHEDULER_ENV_OVERRIDES.items():
        value = os.getenv(variable)
        if value:
            scheduler[key] = value
    if scheduler:
        raw_config["scheduler"] = scheduler


class Config:
    """Service configuration loader.

    Loads service.yaml and provides validated access to:
    - Scheduler tick/drain settings
    - Subscription registration limits
    - Simulated executor settings
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to service.yaml. If not provided, uses CONFIG_PATH env var
                        or defaults to ./config/service.yaml
        """
        self._config_path = self._resolve_config_path(config_path)
        self._settings: Optional[ServiceSettings] = None
        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path from argument, env var, or default."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("CONFIG_PATH")
        if env_path:
            return Path(env_path)

        return Path("config/service.yaml")

    def _load_config(self) -> None:
        """Load and validate service.yaml."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/service.yaml or set CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}") from e

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")

        _apply_env_overrides(raw_config)

        try:
            self._settings = ServiceSettings(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    @property
    def settings(self) -> ServiceSettings:
        """Get validated service settings."""
        if self._settings is None:
            raise ConfigurationError("Configuration not loaded")
        return self._settings

    @property
    def config_path(self) -> Path:
        """Get path to configuration file."""
        return self._config_path

    @property
    def scheduler_settings(self):
        """Tick interval, drain timeout and autostart flag."""
        return self.settings.scheduler

    @property
    def subscription_settings(self):
        """Registration limits for purchase intervals."""
        return self.settings.subscriptions

    @property
    def executor_settings(self):
        """Simulated executor behaviour."""
        return self.settings.executor

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path)
    return _config_instance


def reload_config() -> None:
    """Reload global configuration from disk."""
    global _config_instance
    if _config_instance:
        _config_instance.reload()
    else:
        _config_instance = Config()
