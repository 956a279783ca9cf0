"""
load the config from config.yaml and the environment
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional, Type, TypeVar

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from proxied_client.errors import ConfigError

logger = structlog.get_logger(__name__)

CONFIG_PATH_ENV = "PROXIED_CLIENT_CONFIG"
DEFAULT_CONFIG_FILE = "config.yaml"

ModelT = TypeVar("ModelT", bound=BaseModel)


class Config:
    """Configuration loader that reads from config.yaml and environment variables."""

    def __init__(self, config_path: str = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to the YAML file. If None, uses $PROXIED_CLIENT_CONFIG
                        or config.yaml in the working directory.
        """
        if config_path is None:
            config_path = os.getenv(CONFIG_PATH_ENV, DEFAULT_CONFIG_FILE)

        self.config_path = Path(config_path)
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file and override with environment variables."""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except FileNotFoundError:
            logger.debug("config_file_not_found", path=str(self.config_path))
            config = None
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file {self.config_path}: {e}") from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration file {self.config_path} must contain a mapping, "
                f"got {type(config).__name__}"
            )

        return self._apply_env_overrides(config)

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        env_mappings = {
            'PROXY_ENDPOINT': ('proxy', 'endpoint'),
            'PROXY_AUTHORIZATION': ('proxy', 'authorization'),
            'LOG_LEVEL': ('logging', 'level'),
            'LOG_FORMAT': ('logging', 'format'),
        }

        for env_var, config_path in env_mappings.items():
            env_value = os.getenv(env_var)
            # empty values (e.g. `PROXY_ENDPOINT=` in .env) leave the YAML value alone
            if env_value:
                # Navigate to the nested config location
                current = config
                for key in config_path[:-1]:
                    if not isinstance(current.get(key), dict):
                        current[key] = {}
                    current = current[key]

                # Credentials and URLs stay strings
                current[config_path[-1]] = env_value

        return config

    def get(self, *keys, default=None):
        """Get configuration value using nested keys.

        Args:
            *keys: Configuration keys (e.g., 'proxy', 'endpoint')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        current = self._config
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    def parse(self, key: str, model: Type[ModelT]) -> Optional[ModelT]:
        """Deserialize the section stored under ``key`` into ``model``.

        Returns None when the section is absent or null. Raises ConfigError
        when the section exists but cannot be deserialized.
        """
        section = self.section(key)
        if section is None:
            return None
        try:
            return model.model_validate(section)
        except ValidationError as e:
            raise ConfigError(f"Invalid config section '{key}': {e}") from e

    def section(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the mapping stored under ``key``, or None when absent or null."""
        section = self._config.get(key)
        if section is not None and not isinstance(section, dict):
            raise ConfigError(
                f"Config section '{key}' must be a mapping, got {type(section).__name__}"
            )
        return section

    @property
    def logging(self) -> Dict[str, Any]:
        """Get logging configuration. Raises ConfigError if it is not a mapping."""
        return self.section('logging') or {}


_config_instance = None


def get_config() -> Config:
    """Return the process-wide configuration, loading it on first use."""
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reset_config():
    """Forget the process-wide configuration so the next get_config() reloads it."""
    global _config_instance
    _config_instance = None
