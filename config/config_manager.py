"""
Configuration management for engines and logging.
"""
import os
import json
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from copy import deepcopy
from utils.logging_config import get_logger, LoggerFactory
from utils.exceptions import ConfigurationError, ValidationError
from validation.schema import Schema, EngineConfigSchema
from .presets import ConfigPresets

logger = get_logger(__name__)

ENV_PREFIX = "EXPRGRAPH_"


class Config:
    """Configuration container with dot notation access."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data = data or {}

    def __getattr__(self, key: str) -> Any:
        """Get config value using dot notation."""
        if key.startswith('_'):
            return object.__getattribute__(self, key)

        if key not in self._data:
            raise AttributeError(f"Config has no attribute '{key}'")

        value = self._data[key]
        if isinstance(value, dict):
            return Config(value)
        return value

    def __getitem__(self, key: str) -> Any:
        """Get config value using bracket notation."""
        return self._data[key]

    def __setitem__(self, key: str, value: Any):
        """Set config value using bracket notation."""
        self._data[key] = value

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value with default."""
        try:
            keys = key.split('.')
            value = self._data
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any):
        """Set config value using dot notation."""
        keys = key.split('.')
        data = self._data
        for k in keys[:-1]:
            if k not in data:
                data[k] = {}
            data = data[k]
        data[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return deepcopy(self._data)

    def update(self, other: Dict[str, Any]):
        """Update configuration with another dict."""
        self._deep_update(self._data, other)

    @staticmethod
    def _deep_update(base: Dict, update: Dict):
        """Recursively update nested dictionaries."""
        for key, value in update.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                Config._deep_update(base[key], value)
            else:
                base[key] = deepcopy(value)


_MISSING = object()


class ConfigManager:
    """
    Centralized configuration with file, environment and dict sources.

    Starts from ``ConfigPresets.default()``; every load is merged on top and the
    merged result is validated against the registered ``engine`` schema.
    """

    def __init__(self, config_dir: Optional[str] = None, preset: str = 'default'):
        self.config_dir = Path(config_dir) if config_dir else None
        self._config = Config(ConfigPresets.get(preset))
        self._schemas: Dict[str, Schema] = {'engine': EngineConfigSchema()}
        self.logger = get_logger(self.__class__.__name__)

    def _resolve(self, filepath: str) -> Path:
        path = Path(filepath)
        if not path.is_absolute() and self.config_dir is not None:
            path = self.config_dir / path
        return path

    def load_from_file(self, filepath: str, validate: bool = True):
        """
        Load configuration from file (JSON or YAML).

        Args:
            filepath: Path to configuration file, relative to ``config_dir`` if set
            validate: Whether to validate the merged configuration
        """
        path = self._resolve(filepath)

        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {filepath}",
                details={'filepath': str(path)}
            )
        if path.suffix not in ['.yaml', '.yml', '.json']:
            raise ConfigurationError(
                f"Unsupported file format: {path.suffix}",
                details={'filepath': str(path)}
            )

        try:
            with open(path, 'r') as f:
                if path.suffix in ['.yaml', '.yml']:
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Failed to load configuration from {filepath}: {e}",
                details={'filepath': str(path), 'error': str(e)}
            ) from e

        self._merge(data, validate)
        self.logger.info(f"Loaded configuration from {path}")

    def load_from_env(self, prefix: str = ENV_PREFIX, validate: bool = True):
        """
        Load configuration from environment variables.

        Nested keys are separated by a double underscore:
        ``EXPRGRAPH_ENGINE__WATCH_NAN=true`` sets ``engine.watch_nan``.
        """
        env_config = Config()

        for key, value in os.environ.items():
            if not key.startswith(prefix):
                continue
            config_key = key[len(prefix):].lower().replace('__', '.')

            # Try to parse as JSON for booleans and numbers
            try:
                parsed_value = json.loads(value)
            except json.JSONDecodeError:
                parsed_value = value

            env_config.set(config_key, parsed_value)

        loaded = env_config.to_dict()
        self._merge(loaded, validate)
        self.logger.info(f"Loaded {len(loaded)} configuration sections from environment")

    def load_from_dict(self, data: Dict[str, Any], validate: bool = True):
        """Load configuration from dictionary."""
        self._merge(data, validate)
        self.logger.debug("Loaded configuration from dictionary")

    def _merge(self, data: Dict[str, Any], validate: bool):
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration must be a mapping, got {type(data).__name__}"
            )
        merged = Config(self._config.to_dict())
        merged.update(data)
        if validate:
            merged = Config(self._validated(merged.to_dict()))
        self._config = merged

    def _validated(self, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self._schemas['engine'].validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {e.message}",
                details=e.details
            ) from e

    def save_to_file(self, filepath: str, format: str = 'yaml'):
        """
        Save configuration to file.

        Args:
            filepath: Path to save configuration
            format: File format ('yaml' or 'json')
        """
        if format not in ('yaml', 'json'):
            raise ConfigurationError(f"Unsupported format: {format}")

        path = self._resolve(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            if format == 'yaml':
                yaml.safe_dump(self._config.to_dict(), f, default_flow_style=False)
            else:
                json.dump(self._config.to_dict(), f, indent=2)

        self.logger.info(f"Saved configuration to {path}")

    def register_schema(self, name: str, schema: Schema):
        """Register a validation schema. ``engine`` validates the whole config."""
        self._schemas[name] = schema
        self.logger.debug(f"Registered schema: {name}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set configuration value."""
        self._config.set(key, value)
        self.logger.debug(f"Set config: {key} = {value}")

    def get_config(self) -> Config:
        """Get the full configuration object."""
        return self._config

    def apply_logging(self):
        """Reconfigure package logging from the ``logging`` section."""
        LoggerFactory.configure_from_config(self._config, force=True)
        self.logger.debug("Applied logging configuration")

    def clear(self, preset: str = 'default'):
        """Reset configuration to a preset."""
        self._config = Config(ConfigPresets.get(preset))
        self.logger.debug(f"Reset configuration to preset '{preset}'")


class ConfigBuilder:
    """Builder for constructing configurations."""

    def __init__(self, preset: str = 'default'):
        self._config = Config(ConfigPresets.get(preset))

    def set_engine_config(
        self,
        watch_nan: bool = False,
        watch_inf: bool = False,
        trace: bool = False
    ):
        """Set engine configuration."""
        self._config.update({'engine': {
            'watch_nan': watch_nan,
            'watch_inf': watch_inf,
            'trace': trace
        }})
        return self

    def set_logging_config(
        self,
        log_dir: str = 'logs',
        log_level: str = 'WARNING',
        enable_file: bool = False,
        enable_structured: bool = False
    ):
        """Set logging configuration."""
        self._config.update({'logging': {
            'log_dir': log_dir,
            'log_level': log_level,
            'enable_file': enable_file,
            'enable_structured': enable_structured
        }})
        return self

    def add_custom(self, key: str, value: Any):
        """Add custom configuration."""
        self._config.set(key, value)
        return self

    def build(self) -> Config:
        """Validate and return the configuration."""
        try:
            data = EngineConfigSchema().validate(self._config.to_dict())
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {e.message}",
                details=e.details
            ) from e
        return Config(data)


# Global configuration manager instance
_global_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance."""
    global _global_config_manager
    if _global_config_manager is None:
        _global_config_manager = ConfigManager()
    return _global_config_manager


def load_config(filepath: str):
    """Load configuration from file into global manager."""
    get_config_manager().load_from_file(filepath)


def get_config(key: str, default: Any = None) -> Any:
    """Get configuration value from global manager."""
    return get_config_manager().get(key, default)


def set_config(key: str, value: Any):
    """Set configuration value in global manager."""
    get_config_manager().set(key, value)
