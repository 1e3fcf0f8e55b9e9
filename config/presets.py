"""
Predefined configuration presets.
"""
from typing import Dict, Any
from utils.exceptions import ConfigurationError


class ConfigPresets:
    """Collection of predefined configuration presets."""

    @staticmethod
    def default() -> Dict[str, Any]:
        """Quiet engines, console logging of warnings only."""
        return {
            'engine': {
                'watch_nan': False,
                'watch_inf': False,
                'trace': False
            },
            'logging': {
                'log_level': 'WARNING',
                'log_dir': 'logs',
                'enable_console': True,
                'enable_file': False,
                'enable_structured': False
            }
        }

    @staticmethod
    def debug() -> Dict[str, Any]:
        """Trace every instruction and log to file."""
        return {
            'engine': {
                'watch_nan': True,
                'watch_inf': True,
                'trace': True
            },
            'logging': {
                'log_level': 'DEBUG',
                'log_dir': 'logs/debug',
                'enable_console': True,
                'enable_file': True,
                'enable_structured': False
            }
        }

    @staticmethod
    def strict() -> Dict[str, Any]:
        """Fail on any NaN or Inf produced during evaluation."""
        return {
            'engine': {
                'watch_nan': True,
                'watch_inf': True,
                'trace': False
            },
            'logging': {
                'log_level': 'INFO',
                'log_dir': 'logs',
                'enable_console': True,
                'enable_file': False,
                'enable_structured': True
            }
        }

    @classmethod
    def get(cls, name: str) -> Dict[str, Any]:
        """Return a fresh copy of the named preset."""
        presets = {
            'default': cls.default,
            'debug': cls.debug,
            'strict': cls.strict,
        }
        if name not in presets:
            raise ConfigurationError(
                f"Unknown preset: {name}",
                details={'available_presets': sorted(presets)}
            )
        return presets[name]()
