"""
Configuration management for exprgraph.
"""
from .config_manager import (
    Config,
    ConfigManager,
    ConfigBuilder,
    get_config_manager,
    load_config,
    get_config,
    set_config
)
from .presets import ConfigPresets

__all__ = [
    'Config',
    'ConfigManager',
    'ConfigBuilder',
    'get_config_manager',
    'load_config',
    'get_config',
    'set_config',
    'ConfigPresets',
]
