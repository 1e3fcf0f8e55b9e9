"""Tests for configuration, presets and logging setup."""
import json
import logging
import os
import tempfile
import pytest
import yaml
from config import ConfigBuilder, ConfigManager, ConfigPresets
from machines import EngineSettings
from utils.logging_config import LoggerFactory
from utils.exceptions import ConfigurationError


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_defaults(self):
        """Test the default preset."""
        manager = ConfigManager()
        assert manager.get('engine.watch_nan') is False
        assert manager.get('logging.log_level') == 'WARNING'
        assert manager.get('missing.key', 42) == 42

    def test_load_from_dict(self):
        """Test merging a dictionary over the defaults."""
        manager = ConfigManager()
        manager.load_from_dict({'engine': {'trace': True}})
        assert manager.get('engine.trace') is True
        assert manager.get('engine.watch_inf') is False

    def test_invalid_type(self):
        """Test that wrongly typed values are rejected."""
        manager = ConfigManager()
        with pytest.raises(ConfigurationError):
            manager.load_from_dict({'engine': {'watch_nan': 'yes'}})
        assert manager.get('engine.watch_nan') is False

    def test_unknown_engine_key(self):
        """Test that the engine section is strict."""
        manager = ConfigManager()
        with pytest.raises(ConfigurationError):
            manager.load_from_dict({'engine': {'dtype': 'float16'}})

    def test_invalid_log_level(self):
        """Test the log level choices."""
        manager = ConfigManager()
        with pytest.raises(ConfigurationError):
            manager.load_from_dict({'logging': {'log_level': 'LOUD'}})

    def test_custom_sections_kept(self):
        """Test that sections outside the schema pass through."""
        manager = ConfigManager()
        manager.load_from_dict({'experiment': {'name': 'demo'}})
        assert manager.get('experiment.name') == 'demo'

    def test_load_yaml_file(self):
        """Test loading a YAML file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'engine.yaml')
            with open(path, 'w') as f:
                yaml.safe_dump({'engine': {'watch_nan': True, 'watch_inf': True}}, f)

            manager = ConfigManager(config_dir=tmpdir)
            manager.load_from_file('engine.yaml')
            assert manager.get('engine.watch_nan') is True
            assert manager.get('engine.watch_inf') is True

    def test_load_json_file(self):
        """Test loading a JSON file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'engine.json')
            with open(path, 'w') as f:
                json.dump({'engine': {'trace': True}}, f)

            manager = ConfigManager()
            manager.load_from_file(path)
            assert manager.get('engine.trace') is True

    def test_missing_file(self):
        """Test loading a file that does not exist."""
        manager = ConfigManager()
        with pytest.raises(ConfigurationError):
            manager.load_from_file('/nonexistent/engine.yaml')

    def test_unsupported_format(self):
        """Test loading a file with an unknown suffix."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'engine.txt')
            with open(path, 'w') as f:
                f.write('engine: {}')
            with pytest.raises(ConfigurationError):
                ConfigManager().load_from_file(path)

    def test_save_and_reload(self):
        """Test that a saved configuration loads back."""
        with tempfile.TemporaryDirectory() as tmpdir:
            manager = ConfigManager(config_dir=tmpdir, preset='strict')
            manager.save_to_file('saved.yaml')

            reloaded = ConfigManager(config_dir=tmpdir)
            reloaded.load_from_file('saved.yaml')
            assert reloaded.get_config().to_dict() == manager.get_config().to_dict()

    def test_load_from_env(self, monkeypatch):
        """Test environment variables with nested keys."""
        monkeypatch.setenv('EXPRGRAPH_ENGINE__TRACE', 'true')
        monkeypatch.setenv('EXPRGRAPH_LOGGING__LOG_LEVEL', 'DEBUG')
        manager = ConfigManager()
        manager.load_from_env()
        assert manager.get('engine.trace') is True
        assert manager.get('logging.log_level') == 'DEBUG'

    def test_clear(self):
        """Test resetting to a preset."""
        manager = ConfigManager()
        manager.set('engine.trace', True)
        manager.clear('debug')
        assert manager.get('logging.log_level') == 'DEBUG'

    def test_dot_access(self):
        """Test attribute access on Config."""
        config = ConfigManager().get_config()
        assert config.engine.trace is False
        assert 'engine.trace' in config
        assert 'engine.nothing' not in config


class TestPresets:
    """Tests for configuration presets."""

    def test_strict(self):
        """Test that the strict preset watches NaN and Inf."""
        preset = ConfigPresets.get('strict')
        assert preset['engine']['watch_nan'] is True
        assert preset['engine']['watch_inf'] is True

    def test_fresh_copy(self):
        """Test that presets are not shared between calls."""
        ConfigPresets.get('default')['engine']['trace'] = True
        assert ConfigPresets.get('default')['engine']['trace'] is False

    def test_unknown(self):
        """Test an unknown preset name."""
        with pytest.raises(ConfigurationError):
            ConfigPresets.get('fastest')
        with pytest.raises(ConfigurationError):
            ConfigManager(preset='fastest')


class TestConfigBuilder:
    """Tests for ConfigBuilder and EngineSettings."""

    def test_build(self):
        """Test building a validated configuration."""
        config = (ConfigBuilder()
                  .set_engine_config(watch_nan=True, trace=True)
                  .set_logging_config(log_level='ERROR')
                  .add_custom('run.tag', 'nightly')
                  .build())
        assert config.get('engine.watch_nan') is True
        assert config.get('logging.log_level') == 'ERROR'
        assert config.get('run.tag') == 'nightly'

    def test_build_invalid(self):
        """Test that build validates."""
        with pytest.raises(ConfigurationError):
            ConfigBuilder().add_custom('engine.watch_nan', 1).build()

    def test_engine_settings(self):
        """Test reading engine settings from a config."""
        config = ConfigBuilder('debug').build()
        settings = EngineSettings.from_config(config)
        assert settings.to_dict() == {'watch_nan': True, 'watch_inf': True, 'trace': True}


class TestLoggingSetup:
    """Tests for applying the logging section."""

    def test_apply_logging(self):
        """Test that the configured level reaches the package logger."""
        manager = ConfigManager()
        manager.load_from_dict({'logging': {'log_level': 'ERROR', 'enable_console': False}})
        try:
            manager.apply_logging()
            assert logging.getLogger('exprgraph').level == logging.ERROR
        finally:
            LoggerFactory.configure(force=True)
        assert logging.getLogger('exprgraph').level == logging.WARNING

    def test_file_logging(self):
        """Test that file logging writes into the configured directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            try:
                LoggerFactory.configure(log_dir=tmpdir, log_level='INFO', enable_console=False,
                                        enable_file=True, force=True)
                LoggerFactory.get_logger('test').info("written to file")
                for handler in LoggerFactory._handlers:
                    handler.flush()
                with open(os.path.join(tmpdir, 'exprgraph.log')) as f:
                    assert "written to file" in f.read()
            finally:
                LoggerFactory.configure(force=True)
