import json
import logging

import pytest

from starlive.config import (
    Environment, LiveConfig, LoggingConfig, configure_from_dict, configure_logging, get_config, set_config,
)


class TestPresets:
    def test_development(self):
        config = LiveConfig.for_environment(Environment.DEVELOPMENT)
        assert config.debug is True
        assert config.logging.level == "DEBUG"

    def test_testing_has_no_session_ttl(self):
        config = LiveConfig.for_environment(Environment.TESTING)
        assert config.session_ttl is None
        assert config.logging.level == "WARNING"

    def test_production_recovers_from_derivation_errors(self):
        config = LiveConfig.for_environment(Environment.PRODUCTION)
        assert config.debug is False
        assert config.recover_derivation_errors is True

    def test_defaults(self):
        config = LiveConfig()
        assert config.attribute_prefix == "lv"
        assert config.page_container_id == "lv-page-params"
        assert config.event_path == "/live/event"


class TestLoading:
    def test_from_dict(self):
        config = LiveConfig.from_dict({
            "environment": "production",
            "event_path": "/ev",
            "logging": {"level": "ERROR"},
            "not_a_setting": 1,
        })
        assert config.environment is Environment.PRODUCTION
        assert config.event_path == "/ev"
        assert config.logging.level == "ERROR"
        assert not hasattr(config, "not_a_setting")

    def test_from_file(self, tmp_path):
        path = tmp_path / "live.json"
        path.write_text(json.dumps({"attribute_prefix": "x", "session_ttl": 10}))
        config = LiveConfig.from_file(path)
        assert config.attribute_prefix == "x"
        assert config.session_ttl == 10

    def test_from_file_errors(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LiveConfig.from_file(tmp_path / "missing.json")
        path = tmp_path / "live.yaml"
        path.write_text("a: 1")
        with pytest.raises(ValueError):
            LiveConfig.from_file(path)

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("STARLIVE_ENV", "testing")
        monkeypatch.setenv("STARLIVE_DEBUG", "true")
        monkeypatch.setenv("STARLIVE_SESSION_TTL", "0")
        monkeypatch.setenv("STARLIVE_ATTRIBUTE_PREFIX", "sl")
        monkeypatch.setenv("STARLIVE_LOG_LEVEL", "error")
        config = LiveConfig.from_environment()
        assert config.environment is Environment.TESTING
        assert config.debug is True
        assert config.session_ttl is None
        assert config.attribute_prefix == "sl"
        assert config.logging.level == "ERROR"

    def test_to_dict(self):
        data = LiveConfig.for_environment(Environment.TESTING).to_dict()
        assert data["environment"] == "testing"
        assert data["logging"]["level"] == "WARNING"
        assert LiveConfig.from_dict(data).session_ttl is None


class TestGlobalConfig:
    def test_set_and_get(self):
        config = LiveConfig(event_path="/other")
        set_config(config)
        assert get_config() is config

    def test_get_builds_from_environment(self, monkeypatch):
        monkeypatch.setenv("STARLIVE_ENV", "production")
        set_config(None)
        assert get_config().environment is Environment.PRODUCTION

    def test_configure_from_dict(self):
        config = configure_from_dict({"script_path": "/s.js"})
        assert get_config() is config
        assert config.script_path == "/s.js"


class TestLogging:
    def test_configure_logging_replaces_its_handler(self):
        logger = configure_logging(LoggingConfig(level="debug"), logger_name="starlive.test")
        configure_logging(LoggingConfig(level="info"), logger_name="starlive.test")
        ours = [h for h in logger.handlers if getattr(h, "_starlive", False)]
        assert len(ours) == 1
        assert logger.level == logging.INFO

    def test_configure_logging_to_file(self, tmp_path):
        path = tmp_path / "live.log"
        logger = configure_logging(LoggingConfig(file_path=str(path)), logger_name="starlive.filetest")
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()
        assert "hello" in path.read_text()
