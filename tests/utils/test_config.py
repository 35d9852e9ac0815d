"""Tests for configuration loading and logging setup."""

import pytest

from xapool.utils.config import Config, get_config, reset_config
from xapool.utils.logging import configure_logging_from_config, get_logger


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("LOG_LEVEL", "LOG_FORMAT", "XA_RESOURCE_MANAGER", "XA_TIMEOUT_SEC"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


class TestConfig:
    """Test Config."""
    
    def test_defaults(self):
        """Test packaged defaults are loaded."""
        config = Config()
        
        assert config.get("logging.level") == "INFO"
        assert config.get("xa.resource_manager") == "default"
        assert config.get("xa.timeout_sec") is None
        assert config.get("missing.key", "fallback") == "fallback"
    
    def test_file_overrides_defaults(self, tmp_path):
        """Test user file is deep merged over defaults."""
        config_file = tmp_path / "xapool.yaml"
        config_file.write_text("xa:\n  timeout_sec: 60\n")
        
        config = Config(str(config_file))
        
        assert config.get("xa.timeout_sec") == 60
        assert config.get("xa.resource_manager") == "default"
    
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("XA_TIMEOUT_SEC", "5")
        
        config = Config()
        
        assert config.get("logging.level") == "DEBUG"
        assert config.get("xa.timeout_sec") == 5
    
    def test_set_nested(self):
        config = Config()
        
        config.set("pool.extra.value", 3)
        
        assert config.get("pool.extra.value") == 3
        assert config.to_dict()["pool"] == {"extra": {"value": 3}}
    
    def test_global_instance(self):
        assert get_config() is get_config()


class TestLogging:
    """Test logging setup."""
    
    def test_configure_from_config(self):
        config = Config()
        config.set("logging.format", "console")
        
        configure_logging_from_config(config)
        
        get_logger(__name__).info("configured", format="console")
