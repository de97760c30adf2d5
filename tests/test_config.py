"""Tests for configuration loading."""

import os
import tempfile
import yaml
import pytest
from feetracker.config import Config


def write_config(data):
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        yaml.dump(data, f)
        return f.name


def test_config_defaults():
    """Test that config loads with defaults when file is minimal."""
    temp_path = write_config({
        "api": {"base_url": "http://mempool.local/api/v1"},
        "polling": {"poll_secs": 60}
    })

    try:
        config = Config(temp_path)
        assert config.api_base_url == "http://mempool.local/api/v1"
        assert config.poll_secs == 60
        assert config.api_timeout_secs == 10  # default
        assert config.cache_ttl_secs == 300  # default
        assert config.alert_cooldown_secs == 900  # default
        assert config.storage_backend == "json"  # default
        assert config.alert_webhook_url == ""
        assert config.badge_output_path == ""
    finally:
        os.unlink(temp_path)


def test_config_env_overrides(monkeypatch):
    """Test that environment variables override config values."""
    temp_path = write_config({
        "api": {"base_url": "http://original/api/v1"},
        "polling": {"poll_secs": 30},
        "storage": {"backend": "json"}
    })
    monkeypatch.setenv("FT_API_BASE_URL", "http://override/api/v1")
    monkeypatch.setenv("FT_POLL_SECS", "45")
    monkeypatch.setenv("FT_STORAGE_BACKEND", "sqlite")

    try:
        config = Config(temp_path)
        assert config.api_base_url == "http://override/api/v1"
        assert config.poll_secs == 45
        assert config.storage_backend == "sqlite"
        assert config.cache_ttl_secs == 300  # not overridden
    finally:
        os.unlink(temp_path)


def test_config_local_overrides(tmp_path):
    """Test that config.local.yaml is merged over config.yaml."""
    main = tmp_path / "config.yaml"
    main.write_text(yaml.dump({"alerts": {"webhook_url": "", "cooldown_secs": 600}}))
    (tmp_path / "config.local.yaml").write_text(yaml.dump({"alerts": {"webhook_url": "https://hooks.local/fee"}}))

    config = Config(str(main))

    assert config.alert_webhook_url == "https://hooks.local/fee"
    assert config.alert_cooldown_secs == 600


def test_config_missing_explicit_path():
    with pytest.raises(FileNotFoundError):
        Config("/nonexistent/feetracker/config.yaml")


def test_config_rejects_unknown_backend(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"storage": {"backend": "redis"}}))
    with pytest.raises(ValueError):
        Config(str(path))


def test_default_config_created(tmp_path, monkeypatch):
    """Test that a default config.yaml is written when none is found."""
    monkeypatch.chdir(tmp_path)
    config = Config()
    assert (tmp_path / "config.yaml").exists()
    assert config.poll_secs == 30
    assert config.api_base_url == "https://mempool.space/api/v1"
