"""Configuration loading and validation for BTC Fee Tracker."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any
from .constants import (
    DEFAULT_ALERT_COOLDOWN_SECS,
    DEFAULT_API_BASE_URL,
    DEFAULT_CACHE_TTL_SECS,
    DEFAULT_HTTP_TIMEOUT_SECS,
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_MAX_BYTES,
    DEFAULT_POLL_SECS,
)


class Config:
    """Configuration container with environment variable overrides."""

    def __init__(self, config_path: str = None, create_if_missing: bool = True):
        """
        Load configuration from YAML file with environment variable overrides.

        Configuration precedence (highest to lowest):
        1. Environment variables (FT_* prefix)
        2. config.local.yaml (if exists, local overrides)
        3. config.yaml (main config file)
        4. Default values

        Args:
            config_path: Path to config.yaml. If None, searches for config.yaml
                        in current directory and parent directories.
            create_if_missing: If True and config_path is None, create default config
                              if not found. If config_path is explicitly provided,
                              this is ignored (file must exist).
        """
        if config_path is None:
            config_path = self._find_config_file()
            config_file_path = Path(config_path)
            # Only create default if auto-discovered and missing
            if create_if_missing and not config_file_path.exists():
                self._create_default_config(config_path)
        else:
            # Explicit path provided - must exist
            config_file_path = Path(config_path)
            if not config_file_path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")

        if Path(config_path).exists():
            with open(config_path, 'r') as f:
                self._raw = yaml.safe_load(f) or {}
        else:
            self._raw = {}

        # Local overrides (gitignored, e.g. a private webhook URL)
        local_config_path = Path(config_path).parent / "config.local.yaml"
        if local_config_path.exists():
            with open(local_config_path, 'r') as f:
                local_config = yaml.safe_load(f) or {}
                self._deep_merge(self._raw, local_config)

        # Apply environment variable overrides (highest precedence)
        self._apply_env_overrides()

        # Validate and normalize
        self._validate()

    def _find_config_file(self) -> str:
        """Find config.yaml in current directory or parents."""
        current = Path.cwd()
        for path in [current] + list(current.parents):
            config_file = path / "config.yaml"
            if config_file.exists():
                return str(config_file)
        # Default to current directory if not found
        return str(current / "config.yaml")

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Recursively merge override dict into base dict."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _create_default_config(self, path: str):
        """Create a default config.yaml file."""
        default_config = {
            "api": {
                "base_url": DEFAULT_API_BASE_URL,
                "timeout_secs": DEFAULT_HTTP_TIMEOUT_SECS
            },
            "polling": {
                "poll_secs": DEFAULT_POLL_SECS
            },
            "cache": {
                "ttl_secs": DEFAULT_CACHE_TTL_SECS
            },
            "alerts": {
                "webhook_url": "",
                "cooldown_secs": DEFAULT_ALERT_COOLDOWN_SECS
            },
            "badge": {
                "output_path": ""
            },
            "storage": {
                "backend": "json",
                "json_path": "state/settings.json",
                "db_path": "state/settings.db"
            },
            "logging": {
                "level": "INFO",
                "log_dir": "logs",
                "console_level": "INFO",
                "rotation": {
                    "max_bytes": DEFAULT_LOG_MAX_BYTES,
                    "backup_count": DEFAULT_LOG_BACKUP_COUNT,
                    "when": "midnight"
                }
            }
        }
        with open(path, 'w') as f:
            yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)

    def _apply_env_overrides(self):
        """Apply environment variable overrides using FT_ prefix."""
        # API settings
        if os.getenv("FT_API_BASE_URL"):
            self._raw.setdefault("api", {})["base_url"] = os.getenv("FT_API_BASE_URL")
        if os.getenv("FT_API_TIMEOUT_SECS"):
            self._raw.setdefault("api", {})["timeout_secs"] = float(os.getenv("FT_API_TIMEOUT_SECS"))

        # Polling and cache
        if os.getenv("FT_POLL_SECS"):
            self._raw.setdefault("polling", {})["poll_secs"] = int(os.getenv("FT_POLL_SECS"))
        if os.getenv("FT_CACHE_TTL_SECS"):
            self._raw.setdefault("cache", {})["ttl_secs"] = int(os.getenv("FT_CACHE_TTL_SECS"))

        # Alert settings
        if os.getenv("FT_ALERT_WEBHOOK"):
            self._raw.setdefault("alerts", {})["webhook_url"] = os.getenv("FT_ALERT_WEBHOOK")
        if os.getenv("FT_ALERT_COOLDOWN_SECS"):
            self._raw.setdefault("alerts", {})["cooldown_secs"] = int(os.getenv("FT_ALERT_COOLDOWN_SECS"))

        # Badge output
        if os.getenv("FT_BADGE_PATH"):
            self._raw.setdefault("badge", {})["output_path"] = os.getenv("FT_BADGE_PATH")

        # Storage
        if os.getenv("FT_STORAGE_BACKEND"):
            self._raw.setdefault("storage", {})["backend"] = os.getenv("FT_STORAGE_BACKEND")
        if os.getenv("FT_STORAGE_JSON_PATH"):
            self._raw.setdefault("storage", {})["json_path"] = os.getenv("FT_STORAGE_JSON_PATH")
        if os.getenv("FT_STORAGE_DB_PATH"):
            self._raw.setdefault("storage", {})["db_path"] = os.getenv("FT_STORAGE_DB_PATH")

        # Logging settings
        if os.getenv("FT_LOG_DIR"):
            self._raw.setdefault("logging", {})["log_dir"] = os.getenv("FT_LOG_DIR")
        if os.getenv("FT_LOG_LEVEL"):
            self._raw.setdefault("logging", {})["level"] = os.getenv("FT_LOG_LEVEL")
        if os.getenv("FT_CONSOLE_LEVEL"):
            self._raw.setdefault("logging", {})["console_level"] = os.getenv("FT_CONSOLE_LEVEL")

    def _validate(self):
        """Validate and normalize configuration values."""
        if self.storage_backend not in ("json", "sqlite"):
            raise ValueError(f"storage.backend must be 'json' or 'sqlite', got {self.storage_backend!r}")
        if self.poll_secs <= 0:
            raise ValueError(f"polling.poll_secs must be positive, got {self.poll_secs}")

    @property
    def api_base_url(self) -> str:
        return self._raw.get("api", {}).get("base_url", DEFAULT_API_BASE_URL)

    @property
    def api_timeout_secs(self) -> float:
        return float(self._raw.get("api", {}).get("timeout_secs", DEFAULT_HTTP_TIMEOUT_SECS))

    @property
    def poll_secs(self) -> int:
        return int(self._raw.get("polling", {}).get("poll_secs", DEFAULT_POLL_SECS))

    @property
    def cache_ttl_secs(self) -> int:
        return int(self._raw.get("cache", {}).get("ttl_secs", DEFAULT_CACHE_TTL_SECS))

    @property
    def alert_webhook_url(self) -> str:
        return self._raw.get("alerts", {}).get("webhook_url", "")

    @property
    def alert_cooldown_secs(self) -> int:
        return int(self._raw.get("alerts", {}).get("cooldown_secs", DEFAULT_ALERT_COOLDOWN_SECS))

    @property
    def badge_output_path(self) -> str:
        return self._raw.get("badge", {}).get("output_path", "") or ""

    @property
    def storage_backend(self) -> str:
        return self._raw.get("storage", {}).get("backend", "json")

    @property
    def storage_json_path(self) -> str:
        return self._raw.get("storage", {}).get("json_path", "state/settings.json")

    @property
    def storage_db_path(self) -> str:
        return self._raw.get("storage", {}).get("db_path", "state/settings.db")

    @property
    def log_level(self) -> str:
        return self._raw.get("logging", {}).get("level", "INFO")

    @property
    def log_dir(self) -> str:
        return self._raw.get("logging", {}).get("log_dir", "logs")

    @property
    def console_level(self) -> str:
        return self._raw.get("logging", {}).get("console_level", "INFO")

    @property
    def log_rotation(self) -> Dict[str, Any]:
        """Get log rotation configuration with defaults."""
        rotation = self._raw.get("logging", {}).get("rotation", {})
        return {
            "max_bytes": rotation.get("max_bytes", DEFAULT_LOG_MAX_BYTES),
            "backup_count": rotation.get("backup_count", DEFAULT_LOG_BACKUP_COUNT),
            "when": rotation.get("when", "midnight")
        }
