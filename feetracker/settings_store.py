"""Settings and fee cache persistence - single record, atomic writes, read-time TTL."""

import json
import os
import sqlite3
import tempfile
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from .constants import (
    ALERT_THRESHOLD_MAX,
    DEFAULT_CACHE_TTL_SECS,
    PRIORITIES,
    PRIORITY_HALF_HOUR,
    SETTINGS_KEY,
)
from .fees import FeeSnapshot, is_positive_number, is_valid_fee_data
from .logging import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """Raised when the settings record cannot be read or written."""


# Python field name -> persisted record key
FIELD_KEYS = {
    "selected_priority": "selectedPriority",
    "notifications_enabled": "notificationsEnabled",
    "badge_visible": "badgeVisible",
    "alert_threshold": "alertThreshold",
    "last_update": "lastUpdate",
    "cached_data": "cachedData",
    "last_alert_state": "lastAlertState",
    "last_notification_time": "lastNotificationTime",
}
RECORD_KEYS = {v: k for k, v in FIELD_KEYS.items()}

# Fields every record must carry; older records are backfilled on read
REQUIRED_FIELDS = ("selected_priority", "notifications_enabled", "badge_visible", "last_update")


@dataclass
class Settings:
    """User configuration plus the cached snapshot and alert state."""
    selected_priority: str = PRIORITY_HALF_HOUR
    notifications_enabled: bool = True
    badge_visible: bool = True
    alert_threshold: Optional[float] = None
    last_update: float = 0
    cached_data: Optional[FeeSnapshot] = None
    last_alert_state: Optional[bool] = None  # True = above threshold, False = below
    last_notification_time: Optional[float] = None

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the persisted record; unset optional fields are omitted."""
        record = {}
        for name, key in FIELD_KEYS.items():
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, FeeSnapshot):
                value = value.to_dict()
            record[key] = value
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Tuple["Settings", bool]:
        """
        Deserialize a persisted record, backfilling missing or invalid fields.

        Returns:
            Tuple of (settings, repaired) where repaired is True when the
            record needed defaults applied and should be written back
        """
        settings = cls()
        repaired = False
        for name, key in FIELD_KEYS.items():
            if key not in record:
                if name in REQUIRED_FIELDS:
                    repaired = True
                continue
            value = record[key]
            if name == "cached_data" and is_valid_fee_data(value):
                value = FeeSnapshot.from_dict(value)
            error = validate_field(name, value)
            if error:
                logger.warning(f"Discarding stored {key}={value!r}: {error}")
                repaired = True
                continue
            setattr(settings, name, value)
        return settings, repaired


def validate_field(name: str, value: Any) -> Optional[str]:
    """
    Validate a value for a settings field.

    Returns:
        Error message, or None if the value is acceptable
    """
    if name == "selected_priority":
        if value not in PRIORITIES:
            return f"priority must be one of {', '.join(PRIORITIES)}"
    elif name in ("notifications_enabled", "badge_visible"):
        if not isinstance(value, bool):
            return "must be a boolean"
    elif name == "alert_threshold":
        if value is not None and not (is_positive_number(value) and value <= ALERT_THRESHOLD_MAX):
            return f"threshold must be in (0, {ALERT_THRESHOLD_MAX}]"
    elif name == "last_update":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            return "must be a non-negative timestamp"
    elif name == "cached_data":
        if value is not None and not isinstance(value, FeeSnapshot):
            return "must be a valid fee snapshot"
    elif name == "last_alert_state":
        if value is not None and not isinstance(value, bool):
            return "must be a boolean"
    elif name == "last_notification_time":
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            return "must be a timestamp"
    else:
        return f"unknown setting: {name}"
    return None


def normalize_field_name(key: str) -> Optional[str]:
    """Accept either the Python field name or the persisted record key."""
    if key in FIELD_KEYS:
        return key
    return RECORD_KEYS.get(key)


SettingsListener = Callable[[Optional[Settings], Settings], None]


class SettingsStore:
    """Persists the single settings record (JSON file or SQLite backend)."""

    def __init__(
        self,
        backend: str = "json",
        json_path: str = None,
        db_path: str = None,
        cache_ttl_secs: float = DEFAULT_CACHE_TTL_SECS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize settings store.

        Args:
            backend: "json" or "sqlite"
            json_path: Path to JSON file (for json backend)
            db_path: Path to SQLite database (for sqlite backend)
            cache_ttl_secs: Seconds a cached snapshot stays valid
            clock: Returns current epoch seconds
        """
        self.backend = backend
        self.json_path = json_path or "state/settings.json"
        self.db_path = db_path or "state/settings.db"
        self.cache_ttl_secs = cache_ttl_secs
        self.clock = clock
        self._listeners: List[SettingsListener] = []
        self._last_seen: Optional[Dict[str, Any]] = None

        if backend == "sqlite":
            self._init_sqlite()
        elif backend == "json":
            self._init_json()
        else:
            raise ValueError(f"Unknown backend: {backend}")

    def _init_sqlite(self):
        """Initialize SQLite database."""
        db_path = Path(self.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS storage (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        self.conn.commit()
        logger.info(f"Initialized SQLite settings database: {self.db_path}")

    def _init_json(self):
        """Initialize JSON settings file location."""
        Path(self.json_path).parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Using JSON settings file: {self.json_path}")

    # ---------- raw record access ----------

    def _read_record(self) -> Optional[Dict[str, Any]]:
        """
        Read the raw settings record.

        Raises:
            StorageError: If the backend cannot be read or holds invalid JSON
        """
        try:
            if self.backend == "sqlite":
                row = self.conn.execute(
                    "SELECT value FROM storage WHERE key = ?",
                    (SETTINGS_KEY,)
                ).fetchone()
                record = json.loads(row[0]) if row else None
            else:
                json_path = Path(self.json_path)
                if not json_path.exists():
                    record = None
                else:
                    with open(json_path, 'r', encoding="utf-8") as f:
                        record = json.load(f).get(SETTINGS_KEY)
        except (OSError, sqlite3.Error, ValueError, AttributeError) as e:
            raise StorageError(f"Failed to read settings: {e}") from e

        if record is not None and not isinstance(record, dict):
            raise StorageError(f"Stored settings record is not an object: {type(record).__name__}")
        self._last_seen = record
        return record

    def _write_record(self, record: Dict[str, Any]):
        """
        Write the raw settings record as one atomic operation.

        Raises:
            StorageError: If the backend write fails
        """
        try:
            if self.backend == "sqlite":
                with self.conn:
                    self.conn.execute("""
                        INSERT OR REPLACE INTO storage (key, value)
                        VALUES (?, ?)
                    """, (SETTINGS_KEY, json.dumps(record)))
            else:
                json_path = Path(self.json_path)
                fd, tmp_path = tempfile.mkstemp(dir=str(json_path.parent), suffix=".tmp")
                try:
                    with os.fdopen(fd, 'w', encoding="utf-8") as f:
                        json.dump({SETTINGS_KEY: record}, f, indent=2)
                    os.replace(tmp_path, json_path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.unlink(tmp_path)
                    raise
        except (OSError, sqlite3.Error, TypeError) as e:
            raise StorageError(f"Failed to write settings: {e}") from e
        self._last_seen = record

    def _delete_record(self):
        """Delete the settings record."""
        try:
            if self.backend == "sqlite":
                with self.conn:
                    self.conn.execute("DELETE FROM storage WHERE key = ?", (SETTINGS_KEY,))
            else:
                json_path = Path(self.json_path)
                if json_path.exists():
                    json_path.unlink()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Failed to clear settings: {e}") from e
        self._last_seen = None

    # ---------- settings ----------

    def _load(self) -> Settings:
        """
        Load settings, creating or repairing the persisted record as needed.

        Raises:
            StorageError: If the backend fails
        """
        record = self._read_record()
        if record is None:
            settings = Settings()
            self._write_record(settings.to_record())
            logger.info("No stored settings found, wrote defaults")
            return settings

        settings, repaired = Settings.from_record(record)
        if repaired:
            self._write_record(settings.to_record())
            logger.info("Backfilled stored settings with defaults")
        return settings

    def get_settings(self) -> Settings:
        """
        Get user settings, writing defaults on first access.

        Returns:
            Fully initialized Settings; defaults if storage is unavailable
        """
        try:
            return self._load()
        except StorageError as e:
            logger.error(f"Failed to get user settings: {e}")
            return Settings()

    def _commit(self, old: Optional[Settings], new: Settings) -> bool:
        """Persist new settings and notify listeners."""
        try:
            self._write_record(new.to_record())
        except StorageError as e:
            logger.error(f"Failed to save user settings: {e}")
            return False
        self._notify(old, new)
        return True

    def save_settings(self, settings: Settings) -> bool:
        """
        Replace the stored settings.

        Returns:
            True if the write succeeded
        """
        try:
            old = self._load()
        except StorageError as e:
            logger.error(f"Failed to save user settings: {e}")
            return False
        return self._commit(old, settings)

    def merge(self, updates: Dict[str, Any]) -> bool:
        """
        Update several fields in one write (re-reads the record first).

        Args:
            updates: Mapping of field name (or record key) to new value

        Returns:
            True if every field was valid and the write succeeded
        """
        changes = {}
        for key, value in updates.items():
            name = normalize_field_name(key)
            if name is None:
                logger.warning(f"Unknown setting: {key}")
                return False
            if name == "cached_data" and isinstance(value, dict) and is_valid_fee_data(value):
                value = FeeSnapshot.from_dict(value)
            error = validate_field(name, value)
            if error:
                logger.warning(f"Rejected setting {key}={value!r}: {error}")
                return False
            changes[name] = value

        try:
            old = self._load()
        except StorageError as e:
            logger.error(f"Failed to update settings {sorted(changes)}: {e}")
            return False
        return self._commit(old, replace(old, **changes))

    def update_field(self, key: str, value: Any) -> bool:
        """
        Update a single setting.

        Args:
            key: Field name (e.g. "alert_threshold" or "alertThreshold")
            value: New value, None to unset an optional field

        Returns:
            True if the value was valid and the write succeeded
        """
        return self.merge({key: value})

    def reset(self) -> bool:
        """
        Delete all stored data; the next read recreates defaults.

        Returns:
            True if the record was removed
        """
        try:
            self._delete_record()
        except StorageError as e:
            logger.error(f"Failed to clear stored data: {e}")
            return False
        logger.info("Cleared stored settings")
        return True

    # ---------- cache ----------

    def cache_snapshot(self, snapshot: FeeSnapshot, now: float = None) -> bool:
        """
        Store a fee snapshot and refresh the update timestamp in one write.

        Args:
            snapshot: Freshly fetched snapshot
            now: Override for the current time (epoch seconds)

        Returns:
            True if the write succeeded
        """
        ts = self.clock() if now is None else now
        return self.merge({"cached_data": snapshot, "last_update": ts})

    def _fresh_snapshot(self, settings: Settings, now: float = None) -> Optional[FeeSnapshot]:
        if settings.cached_data is None or not settings.last_update:
            return None
        ts = self.clock() if now is None else now
        if ts - settings.last_update >= self.cache_ttl_secs:
            return None
        return settings.cached_data

    def is_cache_valid(self, now: float = None) -> bool:
        """Check whether the stored snapshot is younger than the cache TTL."""
        return self._fresh_snapshot(self.get_settings(), now) is not None

    def get_cached_snapshot(self, now: float = None) -> Optional[FeeSnapshot]:
        """
        Get the cached snapshot if it is still fresh.

        Stale snapshots stay in storage until the next successful fetch
        overwrites them; they are reported as absent here.

        Returns:
            FeeSnapshot, or None when missing or older than the TTL
        """
        return self._fresh_snapshot(self.get_settings(), now)

    # ---------- change notification ----------

    def add_listener(self, listener: SettingsListener):
        """Register a callback receiving (old, new) settings after each write."""
        self._listeners.append(listener)

    def remove_listener(self, listener: SettingsListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, old: Optional[Settings], new: Settings):
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception as e:
                logger.error(f"Settings listener failed: {e}", exc_info=True)

    def check_for_external_changes(self) -> bool:
        """
        Detect writes made by another process (e.g. the CLI) and notify listeners.

        Returns:
            True if the stored record differs from the last one seen
        """
        previous = self._last_seen
        try:
            record = self._read_record()
        except StorageError as e:
            logger.error(f"Failed to check settings for changes: {e}")
            return False
        if record == previous or record is None:
            return False

        old = Settings.from_record(previous)[0] if previous is not None else None
        new, _ = Settings.from_record(record)
        logger.debug("Detected external settings change")
        self._notify(old, new)
        return True

    def close(self):
        """Close connections and cleanup."""
        if self.backend == "sqlite" and hasattr(self, 'conn'):
            self.conn.close()
            logger.debug("Closed SQLite connection")
