"""Synchronization loop: fetch fees, cache, update the badge, check alerts."""

import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from .alerts import AlertManager
from .badge import BadgeConfig, compute_badge, error_badge
from .config import Config
from .constants import (
    DEFAULT_ALERT_COOLDOWN_SECS,
    DEFAULT_API_BASE_URL,
    DEFAULT_CACHE_TTL_SECS,
    DEFAULT_HTTP_TIMEOUT_SECS,
    DEFAULT_POLL_SECS,
)
from .fee_source import FeeSourceClient
from .fees import FeeSnapshot
from .logging import get_logger
from .settings_store import Settings, SettingsStore
from .sinks import (
    BadgeSink,
    BadgeSinkError,
    FileBadgeSink,
    LogBadgeSink,
    LogNotificationSink,
    NotificationSink,
    WebhookNotificationSink,
    utc_timestamp,
)

logger = get_logger(__name__)

# How often the idle loop looks for settings written by another process
SETTINGS_POLL_SECS = 2.0

# Settings that only affect how the badge is drawn
DISPLAY_FIELDS = ("selected_priority", "badge_visible")


@dataclass(frozen=True)
class TimerTick:
    """Periodic update signal."""


@dataclass(frozen=True)
class SettingsChanged:
    """The settings record was written; carries the values before and after."""
    old: Optional[Settings]
    new: Settings

    @property
    def display_changed(self) -> bool:
        if self.old is None:
            return True
        return any(getattr(self.old, f) != getattr(self.new, f) for f in DISPLAY_FIELDS)


@dataclass(frozen=True)
class RefreshRequested:
    """Explicit request to update fee data and badge now."""


_STOP = object()


def build_store(config: Config, clock: Callable[[], float] = time.time) -> SettingsStore:
    """Create the settings store described by config."""
    return SettingsStore(
        backend=config.storage_backend,
        json_path=config.storage_json_path,
        db_path=config.storage_db_path,
        cache_ttl_secs=config.cache_ttl_secs,
        clock=clock,
    )


def build_badge_sink(config: Config) -> BadgeSink:
    """File sink when badge.output_path is set, log sink otherwise."""
    if config.badge_output_path:
        return FileBadgeSink(config.badge_output_path)
    return LogBadgeSink()


def build_notification_sink(config: Config) -> NotificationSink:
    """Webhook sink when alerts.webhook_url is set, log sink otherwise."""
    if config.alert_webhook_url:
        return WebhookNotificationSink(config.alert_webhook_url, timeout_secs=config.api_timeout_secs)
    return LogNotificationSink()


class FeeTrackerRunner:
    """Reacts to timer, settings-changed and refresh signals, one at a time."""

    def __init__(
        self,
        config: Optional[Config] = None,
        fee_client: Optional[FeeSourceClient] = None,
        store: Optional[SettingsStore] = None,
        badge_sink: Optional[BadgeSink] = None,
        notification_sink: Optional[NotificationSink] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize runner; collaborators not passed in are built from config.

        Args:
            config: Configuration instance (None = built-in defaults, in-memory sinks)
            fee_client: Fee source client
            store: Settings & cache store
            badge_sink: Badge output
            notification_sink: Notification output
            clock: Returns current epoch seconds
        """
        self.config = config
        self.clock = clock
        self.poll_secs = config.poll_secs if config else DEFAULT_POLL_SECS

        if fee_client is None:
            fee_client = FeeSourceClient(
                config.api_base_url if config else DEFAULT_API_BASE_URL,
                config.api_timeout_secs if config else DEFAULT_HTTP_TIMEOUT_SECS,
            )
        if store is None:
            store = build_store(config, clock) if config else SettingsStore(
                cache_ttl_secs=DEFAULT_CACHE_TTL_SECS, clock=clock
            )
        if badge_sink is None:
            badge_sink = build_badge_sink(config) if config else LogBadgeSink()
        if notification_sink is None:
            notification_sink = build_notification_sink(config) if config else LogNotificationSink()

        self.fee_client = fee_client
        self.store = store
        self.badge_sink = badge_sink
        self.alert_manager = AlertManager(
            store,
            notification_sink,
            cooldown_secs=config.alert_cooldown_secs if config else DEFAULT_ALERT_COOLDOWN_SECS,
            clock=clock,
        )

        self._signals: "queue.Queue[Any]" = queue.Queue()
        self._stopped = threading.Event()

    # ---------- badge ----------

    def _show_badge(self, badge: BadgeConfig) -> bool:
        try:
            self.badge_sink.set_badge(badge.text, badge.background_color, badge.color)
            return True
        except BadgeSinkError as e:
            logger.error(f"Failed to update badge: {e}")
            return False

    def _show_error_badge(self) -> None:
        self._show_badge(error_badge())

    def _apply_badge(self, snapshot: FeeSnapshot, settings: Settings) -> Optional[BadgeConfig]:
        """Draw the badge for snapshot, or clear it when the badge is hidden."""
        if not settings.badge_visible:
            try:
                self.badge_sink.clear_badge()
            except BadgeSinkError as e:
                logger.error(f"Failed to clear badge: {e}")
            return None

        badge = compute_badge(snapshot, settings)
        if self._show_badge(badge):
            logger.debug(f"Badge updated: {badge.text} ({badge.level})")
        return badge

    def refresh_badge(self) -> bool:
        """
        Redraw the badge from the cached snapshot without a network call.

        Falls back to a full update when there is no fresh cached snapshot.

        Returns:
            True if a badge was drawn or cleared from fresh data
        """
        snapshot = self.store.get_cached_snapshot()
        if snapshot is None:
            logger.debug("No fresh cached snapshot, running full update")
            return self.update_fee_data()["success"]
        self._apply_badge(snapshot, self.store.get_settings())
        return True

    # ---------- cycle ----------

    def update_fee_data(self) -> Dict:
        """
        Run one full cycle: fetch, cache, badge, alert.

        A failed fetch shows the error badge and leaves the cache untouched.
        Later steps still run when caching fails.

        Returns:
            Dictionary describing the cycle outcome
        """
        result = {
            "success": False,
            "snapshot": None,
            "badge": None,
            "alert_sent": False,
            "timestamp": utc_timestamp(),
        }

        api_result = self.fee_client.fetch_fees()
        if not api_result.success:
            logger.error(f"API request failed: {api_result.error}")
            self._show_error_badge()
            result["error"] = api_result.error
            result["error_type"] = api_result.error_type
            return result

        snapshot = api_result.data
        result["success"] = True
        result["snapshot"] = snapshot.to_dict()

        if not self.store.cache_snapshot(snapshot):
            logger.error("Failed to cache fee data")

        settings = self.store.get_settings()
        badge = self._apply_badge(snapshot, settings)
        if badge is not None:
            result["badge"] = {"text": badge.text, "color": badge.background_color, "level": badge.level}

        result["alert_sent"] = self.alert_manager.maybe_alert(snapshot)

        logger.info(
            f"fastest={snapshot.fastest_fee} halfHour={snapshot.half_hour_fee} "
            f"hour={snapshot.hour_fee} sat/vB [{settings.selected_priority}]"
            + (" | alert sent" if result["alert_sent"] else "")
        )
        return result

    def run_once(self) -> Dict:
        """Run a single update cycle (cron-friendly)."""
        return self.update_fee_data()

    def handle_settings_changed(self, old: Optional[Settings], new: Settings) -> None:
        """Redraw the badge when a display setting changed."""
        signal = SettingsChanged(old, new)
        if not signal.display_changed:
            return
        logger.info(
            f"Display settings changed (priority={new.selected_priority}, "
            f"badge_visible={new.badge_visible}), refreshing badge"
        )
        self.refresh_badge()

    def dispatch(self, signal: Any) -> None:
        """
        Process one inbound signal to completion.

        Exceptions are logged, never raised, so one failed cycle does not
        stop the loop.
        """
        try:
            if isinstance(signal, TimerTick):
                logger.debug("Timer tick: updating fee data")
                self.update_fee_data()
            elif isinstance(signal, RefreshRequested):
                logger.info("Refresh requested: updating fee data")
                self.update_fee_data()
            elif isinstance(signal, SettingsChanged):
                self.handle_settings_changed(signal.old, signal.new)
            else:
                logger.warning(f"Ignoring unknown signal: {signal!r}")
        except Exception as e:
            logger.error(f"Error handling {type(signal).__name__}: {e}", exc_info=True)

    # ---------- event loop ----------

    def _on_settings_written(self, old: Optional[Settings], new: Settings) -> None:
        self._signals.put(SettingsChanged(old, new))

    def request_refresh(self) -> None:
        """Queue an immediate full update."""
        self._signals.put(RefreshRequested())

    def stop(self) -> None:
        """Ask run_continuous to return after the current signal."""
        self._stopped.set()
        self._signals.put(_STOP)

    def run_continuous(self, poll_secs: Optional[int] = None) -> None:
        """
        Run the update loop until stop() or Ctrl-C.

        Timer ticks fire immediately and then every poll_secs. Between ticks
        the loop serves queued signals and checks for settings written by
        other processes.

        Args:
            poll_secs: Seconds between timer ticks (default from config)
        """
        period = poll_secs or self.poll_secs
        self._stopped.clear()
        self.store.get_settings()  # baseline for external change detection
        self.store.add_listener(self._on_settings_written)
        next_tick = time.monotonic()
        logger.info(f"Starting fee tracker, updating every {period}s")

        try:
            while not self._stopped.is_set():
                wait = max(0.0, min(next_tick - time.monotonic(), SETTINGS_POLL_SECS))
                try:
                    signal = self._signals.get(timeout=wait)
                except queue.Empty:
                    now = time.monotonic()
                    if now < next_tick:
                        self.store.check_for_external_changes()
                        continue
                    signal = TimerTick()
                    next_tick += period
                    if next_tick <= now:
                        next_tick = now + period

                if signal is _STOP:
                    break
                self.dispatch(signal)
        except KeyboardInterrupt:
            logger.info("Exiting.")
        finally:
            self.store.remove_listener(self._on_settings_written)
