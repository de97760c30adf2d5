"""Threshold alerts: crossing detection with cooldown, and notification dispatch."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
import time
from .constants import (
    DEFAULT_ALERT_COOLDOWN_SECS,
    NOTIFICATION_ID,
    NOTIFICATION_MESSAGE_TEMPLATE,
    NOTIFICATION_TITLE,
    TEST_NOTIFICATION_ID,
    TEST_NOTIFICATION_MESSAGE,
)
from .fees import FeeSnapshot, round_fee
from .logging import get_logger
from .settings_store import Settings, SettingsStore
from .sinks import NotificationSink, NotificationDispatchError

logger = get_logger(__name__)

STATE_ABOVE = True
STATE_BELOW = False


@dataclass(frozen=True)
class AlertDecision:
    """Outcome of evaluating one snapshot against the alert state."""
    fire: bool
    fee_value: Optional[float] = None
    updates: Dict[str, Any] = field(default_factory=dict)  # settings fields to persist


def in_cooldown(settings: Settings, now: float, cooldown_secs: float) -> bool:
    """True if the last notification fired less than cooldown_secs ago."""
    last = settings.last_notification_time
    return last is not None and (now - last) < cooldown_secs


def evaluate_alert(
    snapshot: FeeSnapshot,
    settings: Settings,
    now: float,
    cooldown_secs: float = DEFAULT_ALERT_COOLDOWN_SECS,
) -> AlertDecision:
    """
    Decide whether a threshold alert should fire for a snapshot.

    The state is a single flag: last_alert_state True means fees were above
    the threshold, False below, None unknown. An alert fires only on a
    transition into "below", and never within cooldown_secs of the previous
    one. During the cooldown a transition to "above" is still recorded, but a
    transition to "below" is left pending so that once the cooldown elapses
    it is judged against whatever snapshot is current then.

    Args:
        snapshot: Freshly fetched fee snapshot
        settings: Current settings (threshold, tier, alert state)
        now: Current epoch seconds
        cooldown_secs: Minimum seconds between two alerts

    Returns:
        AlertDecision; apply its updates to the stored settings
    """
    if not settings.notifications_enabled or settings.alert_threshold is None:
        return AlertDecision(fire=False)

    fee_value = snapshot.value_for(settings.selected_priority)
    below = fee_value <= settings.alert_threshold

    if below:
        if settings.last_alert_state is STATE_BELOW:
            return AlertDecision(fire=False, fee_value=fee_value)
        if in_cooldown(settings, now, cooldown_secs):
            logger.debug(f"Fee {fee_value} below threshold during cooldown, alert deferred")
            return AlertDecision(fire=False, fee_value=fee_value)
        return AlertDecision(
            fire=True,
            fee_value=fee_value,
            updates={"last_alert_state": STATE_BELOW, "last_notification_time": now},
        )

    if settings.last_alert_state is not STATE_ABOVE:
        return AlertDecision(
            fire=False,
            fee_value=fee_value,
            updates={"last_alert_state": STATE_ABOVE},
        )
    return AlertDecision(fire=False, fee_value=fee_value)


def format_alert_message(fee_value: float) -> str:
    """Fill the alert template with the rounded fee value."""
    return NOTIFICATION_MESSAGE_TEMPLATE.format(value=round_fee(fee_value))


class AlertManager:
    """Runs the alert state machine against the store and sends notifications."""

    def __init__(
        self,
        store: SettingsStore,
        notification_sink: NotificationSink,
        cooldown_secs: float = DEFAULT_ALERT_COOLDOWN_SECS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize alert manager.

        Args:
            store: Settings store holding threshold and alert state
            notification_sink: Where alert notifications are shown
            cooldown_secs: Minimum seconds between alerts
            clock: Returns current epoch seconds
        """
        self.store = store
        self.notification_sink = notification_sink
        self.cooldown_secs = cooldown_secs
        self.clock = clock

    def check(self, snapshot: FeeSnapshot) -> AlertDecision:
        """
        Evaluate a snapshot and persist the resulting alert state.

        If the state cannot be persisted the alert is not fired, so a
        storage failure never produces repeated notifications.

        Returns:
            The decision, with fire=False if persisting failed
        """
        settings = self.store.get_settings()
        decision = evaluate_alert(snapshot, settings, self.clock(), self.cooldown_secs)
        if decision.updates and not self.store.merge(decision.updates):
            logger.error("Failed to persist alert state, skipping notification")
            return AlertDecision(fire=False, fee_value=decision.fee_value)
        return decision

    def send_fee_alert(self, fee_value: float) -> bool:
        """
        Replace any visible alert with a new one for fee_value.

        Returns:
            True if the notification was delivered
        """
        message = format_alert_message(fee_value)
        try:
            self.notification_sink.clear(NOTIFICATION_ID)
            self.notification_sink.create(NOTIFICATION_ID, NOTIFICATION_TITLE, message)
        except NotificationDispatchError as e:
            logger.error(f"Failed to send fee alert notification: {e}")
            return False
        logger.info(f"Fee alert sent: {message}")
        return True

    def maybe_alert(self, snapshot: FeeSnapshot) -> bool:
        """
        Check a snapshot and notify if it crossed below the threshold.

        Returns:
            True if an alert was sent
        """
        decision = self.check(snapshot)
        if not decision.fire:
            return False
        return self.send_fee_alert(decision.fee_value)

    def send_test_notification(self) -> bool:
        """Send a test notification, independent of threshold and cooldown."""
        try:
            self.notification_sink.clear(TEST_NOTIFICATION_ID)
            self.notification_sink.create(TEST_NOTIFICATION_ID, NOTIFICATION_TITLE, TEST_NOTIFICATION_MESSAGE)
        except NotificationDispatchError as e:
            logger.error(f"Failed to send test notification: {e}")
            return False
        return True

    def clear_alert(self) -> bool:
        """Dismiss the visible fee alert, if any."""
        try:
            self.notification_sink.clear(NOTIFICATION_ID)
        except NotificationDispatchError as e:
            logger.error(f"Failed to clear notifications: {e}")
            return False
        return True
