"""Tests for the synchronization runner."""

from unittest.mock import Mock
import pytest
from feetracker.fee_source import ApiResult, NetworkError, MalformedResponse
from feetracker.fees import FeeSnapshot
from feetracker.runner import (
    FeeTrackerRunner,
    RefreshRequested,
    SettingsChanged,
    TimerTick,
)
from feetracker.settings_store import Settings, SettingsStore
from feetracker.sinks import BadgeSinkError, LogBadgeSink, LogNotificationSink

T0 = 1_700_000_000.0


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now


class FakeFeeClient:
    """Returns queued results from fetch_fees and counts calls."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def fetch_fees(self):
        self.calls += 1
        return self.results.pop(0)


def ok(fastest, half_hour, hour):
    return ApiResult.ok(FeeSnapshot(fastest, half_hour, hour))


def failed(exc):
    return ApiResult.fail(exc)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    return SettingsStore(backend="json", json_path=str(tmp_path / "settings.json"), clock=clock)


def make_runner(store, clock, *results):
    fee_client = FakeFeeClient(*results)
    runner = FeeTrackerRunner(
        fee_client=fee_client,
        store=store,
        badge_sink=LogBadgeSink(),
        notification_sink=LogNotificationSink(),
        clock=clock,
    )
    return runner, fee_client


def test_cycle_caches_and_draws_badge(store, clock):
    """Test a successful cycle caches the snapshot and updates the badge."""
    runner, _ = make_runner(store, clock, ok(40, 21.6, 9))

    result = runner.update_fee_data()

    assert result["success"] is True
    assert result["snapshot"] == {"fastestFee": 40, "halfHourFee": 21.6, "hourFee": 9}
    assert result["badge"] == {"text": "22", "color": "#F59E0B", "level": "medium"}
    assert result["alert_sent"] is False
    assert runner.badge_sink.current == {"text": "22", "background_color": "#F59E0B", "color": "#FFFFFF"}
    assert store.get_cached_snapshot() == FeeSnapshot(40, 21.6, 9)
    assert store.get_settings().last_update == T0


def test_fetch_failure_shows_error_badge_and_keeps_cache(store, clock):
    """Test that a failed fetch leaves the previous snapshot untouched."""
    runner, _ = make_runner(
        store, clock,
        ok(40, 20, 9),
        failed(NetworkError("HTTP 503: Service Unavailable")),
        failed(MalformedResponse("Invalid fee data structure received from API")),
    )
    runner.update_fee_data()
    clock.now += 30

    result = runner.update_fee_data()

    assert result["success"] is False
    assert result["error_type"] == "NetworkError"
    assert runner.badge_sink.current["text"] == "?"
    assert runner.badge_sink.current["background_color"] == "#6B7280"
    assert store.get_settings().cached_data == FeeSnapshot(40, 20, 9)
    assert store.get_settings().last_update == T0

    result = runner.update_fee_data()
    assert result["error_type"] == "MalformedResponse"
    assert store.get_settings().cached_data == FeeSnapshot(40, 20, 9)


def test_cache_write_failure_still_draws_badge(store, clock, monkeypatch):
    """Test that a storage failure does not stop the badge step or raise."""
    store.update_field("alertThreshold", 10)

    def fail_replace(src, dst):
        raise OSError(28, "No space left on device")
    monkeypatch.setattr("feetracker.settings_store.os.replace", fail_replace)
    runner, _ = make_runner(store, clock, ok(20, 8, 4))

    result = runner.update_fee_data()

    assert result["success"] is True
    assert result["badge"]["text"] == "8"
    assert runner.badge_sink.current["text"] == "8"
    # Alert state could not be saved, so no alert goes out
    assert result["alert_sent"] is False
    assert store.get_settings().cached_data is None
    assert result["timestamp"].endswith("Z")


def test_hidden_badge_is_cleared(store, clock):
    store.update_field("badgeVisible", False)
    runner, _ = make_runner(store, clock, ok(40, 20, 9))
    runner.badge_sink.set_badge("5", "#000000", "#FFFFFF")

    result = runner.update_fee_data()

    assert result["success"] is True
    assert result["badge"] is None
    assert runner.badge_sink.current is None


def test_cycle_sends_alert_once(store, clock):
    """Test the alert step fires on the first cycle below threshold only."""
    store.update_field("alertThreshold", 10)
    runner, _ = make_runner(store, clock, ok(20, 8, 4), ok(20, 7, 4))
    sink = runner.alert_manager.notification_sink

    assert runner.update_fee_data()["alert_sent"] is True
    assert sink.active["btc_fee_alert"]["message"] == \
        "Bitcoin fees dropped to 8 sat/vB - great time to transact!"

    clock.now += 30
    assert runner.update_fee_data()["alert_sent"] is False


def test_badge_error_does_not_stop_alert(store, clock):
    """Test that a failing badge sink does not block the alert step."""
    store.update_field("alertThreshold", 10)
    badge_sink = Mock()
    badge_sink.set_badge.side_effect = BadgeSinkError("disk full")
    runner = FeeTrackerRunner(
        fee_client=FakeFeeClient(ok(20, 8, 4)),
        store=store,
        badge_sink=badge_sink,
        notification_sink=LogNotificationSink(),
        clock=clock,
    )

    assert runner.update_fee_data()["alert_sent"] is True


def test_priority_change_redraws_from_cache(store, clock):
    """Test a display-only settings change makes no network call."""
    runner, fee_client = make_runner(store, clock, ok(40, 20, 9))
    runner.update_fee_data()
    old = store.get_settings()
    store.update_field("selectedPriority", "fastestFee")

    runner.dispatch(SettingsChanged(old, store.get_settings()))

    assert fee_client.calls == 1
    assert runner.badge_sink.current == {"text": "40", "background_color": "#EF4444", "color": "#FFFFFF"}


def test_visibility_change_clears_badge(store, clock):
    runner, fee_client = make_runner(store, clock, ok(40, 20, 9))
    runner.update_fee_data()
    old = store.get_settings()
    store.update_field("badgeVisible", False)

    runner.dispatch(SettingsChanged(old, store.get_settings()))

    assert fee_client.calls == 1
    assert runner.badge_sink.current is None


def test_non_display_change_is_ignored(store, clock):
    runner, fee_client = make_runner(store, clock, ok(40, 20, 9))
    runner.update_fee_data()
    runner.badge_sink.current = None
    old = store.get_settings()
    store.update_field("alertThreshold", 15)

    runner.dispatch(SettingsChanged(old, store.get_settings()))

    assert fee_client.calls == 1
    assert runner.badge_sink.current is None


def test_display_change_with_stale_cache_fetches(store, clock):
    """Test that a redraw without fresh data falls back to a full update."""
    runner, fee_client = make_runner(store, clock, ok(40, 20, 9), ok(50, 30, 10))
    runner.update_fee_data()
    clock.now += 6 * 60
    old = store.get_settings()
    store.update_field("selectedPriority", "hourFee")

    runner.dispatch(SettingsChanged(old, store.get_settings()))

    assert fee_client.calls == 2
    assert runner.badge_sink.current["text"] == "10"


def test_timer_and_refresh_run_full_cycle(store, clock):
    runner, fee_client = make_runner(store, clock, ok(40, 20, 9), ok(41, 21, 10))
    runner.dispatch(TimerTick())
    runner.dispatch(RefreshRequested())
    assert fee_client.calls == 2
    assert store.get_cached_snapshot() == FeeSnapshot(41, 21, 10)


def test_dispatch_never_raises(store, clock):
    """Test that unexpected errors stay inside the cycle boundary."""
    runner, fee_client = make_runner(store, clock)
    fee_client.fetch_fees = Mock(side_effect=RuntimeError("boom"))

    runner.dispatch(TimerTick())
    runner.dispatch("not a signal")


def test_settings_changed_display_detection():
    old = Settings()
    assert SettingsChanged(None, old).display_changed is True
    assert SettingsChanged(old, Settings(alert_threshold=5)).display_changed is False
    assert SettingsChanged(old, Settings(selected_priority="hourFee")).display_changed is True
    assert SettingsChanged(old, Settings(badge_visible=False)).display_changed is True


def test_run_continuous_serves_queue_until_stopped(store, clock):
    """Test the loop processes queued signals in order and stops cleanly."""
    runner, fee_client = make_runner(store, clock, ok(40, 20, 9))
    runner.request_refresh()
    runner.stop()

    runner.run_continuous(poll_secs=30)

    assert fee_client.calls == 1
    assert store.get_cached_snapshot() == FeeSnapshot(40, 20, 9)
    assert runner.store._listeners == []
