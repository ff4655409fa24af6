"""
Tests for alert evaluation.
"""
import pytest

from collector.src.alerts import ALERT_OFFLINE, ALERT_OVERLOAD, AlertEvaluator
from collector.src.errors import StorageError
from collector.src.notifier import Notifier, WebhookConfigStore
from shared.schemas import WebhookTarget


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def dispatch(self, title, message):
        self.sent.append((title, message))
        return {"recorder": True}


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def evaluator(registry, store, notifier, clock):
    return AlertEvaluator(
        registry,
        store,
        notifier,
        offline_threshold=30,
        cpu_threshold=90,
        overload_duration=600,
        clock=clock
    )


def test_sustained_overload_fires_once_at_ten_minutes(registry, store, evaluator, notifier, clock, make_snapshot):
    start = int(clock.now)
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", start)

    # Ten samples 60s apart cover minutes 0..9: no notification yet
    for minute in range(10):
        ts = start + minute * 60
        clock.now = ts
        registry.touch_last_seen("a1", ts)
        store.append(make_snapshot(timestamp=ts, cpu=95.0))
        assert evaluator.sweep() == []

    ts = start + 600
    clock.now = ts
    registry.touch_last_seen("a1", ts)
    store.append(make_snapshot(timestamp=ts, cpu=95.0))
    fired = evaluator.sweep()
    assert [a.kind for a in fired] == [ALERT_OVERLOAD]
    assert len(notifier.sent) == 1

    # Still overloaded: no repeat
    ts = start + 660
    clock.now = ts
    registry.touch_last_seen("a1", ts)
    store.append(make_snapshot(timestamp=ts, cpu=97.0))
    assert evaluator.sweep() == []
    assert len(notifier.sent) == 1


def test_overload_window_resets_when_cpu_drops(registry, store, evaluator, notifier, clock, make_snapshot):
    start = int(clock.now)
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", start)

    store.append(make_snapshot(timestamp=start, cpu=95.0))
    evaluator.sweep(now=start)
    assert evaluator.state_for("a1").overload_start == start

    store.append(make_snapshot(timestamp=start + 300, cpu=20.0))
    registry.touch_last_seen("a1", start + 300)
    evaluator.sweep(now=start + 300)
    assert evaluator.state_for("a1").overload_start is None

    # A new episode starts from scratch
    store.append(make_snapshot(timestamp=start + 360, cpu=95.0))
    registry.touch_last_seen("a1", start + 900)
    store.append(make_snapshot(timestamp=start + 900, cpu=95.0))
    assert evaluator.sweep(now=start + 900) == []
    assert notifier.sent == []


def test_threshold_is_exclusive(registry, store, evaluator, clock, make_snapshot):
    start = int(clock.now)
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", start)
    store.append(make_snapshot(timestamp=start, cpu=90.0))

    evaluator.sweep(now=start)
    assert evaluator.state_for("a1").overload_start is None


def test_offline_alert_is_edge_triggered(registry, evaluator, notifier, clock):
    start = int(clock.now)
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", start)

    assert evaluator.sweep(now=start + 10) == []

    # First offline episode: one notification, however many sweeps
    fired = evaluator.sweep(now=start + 31)
    assert [a.kind for a in fired] == [ALERT_OFFLINE]
    assert evaluator.sweep(now=start + 91) == []
    assert evaluator.sweep(now=start + 151) == []

    # Back online clears the flag
    registry.touch_last_seen("a1", start + 200)
    assert evaluator.sweep(now=start + 205) == []
    assert not evaluator.state_for("a1").offline_alerted

    # Second episode notifies again, once
    assert len(evaluator.sweep(now=start + 260)) == 1
    assert evaluator.sweep(now=start + 320) == []

    offline_messages = [t for t, _ in notifier.sent if t == "Agent offline"]
    assert len(offline_messages) == 2


def test_offline_alert_uses_longer_threshold_than_display(registry, evaluator, clock):
    start = int(clock.now)
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", start)

    # Shown offline after 10s, but no alert until 30s have passed
    clock.now = start + 20
    assert not registry.get("a1").is_online
    assert evaluator.sweep() == []


def test_deleted_agent_state_is_forgotten(registry, evaluator, clock):
    start = int(clock.now)
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", start)
    evaluator.sweep(now=start + 60)
    assert evaluator.state_for("a1").offline_alerted

    registry.delete("a1")
    evaluator.sweep(now=start + 120)
    assert "a1" not in evaluator._states


def test_failure_for_one_agent_does_not_stop_sweep(registry, store, notifier, clock, monkeypatch):
    start = int(clock.now)
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", start)
    registry.upsert("a2", "web-2", "ubuntu", "10.0.0.6:5000", start)

    original_latest = store.latest

    def flaky_latest(agent_id):
        if agent_id == "a1":
            raise StorageError("disk I/O error")
        return original_latest(agent_id)

    monkeypatch.setattr(store, "latest", flaky_latest)
    evaluator = AlertEvaluator(registry, store, notifier, offline_threshold=30, clock=clock)

    fired = evaluator.sweep(now=start + 60)
    assert sorted(a.agent_id for a in fired) == ["a1", "a2"]


class ListReplySession:
    """Every webhook answers with a JSON array instead of an object."""

    def __init__(self):
        self.headers = {}
        self.urls = []

    def post(self, url, data=None, json=None, timeout=None):
        self.urls.append(url)
        return ListReply()


class ListReply:
    status_code = 200
    text = "[]"

    def json(self):
        return []


def test_odd_webhook_reply_does_not_abort_sweep(registry, store, clock, tmp_path):
    webhooks = WebhookConfigStore(str(tmp_path / "webhook.json"))
    webhooks.save([WebhookTarget(name="ops", type="serverchan", sendkey="SCT123", enabled=True)])
    session = ListReplySession()
    evaluator = AlertEvaluator(registry, store, Notifier(webhooks, session=session), offline_threshold=30, clock=clock)

    start = int(clock.now)
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", start)
    registry.upsert("a2", "web-2", "ubuntu", "10.0.0.6:5000", start)

    fired = evaluator.sweep(now=start + 60)

    assert sorted(a.agent_id for a in fired) == ["a1", "a2"]
    assert len(session.urls) == 2
