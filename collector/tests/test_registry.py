"""
Tests for the agent registry.
"""
import pytest

from collector.src.errors import AgentNotFoundError
from collector.src.registry import is_online, strip_port


def test_is_online_flips_at_threshold():
    assert is_online(1000, 1009.999, threshold=10)
    assert not is_online(1000, 1010, threshold=10)
    assert not is_online(1000, 1011, threshold=10)
    assert not is_online(None, 1000, threshold=10)


def test_strip_port():
    assert strip_port("10.0.0.5:51234") == "10.0.0.5"
    assert strip_port("[fd7a:115c::1]:443") == "fd7a:115c::1"
    assert strip_port("fd7a:115c::1") == "fd7a:115c::1"
    assert strip_port("") == ""


def test_upsert_inserts_with_hostname_as_name(registry, clock):
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", int(clock.now))

    agent = registry.get("a1")
    assert agent.name == "web-1"
    assert agent.hostname == "web-1"
    assert agent.platform == "ubuntu"
    assert agent.ip_address == "10.0.0.5"
    assert agent.is_online
    assert agent.created_at is not None


def test_upsert_defaults_for_empty_fields(registry):
    registry.upsert("a1", "", "", "10.0.0.5:5000")

    agent = registry.get("a1")
    assert agent.hostname == "unknown-host"
    assert agent.platform == "Unknown"
    assert agent.name == "unknown-host"


def test_name_is_sticky_across_hostname_changes(registry, clock):
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000")
    registry.rename("a1", "Frontend")

    clock.advance(5)
    registry.upsert("a1", "web-1-renamed", "debian", "10.0.0.6:5000")

    agent = registry.get("a1")
    assert agent.name == "Frontend"
    assert agent.hostname == "web-1-renamed"
    assert agent.platform == "debian"
    assert agent.ip_address == "10.0.0.6"


def test_default_name_is_first_write(registry):
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000")
    registry.upsert("a1", "web-2", "ubuntu", "10.0.0.5:5000")

    assert registry.get("a1").name == "web-1"


def test_online_state_is_derived_on_read(registry, clock):
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", int(clock.now))
    assert registry.get("a1").is_online

    clock.advance(10)
    assert not registry.get("a1").is_online

    registry.touch_last_seen("a1", int(clock.now))
    assert registry.get("a1").is_online


def test_touch_last_seen_unknown_agent(registry):
    assert registry.touch_last_seen("ghost") is False


def test_get_unknown_agent_raises_not_found(registry):
    with pytest.raises(AgentNotFoundError):
        registry.get("ghost")


def test_rename_unknown_agent_raises_not_found(registry):
    with pytest.raises(AgentNotFoundError):
        registry.rename("ghost", "Nobody")


def test_rename_writes_override(registry, overrides):
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000")
    registry.rename("a1", "Frontend")

    assert overrides.get("a1") == "Frontend"


def test_override_survives_re_registration(registry, overrides):
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000")
    registry.rename("a1", "Frontend")
    registry.delete("a1")

    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000")
    assert registry.get("a1").name == "Frontend"


def test_list_orders_newest_first(registry, clock):
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000", int(clock.now))
    clock.advance(60)
    registry.upsert("a2", "web-2", "ubuntu", "10.0.0.6:5000", int(clock.now))

    agents = registry.list()
    assert [a.id for a in agents] == ["a2", "a1"]
    assert agents[0].is_online
    assert not agents[1].is_online


def test_delete_cascades_to_samples(registry, store, make_snapshot):
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000")
    registry.upsert("a2", "web-2", "ubuntu", "10.0.0.6:5000")
    for ts in (1000, 1005, 1010):
        store.append(make_snapshot(agent_id="a1", timestamp=ts))
        store.append(make_snapshot(agent_id="a2", timestamp=ts))

    assert registry.delete("a1") == 3

    assert store.count("a1") == 0
    assert store.count("a2") == 3
    assert registry.exists("a2")
    with pytest.raises(AgentNotFoundError):
        registry.get("a1")


def test_delete_unknown_agent_keeps_samples(registry, store, make_snapshot):
    store.append(make_snapshot(agent_id="orphan", timestamp=1000))

    with pytest.raises(AgentNotFoundError):
        registry.delete("orphan")

    # The failed delete rolled back as a whole
    assert store.count("orphan") == 1
