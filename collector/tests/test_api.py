"""
Basic tests for the collector API.
"""
import pytest
import uvicorn
from fastapi.testclient import TestClient

from collector.src import main as collector_main
from collector.src.main import create_app

API_KEY = "test-api-key"
AUTH = {"X-API-Key": API_KEY}


@pytest.fixture
def app(collector_config):
    return create_app(collector_config, start_scheduler=False)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seeded(app, client, make_snapshot):
    """Two agents, a1 and a2, each with samples at 1000 and 1005."""
    registry, store = app.state.registry, app.state.store
    registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000")
    registry.upsert("a2", "db-1", "debian", "10.0.0.6:5000")
    for ts in (1000, 1005):
        store.append(make_snapshot(agent_id="a1", timestamp=ts, cpu=45.2))
        store.append(make_snapshot(agent_id="a2", timestamp=ts, cpu=12.0, hostname="db-1"))
    return app


def test_root_endpoint(client):
    """Test root endpoint returns service info."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "service" in data
    assert data["service"] == "Fleet Monitor Collector"


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


def test_list_agents_empty(client):
    response = client.get("/api/agents")
    assert response.status_code == 200
    assert response.json() == []


def test_list_agents(client, seeded):
    response = client.get("/api/agents")
    assert response.status_code == 200
    agents = {a["id"]: a for a in response.json()}
    assert set(agents) == {"a1", "a2"}

    a1 = agents["a1"]
    assert set(a1) == {
        "id", "name", "hostname", "platform", "ip_address",
        "is_online", "last_seen", "created_at", "updated_at",
    }
    assert a1["name"] == "web-1"
    assert a1["ip_address"] == "10.0.0.5"
    assert a1["is_online"] is True


def test_get_agent(client, seeded):
    response = client.get("/api/agents/a2")
    assert response.status_code == 200
    assert response.json()["hostname"] == "db-1"


def test_get_unknown_agent_is_404(client):
    assert client.get("/api/agents/ghost").status_code == 404


def test_metrics_scenario(client, app, make_snapshot):
    app.state.registry.upsert("a1", "web-1", "ubuntu", "10.0.0.5:5000")
    app.state.store.append(make_snapshot(agent_id="a1", timestamp=1000, cpu=45.2))

    response = client.get("/api/agents/a1/metrics", params={"from": 900, "to": 1100, "limit": 10})
    assert response.status_code == 200
    samples = response.json()
    assert len(samples) == 1
    assert samples[0]["cpu_usage"] == 45.2
    assert samples[0]["timestamp"] == 1000
    assert samples[0]["network_info"]["bytes_sent"] == 123456


def test_metrics_empty_range_is_empty_list(client, seeded):
    response = client.get("/api/agents/a1/metrics", params={"from": 5000, "to": 6000})
    assert response.status_code == 200
    assert response.json() == []


def test_metrics_defaults_and_non_positive_limit(client, seeded):
    response = client.get("/api/agents/a1/metrics", params={"limit": 0})
    assert response.status_code == 200
    assert [s["timestamp"] for s in response.json()] == [1005, 1000]

    response = client.get("/api/agents/a1/metrics", params={"limit": 1})
    assert [s["timestamp"] for s in response.json()] == [1005]


def test_metrics_invalid_range(client, seeded):
    response = client.get("/api/agents/a1/metrics", params={"from": 2000, "to": 1000})
    assert response.status_code == 400


def test_metrics_unknown_agent_is_404(client):
    assert client.get("/api/agents/ghost/metrics").status_code == 404


def test_rename_requires_api_key(client, seeded):
    response = client.put("/api/agents/a1", json={"name": "Frontend"})
    assert response.status_code == 401

    response = client.put("/api/agents/a1", json={"name": "Frontend"}, headers={"X-API-Key": "wrong"})
    assert response.status_code == 401


def test_rename_with_bearer_token(client, seeded):
    response = client.put(
        "/api/agents/a1",
        json={"name": "Frontend"},
        headers={"Authorization": f"Bearer {API_KEY}"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Frontend"
    assert data["hostname"] == "web-1"
    assert data["platform"] == "ubuntu"


def test_rename_unknown_agent_is_404(client):
    response = client.put("/api/agents/ghost", json={"name": "x"}, headers=AUTH)
    assert response.status_code == 404


def test_rename_rejects_blank_name(client, seeded):
    assert client.put("/api/agents/a1", json={"name": "   "}, headers=AUTH).status_code == 400
    assert client.put("/api/agents/a1", json={"name": ""}, headers=AUTH).status_code == 422


def test_delete_agent_scenario(client, seeded):
    response = client.delete("/api/agents/a1", headers=AUTH)
    assert response.status_code == 200
    data = response.json()
    assert data["agent_id"] == "a1"
    assert data["metrics_deleted"] == 2

    assert client.get("/api/agents/a1").status_code == 404
    assert client.get("/api/agents/a2").status_code == 200
    remaining = client.get("/api/agents/a2/metrics", params={"from": 0, "to": 2000})
    assert len(remaining.json()) == 2
    assert seeded.state.store.count("a1") == 0


def test_delete_requires_api_key(client, seeded):
    assert client.delete("/api/agents/a1").status_code == 401
    assert client.get("/api/agents/a1").status_code == 200


def test_delete_unknown_agent_is_404(client):
    assert client.delete("/api/agents/ghost", headers=AUTH).status_code == 404


def test_webhook_config_round_trip(client):
    assert client.get("/api/webhook").json() == []

    targets = [
        {"name": "ops", "type": "serverchan", "sendkey": "SCT123", "enabled": True},
        {"name": "hook", "type": "custom", "url": "http://hooks.local/alert", "enabled": False},
    ]
    assert client.put("/api/webhook", json=targets).status_code == 401

    response = client.put("/api/webhook", json=targets, headers=AUTH)
    assert response.status_code == 200

    saved = client.get("/api/webhook").json()
    assert [t["name"] for t in saved] == ["ops", "hook"]
    assert saved[0]["sendkey"] == "SCT123"


def test_webhook_rejects_unknown_type(client):
    response = client.put("/api/webhook", json=[{"name": "x", "type": "email"}], headers=AUTH)
    assert response.status_code == 422


def test_webhook_test_incomplete_target(client):
    response = client.post("/api/webhook/test", json={"type": "custom"}, headers=AUTH)
    assert response.status_code == 400


def test_webhook_test_dispatches(client, app, monkeypatch):
    sent = []

    def fake_send_custom(url, title, message):
        sent.append((url, title))
        return True, None

    monkeypatch.setattr(app.state.notifier, "send_custom", fake_send_custom)

    response = client.post(
        "/api/webhook/test",
        json={"type": "custom", "url": "http://hooks.local/alert"},
        headers=AUTH
    )
    assert response.status_code == 200
    assert response.json()["message"] == "SUCCESS"
    assert sent == [("http://hooks.local/alert", "Webhook test")]


def test_run_limits_websocket_frame_size(collector_config, monkeypatch):
    """Frames larger than 64 KiB are refused by the listener."""
    captured = {}

    def fake_run(app, **kwargs):
        captured.update(kwargs)

    monkeypatch.setattr(collector_main, "load_config", lambda: collector_config)
    monkeypatch.setattr(collector_main, "setup_logging", lambda *args: None)
    monkeypatch.setattr(uvicorn, "run", fake_run)

    collector_main.run()

    assert captured["ws_max_size"] == 65536
    assert captured["ws"] == "websockets"
    assert captured["ws_ping_timeout"] == collector_config.server.read_timeout
