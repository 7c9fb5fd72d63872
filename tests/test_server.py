import pytest
from fastapi.testclient import TestClient

from fakes import OPEN_PAGE, URL, SessionFactory, StubFetcher, StubNotifier, make_settings
from rec_watch.monitor import Monitor
from rec_watch.server import create_app


@pytest.fixture
def monitor():
    return Monitor(
        make_settings(),
        fetcher=StubFetcher(OPEN_PAGE),
        notifier=StubNotifier(),
        session_factory=SessionFactory(),
    )


@pytest.fixture
def client(monitor):
    with TestClient(create_app(monitor=monitor)) as test_client:
        yield test_client


def test_status_reports_idle_state(client):
    response = client.get("/api/status")

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "isPolling": False,
        "interval": 3600,
        "url": URL,
        "lastCheck": None,
        "checkCount": 0,
    }


def test_config_updates_without_starting(client, monitor):
    response = client.post("/api/config", json={"url": "https://example.test/other", "interval": "45"})

    assert response.json() == {"success": True, "url": "https://example.test/other", "interval": 45}
    assert monitor.poller.is_polling is False


def test_config_blank_url_keeps_current(client):
    response = client.post("/api/config", json={"url": "", "interval": 10})
    assert response.json()["url"] == URL


@pytest.mark.parametrize("body", [{"interval": 0}, {"interval": -3}, {"interval": "soon"}])
def test_invalid_interval_is_rejected(client, monitor, body):
    response = client.post("/api/start", json=body)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert monitor.config.interval_seconds == 3600
    assert monitor.poller.is_polling is False


def test_start_and_stop_round_trip(client, monitor):
    response = client.post("/api/start", json={"interval": 600})
    assert response.json() == {"success": True, "isPolling": True, "started": True}
    assert monitor.config.interval_seconds == 600

    again = client.post("/api/start")
    assert again.json()["started"] is False

    stopped = client.post("/api/stop")
    assert stopped.json() == {"success": True, "isPolling": False, "stopped": True}
    assert client.get("/api/status").json()["isPolling"] is False


def test_live_updates_push_status_and_results(client):
    with client.websocket_connect("/ws") as ws:
        snapshot = ws.receive_json()
        assert snapshot["type"] == "status"
        assert snapshot["isPolling"] is False
        assert snapshot["telegram"] == {"active": False, "configured": False, "connected": False}

        client.post("/api/start")
        status = ws.receive_json()
        result = ws.receive_json()

    assert status["type"] == "status"
    assert status["isPolling"] is True
    assert result["type"] == "result"
    assert result["available"] is True
    assert result["openingsCount"] == 3
    assert result["checkCount"] == 1


def test_late_joiner_gets_current_snapshot(client):
    with client.websocket_connect("/ws") as first:
        first.receive_json()
        client.post("/api/start")
        first.receive_json()
        first.receive_json()

    with client.websocket_connect("/ws") as late:
        snapshot = late.receive_json()

    assert snapshot["isPolling"] is True
    assert snapshot["checkCount"] == 1
    assert snapshot["lastCheck"]["activityTitle"] == "Adult Basketball"


def test_bot_start_requires_token(client):
    for body in ({}, {"token": "   "}):
        response = client.post("/api/bot/start", json=body)
        assert response.status_code == 400
        assert response.json()["success"] is False

    assert client.get("/api/bot/status").json() == {
        "success": True, "active": False, "configured": False, "connected": False
    }


def test_bot_start_and_stop(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()

        started = client.post("/api/bot/start", json={"token": "token-a"})
        assert started.json() == {"success": True, "active": True, "configured": True, "connected": False}
        assert ws.receive_json() == {
            "type": "telegram_status", "active": True, "configured": True, "connected": False
        }

        stopped = client.post("/api/bot/stop")
        assert stopped.json() == {"success": True, "active": False, "configured": False, "connected": False}
        assert ws.receive_json()["type"] == "telegram_status"


def test_bot_start_reports_rejected_token(client):
    response = client.post("/api/bot/start", json={"token": "bad-token"})

    body = response.json()
    assert body["success"] is False
    assert body["configured"] is False
    assert "Unauthorized" in body["error"]
