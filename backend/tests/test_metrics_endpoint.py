from __future__ import annotations

from fastapi.testclient import TestClient

from app.api.metrics import PROMETHEUS_CONTENT_TYPE
from app.core.security import create_access_token
from app.monitoring.metrics import realtime_events_total


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint_exposes_realtime_series(client: TestClient) -> None:
    realtime_events_total.labels("new_message", "out").inc(amount=3)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith(PROMETHEUS_CONTENT_TYPE)
    body = response.text
    assert "# TYPE realtime_events_total counter" in body
    assert 'realtime_events_total{event="new_message",direction="out"} 3' in body
    assert "# TYPE realtime_active_connections gauge" in body


def test_metrics_track_connections_and_rejections(client: TestClient, create_user) -> None:
    token = create_access_token({"sub": str(create_user("metric-user"))})

    with client.websocket_connect(f"/ws/realtime?token={token}") as ws:
        ws.receive_json()
        ws.receive_json()
        ws.send_json({"type": "ping"})
        ws.receive_json()
        body = client.get("/metrics").text
        assert 'realtime_active_connections{scope="registry"} 1' in body
        assert 'realtime_events_total{event="ping",direction="in"} 1' in body
