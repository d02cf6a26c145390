import asyncio
import logging

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from rollingball import main
from rollingball.session_manager import SessionManager

from conftest import CIRCLE_CENTERS


@pytest.fixture
def client(monkeypatch, manager):
    monkeypatch.setattr(main, "manager", manager)
    # No context manager: startup would try to open a real camera
    return TestClient(main.app)


def test_healthz_reports_state(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["state"] == "scanning"
    assert body["toggle_label"] == "Start Simulation"


def test_healthz_surfaces_init_error(monkeypatch, settings, camera, fake_engine):
    broken = SessionManager(settings=settings, camera=camera, engine=fake_engine)
    broken._init_error = "Failed to open back-facing camera 0"
    monkeypatch.setattr(main, "manager", broken)
    resp = TestClient(main.app).get("/healthz")
    assert resp.json()["status"] == "degraded"
    assert "camera" in resp.json()["error"]


def test_toggle_control(client, manager, camera, circle_frame):
    camera.publish(circle_frame)
    manager.tick()

    resp = client.post("/simulation/toggle")
    assert resp.status_code == 200
    assert resp.json()["changed"] is True
    assert resp.json()["state"] == "simulating"
    assert resp.json()["toggle_label"] == "Stop Simulation"
    assert resp.json()["bodies"] == len(CIRCLE_CENTERS)

    resp = client.post("/simulation/toggle")
    assert resp.json()["state"] == "scanning"
    assert resp.json()["bodies"] == 0


def test_start_and_stop_are_idempotent(client):
    assert client.post("/simulation/stop").json()["changed"] is False
    assert client.post("/simulation/start").json()["changed"] is True
    second = client.post("/simulation/start").json()
    assert second["changed"] is False
    assert second["state"] == "simulating"
    assert client.post("/simulation/stop").json()["changed"] is True


def test_start_rejected_when_pipeline_disabled(monkeypatch, settings, camera, fake_engine):
    monkeypatch.setattr(main, "manager", SessionManager(settings=settings, camera=camera, engine=fake_engine))
    client = TestClient(main.app)
    assert client.post("/simulation/start").status_code == 503
    assert client.post("/simulation/toggle").status_code == 503


def test_shapes_endpoint(client, manager, camera, circle_frame):
    camera.publish(circle_frame)
    manager.tick()
    body = client.get("/shapes").json()
    assert body["state"] == "scanning"
    assert len(body["circles"]) == len(CIRCLE_CENTERS)
    assert len(body["circles"][0]["world_position"]) == 3


def test_push_gravity(client, manager):
    resp = client.post("/sensors/gravity", json={"vector": [0.2, -0.9, 0.1]})
    assert resp.status_code == 200
    assert manager.gravity_sensor.read() == pytest.approx((0.2, -0.9, 0.1))


def test_push_gravity_validates_payload(client):
    assert client.post("/sensors/gravity", json={"vector": [1.0]}).status_code == 422


def test_unhandled_errors_logged_with_lazy_args(caplog):
    request = Request({"type": "http", "method": "GET", "path": "/shapes", "headers": [], "query_string": b""})
    error = RuntimeError("camera unplugged")
    with caplog.at_level(logging.ERROR, logger="rollingball.main"):
        resp = asyncio.run(main.global_exception_handler(request, error))
    assert resp.status_code == 500
    (record,) = [r for r in caplog.records if r.name == "rollingball.main"]
    assert record.msg == "Unhandled exception in %s: %s"
    assert record.args == ("/shapes", error)
