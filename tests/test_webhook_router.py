"""HTTP surface: status is always 200, outcome is in the JSON body."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from main import app
from routers.webhook import get_submission_handler


@pytest.fixture()
def client(make_handler):
    handler = make_handler(recipient_address="owner@x.com")
    app.dependency_overrides[get_submission_handler] = lambda: handler
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_exec_logs_submission(client, sheet, mailer):
    resp = client.post("/exec", json={"name": "Ada", "email": "a@x.com", "message": "hi"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "OK", "message": "Submission logged successfully"}
    assert sheet.rows[1][:3] == ["Ada", "a@x.com", "hi"]
    assert mailer.sent[0]["reply_to"] == "a@x.com"
    assert "x-request-id" in resp.headers


def test_root_path_accepts_posts(client, sheet):
    resp = client.post("/", content=b'{"name": "Ada"}', headers={"content-type": "text/plain"})
    assert resp.json()["status"] == "OK"


def test_invalid_json_still_returns_200(client, sheet, mailer):
    resp = client.post("/exec", content=b"{not json", headers={"content-type": "application/json"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "error", "message": "Invalid JSON format"}
    assert sheet.rows == []
    assert mailer.sent == []


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_request_id_is_echoed(client):
    resp = client.post("/exec", json={"name": "Ada"}, headers={"x-request-id": "abc123"})
    assert resp.headers["x-request-id"] == "abc123"


def test_broken_configuration_returns_generic_500_in_production(monkeypatch):
    def broken_handler():
        raise RuntimeError("CAPTCHA_SECRET_KEY missing")

    monkeypatch.setenv("ENV", "production")
    app.dependency_overrides[get_submission_handler] = broken_handler
    try:
        with TestClient(app, raise_server_exceptions=False) as c:
            resp = c.post("/exec", json={"name": "Ada"})
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 500
    assert resp.json() == {"status": "error", "message": "Something went wrong. Please try again."}


def test_broken_configuration_names_the_error_outside_production(monkeypatch):
    def broken_handler():
        raise RuntimeError("CAPTCHA_SECRET_KEY missing")

    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.delenv("APP_ENV", raising=False)
    app.dependency_overrides[get_submission_handler] = broken_handler
    try:
        with TestClient(app, raise_server_exceptions=False) as c:
            resp = c.post("/exec", json={"name": "Ada"})
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 500
    assert resp.json()["message"].endswith("(RuntimeError)")
