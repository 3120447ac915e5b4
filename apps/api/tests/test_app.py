"""
Tests for app-wide behaviour: health, request ids, headers and error shape.
"""
import logging

from core.config import settings
from core.logging import JSONFormatter, TextFormatter


def test_health_reports_unconfigured_integrations(client, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)
    monkeypatch.setattr(settings, "SUPABASE_URL", None)
    monkeypatch.setattr(settings, "EMAIL_ENABLED", False)
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["integrations"] == {"stripe": False, "storage": False, "email": False}


def test_request_id_is_echoed_or_generated(client):
    assert client.get("/ping", headers={"X-Request-ID": "req-42"}).headers["X-Request-ID"] == "req-42"
    assert len(client.get("/ping").headers["X-Request-ID"]) == 32


def test_security_headers(client):
    headers = client.get("/ping").headers
    assert headers["X-Content-Type-Options"] == "nosniff"
    assert headers["X-Frame-Options"] == "DENY"
    assert headers["Cache-Control"] == "no-store"


def test_not_found_carries_code(client, coach_headers):
    resp = client.get("/api/meal-plans/00000000-0000-0000-0000-000000000000", headers=coach_headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_body_validation_is_a_400(client, client_headers):
    resp = client.post("/api/personal-best", json={"exerciseId": "nope", "weight": 10}, headers=client_headers)
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["error"].startswith("exerciseId")


def test_missing_session_is_unauthorized(client):
    resp = client.get("/api/me")
    assert resp.status_code == 401
    assert resp.json()["code"] == "UNAUTHORIZED"


def _record(**extra_fields):
    record = logging.LogRecord("kava.test", logging.INFO, __file__, 1, "plan activated", None, None)
    record.extra_fields = extra_fields
    return record


def test_formatters_carry_extra_fields():
    assert TextFormatter().format(_record(plan_id="p1")).endswith("plan activated | plan_id=p1")
    assert '"plan_id": "p1"' in JSONFormatter().format(_record(plan_id="p1"))


def test_migration_graph_has_one_head():
    import run_migrations

    assert run_migrations.migration_heads() == ["001"]
    assert run_migrations.main(["--check-heads"]) == 0
