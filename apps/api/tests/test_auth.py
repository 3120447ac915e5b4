"""
Tests for resolving the caller from the Supabase session.
"""
import json

from core.auth import decode_session_cookie
from core.config import settings
from tests.auth_helpers import auth_headers, make_token, session_cookie_value


class TestDecodeSessionCookie:
    def test_array_session(self):
        assert decode_session_cookie(session_cookie_value(["access", "refresh"])) == "access"

    def test_object_session(self):
        assert decode_session_cookie(session_cookie_value({"access_token": "tok", "refresh_token": "r"})) == "tok"

    def test_double_encoded_session(self):
        assert decode_session_cookie(session_cookie_value(json.dumps(["inner", "r"]))) == "inner"

    def test_garbage_is_rejected(self):
        assert decode_session_cookie("base64-!!!not base64!!!") is None
        assert decode_session_cookie(session_cookie_value({"user": "x"})) is None


def test_cookie_session_authenticates(client, client_user):
    cookie = session_cookie_value([make_token(client_user.auth_id), "refresh"])
    resp = client.get("/api/me", headers={"Cookie": f"sb-project-auth-token={cookie}"})
    assert resp.status_code == 200
    assert resp.json()["id"] == str(client_user.id)


def test_chunked_cookie_session_authenticates(client, client_user):
    cookie = session_cookie_value([make_token(client_user.auth_id), "refresh"])
    half = len(cookie) // 2
    headers = {"Cookie": f"sb-project-auth-token.1={cookie[half:]}; sb-project-auth-token.0={cookie[:half]}"}
    resp = client.get("/api/me", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["email"] == client_user.email


def test_missing_session_is_unauthorized(client):
    resp = client.get("/api/me")
    assert resp.status_code == 401
    assert resp.json() == {"error": "No authentication found", "code": "UNAUTHORIZED"}


def test_unreadable_cookie_is_unauthorized(client):
    resp = client.get("/api/me", headers={"Cookie": "sb-project-auth-token=garbage"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid authentication"


def test_identity_without_profile_is_not_found(client):
    resp = client.get("/api/me", headers={"Authorization": f"Bearer {make_token('nobody')}"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "User not found"


def test_coach_routes_reject_clients(client, client_headers):
    resp = client.get("/api/clients", headers=client_headers)
    assert resp.status_code == 403
    assert resp.json()["code"] == "FORBIDDEN"


def test_signature_checked_when_secret_configured(client, client_user, monkeypatch):
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", "real-secret")

    forged = client.get("/api/me", headers=auth_headers(client_user))
    assert forged.status_code == 401

    token = make_token(client_user.auth_id, secret="real-secret", aud="authenticated")
    ok = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
    assert ok.status_code == 200


def test_client_cannot_read_other_clients_data(client, make_user, coach, client_headers):
    other = make_user("client", coach=coach)
    resp = client.get(f"/api/weight-logs?userId={other.id}", headers=client_headers)
    assert resp.status_code == 403


def test_coach_cannot_reach_another_coachs_client(client, make_user, coach_headers):
    other_coach = make_user("coach")
    stranger = make_user("client", coach=other_coach)
    resp = client.get(f"/api/weight-logs?userId={stranger.id}", headers=coach_headers)
    assert resp.status_code == 404
    assert resp.json()["error"] == "Client not found or access denied"
