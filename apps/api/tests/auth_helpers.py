"""Supabase-style access tokens and session cookies for tests."""
import base64
import json

from jose import jwt


def make_token(auth_id: str, secret: str = "test-secret", **claims) -> str:
    return jwt.encode({"sub": auth_id, **claims}, secret, algorithm="HS256")


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {make_token(user.auth_id)}"}


def session_cookie_value(payload) -> str:
    """Cookie value the Supabase SSR helpers write: `base64-` + base64url(JSON)."""
    raw = json.dumps(payload).encode("utf-8")
    return "base64-" + base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
