"""
Authentication and authorization dependencies.

Supabase Auth owns sign-in; this module only turns the browser's session
cookie (or a bearer header) into a `users` row:

- cookie `sb-<project-ref>-auth-token` (possibly chunked as `.0`, `.1`, ...)
- value is base64 (optionally prefixed `base64-`) of a JSON session:
  a JSON-encoded array `[access_token, refresh_token, ...]`, the array
  itself, or an object with `access_token`
- the access token's `sub` claim is `users.auth_id`
"""
import base64
import binascii
import json
import logging
from typing import Any, Optional
from urllib.parse import unquote
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db
from core.exceptions import ForbiddenError, NotFoundError, UnauthorizedError
from models import User

logger = logging.getLogger(__name__)

# Use auto_error=False so a missing header falls through to the cookie
security = HTTPBearer(auto_error=False)

AUTH_COOKIE_PREFIX = "sb-"
AUTH_COOKIE_SUFFIX = "-auth-token"


def _session_cookie_value(cookies: dict[str, str]) -> Optional[str]:
    whole = [name for name in cookies if name.startswith(AUTH_COOKIE_PREFIX) and name.endswith(AUTH_COOKIE_SUFFIX)]
    if whole:
        return cookies[whole[0]]

    chunks: dict[str, dict[int, str]] = {}
    for name, value in cookies.items():
        if not name.startswith(AUTH_COOKIE_PREFIX):
            continue
        base, _, index = name.rpartition(".")
        if base.endswith(AUTH_COOKIE_SUFFIX) and index.isdigit():
            chunks.setdefault(base, {})[int(index)] = value
    for parts in chunks.values():
        return "".join(parts[i] for i in sorted(parts))
    return None


def _b64decode(value: str) -> bytes:
    value = value.replace("-", "+").replace("_", "/")
    return base64.b64decode(value + "=" * (-len(value) % 4))


def decode_session_cookie(raw: str) -> Optional[str]:
    """Pull the access token out of a Supabase session cookie value."""
    value = unquote(raw)
    if value.startswith("base64-"):
        value = value[len("base64-"):]

    try:
        session: Any = json.loads(_b64decode(value).decode("utf-8"))
        # Older helpers double-encode: the JSON document is itself a JSON string.
        if isinstance(session, str):
            session = json.loads(session)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None

    if isinstance(session, list) and session and isinstance(session[0], str):
        return session[0]
    if isinstance(session, dict) and isinstance(session.get("access_token"), str):
        return session["access_token"]
    return None


def extract_access_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = None) -> str:
    raw = _session_cookie_value(request.cookies)
    if raw is not None:
        token = decode_session_cookie(raw)
        if not token:
            raise UnauthorizedError("Invalid authentication")
        return token

    if credentials and credentials.credentials:
        return credentials.credentials

    raise UnauthorizedError("No authentication found")


def get_auth_id(token: str) -> str:
    """
    The `sub` claim of a Supabase access token.

    The signature is checked when SUPABASE_JWT_SECRET is configured;
    otherwise the claims are read as issued.
    """
    try:
        if settings.SUPABASE_JWT_SECRET:
            claims = jwt.decode(
                token,
                settings.SUPABASE_JWT_SECRET,
                algorithms=["HS256"],
                audience=settings.SUPABASE_JWT_AUDIENCE,
            )
        else:
            claims = jwt.get_unverified_claims(token)
    except JWTError as e:
        logger.info(f"Rejected access token: {e}")
        raise UnauthorizedError()

    sub = claims.get("sub")
    if not sub:
        raise UnauthorizedError()
    return str(sub)


def get_auth_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Auth id for routes that run before a `users` row exists (registration)."""
    return get_auth_id(extract_access_token(request, credentials))


def get_current_user(
    auth_id: str = Depends(get_auth_identity),
    db: Session = Depends(get_db),
) -> User:
    """
    Get the current user from the Supabase session.

    Raises 401 for a missing/invalid session and 404 when the identity has
    no profile row.
    """
    user = db.query(User).filter(User.auth_id == auth_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def require_role(allowed_roles: list[str]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/coach-only")
        def coach_endpoint(user: User = Depends(require_role(["coach"]))):
            ...
    """
    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise ForbiddenError(f"Access denied. Required roles: {allowed_roles}")
        return current_user

    return role_checker


require_coach = require_role(["coach"])
require_client = require_role(["client"])


def _parse_uuid(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def get_coach_client(db: Session, coach: User, client_ref: Any) -> User:
    """
    A client of `coach`, looked up by id or slug.

    Other coaches' clients are indistinguishable from missing ones.
    """
    query = db.query(User).filter(User.role == "client", User.coach_id == coach.id)
    client_uuid = _parse_uuid(client_ref)
    if client_uuid is not None:
        client = query.filter(User.id == client_uuid).first()
    else:
        client = query.filter(User.slug == str(client_ref)).first()
    if not client:
        raise NotFoundError("Client not found or access denied")
    return client


def resolve_target_user(db: Session, current_user: User, user_ref: Any = None) -> User:
    """
    Whose data a read should return.

    Without a reference: the caller. A coach may name any of their clients;
    a client may only name themselves.
    """
    if user_ref in (None, ""):
        return current_user
    if current_user.is_coach:
        return get_coach_client(db, current_user, user_ref)

    target = _parse_uuid(user_ref)
    if target == current_user.id or str(user_ref) == current_user.slug:
        return current_user
    raise ForbiddenError("Access denied")
