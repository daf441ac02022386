"""Bearer token utilities for the ledger API.

A token is a JSON payload with ``sub`` (actor id), ``role`` and ``exp``
(unix seconds), encoded as url-safe base64 and prefixed with an
HMAC-SHA256 signature over the encoded payload.

Public helpers:
    mk_token(actor_id, role, ttl_days=None) -> str
        Create a signed token.
    parse_token(token: str) -> dict | None
        Validate signature and expiry and return the payload. ``None`` is
        returned for malformed, tampered or expired tokens.
    authenticate(header: str | None) -> AuthResult
        Resolve an ``Authorization`` header to an :class:`Actor`.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from swm import config
from swm.permissions import Role


def _sign(raw: str) -> str:
    return hmac.new(config.TOKEN_SECRET, raw.encode("ascii"), hashlib.sha256).hexdigest()


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def mk_token(actor_id: str, role: Role | str, ttl_days: Optional[int] = None) -> str:
    """Create a signed bearer token.

    Parameters
    ----------
    actor_id:
        Id recorded as ``awarded_by`` / ``issued_by`` on ledger events.
    role:
        One of :class:`swm.permissions.Role`.
    ttl_days:
        Lifetime; defaults to ``TOKEN_TTL_DAYS``.
    """

    ttl = config.TOKEN_TTL_DAYS if ttl_days is None else ttl_days
    payload: Dict[str, Any] = {
        "sub": actor_id,
        "role": Role(role).value,
        "exp": int(time.time()) + ttl * 86400,
    }
    raw = _b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{_sign(raw)}.{raw}"


def parse_token(token: str, now: Optional[float] = None) -> Optional[Dict[str, Any]]:
    """Validate ``token`` and return its payload, or ``None``."""

    try:
        sig, raw = token.split(".", 1)
        if not hmac.compare_digest(_sign(raw), sig):
            return None
        payload = json.loads(_b64decode(raw))
    except (AttributeError, ValueError, UnicodeError):
        return None
    if not isinstance(payload, dict):
        return None
    exp = payload.get("exp")
    if not isinstance(exp, int) or exp <= (now if now is not None else time.time()):
        return None
    return payload


@dataclass
class Actor:
    id: str
    role: Role


@dataclass
class AuthResult:
    """Result of resolving a bearer credential.

    Attributes
    ----------
    ok:
        ``True`` if the credential is valid.
    actor:
        Resolved actor when ``ok`` is ``True``.
    error:
        Short reason for logging/debugging.
    """

    ok: bool
    actor: Optional[Actor] = None
    error: str | None = None


def authenticate(header: Optional[str]) -> AuthResult:
    """Resolve an ``Authorization: Bearer <token>`` header value."""

    if not header:
        return AuthResult(False, error="no-token")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return AuthResult(False, error="no-token")
    payload = parse_token(token.strip())
    if payload is None:
        return AuthResult(False, error="bad-token")
    try:
        role = Role(payload.get("role"))
    except ValueError:
        return AuthResult(False, error="bad-role")
    if not payload.get("sub"):
        return AuthResult(False, error="no-subject")
    return AuthResult(True, Actor(str(payload["sub"]), role))
