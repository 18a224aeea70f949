"""
Bearer token creation and verification.

Tokens are ``<urlsafe-b64 JSON payload>.<hex HMAC-SHA256>`` with claims
``sub`` (user id) and ``exp`` (unix seconds).  The secret comes from
``config.jwt_secret`` (env var: ``JWT_SECRET``).  Issuance is here for the
identity front door and tests; this service itself only verifies.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Optional

from fastapi import HTTPException, status

from config.settings import config

logger = logging.getLogger(__name__)


def _sign(raw: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def create_token(
    user_id: str,
    *,
    expires_in: Optional[int] = None,
    secret: Optional[str] = None,
) -> str:
    """Create a signed token for ``user_id``."""
    ttl = config.jwt_expiry_seconds if expires_in is None else expires_in
    raw = json.dumps({"sub": user_id, "exp": int(time.time()) + ttl}).encode()
    return urlsafe_b64encode(raw).decode() + "." + _sign(raw, secret or config.jwt_secret)


def verify_token(token: str, *, secret: Optional[str] = None) -> str:
    """
    Verify ``token`` and return the user id it was issued for.

    Raises ``HTTPException(401)`` on a malformed, forged or expired token.
    """
    try:
        body, sig = token.split(".", 1)
        raw = urlsafe_b64decode(body.encode())
        if not hmac.compare_digest(sig, _sign(raw, secret or config.jwt_secret)):
            raise ValueError("bad signature")
        payload = json.loads(raw)
        if payload.get("exp", 0) < time.time():
            raise ValueError("token expired")
        user_id = payload["sub"]
        if not isinstance(user_id, str) or not user_id:
            raise ValueError("missing subject")
        return user_id
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid or expired token",
        ) from None
