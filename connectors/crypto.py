"""
PKCE and state-token generation.

All values are URL-safe base64 without padding so they can travel in query
strings untouched.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

STATE_BYTES = 24
CODE_VERIFIER_BYTES = 32


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def new_state(n_bytes: int = STATE_BYTES) -> str:
    """Opaque, unguessable value correlating an authorize request with its callback."""
    return _b64url(secrets.token_bytes(n_bytes))


def new_code_verifier(n_bytes: int = CODE_VERIFIER_BYTES) -> str:
    return _b64url(secrets.token_bytes(n_bytes))


def code_challenge(verifier: str) -> str:
    """S256 challenge: SHA-256 of the ASCII verifier, base64url without padding."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())
