"""
Token encryption — encrypt / decrypt refresh tokens at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
Keys are loaded from ``config.token_encryption_key``
(env var: ``TOKEN_ENCRYPTION_KEY``).  Several comma-separated keys may be
given for rotation: the first one encrypts, all of them are tried on
decrypt.

If no key is configured an ephemeral key is generated (with a startup
warning); tokens encrypted under it cannot be read after a restart.
Generate a key with::

    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from config.settings import config
from connectors.errors import DecryptionFailed

logger = logging.getLogger(__name__)


class TokenCipher:
    """Authenticated symmetric encryption for provider refresh tokens."""

    def __init__(self, keys: Sequence[str | bytes]):
        if not keys:
            raise ValueError("TokenCipher needs at least one key")
        fernets: List[Fernet] = [
            Fernet(k.encode() if isinstance(k, str) else k) for k in keys
        ]
        self._fernet = MultiFernet(fernets)

    @classmethod
    def from_config(cls, raw_keys: Optional[str] = None) -> "TokenCipher":
        raw = config.token_encryption_key if raw_keys is None else raw_keys
        keys = [k.strip() for k in raw.split(",") if k.strip()]
        if not keys:
            logger.warning(
                "TOKEN_ENCRYPTION_KEY not set — using an ephemeral key, linked accounts "
                "will not survive a restart. Generate a key: "
                "python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
            )
            keys = [Fernet.generate_key().decode()]
        cipher = cls(keys)
        logger.info("Token encryption enabled (Fernet, %d key(s))", len(keys))
        return cipher

    def encrypt(self, plaintext: str) -> str:
        """Return the Fernet ciphertext (URL-safe base64)."""
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a token read from storage.

        Raises ``DecryptionFailed`` when the authentication tag does not
        verify (tampered data, or a key that is no longer configured).
        """
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except (InvalidToken, UnicodeError) as exc:
            logger.error("Refresh token decryption failed: %s", type(exc).__name__)
            raise DecryptionFailed() from exc


_default_cipher: Optional[TokenCipher] = None


def get_cipher() -> TokenCipher:
    """Lazy-initialise the process-wide cipher once."""
    global _default_cipher
    if _default_cipher is None:
        _default_cipher = TokenCipher.from_config()
    return _default_cipher
