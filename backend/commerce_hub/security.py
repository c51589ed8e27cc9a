"""Security utilities for JWTs and platform credential encryption.

WHAT:
    - `TokenCipher`: Fernet wrapper that encrypts every platform credential
      (API keys, secrets, OAuth access/refresh tokens) before it is stored.
    - JWT verification for the caller's session (issued by the external
      identity provider, verified here with the shared HS256 secret).

WHY:
    - Credentials never land in the database or logs in plaintext.
    - The key is held by one cipher object built from settings, so tests
      and workers can construct their own instead of relying on import-time
      module globals.

REFERENCES:
    - commerce_hub/services/token_service.py (decrypt/refresh/store)
    - commerce_hub/deps.py (get_current_organization_id)
"""

import base64
import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt

from commerce_hub.config import get_settings

logger = logging.getLogger(__name__)


class TokenCipher:
    """Symmetric encryption for stored platform credentials."""

    def __init__(self, key: str):
        if not key:
            raise RuntimeError(
                "TOKEN_ENCRYPTION_KEY is not set. Generate a 32-byte Fernet key and export it "
                "or add it to backend/.env (see backend/generate_keys.py)."
            )
        try:
            # Validate key length by decoding without storing plaintext material.
            base64.urlsafe_b64decode(key.encode("utf-8"))
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as exc:
            raise RuntimeError(
                "TOKEN_ENCRYPTION_KEY must be a URL-safe base64-encoded 32-byte string. "
                "Generate with: python backend/generate_keys.py"
            ) from exc

    def encrypt(self, plaintext: str, *, context: str) -> str:
        """Encrypt a credential before persisting.

        Args:
            plaintext: Raw secret (e.g., Shopify access token).
            context:   Friendly label for logs (platform/organization).

        Returns:
            URL-safe base64 ciphertext suitable for DB storage.
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty secret.")

        ciphertext = self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")
        logger.info("[TOKEN_ENCRYPT] Secret encrypted for %s (length=%d)", context, len(plaintext))
        return ciphertext

    def decrypt(self, ciphertext: str, *, context: str) -> str:
        """Decrypt a stored credential for an API call.

        Raises:
            ValueError: If the stored value cannot be decrypted.
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty secret.")

        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            logger.error("[TOKEN_DECRYPT] Invalid ciphertext for %s", context)
            raise ValueError("Unable to decrypt stored token.") from exc

        logger.debug("[TOKEN_DECRYPT] Secret decrypted for %s (length=%d)", context, len(plaintext))
        return plaintext

    def encrypt_optional(self, plaintext: Optional[str], *, context: str) -> Optional[str]:
        """Encrypt when present, pass None through."""
        if not plaintext:
            return None
        return self.encrypt(plaintext, context=context)


@lru_cache()
def get_cipher() -> TokenCipher:
    """Process-wide cipher built from TOKEN_ENCRYPTION_KEY."""
    return TokenCipher(get_settings().TOKEN_ENCRYPTION_KEY)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a session JWT, returning its payload.

    Raises:
        RuntimeError: If JWT_SECRET is not configured.
        jose.JWTError: On bad signature or expiry.
    """
    settings = get_settings()
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET is not set. Ensure backend/.env is created or env var is exported.")
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        logger.info("[AUTH] Rejected session token")
        raise
