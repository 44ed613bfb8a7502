"""
Symmetric encryption for secrets stored at rest.

Session cookies and OAuth tokens are written through ``SecretCipher``
so the database never holds them in clear text.

Example:
    >>> cipher = SecretCipher(SecretCipher.generate_key())
    >>> token = cipher.encrypt("secret")
    >>> cipher.decrypt(token)
    'secret'
"""

from __future__ import annotations

import os

from cryptography.fernet import Fernet, InvalidToken

from src.utils.exceptions import ConfigValidationError, DecryptionError
from src.utils.logger import get_logger

logger = get_logger(__name__)


class SecretCipher:
    """Fernet (AES-128-CBC + HMAC) wrapper with domain exceptions."""

    def __init__(self, key: str | bytes):
        if isinstance(key, str):
            key = key.encode("ascii")
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as e:
            raise ConfigValidationError(
                "Encryption key must be 32 url-safe base64-encoded bytes",
                field="security.encryption_key",
            ) from e

    @classmethod
    def from_env(cls, env_var: str) -> "SecretCipher":
        """Build a cipher from the key stored in an environment variable."""
        key = os.environ.get(env_var)
        if not key:
            raise ConfigValidationError(
                f"Environment variable {env_var} is not set",
                field="security.encryption_key_env",
                value=env_var,
            )
        return cls(key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a value produced by ``encrypt``.

        Raises:
            DecryptionError: If the value was tampered with or encrypted
                under a different key.
        """
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, ValueError, UnicodeError) as e:
            logger.warning("Stored secret could not be decrypted")
            raise DecryptionError() from e
