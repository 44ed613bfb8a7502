"""Encryption of secrets at rest."""

from src.infrastructure.security.crypto import SecretCipher

__all__ = ["SecretCipher"]
