"""Passkey Vault exceptions.

Messages are deliberately generic where they could be shown to a user:
decryption and authorization failures never say which check failed.
"""
from typing import Optional


class VaultError(Exception):
    """Base class for all Passkey Vault errors."""


class KeyDerivationError(VaultError):
    """Root secret missing or malformed, or derived key material invalid.

    Not retryable without a new authentication ceremony.
    """


class SecretNotFoundError(VaultError):
    """No record exists for the requested secret name."""

    def __init__(self, name: Optional[str] = None):
        self.name = name
        super().__init__("Secret not found")


class DecryptionError(VaultError):
    """Wrong key, tampered ciphertext or corrupted record."""

    def __init__(self, message: str = "Failed to decrypt secret"):
        super().__init__(message)


class AuthorizationError(VaultError):
    """Request could not be authorized."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class TransportError(VaultError):
    """Network or storage backend failure."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class ConfigurationError(VaultError):
    """Storage backend or client is not configured."""
