"""Passkey Vault.

Client-side encryption of named secrets with keys derived from a WebAuthn
PRF output, and a storage service that authenticates requests by signature.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    KeyDerivationError,
    SecretNotFoundError,
    DecryptionError,
    AuthorizationError,
    TransportError,
    ConfigurationError,
)
from .vault import (
    VaultSession,
    SecretCodec,
    SecretStore,
    RequestAuthenticator,
    KeyDeriver,
)

__all__ = [
    "__version__",
    "VaultError",
    "KeyDerivationError",
    "SecretNotFoundError",
    "DecryptionError",
    "AuthorizationError",
    "TransportError",
    "ConfigurationError",
    "VaultSession",
    "SecretCodec",
    "SecretStore",
    "RequestAuthenticator",
    "KeyDeriver",
]
