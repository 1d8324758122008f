"""Passkey Vault — Secrets encrypted under keys derived from a passkey.

Security Note (Threat Model):
    The root secret (WebAuthn PRF output) and decrypted values live in
    process memory during the session. A memory dump of the client process
    could expose them. The storage service only ever sees ciphertext, public
    keys and signatures; it cannot decrypt records nor forge requests.
"""

from .session import VaultSession, generate_user_id
from .crypto import KeyDeriver, PRF_EVAL_INPUT
from .codec import SecretCodec
from .auth import RequestAuthenticator, verify_auth_header
from .secret_store import SecretStore
from .config import ClientConfig, StorageConfig

__all__ = [
    "VaultSession",
    "generate_user_id",
    "KeyDeriver",
    "PRF_EVAL_INPUT",
    "SecretCodec",
    "RequestAuthenticator",
    "verify_auth_header",
    "SecretStore",
    "ClientConfig",
    "StorageConfig",
]
