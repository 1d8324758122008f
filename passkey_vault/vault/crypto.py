"""
Vault Crypto Core — Key derivation from a WebAuthn PRF output.

One root secret is expanded into independent keys with domain separation:
- Encryption: HKDF-SHA256(root, salt, info=base_message) → AES-256-GCM key
- Signing: HMAC-SHA384(root, "auth-key-v1:" + user_id) → 32B P-256 scalar | 16B key id

Both derivations are pure functions of their inputs so a record saved on one
device decrypts on any other device holding the same root secret, and the
signing key (and its public JWK) is stable across sessions.

Security Note:
    Never log the root secret, derived keys or private scalars.
    Key ids and public JWK coordinates are not secret.
"""
import os
import base64
import binascii
import hmac
import hashlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

import orjson
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..exceptions import KeyDerivationError

if TYPE_CHECKING:
    from .session import VaultSession

logger = logging.getLogger("passkey_vault.vault")

SALT_SIZE = 12  # 96-bit HKDF salt, stored with each record
NONCE_SIZE = 12  # 96-bit GCM nonce
KEY_LENGTH = 32  # AES-256
SCALAR_SIZE = 32  # P-256 private scalar
KEY_ID_SIZE = 16

SIGNING_KEY_CONTEXT = "auth-key-v1:"

# PRF evaluation input callers pass to the WebAuthn assertion to obtain
# the root secret.
PRF_EVAL_INPUT = b"voice-assistant-secret"


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------

def b64url_encode(data: bytes) -> str:
    """Unpadded base64url, as produced by WebCrypto JWK export."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
    """Decode base64url with or without padding.

    Raises:
        ValueError: If the input is not valid base64url.
    """
    if not isinstance(data, str):
        raise ValueError("base64url input must be a string")
    padding = "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode((data + padding).encode("ascii"))
    except (UnicodeEncodeError, binascii.Error) as err:
        raise ValueError(f"Invalid base64url data: {err}") from err


def random_bytes(size: int) -> bytes:
    """Bytes from the operating system CSPRNG."""
    return os.urandom(size)


def _check_root_secret(root_secret: bytes) -> bytes:
    if root_secret is None or len(root_secret) == 0:
        raise KeyDerivationError("Root secret is missing or empty")
    return bytes(root_secret)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_encryption_key(
    root_secret: bytes, salt: bytes, base_message: str
) -> bytes:
    """Derive the 256-bit AES-GCM key for one secret record.

    Args:
        root_secret: PRF output used as HKDF input key material.
        salt: Per-record random salt.
        base_message: Application-specific HKDF info string.

    Returns:
        32-byte derived key.

    Raises:
        KeyDerivationError: If root_secret is missing or empty.
    """
    ikm = _check_root_secret(root_secret)
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        info=base_message.encode("utf-8"),
    )
    return hkdf.derive(ikm)


@dataclass(frozen=True)
class SigningKey:
    """Deterministic per-user P-256 signing key."""

    private_key: ec.EllipticCurvePrivateKey = field(repr=False)
    key_id: str
    public_jwk: dict

    def public_jwk_json(self) -> str:
        return orjson.dumps(self.public_jwk).decode("utf-8")


def public_key_to_jwk(public_key: ec.EllipticCurvePublicKey) -> dict:
    """Export a P-256 public key as a verify-only JWK."""
    numbers = public_key.public_numbers()
    return {
        "kty": "EC",
        "crv": "P-256",
        "x": b64url_encode(numbers.x.to_bytes(32, "big")),
        "y": b64url_encode(numbers.y.to_bytes(32, "big")),
        "key_ops": ["verify"],
    }


def jwk_to_public_key(jwk: dict) -> ec.EllipticCurvePublicKey:
    """Load a P-256 public key from JWK members.

    Raises:
        ValueError: If the JWK is not a valid P-256 public key.
    """
    if not isinstance(jwk, dict):
        raise ValueError("JWK must be an object")
    if jwk.get("kty") != "EC" or jwk.get("crv") != "P-256":
        raise ValueError("JWK is not an EC P-256 key")
    if "d" in jwk:
        raise ValueError("JWK must not carry a private component")
    x = b64url_decode(jwk.get("x"))
    y = b64url_decode(jwk.get("y"))
    if len(x) != 32 or len(y) != 32:
        raise ValueError("JWK coordinates must be 32 bytes")
    numbers = ec.EllipticCurvePublicNumbers(
        int.from_bytes(x, "big"), int.from_bytes(y, "big"), ec.SECP256R1()
    )
    # raises ValueError when the point is not on the curve
    return numbers.public_key()


def derive_signing_key(root_secret: bytes, user_id: str) -> SigningKey:
    """Derive the deterministic request-signing key for a user.

    HMAC-SHA384(root_secret, "auth-key-v1:" + user_id) yields 48 bytes:
    the first 32 are the P-256 private scalar, the last 16 the key id.

    Args:
        root_secret: PRF output used as the HMAC key.
        user_id: User handle the key is bound to.

    Returns:
        SigningKey with private key, base64url key id and public JWK.

    Raises:
        KeyDerivationError: If root_secret is empty or the scalar is invalid.
    """
    key = _check_root_secret(root_secret)
    message = (SIGNING_KEY_CONTEXT + user_id).encode("utf-8")
    digest = hmac.new(key, message, hashlib.sha384).digest()
    scalar = digest[:SCALAR_SIZE]
    key_id = digest[SCALAR_SIZE:SCALAR_SIZE + KEY_ID_SIZE]
    if len(scalar) != SCALAR_SIZE:
        raise KeyDerivationError(
            f"Private scalar must be {SCALAR_SIZE} bytes, got {len(scalar)}"
        )
    try:
        private_key = ec.derive_private_key(
            int.from_bytes(scalar, "big"), ec.SECP256R1()
        )
    except ValueError as err:
        # scalar is zero or not below the curve order
        raise KeyDerivationError("Derived scalar is not a valid P-256 key") from err
    signing_key = SigningKey(
        private_key=private_key,
        key_id=b64url_encode(key_id),
        public_jwk=public_key_to_jwk(private_key.public_key()),
    )
    logger.debug(
        "Derived signing key id=%s for user=%s", signing_key.key_id, user_id[:8]
    )
    return signing_key


class KeyDeriver:
    """Expands the root secret of a session into purpose-specific keys.

    Holds nothing but a reference to the session; every call is independent
    and safe to run concurrently. Once the session is closed every
    derivation raises KeyDerivationError.
    """

    def __init__(self, session: "VaultSession"):
        self._session = session

    @property
    def session(self) -> "VaultSession":
        return self._session

    def encryption_key(self, salt: bytes) -> bytes:
        return derive_encryption_key(
            self._session.root_secret, salt, self._session.base_message
        )

    def signing_key(self, user_id: Optional[str] = None) -> SigningKey:
        return derive_signing_key(
            self._session.root_secret, user_id or self._session.user_id
        )
