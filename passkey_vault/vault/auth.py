"""
RequestAuthenticator — Signed, timestamped authorization for storage requests.

Client side, ``RequestAuthenticator.create_auth_header`` signs the canonical
JSON of ``{method, secretName, timestamp, userId, keyId}`` with the user's
deterministic P-256 key and ships the signature, the public JWK and the
signed fields as a base64url JSON token.

Server side, ``verify_auth_header`` rebuilds the same message from the token
and the request it arrived on, checks the clock-skew window and the ECDSA
signature, and returns the signer's public-key digest. The server never
holds any key able to produce a signature.

Security Note:
    Every verification failure returns ``None``. The reason is logged
    locally and never reported to the caller.
"""
import time
import hashlib
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import orjson
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from .config import DEFAULT_AUTH_SKEW_MS
from .crypto import (
    KeyDeriver,
    b64url_decode,
    b64url_encode,
    jwk_to_public_key,
)
from .models import AuthorizationToken, SignedMessage
from .session import VaultSession

logger = logging.getLogger("passkey_vault.vault")

_COORDINATE_SIZE = 32
_BEARER_PREFIX = "bearer "


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def build_signed_message(
    method: str, secret_name: str, timestamp: int, user_id: str, key_id: str
) -> bytes:
    """Canonical bytes signed by the client and rebuilt by the server."""
    return SignedMessage(
        method=method.upper(),
        secret_name=secret_name,
        timestamp=timestamp,
        user_id=user_id,
        key_id=key_id,
    ).canonical_bytes()


def compute_pub_key_digest(key_id: str, jwk: dict) -> str:
    """Stable, non-identifying digest of a signer's public key.

    SHA-256 over ``keyId.x.y`` (ASCII, dot separated), base64url encoded.
    """
    material = f"{key_id}.{jwk['x']}.{jwk['y']}".encode("utf-8")
    return b64url_encode(hashlib.sha256(material).digest())


class RequestAuthenticator:
    """Builds Authorization tokens for one vault session.

    Args:
        session: Session whose root secret and user id sign the requests.
        clock: Millisecond clock, replaceable for tests.
    """

    def __init__(
        self,
        session: VaultSession,
        clock: Callable[[], int] = now_ms,
    ):
        self._session = session
        self._deriver = KeyDeriver(session)
        self._clock = clock

    def create_auth_header(self, method: str, secret_name: str) -> str:
        """Create the Authorization header value for one request.

        Args:
            method: HTTP verb of the request.
            secret_name: Secret the request addresses.

        Returns:
            base64url-encoded JSON AuthorizationToken.

        Raises:
            KeyDerivationError: If the session has no usable root secret.
        """
        timestamp = self._clock()
        user_id = self._session.user_id
        signing_key = self._deriver.signing_key(user_id)
        message = build_signed_message(
            method, secret_name, timestamp, user_id, signing_key.key_id,
        )
        der = signing_key.private_key.sign(message, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        # IEEE P1363 r||s, the format WebCrypto produces and expects
        signature = (
            r.to_bytes(_COORDINATE_SIZE, "big") + s.to_bytes(_COORDINATE_SIZE, "big")
        )
        token = AuthorizationToken(
            user_id=user_id,
            key_id=signing_key.key_id,
            auth_signature=b64url_encode(signature),
            timestamp=timestamp,
            pub_key=signing_key.public_jwk_json(),
        )
        return b64url_encode(token.to_json())


# ---------------------------------------------------------------------------
# Server-side verification
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AuthResult:
    """Identity established by a verified Authorization token."""

    user_id: str
    key_id: str
    pub_key_digest: str


def parse_auth_header(header: Optional[str]) -> Optional[AuthorizationToken]:
    """Decode an Authorization header value into a token, or None."""
    if not header:
        return None
    header = header.strip()
    if header[:len(_BEARER_PREFIX)].lower() == _BEARER_PREFIX:
        header = header[len(_BEARER_PREFIX):].strip()
    try:
        return AuthorizationToken.model_validate(
            orjson.loads(b64url_decode(header))
        )
    except ValueError as err:
        logger.debug("Rejected malformed authorization header: %s", err)
        return None


def _signature_to_der(signature: bytes) -> bytes:
    if len(signature) == 2 * _COORDINATE_SIZE:
        r = int.from_bytes(signature[:_COORDINATE_SIZE], "big")
        s = int.from_bytes(signature[_COORDINATE_SIZE:], "big")
        return encode_dss_signature(r, s)
    return signature


def verify_auth_header(
    method: str,
    secret_name: str,
    header: Optional[str],
    skew_ms: int = DEFAULT_AUTH_SKEW_MS,
    now: Optional[int] = None,
) -> Optional[AuthResult]:
    """Verify an Authorization header against the request it arrived on.

    Args:
        method: HTTP verb of the incoming request.
        secret_name: Secret name from the request path.
        header: Raw Authorization header value.
        skew_ms: Total tolerated clock skew; the token timestamp must lie
            within ``now ± skew_ms / 2``.
        now: Server time in milliseconds (defaults to the wall clock).

    Returns:
        AuthResult on success, ``None`` on any failure.
    """
    token = parse_auth_header(header)
    if token is None:
        return None

    if now is None:
        now = now_ms()
    half_window = skew_ms / 2
    if not (now - half_window <= token.timestamp <= now + half_window):
        logger.warning(
            "Rejected token outside skew window: user=%s key=%s drift=%dms",
            token.user_id[:8], token.key_id, token.timestamp - now,
        )
        return None

    try:
        jwk = orjson.loads(token.pub_key)
        public_key = jwk_to_public_key(jwk)
        signature = _signature_to_der(b64url_decode(token.auth_signature))
    except ValueError as err:
        logger.warning(
            "Rejected token with malformed key material: user=%s key=%s: %s",
            token.user_id[:8], token.key_id, err,
        )
        return None

    message = build_signed_message(
        method, secret_name, token.timestamp, token.user_id, token.key_id,
    )
    try:
        public_key.verify(signature, message, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        logger.warning(
            "Rejected token with invalid signature: user=%s key=%s",
            token.user_id[:8], token.key_id,
        )
        return None

    return AuthResult(
        user_id=token.user_id,
        key_id=token.key_id,
        pub_key_digest=compute_pub_key_digest(token.key_id, jwk),
    )
