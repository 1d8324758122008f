"""
Tests for request authentication.

Tests cover:
- Token construction and wire format
- Replay window, including the exact ±2.5 minute boundaries
- Signature binding to method and secret name
- Malformed headers, key material and signatures
- Public key digest
"""
import base64
import hashlib

import orjson
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from passkey_vault.vault.auth import (
    RequestAuthenticator,
    build_signed_message,
    compute_pub_key_digest,
    parse_auth_header,
    verify_auth_header,
)
from passkey_vault.vault.crypto import (
    b64url_decode,
    b64url_encode,
    derive_signing_key,
)
from passkey_vault.vault.session import VaultSession

HALF_WINDOW = 150_000


def decode_token(header: str) -> dict:
    return orjson.loads(b64url_decode(header))


def encode_token(token: dict) -> str:
    return b64url_encode(orjson.dumps(token))


@pytest.fixture
def authenticator(session, clock):
    return RequestAuthenticator(session, clock=clock)


class TestCreateAuthHeader:
    """Tests for the client-side token."""

    def test_token_fields(self, authenticator, clock, user_id):
        """Test the token carries exactly the wire fields."""
        token = decode_token(authenticator.create_auth_header("GET", "foo"))
        assert list(token) == [
            "userId", "keyId", "authSignature", "timestamp", "pubKey",
        ]
        assert token["userId"] == user_id
        assert token["timestamp"] == clock.now

    def test_pub_key_is_json_string(self, authenticator, root_secret, user_id):
        """Test pubKey is the JSON of the derived public JWK."""
        token = decode_token(authenticator.create_auth_header("GET", "foo"))
        assert isinstance(token["pubKey"], str)
        jwk = orjson.loads(token["pubKey"])
        assert jwk == derive_signing_key(root_secret, user_id).public_jwk

    def test_signature_is_raw_p1363(self, authenticator):
        """Test the signature is 64 bytes r||s."""
        token = decode_token(authenticator.create_auth_header("GET", "foo"))
        assert len(b64url_decode(token["authSignature"])) == 64

    def test_key_id_stable_across_tokens(self, authenticator, clock):
        """Test the same session always signs with the same key."""
        first = decode_token(authenticator.create_auth_header("GET", "foo"))
        clock.now += 1000
        second = decode_token(authenticator.create_auth_header("POST", "bar"))
        assert first["keyId"] == second["keyId"]
        assert first["pubKey"] == second["pubKey"]

    def test_signed_message_field_order(self, user_id):
        """Test the signed bytes are compact JSON in fixed field order."""
        message = build_signed_message("get", "foo", 1700000000000, user_id, "kid")
        assert message == (
            b'{"method":"GET","secretName":"foo","timestamp":1700000000000,'
            b'"userId":"' + user_id.encode() + b'","keyId":"kid"}'
        )


class TestReplayWindow:
    """Tokens are only valid within now ± skew/2."""

    def test_current_token_accepted(self, authenticator, clock):
        """Test a token stamped now verifies."""
        header = authenticator.create_auth_header("GET", "foo")
        assert verify_auth_header("GET", "foo", header, now=clock.now) is not None

    def test_ten_minutes_old_rejected(self, authenticator, clock):
        """Test a token from ten minutes ago is rejected."""
        header = authenticator.create_auth_header("GET", "foo")
        later = clock.now + 10 * 60 * 1000
        assert verify_auth_header("GET", "foo", header, now=later) is None

    def test_boundary_past_accepted(self, authenticator, clock):
        """Test a token exactly 2.5 minutes old is accepted."""
        header = authenticator.create_auth_header("GET", "foo")
        assert verify_auth_header(
            "GET", "foo", header, now=clock.now + HALF_WINDOW
        ) is not None

    def test_beyond_boundary_past_rejected(self, authenticator, clock):
        """Test a token one millisecond past the window is rejected."""
        header = authenticator.create_auth_header("GET", "foo")
        assert verify_auth_header(
            "GET", "foo", header, now=clock.now + HALF_WINDOW + 1
        ) is None

    def test_boundary_future_accepted(self, authenticator, clock):
        """Test a token exactly 2.5 minutes in the future is accepted."""
        header = authenticator.create_auth_header("GET", "foo")
        assert verify_auth_header(
            "GET", "foo", header, now=clock.now - HALF_WINDOW
        ) is not None

    def test_beyond_boundary_future_rejected(self, authenticator, clock):
        """Test a token further in the future is rejected."""
        header = authenticator.create_auth_header("GET", "foo")
        assert verify_auth_header(
            "GET", "foo", header, now=clock.now - HALF_WINDOW - 1
        ) is None

    def test_custom_skew(self, authenticator, clock):
        """Test the window follows the configured skew."""
        header = authenticator.create_auth_header("GET", "foo")
        assert verify_auth_header(
            "GET", "foo", header, skew_ms=2000, now=clock.now + 1000
        ) is not None
        assert verify_auth_header(
            "GET", "foo", header, skew_ms=2000, now=clock.now + 1001
        ) is None

    def test_wall_clock_default(self, session):
        """Test verification against the real clock accepts a fresh token."""
        header = RequestAuthenticator(session).create_auth_header("GET", "foo")
        assert verify_auth_header("GET", "foo", header) is not None


class TestSignatureBinding:
    """The signature covers method, secret name and every signed field."""

    def test_other_method_rejected(self, authenticator, clock):
        """Test a GET token cannot be replayed as POST."""
        header = authenticator.create_auth_header("GET", "foo")
        assert verify_auth_header("POST", "foo", header, now=clock.now) is None

    def test_other_secret_rejected(self, authenticator, clock):
        """Test a token for 'foo' cannot be used for 'bar'."""
        header = authenticator.create_auth_header("GET", "foo")
        assert verify_auth_header("GET", "bar", header, now=clock.now) is None

    def test_method_case_insensitive(self, authenticator, clock):
        """Test HTTP verbs are compared upper-cased."""
        header = authenticator.create_auth_header("get", "foo")
        assert verify_auth_header("GET", "foo", header, now=clock.now) is not None

    def test_altered_timestamp_rejected(self, authenticator, clock):
        """Test moving the timestamp breaks the signature."""
        token = decode_token(authenticator.create_auth_header("GET", "foo"))
        token["timestamp"] += 1
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is None

    def test_altered_user_id_rejected(self, authenticator, clock):
        """Test claiming another user id breaks the signature."""
        token = decode_token(authenticator.create_auth_header("GET", "foo"))
        token["userId"] = "someone-else"
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is None

    def test_altered_key_id_rejected(self, authenticator, clock):
        """Test changing the key id breaks the signature."""
        token = decode_token(authenticator.create_auth_header("GET", "foo"))
        token["keyId"] = b64url_encode(bytes(16))
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is None

    def test_substituted_public_key_rejected(self, authenticator, clock, root_secret):
        """Test a signature does not verify under another user's key."""
        token = decode_token(authenticator.create_auth_header("GET", "foo"))
        other = derive_signing_key(root_secret, "other-user")
        token["pubKey"] = other.public_jwk_json()
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is None

    def test_other_root_secret_yields_other_digest(self, authenticator, clock, user_id):
        """Test a token signed from another root carries another digest."""
        mine = verify_auth_header(
            "GET", "foo", authenticator.create_auth_header("GET", "foo"),
            now=clock.now,
        )
        forger = RequestAuthenticator(
            VaultSession(b"\x07" * 32, user_id), clock=clock
        )
        theirs = verify_auth_header(
            "GET", "foo", forger.create_auth_header("GET", "foo"), now=clock.now
        )
        assert theirs.user_id == mine.user_id
        assert theirs.pub_key_digest != mine.pub_key_digest

    def test_der_signature_accepted(self, root_secret, user_id, clock):
        """Test a DER-encoded ECDSA signature also verifies."""
        key = derive_signing_key(root_secret, user_id)
        message = build_signed_message("GET", "foo", clock.now, user_id, key.key_id)
        der = key.private_key.sign(message, ec.ECDSA(hashes.SHA256()))
        token = {
            "userId": user_id,
            "keyId": key.key_id,
            "authSignature": b64url_encode(der),
            "timestamp": clock.now,
            "pubKey": key.public_jwk_json(),
        }
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is not None


class TestMalformedHeaders:
    """Malformed input is rejected with None, never an exception."""

    @pytest.fixture
    def token(self, authenticator):
        return decode_token(authenticator.create_auth_header("GET", "foo"))

    @pytest.mark.parametrize("header", [None, "", "   ", "not-base64!", "e30"])
    def test_garbage(self, header, clock):
        """Test empty, undecodable and empty-object headers."""
        assert verify_auth_header("GET", "foo", header, now=clock.now) is None

    def test_not_an_object(self, clock):
        """Test a JSON array is rejected."""
        header = encode_token([1, 2, 3])
        assert verify_auth_header("GET", "foo", header, now=clock.now) is None

    @pytest.mark.parametrize(
        "field", ["userId", "keyId", "authSignature", "timestamp", "pubKey"]
    )
    def test_missing_field(self, token, field, clock):
        """Test every field is required."""
        del token[field]
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is None

    def test_string_timestamp_not_coerced(self, token, clock):
        """Test a numeric string is not accepted as timestamp."""
        token["timestamp"] = str(token["timestamp"])
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is None

    def test_extra_field_rejected(self, token, clock):
        """Test unknown fields are refused."""
        token["admin"] = True
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is None

    def test_pub_key_not_json(self, token, clock):
        """Test an unparseable pubKey is rejected."""
        token["pubKey"] = "{oops"
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is None

    def test_pub_key_wrong_type(self, token, clock):
        """Test a JWK of another key type is rejected."""
        jwk = orjson.loads(token["pubKey"])
        jwk["kty"] = "RSA"
        token["pubKey"] = orjson.dumps(jwk).decode()
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is None

    def test_signature_garbage(self, token, clock):
        """Test a random signature is rejected."""
        token["authSignature"] = b64url_encode(b"\x01" * 64)
        assert verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        ) is None

    def test_bearer_prefix(self, authenticator, clock):
        """Test an optional 'Bearer ' scheme is tolerated."""
        header = "Bearer " + authenticator.create_auth_header("GET", "foo")
        assert verify_auth_header("GET", "foo", header, now=clock.now) is not None

    def test_padded_base64(self, authenticator, clock):
        """Test padded base64url headers decode."""
        raw = b64url_decode(authenticator.create_auth_header("GET", "foo"))
        header = base64.urlsafe_b64encode(raw).decode()
        assert parse_auth_header(header) is not None


class TestPubKeyDigest:
    """Tests for the signer digest."""

    def test_digest_formula(self, authenticator, clock):
        """Test digest is SHA-256 over 'keyId.x.y'."""
        token = decode_token(authenticator.create_auth_header("GET", "foo"))
        result = verify_auth_header(
            "GET", "foo", encode_token(token), now=clock.now
        )
        jwk = orjson.loads(token["pubKey"])
        expected = hashlib.sha256(
            f"{token['keyId']}.{jwk['x']}.{jwk['y']}".encode()
        ).digest()
        assert b64url_decode(result.pub_key_digest) == expected
        assert result.pub_key_digest == compute_pub_key_digest(token["keyId"], jwk)

    def test_digest_stable_across_sessions(self, root_secret, user_id, clock):
        """Test the digest identifies the credential, not the session."""
        digests = set()
        for _ in range(2):
            auth = RequestAuthenticator(VaultSession(root_secret, user_id), clock=clock)
            result = verify_auth_header(
                "GET", "foo", auth.create_auth_header("GET", "foo"), now=clock.now
            )
            digests.add(result.pub_key_digest)
        assert len(digests) == 1

    def test_result_identity(self, authenticator, clock, user_id):
        """Test the verified result carries the claimed user id."""
        result = verify_auth_header(
            "GET", "foo", authenticator.create_auth_header("GET", "foo"),
            now=clock.now,
        )
        assert result.user_id == user_id
        assert result.key_id
