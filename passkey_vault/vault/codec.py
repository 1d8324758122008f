"""
SecretCodec — Authenticated encryption of named secrets.

Each record gets a fresh random salt and nonce:
    key = HKDF-SHA256(root_secret, salt, base_message)
    ciphertext = AES-256-GCM(key, nonce, plaintext, aad=name)

Because the key itself changes with every salt, drawing the 96-bit nonce at
random carries no nonce-reuse risk under a single key. Binding the name as
associated data means a record copied under another name fails to decrypt.

Security Note:
    Never log plaintext or ciphertext values. Decryption failures surface a
    single generic error whatever the cause.
"""
import time
import uuid
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import DecryptionError
from .crypto import (
    KeyDeriver,
    NONCE_SIZE,
    SALT_SIZE,
    b64url_decode,
    b64url_encode,
    random_bytes,
)
from .models import StoredSecretRecord, validate_secret_name
from .session import VaultSession

logger = logging.getLogger("passkey_vault.vault")

_GCM_TAG_SIZE = 16


class SecretCodec:
    """Encrypts and decrypts secret payloads for one vault session."""

    def __init__(self, session: VaultSession):
        self._deriver = KeyDeriver(session)

    def encrypt(self, name: str, plaintext: str) -> StoredSecretRecord:
        """Encrypt a secret into a self-contained record.

        Args:
            name: Logical secret name, bound as associated data.
            plaintext: Secret value.

        Returns:
            StoredSecretRecord carrying ciphertext, salt and nonce.

        Raises:
            KeyDerivationError: If the session has no usable root secret.
            ValueError: If name is invalid.
        """
        validate_secret_name(name)
        salt = random_bytes(SALT_SIZE)
        nonce = random_bytes(NONCE_SIZE)
        cipher = AESGCM(self._deriver.encryption_key(salt))
        ct = cipher.encrypt(
            nonce, plaintext.encode("utf-8"), name.encode("utf-8"),
        )
        return StoredSecretRecord(
            id=str(uuid.uuid4()),
            name=name,
            encrypted_data=b64url_encode(ct),
            salt=b64url_encode(salt),
            nonce=b64url_encode(nonce),
            timestamp=int(time.time() * 1000),
        )

    def decrypt(self, name: str, record: StoredSecretRecord) -> str:
        """Decrypt a record that was saved under ``name``.

        Raises:
            KeyDerivationError: If the session has no usable root secret.
            DecryptionError: On wrong key, tampering or a malformed record.
        """
        try:
            salt = b64url_decode(record.salt)
            nonce = b64url_decode(record.nonce)
            ct = b64url_decode(record.encrypted_data)
        except ValueError as err:
            logger.debug("Malformed record encoding for secret=%s", name)
            raise DecryptionError() from err
        if len(salt) != SALT_SIZE or len(nonce) != NONCE_SIZE:
            logger.debug("Malformed salt/nonce size for secret=%s", name)
            raise DecryptionError()
        if len(ct) < _GCM_TAG_SIZE:
            logger.debug("Ciphertext too short for secret=%s", name)
            raise DecryptionError()
        cipher = AESGCM(self._deriver.encryption_key(salt))
        try:
            plaintext = cipher.decrypt(nonce, ct, name.encode("utf-8"))
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError) as err:
            logger.debug("Authentication failed decrypting secret=%s", name)
            raise DecryptionError() from err
