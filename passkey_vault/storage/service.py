"""
StorageService — Verification and persistence boundary for secret blobs.

Each request moves through:
    Received → HeaderParsed → TimestampValidated → SignatureVerified
             → (Store | Retrieve | Delete) → Responded

Any failed validation stops before persistence. Blobs live at
``secrets/{userId}/{secretName}.json`` and carry the client's encrypted
record untouched together with the signer's public-key digest.

Trust on first use:
    The first write to a path records the writer's pubKeyDigest. Later
    writes from a different key are logged; they are rejected only when
    ``enforce_key_binding`` is enabled.
"""
import logging
from typing import Any, Callable, Optional

from ..exceptions import (
    AuthorizationError,
    ConfigurationError,
    SecretNotFoundError,
    TransportError,
)
from ..vault.auth import AuthResult, now_ms, verify_auth_header
from ..vault.config import StorageConfig
from ..vault.models import CloudStoredSecret, validate_secret_name
from .blob import BlobStorage

logger = logging.getLogger("passkey_vault.storage")


def blob_path(user_id: str, secret_name: str) -> str:
    return f"secrets/{user_id}/{secret_name}.json"


class StorageService:
    """Authorizes requests and stores encrypted records per user.

    Args:
        config: Storage configuration.
        blobs: Blob backend; ``None`` means storage is unconfigured and
            every operation raises ConfigurationError.
        clock: Millisecond clock used for the skew window.
    """

    def __init__(
        self,
        config: StorageConfig,
        blobs: Optional[BlobStorage] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._config = config
        self._blobs = blobs
        self._clock = clock

    @property
    def configured(self) -> bool:
        return self._blobs is not None

    def _require_storage(self) -> BlobStorage:
        if self._blobs is None:
            logger.error(
                "Blob storage is not configured: BLOB_BASE_URL and "
                "BLOB_READ_WRITE_TOKEN must be set"
            )
            raise ConfigurationError("Blob storage is not configured")
        return self._blobs

    def authorize(
        self, method: str, secret_name: str, header: Optional[str]
    ) -> AuthResult:
        """Verify the Authorization header of a request.

        Raises:
            ConfigurationError: If storage is not configured.
            AuthorizationError: On any verification failure.
        """
        self._require_storage()
        result = verify_auth_header(
            method,
            secret_name,
            header,
            skew_ms=self._config.auth_skew_ms,
            now=self._clock(),
        )
        if result is None:
            raise AuthorizationError()
        try:
            validate_secret_name(result.user_id)
        except ValueError as err:
            logger.warning("Rejected token with unsafe user id")
            raise AuthorizationError() from err
        return result

    async def _load(self, path: str) -> Optional[CloudStoredSecret]:
        raw = await self._require_storage().get(path)
        if raw is None:
            return None
        try:
            return CloudStoredSecret.from_json(raw)
        except ValueError as err:
            logger.error("Corrupted blob at %s", path)
            raise TransportError("Stored blob is corrupted") from err

    def _check_key_binding(
        self, path: str, existing: Optional[CloudStoredSecret], pub_key_digest: str
    ) -> None:
        if existing is None or existing.pub_key_digest == pub_key_digest:
            return
        logger.warning(
            "Signing key differs from first writer at %s (enforced=%s)",
            path, self._config.enforce_key_binding,
        )
        if self._config.enforce_key_binding:
            raise AuthorizationError()

    async def store(
        self,
        user_id: str,
        secret_name: str,
        record: dict[str, Any],
        pub_key_digest: str,
    ) -> CloudStoredSecret:
        """Write (or overwrite) the blob for a secret.

        Raises:
            ConfigurationError: If storage is not configured.
            AuthorizationError: If key binding is enforced and violated.
            TransportError: On backend failure.
        """
        blobs = self._require_storage()
        path = blob_path(user_id, secret_name)
        self._check_key_binding(path, await self._load(path), pub_key_digest)
        blob = CloudStoredSecret(
            name=secret_name,
            data=record,
            pub_key_digest=pub_key_digest,
            timestamp=self._clock(),
        )
        await blobs.put(path, blob.to_json(), content_type="application/json")
        logger.info("Stored secret=%s for user=%s", secret_name, user_id[:8])
        return blob

    async def retrieve(self, user_id: str, secret_name: str) -> dict[str, Any]:
        """Return the client record stored for a secret.

        Raises:
            SecretNotFoundError: If no blob exists at the path.
        """
        path = blob_path(user_id, secret_name)
        blob = await self._load(path)
        if blob is None:
            raise SecretNotFoundError(secret_name)
        return blob.data

    async def delete(
        self, user_id: str, secret_name: str, pub_key_digest: str
    ) -> bool:
        """Delete the blob for a secret.

        Returns:
            True if a blob was removed, False if it was already absent.
        """
        blobs = self._require_storage()
        path = blob_path(user_id, secret_name)
        existing = await self._load(path)
        if existing is None:
            return False
        self._check_key_binding(path, existing, pub_key_digest)
        await blobs.delete(path)
        logger.info("Deleted secret=%s for user=%s", secret_name, user_id[:8])
        return True
