"""
SecretStore — Client-side persistence of encrypted secret records.

Provides the public API of the client vault:
- ``save(name, plaintext)`` — encrypt and persist a secret (overwrites)
- ``get(name)`` — load and decrypt a secret
- ``delete(name)`` — remove a secret, no error if absent
- ``exists(name)`` — check whether a record is stored

Records live either in local storage (a key-value client, in-memory mapping
or a directory of files, all keyed ``{name}-enc``) or, in cloud mode, behind
the storage service API with every request signed by RequestAuthenticator.

Security Note:
    Only ciphertext records ever leave this module. Never log plaintext or
    ciphertext values; only secret names and operations.
"""
import asyncio
import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

import aiohttp
import orjson

from ..exceptions import (
    AuthorizationError,
    ConfigurationError,
    DecryptionError,
    SecretNotFoundError,
    TransportError,
)
from .auth import RequestAuthenticator
from .codec import SecretCodec
from .models import StoredSecretRecord, validate_secret_name
from .session import VaultSession

logger = logging.getLogger("passkey_vault.vault")


def _parse_record(raw: Any, name: str) -> StoredSecretRecord:
    """Validate a stored record; a corrupted one is a decryption failure."""
    try:
        if isinstance(raw, (bytes, str)):
            return StoredSecretRecord.from_json(raw)
        return StoredSecretRecord.model_validate(raw)
    except ValueError as err:
        logger.error("Corrupted record for secret=%s", name)
        raise DecryptionError() from err


# ---------------------------------------------------------------------------
# Local storage
# ---------------------------------------------------------------------------

class MemoryKeyValue:
    """Minimal async key-value client kept in process memory."""

    def __init__(self):
        self._data: dict[str, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class LocalRecordStorage:
    """Records in a local key-value store under ``{name}-enc``.

    Args:
        client: Async client exposing ``get``/``set``/``delete`` (a Redis
            client qualifies). Defaults to an in-memory store.
    """

    def __init__(self, client: Any = None):
        self._client = client if client is not None else MemoryKeyValue()

    @staticmethod
    def storage_key(name: str) -> str:
        return f"{name}-enc"

    async def load(self, name: str) -> Optional[StoredSecretRecord]:
        raw = await self._client.get(self.storage_key(name))
        if raw is None:
            return None
        return _parse_record(raw, name)

    async def store(self, record: StoredSecretRecord) -> None:
        await self._client.set(self.storage_key(record.name), record.to_json())

    async def remove(self, name: str) -> None:
        await self._client.delete(self.storage_key(name))


class FileRecordStorage(LocalRecordStorage):
    """Records as JSON files named ``{name}-enc`` inside a directory."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._path.mkdir(parents=True, exist_ok=True)

    def _file(self, name: str) -> Path:
        return self._path / self.storage_key(name)

    def _read(self, name: str) -> Optional[bytes]:
        try:
            return self._file(name).read_bytes()
        except FileNotFoundError:
            return None

    def _write(self, name: str, data: bytes) -> None:
        file = self._file(name)
        tmp = file.with_name(file.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(file)

    async def load(self, name: str) -> Optional[StoredSecretRecord]:
        raw = await asyncio.to_thread(self._read, name)
        if raw is None:
            return None
        return _parse_record(raw, name)

    async def store(self, record: StoredSecretRecord) -> None:
        await asyncio.to_thread(self._write, record.name, record.to_json())

    async def remove(self, name: str) -> None:
        await asyncio.to_thread(self._file(name).unlink, missing_ok=True)


# ---------------------------------------------------------------------------
# Cloud storage
# ---------------------------------------------------------------------------

class CloudRecordStorage:
    """Records kept by the remote storage service.

    Args:
        api_url: Base URL of the storage service (without ``/api``).
        authenticator: Signs every request for the current session.
        timeout: Total request timeout in seconds.
        client: Optional shared ``aiohttp.ClientSession``.
    """

    def __init__(
        self,
        api_url: str,
        authenticator: RequestAuthenticator,
        timeout: float = 30.0,
        client: Optional[aiohttp.ClientSession] = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._auth = authenticator
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._client = client

    def _url(self, name: str) -> str:
        return f"{self._api_url}/api/secrets/{quote(name, safe='')}"

    async def _request(
        self, method: str, name: str, payload: Optional[dict] = None
    ) -> tuple[int, Any]:
        headers = {"Authorization": self._auth.create_auth_header(method, name)}
        body = None
        if payload is not None:
            headers["Content-Type"] = "application/json"
            body = orjson.dumps(payload)
        try:
            if self._client is not None:
                return await self._send(self._client, method, name, headers, body)
            async with aiohttp.ClientSession(timeout=self._timeout) as client:
                return await self._send(client, method, name, headers, body)
        except aiohttp.ClientError as err:
            raise TransportError(
                f"Storage request {method} failed: {err}"
            ) from err

    async def _send(
        self,
        client: aiohttp.ClientSession,
        method: str,
        name: str,
        headers: dict,
        body: Optional[bytes],
    ) -> tuple[int, Any]:
        async with client.request(
            method, self._url(name), headers=headers, data=body,
            timeout=self._timeout,
        ) as response:
            raw = await response.read()
            try:
                data = orjson.loads(raw) if raw else None
            except orjson.JSONDecodeError:
                data = None
            return response.status, data

    @staticmethod
    def _raise_for_status(method: str, status: int) -> None:
        if status == 401:
            raise AuthorizationError()
        if status == 503:
            raise ConfigurationError("Storage service is not configured")
        raise TransportError(
            f"Storage request {method} failed with status {status}",
            status=status,
        )

    async def load(self, name: str) -> Optional[StoredSecretRecord]:
        status, data = await self._request("GET", name)
        if status == 404:
            return None
        if status != 200:
            self._raise_for_status("GET", status)
        if not isinstance(data, dict) or "data" not in data:
            logger.error("Storage service returned no record for secret=%s", name)
            raise DecryptionError()
        return _parse_record(data["data"], name)

    async def store(self, record: StoredSecretRecord) -> None:
        status, _ = await self._request(
            "POST", record.name, {"data": record.to_wire()},
        )
        if status != 200:
            self._raise_for_status("POST", status)

    async def remove(self, name: str) -> None:
        status, _ = await self._request("DELETE", name)
        if status not in (200, 404):
            self._raise_for_status("DELETE", status)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class SecretStore:
    """Encrypted secret storage for one vault session.

    Concurrent ``save``/``delete`` calls for the same name are not
    serialized: the last writer wins.
    """

    def __init__(self, session: VaultSession, storage: Any = None):
        self._session = session
        self._codec = SecretCodec(session)
        self._storage = storage if storage is not None else LocalRecordStorage()

    @property
    def storage(self) -> Any:
        return self._storage

    @classmethod
    def from_config(
        cls,
        session: VaultSession,
        client: Optional[aiohttp.ClientSession] = None,
    ) -> "SecretStore":
        """Pick cloud, file or in-memory storage from the session config."""
        config = session.config
        if config.cloud_enabled:
            storage = CloudRecordStorage(
                config.api_url,
                RequestAuthenticator(session),
                timeout=config.request_timeout,
                client=client,
            )
            logger.info("Secret store in cloud mode: %s", config.api_url)
        elif config.local_path:
            storage = FileRecordStorage(config.local_path)
            logger.info("Secret store in local mode: %s", config.local_path)
        else:
            storage = LocalRecordStorage()
            logger.info("Secret store in memory mode")
        return cls(session, storage)

    async def save(self, name: str, plaintext: str) -> None:
        """Encrypt and persist a secret, replacing any previous value.

        Raises:
            ValueError: If name is invalid.
            KeyDerivationError: If the session has no usable root secret.
        """
        validate_secret_name(name)
        record = self._codec.encrypt(name, plaintext)
        await self._storage.store(record)
        logger.debug("Vault save: user=%s secret=%s", self._session.user_id[:8], name)

    async def get(self, name: str) -> str:
        """Load and decrypt a secret.

        Raises:
            SecretNotFoundError: If nothing is stored under name.
            DecryptionError: If the record is corrupted or the key is wrong.
        """
        validate_secret_name(name)
        record = await self._storage.load(name)
        if record is None:
            raise SecretNotFoundError(name)
        return self._codec.decrypt(name, record)

    async def delete(self, name: str) -> None:
        """Remove a secret. Deleting a missing secret is not an error."""
        validate_secret_name(name)
        await self._storage.remove(name)
        logger.debug("Vault delete: user=%s secret=%s", self._session.user_id[:8], name)

    async def exists(self, name: str) -> bool:
        validate_secret_name(name)
        return await self._storage.load(name) is not None
