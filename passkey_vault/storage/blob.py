"""
Blob Storage — Path-keyed PUT/GET/DELETE backends for the storage service.

Two backends share one small async interface:
- ``MemoryBlobStorage`` keeps blobs in process memory.
- ``HTTPBlobStorage`` talks to a Vercel Blob compatible REST service:
  writes and deletes go to the API endpoint with the bearer credential,
  reads go to the public base URL.

Security Note:
    Never log the blob credential or blob contents.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote

import aiohttp
import orjson

from ..exceptions import ConfigurationError, TransportError
from ..vault.config import StorageConfig

logger = logging.getLogger("passkey_vault.storage")

_API_VERSION = "7"


class BlobStorage(ABC):
    """Interface of a path-keyed blob store."""

    @abstractmethod
    async def put(
        self, path: str, body: bytes, content_type: str = "application/json"
    ) -> None:
        """Write body at path, replacing any existing blob."""

    @abstractmethod
    async def get(self, path: str) -> Optional[bytes]:
        """Return the blob at path, or None when it does not exist."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove the blob at path; removing a missing blob is not an error."""

    async def close(self) -> None:
        pass


class MemoryBlobStorage(BlobStorage):
    """In-process blob store."""

    def __init__(self):
        self.blobs: dict[str, tuple[bytes, str]] = {}

    async def put(
        self, path: str, body: bytes, content_type: str = "application/json"
    ) -> None:
        self.blobs[path] = (body, content_type)

    async def get(self, path: str) -> Optional[bytes]:
        blob = self.blobs.get(path)
        return blob[0] if blob else None

    async def delete(self, path: str) -> None:
        self.blobs.pop(path, None)


class HTTPBlobStorage(BlobStorage):
    """Blob store reached over HTTP.

    Blobs are written at a deterministic path: no random suffix, overwrite
    allowed.

    Args:
        config: Storage configuration carrying the credential and URLs.
        client: Optional shared ``aiohttp.ClientSession``; one is created
            lazily otherwise and released by ``close()``.

    Raises:
        ConfigurationError: If the blob credential or base URL is missing.
    """

    def __init__(
        self,
        config: StorageConfig,
        client: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        if not config.configured:
            raise ConfigurationError("Blob storage is not configured")
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _session(self) -> aiohttp.ClientSession:
        if self._client is None or self._client.closed:
            self._client = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_client = True
        return self._client

    def _auth_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._config.blob_token}",
            "x-api-version": _API_VERSION,
        }

    @staticmethod
    def _quote(path: str) -> str:
        # secret names may carry "?", "#" or spaces
        return quote(path, safe="/")

    def public_url(self, path: str) -> str:
        return self._config.blob_base_url + self._quote(path)

    async def put(
        self, path: str, body: bytes, content_type: str = "application/json"
    ) -> None:
        headers = {
            **self._auth_headers(),
            "x-add-random-suffix": "0",
            "x-allow-overwrite": "1",
            "x-content-type": content_type,
        }
        url = f"{self._config.blob_api_url}/{self._quote(path)}"
        try:
            async with self._session().put(
                url, data=body, headers=headers
            ) as response:
                if response.status >= 400:
                    raise TransportError(
                        f"Blob upload failed with status {response.status}",
                        status=response.status,
                    )
        except aiohttp.ClientError as err:
            raise TransportError(f"Blob upload failed: {err}") from err
        logger.debug("Blob stored: %s", path)

    async def get(self, path: str) -> Optional[bytes]:
        try:
            async with self._session().get(self.public_url(path)) as response:
                if response.status == 404:
                    return None
                if response.status >= 400:
                    raise TransportError(
                        f"Failed to fetch blob: {response.status}",
                        status=response.status,
                    )
                return await response.read()
        except aiohttp.ClientError as err:
            raise TransportError(f"Failed to fetch blob: {err}") from err

    async def delete(self, path: str) -> None:
        url = f"{self._config.blob_api_url}/delete"
        payload = orjson.dumps({"urls": [self.public_url(path)]})
        headers = {**self._auth_headers(), "Content-Type": "application/json"}
        try:
            async with self._session().post(
                url, data=payload, headers=headers
            ) as response:
                if response.status == 404:
                    logger.debug("Blob already absent: %s", path)
                    return
                if response.status >= 400:
                    raise TransportError(
                        f"Blob delete failed with status {response.status}",
                        status=response.status,
                    )
        except aiohttp.ClientError as err:
            raise TransportError(f"Blob delete failed: {err}") from err
        logger.debug("Blob deleted: %s", path)

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None
