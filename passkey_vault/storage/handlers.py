"""
HTTP surface of the storage service (aiohttp).

    POST   /api/secrets/{secret_name}   body {"data": StoredSecretRecord}
    GET    /api/secrets/{secret_name}
    DELETE /api/secrets/{secret_name}

Every request carries ``Authorization: <token>``. Failures collapse to a
fixed message per status; the reason only reaches the server log.
"""
import logging
from typing import Any, Optional

import orjson
from aiohttp import web

from ..exceptions import (
    AuthorizationError,
    ConfigurationError,
    SecretNotFoundError,
)
from ..vault.config import StorageConfig
from ..vault.models import validate_secret_name
from .blob import BlobStorage, HTTPBlobStorage
from .service import StorageService

logger = logging.getLogger("passkey_vault.storage")

STORAGE_SERVICE = web.AppKey("storage_service", StorageService)
BLOB_STORAGE = web.AppKey("blob_storage", BlobStorage)


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def json_response(data: dict, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def error_response(message: str, status: int) -> web.Response:
    return json_response({"error": message}, status=status)


class SecretsView(web.View):
    """Store, retrieve and delete one user's encrypted secret."""

    @property
    def service(self) -> StorageService:
        return self.request.app[STORAGE_SERVICE]

    def _authorize(self, secret_name: str):
        return self.service.authorize(
            self.request.method,
            secret_name,
            self.request.headers.get("Authorization"),
        )

    def _secret_name(self) -> Optional[str]:
        try:
            return validate_secret_name(
                self.request.match_info.get("secret_name", "")
            )
        except ValueError:
            return None

    async def _dispatch(self, operation) -> web.Response:
        if not self.service.configured:
            logger.error(
                "Blob storage is not configured: environment variables "
                "BLOB_BASE_URL and BLOB_READ_WRITE_TOKEN must be set"
            )
            return error_response("Blob storage is not configured", 503)
        secret_name = self._secret_name()
        if secret_name is None:
            return error_response("Secret name is required", 400)
        try:
            auth = self._authorize(secret_name)
            return await operation(auth, secret_name)
        except AuthorizationError:
            return error_response("Invalid authorization header", 401)
        except ConfigurationError:
            return error_response("Blob storage is not configured", 503)
        except Exception:
            logger.exception(
                "Error handling %s for secret=%s", self.request.method, secret_name
            )
            return error_response("Failed to process secret request", 500)

    async def post(self) -> web.Response:
        return await self._dispatch(self._store)

    async def get(self) -> web.Response:
        return await self._dispatch(self._retrieve)

    async def delete(self) -> web.Response:
        return await self._dispatch(self._delete)

    async def _store(self, auth, secret_name: str) -> web.Response:
        try:
            body = orjson.loads(await self.request.read())
        except orjson.JSONDecodeError:
            return error_response("Invalid request body", 400)
        data = body.get("data") if isinstance(body, dict) else None
        if not data or not isinstance(data, dict):
            return error_response("Missing data", 400)
        blob = await self.service.store(
            auth.user_id, secret_name, data, auth.pub_key_digest,
        )
        return json_response({"success": True, "timestamp": blob.timestamp})

    async def _retrieve(self, auth, secret_name: str) -> web.Response:
        try:
            data = await self.service.retrieve(auth.user_id, secret_name)
        except SecretNotFoundError:
            return error_response("Secret not found", 404)
        return json_response({"success": True, "data": data})

    async def _delete(self, auth, secret_name: str) -> web.Response:
        removed = await self.service.delete(
            auth.user_id, secret_name, auth.pub_key_digest,
        )
        message = (
            "Secret deleted successfully" if removed
            else "Secret was already deleted or did not exist"
        )
        return json_response({"success": True, "message": message})


async def _close_blob_storage(app: web.Application) -> None:
    blobs = app.get(BLOB_STORAGE)
    if blobs is not None:
        await blobs.close()


def create_app(
    config: Optional[StorageConfig] = None,
    blob_storage: Optional[BlobStorage] = None,
) -> web.Application:
    """Build the storage service application.

    Args:
        config: Storage configuration; read from the environment if omitted.
        blob_storage: Blob backend; an HTTP backend is built from config
            when omitted and config is complete.
    """
    config = config or StorageConfig.from_env()
    if blob_storage is None and config.configured:
        blob_storage = HTTPBlobStorage(config)
    app = web.Application()
    app[STORAGE_SERVICE] = StorageService(config, blob_storage)
    if blob_storage is not None:
        app[BLOB_STORAGE] = blob_storage
    app.router.add_view("/api/secrets/{secret_name}", SecretsView)
    app.on_cleanup.append(_close_blob_storage)
    return app


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    """Run the storage service."""
    logging.basicConfig(level=logging.INFO)
    web.run_app(create_app(), host=host, port=port)
