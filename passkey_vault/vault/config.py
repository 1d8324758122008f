"""
Vault Configuration — Client and storage-service settings.

Client settings are read from:
    VAULT_BASE_MESSAGE = <HKDF info string for secret encryption keys>
    VAULT_API_URL = <base URL of the storage service, enables cloud mode>
    VAULT_LOCAL_PATH = <directory for local encrypted records>
    VAULT_REQUEST_TIMEOUT = <seconds>

Storage service settings are read from:
    BLOB_READ_WRITE_TOKEN = <write-enabled blob store credential>
    BLOB_BASE_URL = <public base URL blobs are read from>
    BLOB_API_URL = <blob store REST endpoint>
    VAULT_AUTH_SKEW_MS = <total clock skew budget for signed requests>
    VAULT_ENFORCE_KEY_BINDING = <reject writes from a different signing key>

Security Note:
    Never log the blob credential. Only log whether it is present.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("passkey_vault.vault")

DEFAULT_BASE_MESSAGE = "myhome-assistant-secret-encryption-key-v1"
DEFAULT_BLOB_API_URL = "https://blob.vercel-storage.com"
DEFAULT_AUTH_SKEW_MS = 5 * 60 * 1000

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


class ClientConfig(BaseModel):
    """Validated client-side vault configuration."""

    base_message: str = Field(default=DEFAULT_BASE_MESSAGE, min_length=1)
    api_url: Optional[str] = None
    local_path: Optional[str] = None
    request_timeout: float = Field(default=30.0, gt=0)

    @field_validator("api_url")
    @classmethod
    def normalize_api_url(cls, v: Optional[str]) -> Optional[str]:
        """Strip trailing slashes; an empty value disables cloud mode."""
        if v is None:
            return None
        v = v.strip().rstrip("/")
        return v or None

    @property
    def cloud_enabled(self) -> bool:
        return self.api_url is not None

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create ClientConfig from environment variables.

        Returns:
            Populated ClientConfig instance.
        """
        return cls(
            base_message=os.environ.get(
                "VAULT_BASE_MESSAGE", DEFAULT_BASE_MESSAGE
            ),
            api_url=os.environ.get("VAULT_API_URL"),
            local_path=os.environ.get("VAULT_LOCAL_PATH"),
            request_timeout=float(
                os.environ.get("VAULT_REQUEST_TIMEOUT", "30")
            ),
        )


class StorageConfig(BaseModel):
    """Validated storage-service configuration."""

    blob_token: Optional[str] = None
    blob_base_url: Optional[str] = None
    blob_api_url: str = Field(default=DEFAULT_BLOB_API_URL)
    auth_skew_ms: int = Field(default=DEFAULT_AUTH_SKEW_MS, ge=1000)
    enforce_key_binding: bool = False

    @field_validator("blob_base_url")
    @classmethod
    def normalize_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Blob paths are appended directly, so the base must end in '/'."""
        if not v:
            return None
        return v if v.endswith("/") else v + "/"

    @field_validator("blob_api_url")
    @classmethod
    def normalize_api_url(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def configured(self) -> bool:
        """True only when both the blob credential and base URL are set."""
        return bool(self.blob_token) and bool(self.blob_base_url)

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Create StorageConfig from environment variables.

        Returns:
            Populated StorageConfig instance.
        """
        config = cls(
            blob_token=os.environ.get("BLOB_READ_WRITE_TOKEN") or None,
            blob_base_url=os.environ.get("BLOB_BASE_URL"),
            blob_api_url=os.environ.get("BLOB_API_URL", DEFAULT_BLOB_API_URL),
            auth_skew_ms=int(
                os.environ.get("VAULT_AUTH_SKEW_MS", DEFAULT_AUTH_SKEW_MS)
            ),
            enforce_key_binding=_env_flag("VAULT_ENFORCE_KEY_BINDING"),
        )
        if not config.configured:
            logger.warning(
                "Blob storage is not configured: BLOB_READ_WRITE_TOKEN "
                "and BLOB_BASE_URL must be set (token present=%s, base url=%s)",
                bool(config.blob_token), config.blob_base_url,
            )
        return config
