"""
Vault Models — Validated records and wire objects.

Every object crossing a process boundary (local storage, HTTP body,
Authorization header, blob store) is parsed through one of these models.
Parsing is strict: missing fields and mistyped values are rejected instead
of coerced. Wire names are camelCase; Python attributes are snake_case.
"""
from typing import Any

import orjson
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for camelCase JSON objects."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "strict": True,
        "frozen": True,
    }

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_wire())

    @classmethod
    def from_json(cls, data: bytes | str):
        return cls.model_validate(orjson.loads(data))


class StoredSecretRecord(WireModel):
    """An encrypted secret as persisted by the client.

    ``encrypted_data``, ``salt`` and ``nonce`` are unpadded base64url.
    """

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    encrypted_data: str
    salt: str
    nonce: str
    timestamp: int


class SignedMessage(WireModel):
    """The exact object whose compact JSON serialization is signed.

    Field order is part of the signature input: do not reorder.
    """

    method: str
    secret_name: str
    timestamp: int
    user_id: str
    key_id: str

    def canonical_bytes(self) -> bytes:
        return self.to_json()


class AuthorizationToken(WireModel):
    """Contents of the Authorization header (before base64url encoding).

    ``pub_key`` is itself a JSON string holding the signer's public JWK.
    """

    model_config = {**WireModel.model_config, "extra": "forbid"}

    user_id: str = Field(min_length=1)
    key_id: str = Field(min_length=1)
    auth_signature: str = Field(min_length=1)
    timestamp: int
    pub_key: str = Field(min_length=1)


class CloudStoredSecret(WireModel):
    """Server-side blob: the client's record plus soft attribution.

    ``data`` is never interpreted by the server.
    """

    name: str
    data: dict[str, Any]
    pub_key_digest: str
    timestamp: int


MAX_SECRET_NAME_LENGTH = 255


def validate_secret_name(name: str) -> str:
    """Validate a secret name.

    Names become part of storage keys and blob paths.

    Raises:
        ValueError: If name is empty, too long, or not path-safe.
    """
    if not isinstance(name, str) or not name:
        raise ValueError("Secret name cannot be empty")
    if len(name) > MAX_SECRET_NAME_LENGTH:
        raise ValueError(
            f"Secret name cannot exceed {MAX_SECRET_NAME_LENGTH} characters"
        )
    if "/" in name or "\\" in name or name in (".", ".."):
        raise ValueError("Secret name cannot contain path separators")
    return name
