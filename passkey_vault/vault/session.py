"""
VaultSession — Explicit context for one authenticated user session.

Holds the root secret obtained from a WebAuthn PRF evaluation together with
the user handle it belongs to. Everything that derives keys receives the
session explicitly; there is no process-wide session state.

Security Note:
    The root secret lives only in this object's memory. ``close()`` zeroes
    the buffer; afterwards any key derivation raises KeyDerivationError.
"""
import secrets
import logging
from typing import Optional

from ..exceptions import KeyDerivationError
from .config import ClientConfig

logger = logging.getLogger("passkey_vault.vault")

USER_ID_SIZE = 64


def generate_user_id() -> str:
    """Generate a random user handle (64 CSPRNG bytes as lowercase hex)."""
    return secrets.token_hex(USER_ID_SIZE)


class VaultSession:
    """Root secret and identity of an authenticated user.

    Args:
        root_secret: PRF output from the WebAuthn assertion.
        user_id: User handle chosen at passkey registration.
        config: Client configuration; defaults are used when omitted.

    Raises:
        KeyDerivationError: If root_secret is empty.
        ValueError: If user_id is empty.
    """

    def __init__(
        self,
        root_secret: bytes,
        user_id: str,
        config: Optional[ClientConfig] = None,
    ):
        if not root_secret:
            raise KeyDerivationError("Root secret is missing or empty")
        if not user_id:
            raise ValueError("User id cannot be empty")
        self._root_secret = bytearray(root_secret)
        self._user_id = user_id
        self._config = config or ClientConfig()
        self._closed = False

    def __repr__(self) -> str:
        return (
            f"<VaultSession user={self._user_id[:8]} "
            f"closed={self._closed}>"
        )

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def base_message(self) -> str:
        return self._config.base_message

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def root_secret(self) -> bytes:
        if self._closed:
            raise KeyDerivationError("Vault session is closed")
        return bytes(self._root_secret)

    def close(self) -> None:
        """Wipe the root secret from memory."""
        if self._closed:
            return
        for i in range(len(self._root_secret)):
            self._root_secret[i] = 0
        self._closed = True
        logger.debug("Vault session closed for user=%s", self._user_id[:8])

    def __enter__(self) -> "VaultSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
