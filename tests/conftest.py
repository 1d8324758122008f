import pytest

from passkey_vault.vault.config import ClientConfig
from passkey_vault.vault.session import VaultSession


ROOT_SECRET = bytes(32)
USER_ID = "a1b2c3d4e5f60718293a4b5c6d7e8f90"


class FixedClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def root_secret():
    return ROOT_SECRET


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def session(root_secret, user_id):
    """Vault session over 32 zero bytes."""
    return VaultSession(root_secret, user_id, ClientConfig())


@pytest.fixture
def clock():
    return FixedClock()
