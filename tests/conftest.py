"""Shared fixtures for the passvault test suite."""
import pytest

from passvault.storage import MemoryStore, SQLiteStore
from passvault.vault import CredentialVault, SessionGuard, VaultConfig
from passvault.vault.crypto import MIN_ITERATIONS

PASSPHRASE = "CorrectHorse1!"


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    """Config persisted under tmp_path, with the minimum KDF cost."""
    return VaultConfig(
        config_path=tmp_path / "config.json",
        db_path=tmp_path / "passvault.db",
        kdf_iterations=MIN_ITERATIONS,
        auto_lock_timeout=5,
    )


@pytest.fixture
def guard(config, clock):
    return SessionGuard(config, clock=clock)


@pytest.fixture
def initialized_guard(guard):
    guard.initialize(PASSPHRASE)
    return guard


@pytest.fixture
def unlocked_guard(initialized_guard):
    initialized_guard.unlock(PASSPHRASE)
    return initialized_guard


@pytest.fixture
def vault(config, guard):
    """Initialized, unlocked vault over an in-memory store."""
    vault = CredentialVault(config, MemoryStore(), guard=guard)
    vault.initialize(PASSPHRASE)
    vault.unlock(PASSPHRASE)
    yield vault
    vault.close()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLiteStore(tmp_path / "entries.db")
    store.initialize()
    yield store
    store.close()
