"""PassVault.

Local credential vault: named secrets encrypted at rest behind a single
master passphrase, with session lock/unlock and password health auditing.
"""
from .version import __version__
from .exceptions import (
    AlreadyExists,
    AlreadyInitialized,
    AuthenticationFailure,
    InvalidCredentials,
    InvalidEntry,
    InvalidKeyLength,
    LockedError,
    MalformedBlob,
    NotFound,
    NotInitialized,
    SessionStateError,
    StorageError,
    VaultError,
)
from .storage import Entry, MemoryStore, SecretStore, SQLiteStore
from .vault import (
    CredentialCodec,
    CredentialVault,
    PasswordHealthEvaluator,
    SessionGuard,
    SessionState,
    VaultConfig,
)

__all__ = [
    "__version__",
    "AlreadyExists",
    "AlreadyInitialized",
    "AuthenticationFailure",
    "CredentialCodec",
    "CredentialVault",
    "Entry",
    "InvalidCredentials",
    "InvalidEntry",
    "InvalidKeyLength",
    "LockedError",
    "MalformedBlob",
    "MemoryStore",
    "NotFound",
    "NotInitialized",
    "PasswordHealthEvaluator",
    "SecretStore",
    "SessionGuard",
    "SessionState",
    "SQLiteStore",
    "StorageError",
    "VaultConfig",
    "VaultError",
]
