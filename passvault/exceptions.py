"""PassVault exception hierarchy.

Every error raised on purpose by the vault derives from ``VaultError`` so
callers can catch one base class. A few also derive from the builtin they
specialize (``KeyError``, ``ValueError``) to keep ordinary ``except`` clauses
working.
"""


class VaultError(Exception):
    """Base class for all vault errors."""


class InvalidCredentials(VaultError):
    """Unlock attempted with the wrong master passphrase."""


class LockedError(VaultError):
    """A plaintext operation was attempted while the vault is locked."""


class AuthenticationFailure(VaultError):
    """AEAD tag check failed: wrong key, or corrupted/tampered data."""


class MalformedBlob(VaultError, ValueError):
    """Input is not an encrypted blob at all (wrong type, shorter than a nonce)."""


class InvalidKeyLength(VaultError, ValueError):
    """Key handed to the cipher has the wrong length."""


class NotInitialized(VaultError):
    """No verification material exists yet; run initialize first."""


class AlreadyInitialized(VaultError):
    """Verification material already exists and no override was requested."""


class SessionStateError(VaultError):
    """Transition not valid from the current session state."""


class StorageError(VaultError):
    """Wrapped failure of the persistence backend."""


class NotFound(StorageError, KeyError):
    """Entry does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ''


class AlreadyExists(StorageError):
    """Entry with the same name already exists."""


class InvalidEntry(StorageError, ValueError):
    """Entry failed validation (missing name or password)."""
