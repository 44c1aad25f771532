"""CredentialCodec: plaintext secret values to/from encrypted blobs."""
from typing import Any, Optional

from .crypto import decrypt, deserialize_value, encrypt, serialize_value
from .guard import SessionGuard


class CredentialCodec:
    """Encrypts values with the session's master key before they reach storage.

    Raises ``LockedError`` when the guard is locked and propagates
    ``AuthenticationFailure`` when a blob was sealed under another key.
    """

    def __init__(self, guard: SessionGuard, cipher_backend: Optional[str] = None):
        self._guard = guard
        self._backend = cipher_backend

    def encode(self, value: Any) -> bytes:
        plaintext = serialize_value(value)
        with self._guard.key() as key:
            return encrypt(plaintext, key, self._backend)

    def decode(self, blob: bytes) -> Any:
        with self._guard.key() as key:
            plaintext = decrypt(blob, key, self._backend)
        return deserialize_value(plaintext)
