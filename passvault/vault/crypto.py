"""
Vault Crypto Core: Key derivation, encryption/decryption, and serialization.

- Master key: PBKDF2-HMAC-SHA256(passphrase, salt) → 32-byte key
- Secrets: AEAD (AES-256-GCM or ChaCha20-Poly1305) → [nonce 12B][payload + tag 16B]

Security Note:
    Never log passphrases, keys, plaintext or ciphertext values.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import base64
from typing import Any, Optional

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..exceptions import AuthenticationFailure, InvalidKeyLength, MalformedBlob

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM / Poly1305 tag
KEY_LENGTH = 32  # AES-256
SALT_LENGTH = 32

MIN_ITERATIONS = 4096
DEFAULT_ITERATIONS = 600_000  # OWASP 2023 recommendation for PBKDF2-SHA256

DEFAULT_CIPHER_BACKEND = "aesgcm"
CIPHER_BACKENDS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}

_BYTES_MARKER = "__passvault_bytes__"


def get_cipher_cls(backend: Optional[str] = None) -> type:
    """Return the AEAD cipher class for ``backend``.

    Falls back to the PASSVAULT_CIPHER_BACKEND env var, then to AES-GCM.

    Raises:
        ValueError: If the backend name is unknown.
    """
    name = (
        backend or os.environ.get("PASSVAULT_CIPHER_BACKEND", DEFAULT_CIPHER_BACKEND)
    ).lower()
    try:
        return CIPHER_BACKENDS[name]
    except KeyError:
        raise ValueError(f"Unsupported cipher backend: {name}") from None


def _check_key(key: bytes) -> None:
    if len(key) != KEY_LENGTH:
        raise InvalidKeyLength(
            f"key must be exactly {KEY_LENGTH} bytes, got {len(key)}"
        )


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def generate_salt() -> bytes:
    """Generate a cryptographically random 32-byte salt."""
    return os.urandom(SALT_LENGTH)


def derive_key(
    passphrase: str,
    salt: bytes,
    iterations: int = DEFAULT_ITERATIONS,
) -> bytes:
    """Derive the 32-byte master key from a passphrase using PBKDF2-HMAC-SHA256.

    Deterministic: the same passphrase, salt and iteration count always
    produce the same key, which is what unlock verification relies on.

    Args:
        passphrase: User's master passphrase.
        salt: 32-byte salt generated once per vault.
        iterations: PBKDF2 iteration count (minimum 4096).

    Returns:
        32-byte derived key.

    Raises:
        ValueError: If the salt is not 32 bytes or iterations is too low.
    """
    if len(salt) != SALT_LENGTH:
        raise ValueError(
            f"salt must be exactly {SALT_LENGTH} bytes, got {len(salt)}"
        )
    if iterations < MIN_ITERATIONS:
        raise ValueError(
            f"iterations must be at least {MIN_ITERATIONS}, got {iterations}"
        )
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


# ---------------------------------------------------------------------------
# Authenticated encryption
# ---------------------------------------------------------------------------

def encrypt(plaintext: bytes, key: bytes, backend: Optional[str] = None) -> bytes:
    """Encrypt plaintext under ``key`` with a fresh random nonce.

    Format: [nonce 12B][encrypted_payload + tag 16B]

    Args:
        plaintext: Data to encrypt.
        key: 32-byte key.
        backend: AEAD backend name ("aesgcm" or "chacha20").

    Returns:
        Self-contained encrypted blob.

    Raises:
        InvalidKeyLength: If key is not 32 bytes.
    """
    _check_key(key)
    cipher = get_cipher_cls(backend)(bytes(key))
    nonce = os.urandom(NONCE_SIZE)
    ct = cipher.encrypt(nonce, bytes(plaintext), None)
    return nonce + ct


def decrypt(blob: bytes, key: bytes, backend: Optional[str] = None) -> bytes:
    """Authenticate and decrypt a blob produced by :func:`encrypt`.

    Args:
        blob: Encrypted blob in format [nonce 12B][payload+tag].
        key: 32-byte key.
        backend: AEAD backend name used at encryption time.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        MalformedBlob: If blob is not bytes-like or shorter than a nonce.
        AuthenticationFailure: If the blob was tampered with, truncated,
            or encrypted under a different key.
        InvalidKeyLength: If key is not 32 bytes.
    """
    if not isinstance(blob, (bytes, bytearray, memoryview)):
        raise MalformedBlob(
            f"encrypted blob must be bytes, got {type(blob).__name__}"
        )
    blob = bytes(blob)
    if len(blob) < NONCE_SIZE:
        raise MalformedBlob(
            f"encrypted blob too short: {len(blob)} bytes "
            f"(minimum {NONCE_SIZE})"
        )
    _check_key(key)
    cipher = get_cipher_cls(backend)(bytes(key))
    nonce = blob[:NONCE_SIZE]
    ct = blob[NONCE_SIZE:]
    try:
        return cipher.decrypt(nonce, ct, None)
    except InvalidTag:
        raise AuthenticationFailure(
            "decryption failed: data may be corrupted or the master password is wrong"
        ) from None


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Turn a credential value into the plaintext handed to ``encrypt``.

    Passwords are plain strings; structured secrets (dicts, lists, numbers)
    pass through JSON as-is. Raw bytes are tagged with a one-key marker
    object so ``deserialize_value`` can give them back as bytes.
    """
    if isinstance(value, (bytes, bytearray)):
        return orjson.dumps({_BYTES_MARKER: base64.b64encode(value).decode("ascii")})
    return orjson.dumps(value)


def deserialize_value(data: bytes) -> Any:
    """Inverse of :func:`serialize_value`."""
    parsed = orjson.loads(data)
    if isinstance(parsed, dict) and list(parsed) == [_BYTES_MARKER]:
        return base64.b64decode(parsed[_BYTES_MARKER])
    return parsed
