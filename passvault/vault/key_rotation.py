"""
Vault Key Rotation: re-encryption of every entry when the master key changes.

Runs in two passes. The first decrypts every entry under the old key; any
failure aborts the rotation before a single row is written. The second
writes the blobs re-encrypted under the new key as one batch, so a store
failure leaves every entry under the old key.

Security Note:
    Plaintext exists in memory only for the duration of the rotation.
    Never log plaintext or ciphertext values.
"""
import logging
from typing import Optional

from ..storage import SecretStore
from .crypto import decrypt, encrypt

logger = logging.getLogger("passvault.vault")


def rotate_master_key(
    store: SecretStore,
    old_key: bytes,
    new_key: bytes,
    cipher_backend: Optional[str] = None,
) -> dict:
    """Re-encrypt all entries from ``old_key`` to ``new_key``.

    Args:
        store: Entry store to rotate in place.
        old_key: Current 32-byte master key.
        new_key: Replacement 32-byte master key.
        cipher_backend: AEAD backend the blobs were sealed with.

    Returns:
        Stats dict with keys: total, rotated.

    Raises:
        AuthenticationFailure: If an entry does not decrypt under ``old_key``;
            nothing has been written at that point.
        StorageError: If the batch write fails; the store is unchanged.
    """
    entries = store.list_entries()
    stats = {"total": len(entries), "rotated": 0}

    logger.info("Starting key rotation of %d entr(ies)", len(entries))

    reencrypted = []
    for entry in entries:
        try:
            plaintext = decrypt(entry.password, old_key, cipher_backend)
        except Exception:
            logger.error("Key rotation aborted: entry %s does not decrypt", entry.name)
            raise
        reencrypted.append(
            entry.model_copy(
                update={"password": encrypt(plaintext, new_key, cipher_backend)}
            )
        )

    store.update_many(reencrypted, touch=False)
    stats["rotated"] = len(reencrypted)

    logger.info("Key rotation complete: %s", stats)
    return stats
