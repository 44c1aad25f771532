"""Credential Vault: master-passphrase encryption of stored credentials.

Security Note (Threat Model):
    While the vault is unlocked the derived master key lives in process
    memory, and decrypted passwords exist there for the duration of an
    operation. A memory dump of the process could expose them. Zeroing the
    key on lock is best effort only, since CPython gives no erasure
    guarantees. This is an accepted limitation; mitigation requires
    HSM/secure enclave integration which is out of scope.

    Failed unlock attempts are not throttled (no lockout, no backoff).
"""

from .codec import CredentialCodec
from .config import VaultConfig, get_config_dir
from .credential_vault import AuditIssue, CredentialVault, VaultStats
from .crypto import decrypt, derive_key, encrypt, generate_salt
from .guard import SessionGuard, SessionState
from .health import PasswordHealthEvaluator, find_reused, generate_password
from .key_rotation import rotate_master_key

__all__ = [
    "AuditIssue",
    "CredentialCodec",
    "CredentialVault",
    "PasswordHealthEvaluator",
    "SessionGuard",
    "SessionState",
    "VaultConfig",
    "VaultStats",
    "decrypt",
    "derive_key",
    "encrypt",
    "find_reused",
    "generate_password",
    "generate_salt",
    "get_config_dir",
    "rotate_master_key",
]
