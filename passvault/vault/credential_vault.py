"""
CredentialVault: encrypted credential storage gated by a SessionGuard.

Provides the public API of the vault:
- ``initialize`` / ``unlock`` / ``lock``: session lifecycle
- ``add`` / ``get`` / ``reveal`` / ``update`` / ``delete``: entry CRUD
- ``list_entries`` / ``search`` / ``by_tag``: metadata queries
- ``audit`` / ``stats``: password health reporting
- ``change_master_password``: master key rotation
- ``open``: factory that loads configuration and storage from disk

Metadata queries never touch plaintext and work while locked. Everything that
encrypts or decrypts a password first runs the idle check, then requires an
unlocked session, then records activity.

Security Note:
    Never log plaintext or ciphertext values. Only log entry names and
    operations. Decrypted values exist in process memory during use;
    this is an accepted limitation (see threat model in ``__init__.py``).
"""
import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from ..exceptions import LockedError
from ..storage import Entry, SecretStore, StorageStats, create_store
from ..storage.base import utcnow
from .codec import CredentialCodec
from .config import VaultConfig
from .guard import SessionGuard
from .health import PasswordHealthEvaluator, find_reused, generate_password
from .key_rotation import rotate_master_key

logger = logging.getLogger("passvault.vault")

_MAX_NAME_LENGTH = 255


class AuditIssue(BaseModel):
    """One finding of :meth:`CredentialVault.audit`."""

    kind: str  # "weak" | "reused" | "expired"
    entries: list[str]
    detail: list[str] = Field(default_factory=list)

    def __str__(self) -> str:
        names = ", ".join(self.entries)
        if self.kind == "weak":
            return f"Weak password for {names}: {', '.join(self.detail)}"
        if self.kind == "reused":
            return f"Password reused across entries: {names}"
        return f"Expired password for {names} ({', '.join(self.detail)})"


class VaultStats(StorageStats):
    """Storage statistics, plus health counters when computed in detail."""

    expired_passwords: Optional[int] = None
    weak_passwords: Optional[int] = None
    reused_passwords: Optional[int] = None


class CredentialVault:
    """Named credentials with passwords encrypted under the master key.

    Args:
        config: Vault configuration (verification material and settings).
        store: Persistence backend for entries.
        guard: Session guard; one is created from ``config`` when omitted.
    """

    def __init__(
        self,
        config: VaultConfig,
        store: SecretStore,
        guard: Optional[SessionGuard] = None,
    ):
        self._config = config
        self._store = store
        self._guard = guard or SessionGuard(config)
        self._codec = CredentialCodec(self._guard, config.cipher_backend)

    def __repr__(self) -> str:
        return f"<CredentialVault state={self._guard.state.value}>"

    def __enter__(self) -> "CredentialVault":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def store(self) -> SecretStore:
        return self._store

    @property
    def guard(self) -> SessionGuard:
        return self._guard

    @property
    def is_locked(self) -> bool:
        return self._guard.is_locked

    @property
    def is_initialized(self) -> bool:
        return self._guard.is_initialized

    # ------------------------------------------------------------------
    # Validation / gating
    # ------------------------------------------------------------------

    def _validate_name(self, name: str) -> None:
        """Validate an entry name.

        Raises:
            ValueError: If name is empty or too long.
        """
        if not name or not name.strip():
            raise ValueError("Entry name cannot be empty")
        if len(name) > _MAX_NAME_LENGTH:
            raise ValueError(f"Entry name cannot exceed {_MAX_NAME_LENGTH} characters")

    def _require_unlocked(self) -> None:
        self._guard.check_idle()
        if self._guard.is_locked:
            raise LockedError("vault is locked; unlock it first")

    def _decrypt_all(self, entries: Iterable[Entry]) -> dict[str, str]:
        return {entry.name: self._codec.decode(entry.password) for entry in entries}

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def initialize(self, master_password: str, force: bool = False) -> None:
        """Set up the master password and prepare the storage backend.

        Raises:
            ValueError: If ``master_password`` is shorter than 8 characters.
            AlreadyInitialized: If already set up and ``force`` is False.
        """
        self._guard.initialize(master_password, force=force)
        self._store.initialize()

    def unlock(self, master_password: str) -> None:
        self._guard.unlock(master_password)

    def lock(self) -> None:
        self._guard.lock()

    def close(self) -> None:
        """Lock the session and release the store."""
        self._guard.lock()
        self._store.close()

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def add(
        self,
        name: str,
        password: str,
        username: str = "",
        url: str = "",
        notes: str = "",
        tags: Iterable[str] = (),
    ) -> Entry:
        """Encrypt ``password`` and store a new entry.

        Raises:
            LockedError: If the vault is locked.
            AlreadyExists: If an entry with ``name`` exists.
        """
        self._validate_name(name)
        if not password:
            raise ValueError("Entry password cannot be empty")
        self._require_unlocked()
        entry = Entry(
            name=name,
            username=username,
            password=self._codec.encode(password),
            url=url,
            notes=notes,
            tags=list(tags),
        )
        stored = self._store.put(entry)
        self._guard.touch()
        logger.debug("Vault add: entry=%s", name)
        return stored

    def get(self, name: str) -> Entry:
        """Return the stored entry (password still encrypted).

        Raises:
            NotFound: If no entry has ``name``.
        """
        self._validate_name(name)
        return self._store.get(name)

    def reveal(self, name: str) -> str:
        """Decrypt and return the password of ``name``.

        Raises:
            LockedError: If the vault is locked.
            NotFound: If no entry has ``name``.
            AuthenticationFailure: If the blob does not decrypt under the
                current master key.
        """
        self._validate_name(name)
        self._require_unlocked()
        entry = self._store.get(name)
        password = self._codec.decode(entry.password)
        self._guard.touch()
        logger.debug("Vault reveal: entry=%s", name)
        return password

    def update(
        self,
        name: str,
        password: Optional[str] = None,
        username: Optional[str] = None,
        url: Optional[str] = None,
        notes: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Entry:
        """Change the fields given; ``None`` leaves a field unchanged.

        Raises:
            LockedError: If the vault is locked.
            NotFound: If no entry has ``name``.
        """
        self._validate_name(name)
        if password is not None and not password:
            raise ValueError("Entry password cannot be empty")
        self._require_unlocked()
        entry = self._store.get(name)
        changes: dict[str, Any] = {}
        if password is not None:
            changes["password"] = self._codec.encode(password)
        if username is not None:
            changes["username"] = username
        if url is not None:
            changes["url"] = url
        if notes is not None:
            changes["notes"] = notes
        if tags is not None:
            changes["tags"] = list(tags)
        stored = self._store.update(entry.model_copy(update=changes))
        self._guard.touch()
        logger.debug("Vault update: entry=%s fields=%s", name, sorted(changes))
        return stored

    def delete(self, name: str) -> None:
        """Remove an entry.

        Raises:
            LockedError: If the vault is locked.
            NotFound: If no entry has ``name``.
        """
        self._validate_name(name)
        self._require_unlocked()
        self._store.delete(name)
        self._guard.touch()
        logger.debug("Vault delete: entry=%s", name)

    def list_entries(self) -> list[Entry]:
        return self._store.list_entries()

    def search(self, query: str) -> list[Entry]:
        return self._store.search(query)

    def by_tag(self, tag: str) -> list[Entry]:
        return self._store.by_tag(tag)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def evaluator(self) -> PasswordHealthEvaluator:
        return PasswordHealthEvaluator(min_length=self._config.min_password_length)

    def _is_expired(self, entry: Entry, now: datetime) -> tuple[bool, float]:
        age = (now - entry.updated_at).total_seconds() / 86400
        limit = self._config.password_expiration
        return limit > 0 and age > limit, age

    def audit(
        self,
        weak: bool = True,
        reused: bool = True,
        expired: bool = True,
    ) -> list[AuditIssue]:
        """Check stored passwords for weakness, reuse and age.

        Raises:
            LockedError: If the vault is locked.
            AuthenticationFailure: If an entry does not decrypt.
        """
        self._require_unlocked()
        entries = self._store.list_entries()
        plaintexts = self._decrypt_all(entries)
        evaluator = self.evaluator()
        now = utcnow()
        issues: list[AuditIssue] = []

        for entry in entries:
            if weak:
                failed = evaluator.weaknesses(plaintexts[entry.name])
                if failed:
                    issues.append(AuditIssue(kind="weak", entries=[entry.name], detail=failed))
            if expired:
                is_expired, age = self._is_expired(entry, now)
                if is_expired:
                    issues.append(
                        AuditIssue(kind="expired", entries=[entry.name], detail=[f"{age:.0f} days old"])
                    )

        if reused:
            issues.extend(
                AuditIssue(kind="reused", entries=group) for group in find_reused(plaintexts)
            )

        self._guard.touch()
        logger.info("Vault audit: %d entr(ies) checked, %d issue(s)", len(entries), len(issues))
        return issues

    def stats(self, detailed: bool = False) -> VaultStats:
        """Storage statistics; ``detailed`` adds weak/reused/expired counts.

        Raises:
            LockedError: If the vault is locked.
        """
        self._require_unlocked()
        stats = VaultStats(**self._store.stats().model_dump())
        if detailed and stats.total_entries:
            entries = self._store.list_entries()
            plaintexts = self._decrypt_all(entries)
            evaluator = self.evaluator()
            now = utcnow()
            stats.expired_passwords = sum(
                1 for entry in entries if self._is_expired(entry, now)[0]
            )
            stats.weak_passwords = sum(
                1 for plaintext in plaintexts.values() if evaluator.is_weak(plaintext)
            )
            stats.reused_passwords = len(find_reused(plaintexts))
        self._guard.touch()
        return stats

    def generate_password(self, length: Optional[int] = None, **options: Any) -> str:
        """Generate a password using the configured length and symbol policy."""
        options.setdefault("special", self._config.use_special_chars)
        return generate_password(length or self._config.password_length, **options)

    # ------------------------------------------------------------------
    # Master key rotation
    # ------------------------------------------------------------------

    def change_master_password(self, current: str, new: str) -> dict:
        """Re-encrypt every entry under a key derived from ``new``.

        The session ends up unlocked under the new key. On any failure the
        entries and the old master password stay as they were.

        Raises:
            ValueError: If ``new`` is shorter than 8 characters.
            InvalidCredentials: If ``current`` is wrong.
            AuthenticationFailure: If an entry does not decrypt.
            StorageError: If the store rejects the re-encrypted batch.
        """
        backend = self._config.cipher_backend
        return self._guard.rekey(
            current,
            new,
            lambda old_key, new_key: rotate_master_key(self._store, old_key, new_key, backend),
        )

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def open(cls, config_path: Optional[Union[str, Path]] = None) -> "CredentialVault":
        """Load configuration and storage from disk.

        This is the primary constructor for a one-shot invocation: open,
        unlock, run one operation, close.

        Args:
            config_path: Config file path; defaults to the vault home.

        Returns:
            Locked CredentialVault instance.
        """
        config = VaultConfig.load(Path(config_path) if config_path else None)
        store = create_store(config.storage_type, config.db_path)
        if config.is_initialized:
            store.initialize()
        vault = cls(config, store)
        logger.info("Vault opened (initialized=%s)", config.is_initialized)
        return vault
