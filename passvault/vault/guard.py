"""
SessionGuard: lock/unlock state machine holding the master key in memory.

States:
- ``LOCKED``: initial state, no key material held.
- ``UNLOCKED``: derived key held, last activity tracked for idle relock.

The guard never runs a timer of its own. ``check_idle()`` is a passive check
the host calls before sensitive operations (or on a cadence in a long-lived
process).

Security Note:
    The key is kept in a ``bytearray`` and overwritten with zeros on lock.
    This is best effort only: CPython may hold other copies (the bytes handed
    to the cipher, PBKDF2 intermediates) that cannot be erased. Accepted
    residual-memory-exposure risk.

    Unlock attempts are not rate limited; there is no lockout or backoff.
"""
import hmac
import time
import logging
import threading
from enum import Enum
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from ..exceptions import (
    AlreadyInitialized,
    InvalidCredentials,
    LockedError,
    SessionStateError,
)
from .config import VaultConfig
from .crypto import derive_key, generate_salt

logger = logging.getLogger("passvault.session")

T = TypeVar("T")

MIN_PASSPHRASE_LENGTH = 8


class SessionState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class ReadWriteLock:
    """Many readers or one writer.

    Readers share access to the key; writers (state transitions) wait until
    no reader holds it. New readers queue behind a waiting writer, so a
    relock is never starved by key users.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SessionGuard:
    """Mediates every access to the master key.

    Args:
        config: Configuration holding the verification material and the
            idle timeout (``auto_lock_timeout``, seconds, 0 disables it).
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        config: VaultConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config
        self._clock = clock
        self._lock = ReadWriteLock()
        self._state = SessionState.LOCKED
        self._key: Optional[bytearray] = None
        self._last_activity: Optional[float] = None

    def __repr__(self) -> str:
        return f"<SessionGuard state={self._state.value}>"

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_locked(self) -> bool:
        return self._state is SessionState.LOCKED

    @property
    def is_initialized(self) -> bool:
        return self._config.is_initialized

    @property
    def last_activity(self) -> Optional[float]:
        return self._last_activity

    @property
    def idle_timeout(self) -> int:
        return self._config.auto_lock_timeout

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the write lock)
    # ------------------------------------------------------------------

    @staticmethod
    def _check_passphrase(passphrase: str) -> None:
        if len(passphrase) < MIN_PASSPHRASE_LENGTH:
            raise ValueError(
                f"master password must be at least {MIN_PASSPHRASE_LENGTH} characters"
            )

    def _derive(self, passphrase: str, salt: bytes) -> bytes:
        return derive_key(passphrase, salt, self._config.kdf_iterations)

    def _verify(self, passphrase: str) -> bytes:
        salt, verification_hash = self._config.load_verification_material()
        candidate = self._derive(passphrase, salt)
        if not hmac.compare_digest(candidate, verification_hash):
            logger.warning("Unlock failed: invalid master password")
            raise InvalidCredentials("invalid master password")
        return candidate

    def _hold(self, key: bytes) -> None:
        self._key = bytearray(key)
        self._state = SessionState.UNLOCKED
        self._last_activity = self._clock()

    def _wipe(self) -> None:
        if self._key is not None:
            for i in range(len(self._key)):
                self._key[i] = 0
        self._key = None
        self._last_activity = None
        self._state = SessionState.LOCKED

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def initialize(self, passphrase: str, force: bool = False) -> None:
        """First-time setup: derive the master key and persist its verifier.

        Leaves the session locked.

        Raises:
            ValueError: If ``passphrase`` is shorter than 8 characters.
            AlreadyInitialized: If material exists and ``force`` is False.
        """
        self._check_passphrase(passphrase)
        with self._lock.write_locked():
            if self._config.is_initialized and not force:
                raise AlreadyInitialized(
                    "vault is already initialized; use force to reinitialize"
                )
            self._wipe()
            salt = generate_salt()
            key = self._derive(passphrase, salt)
            self._config.save_verification_material(salt, key)
        logger.info("Vault initialized (force=%s)", force)

    def unlock(self, passphrase: str) -> None:
        """Verify ``passphrase`` and hold the derived key.

        Raises:
            NotInitialized: If no verification material exists.
            InvalidCredentials: On a wrong passphrase; state stays locked.
            SessionStateError: If the session is already unlocked.
        """
        with self._lock.write_locked():
            if self._state is SessionState.UNLOCKED:
                raise SessionStateError("vault is already unlocked")
            key = self._verify(passphrase)
            self._hold(key)
        logger.info("Vault unlocked")

    def lock(self) -> None:
        """Drop the key. Valid from any state."""
        with self._lock.write_locked():
            was_unlocked = self._state is SessionState.UNLOCKED
            self._wipe()
        if was_unlocked:
            logger.info("Vault locked")

    def check_idle(self) -> bool:
        """Relock if the idle timeout has elapsed.

        Returns:
            True if this call locked the session, False otherwise.
        """
        with self._lock.write_locked():
            timeout = self._config.auto_lock_timeout
            if self._state is not SessionState.UNLOCKED or timeout <= 0:
                return False
            idle = self._clock() - self._last_activity
            if idle < timeout:
                return False
            self._wipe()
        logger.warning("Vault auto-locked after %.0f seconds of inactivity", idle)
        return True

    def touch(self) -> None:
        """Record activity on an unlocked session.

        Raises:
            LockedError: If the session is locked.
        """
        with self._lock.write_locked():
            if self._state is not SessionState.UNLOCKED:
                raise LockedError("vault is locked")
            self._last_activity = self._clock()

    def rekey(
        self,
        current_passphrase: str,
        new_passphrase: str,
        reencrypt: Callable[[bytes, bytes], T],
    ) -> T:
        """Replace the master key, re-encrypting data through ``reencrypt``.

        ``reencrypt(old_key, new_key)`` runs while the guard is held
        exclusively. The new verification material is persisted only after
        it returns; on success the session stays unlocked under the new key.
        If the material cannot be saved, ``reencrypt(new_key, old_key)``
        puts the data back under the old key before the error propagates.

        Raises:
            ValueError: If ``new_passphrase`` is shorter than 8 characters.
            NotInitialized: If no verification material exists.
            InvalidCredentials: If ``current_passphrase`` is wrong.
        """
        self._check_passphrase(new_passphrase)
        with self._lock.write_locked():
            old_key = self._verify(current_passphrase)
            salt = generate_salt()
            new_key = self._derive(new_passphrase, salt)
            result = reencrypt(old_key, new_key)
            try:
                self._config.save_verification_material(salt, new_key)
            except Exception:
                logger.error("Saving new key material failed; restoring data under the old key")
                reencrypt(new_key, old_key)
                raise
            self._wipe()
            self._hold(new_key)
        logger.info("Master key rotated")
        return result

    # ------------------------------------------------------------------
    # Key access
    # ------------------------------------------------------------------

    @contextmanager
    def key(self) -> Iterator[bytes]:
        """Yield the master key under a shared lock.

        Raises:
            LockedError: If the session is locked.
        """
        with self._lock.read_locked():
            if self._state is not SessionState.UNLOCKED or self._key is None:
                raise LockedError("vault is locked; unlock it first")
            yield bytes(self._key)
