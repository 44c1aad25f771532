"""
Vault Configuration: settings and persisted verification material.

The configuration lives in a JSON file (default ``~/.passvault/config.json``,
overridable with the ``PASSVAULT_HOME`` environment variable). Besides the
user-tunable settings it holds the only durable artifact of the crypto core:
the PBKDF2 salt, the iteration count and the verification hash.

Security Note:
    Never log salt or verification hash values. The file is written with
    owner-only permissions (0600) inside an owner-only directory (0700).
"""
import os
import base64
import logging
from pathlib import Path
from typing import Any, Optional

import orjson
from pydantic import BaseModel, Field, field_serializer, field_validator

from ..exceptions import NotInitialized
from .crypto import (
    CIPHER_BACKENDS,
    DEFAULT_CIPHER_BACKEND,
    DEFAULT_ITERATIONS,
    MIN_ITERATIONS,
    SALT_LENGTH,
)

logger = logging.getLogger("passvault.vault")

DEFAULT_CONFIG_DIR = ".passvault"
DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_DB_FILE = "passvault.db"

# Settings a user may read/change through get_value()/set_value().
TUNABLE_SETTINGS = frozenset({
    "password_length",
    "min_password_length",
    "use_special_chars",
    "auto_lock_timeout",
    "password_expiration",
})


def get_config_dir() -> Path:
    """Return the vault home directory.

    Uses PASSVAULT_HOME when set, ``~/.passvault`` otherwise.
    """
    home = os.environ.get("PASSVAULT_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / DEFAULT_CONFIG_DIR


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    # Verification material
    master_hash: Optional[bytes] = None
    salt: Optional[bytes] = None
    kdf_iterations: int = Field(default=DEFAULT_ITERATIONS, ge=MIN_ITERATIONS)
    cipher_backend: str = Field(default=DEFAULT_CIPHER_BACKEND)

    # Storage
    storage_type: str = Field(default="sqlite")
    db_path: Optional[Path] = None
    config_path: Optional[Path] = None

    # Security settings
    password_length: int = Field(default=16, ge=8, le=1024)
    min_password_length: int = Field(default=8, ge=1, le=1024)
    use_special_chars: bool = True
    auto_lock_timeout: int = Field(default=300, ge=0)
    password_expiration: int = Field(default=90, ge=0)

    model_config = {"validate_assignment": True}

    @field_validator("master_hash", "salt", mode="before")
    @classmethod
    def decode_b64(cls, v: Any) -> Any:
        """Accept base64 strings as read back from the JSON file."""
        if isinstance(v, str):
            return base64.b64decode(v)
        return v

    @field_validator("salt")
    @classmethod
    def validate_salt(cls, v: Optional[bytes]) -> Optional[bytes]:
        """Salt, when present, must be exactly 32 bytes."""
        if v is not None and len(v) != SALT_LENGTH:
            raise ValueError(
                f"salt must be exactly {SALT_LENGTH} bytes, got {len(v)}"
            )
        return v

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in CIPHER_BACKENDS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @field_validator("storage_type")
    @classmethod
    def validate_storage(cls, v: str) -> str:
        """Validate storage backend is supported."""
        if v not in ("sqlite", "memory"):
            raise ValueError(f"Unsupported storage type: {v}")
        return v

    @field_serializer("master_hash", "salt", when_used="json")
    def encode_b64(self, v: Optional[bytes]) -> Optional[str]:
        if v is None:
            return None
        return base64.b64encode(v).decode("ascii")

    # ------------------------------------------------------------------
    # File persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "VaultConfig":
        """Load configuration from disk, creating a default file if missing.

        Args:
            path: Config file path. Defaults to ``<vault home>/config.json``.

        Returns:
            Populated VaultConfig instance.
        """
        config_path = Path(path) if path else get_config_dir() / DEFAULT_CONFIG_FILE
        db_path = config_path.parent / DEFAULT_DB_FILE

        if not config_path.exists():
            config = cls(config_path=config_path, db_path=db_path)
            config.save()
            logger.info("Created default vault configuration at %s", config_path)
            return config

        try:
            data = orjson.loads(config_path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as err:
            raise RuntimeError(f"failed to read config file: {err}") from err

        config = cls.model_validate(data)
        if config.db_path is None:
            config.db_path = db_path
        if config.config_path is None:
            config.config_path = config_path
        return config

    def save(self) -> None:
        """Write configuration to ``config_path`` with owner-only permissions."""
        if self.config_path is None:
            raise RuntimeError("config_path is not set; cannot save configuration")
        path = Path(self.config_path)
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        data = orjson.dumps(self.model_dump(mode="json"), option=orjson.OPT_INDENT_2)
        # Create with 0600 so the file is never readable by others, even briefly.
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fp:
            fp.write(data)
        os.chmod(path, 0o600)
        logger.debug("Vault configuration saved to %s", path)

    # ------------------------------------------------------------------
    # Verification material
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return bool(self.master_hash) and bool(self.salt)

    def load_verification_material(self) -> tuple[bytes, bytes]:
        """Return the persisted ``(salt, verification_hash)`` pair.

        Raises:
            NotInitialized: If the vault has not been set up yet.
        """
        if not self.is_initialized:
            raise NotInitialized("vault is not initialized; run initialize first")
        return self.salt, self.master_hash

    def save_verification_material(
        self,
        salt: bytes,
        verification_hash: bytes,
        iterations: Optional[int] = None,
    ) -> None:
        """Persist a new salt / verification hash pair.

        Both values are written in a single save. If the write fails the
        in-memory pair is restored so it keeps matching the file on disk.
        """
        previous = (self.salt, self.master_hash, self.kdf_iterations)
        self.salt = salt
        self.master_hash = verification_hash
        if iterations is not None:
            self.kdf_iterations = iterations
        if self.config_path is None:
            return
        try:
            self.save()
        except OSError:
            self.salt, self.master_hash, self.kdf_iterations = previous
            raise

    # ------------------------------------------------------------------
    # Tunable settings
    # ------------------------------------------------------------------

    def get_value(self, key: str) -> Any:
        """Return a user-tunable setting.

        Raises:
            KeyError: If ``key`` is not a tunable setting.
        """
        if key not in TUNABLE_SETTINGS:
            raise KeyError(f"unknown configuration key: {key}")
        return getattr(self, key)

    def set_value(self, key: str, value: Any) -> None:
        """Change a user-tunable setting and persist it.

        Raises:
            KeyError: If ``key`` is not a tunable setting.
            pydantic.ValidationError: If ``value`` is invalid for ``key``.
        """
        if key not in TUNABLE_SETTINGS:
            raise KeyError(f"unknown configuration key: {key}")
        setattr(self, key, value)
        if self.config_path is not None:
            self.save()
