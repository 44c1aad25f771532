"""
Tests for VaultConfig: validation, file persistence and verification material.
"""
import os
import stat

import orjson
import pytest
from pydantic import ValidationError

from passvault.exceptions import NotInitialized
from passvault.vault import VaultConfig, get_config_dir
from passvault.vault.crypto import DEFAULT_ITERATIONS, generate_salt


class TestDefaults:
    """Tests for default values and validation."""

    def test_defaults(self):
        config = VaultConfig()
        assert config.kdf_iterations == DEFAULT_ITERATIONS
        assert config.cipher_backend == "aesgcm"
        assert config.storage_type == "sqlite"
        assert config.password_length == 16
        assert config.min_password_length == 8
        assert config.auto_lock_timeout == 300
        assert config.password_expiration == 90
        assert config.is_initialized is False

    def test_low_iterations_rejected(self):
        with pytest.raises(ValidationError):
            VaultConfig(kdf_iterations=1000)

    def test_unknown_cipher_rejected(self):
        with pytest.raises(ValidationError):
            VaultConfig(cipher_backend="rot13")

    def test_unknown_storage_rejected(self):
        with pytest.raises(ValidationError):
            VaultConfig(storage_type="redis")

    def test_bad_salt_length_rejected(self):
        with pytest.raises(ValidationError):
            VaultConfig(salt=b"short")

    def test_config_dir_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PASSVAULT_HOME", str(tmp_path / "home"))
        assert get_config_dir() == tmp_path / "home"

    def test_config_dir_default(self, monkeypatch):
        monkeypatch.delenv("PASSVAULT_HOME", raising=False)
        assert get_config_dir().name == ".passvault"


class TestPersistence:
    """Tests for load()/save()."""

    def test_load_creates_default_file(self, tmp_path):
        path = tmp_path / "vault" / "config.json"
        config = VaultConfig.load(path)
        assert path.exists()
        assert config.config_path == path
        assert config.db_path == path.parent / "passvault.db"

    def test_load_uses_env_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PASSVAULT_HOME", str(tmp_path))
        config = VaultConfig.load()
        assert config.config_path == tmp_path / "config.json"

    def test_file_permissions(self, tmp_path):
        """Test config file is owner-only."""
        path = tmp_path / "vault" / "config.json"
        VaultConfig.load(path)
        mode = stat.S_IMODE(os.stat(path).st_mode)
        assert mode == 0o600
        dir_mode = stat.S_IMODE(os.stat(path.parent).st_mode)
        assert dir_mode & 0o077 == 0

    def test_material_is_base64_on_disk(self, config):
        salt = generate_salt()
        config.save_verification_material(salt, b"\x01" * 32)
        data = orjson.loads(config.config_path.read_bytes())
        assert isinstance(data["salt"], str)
        assert isinstance(data["master_hash"], str)

    def test_roundtrip_through_file(self, config):
        salt = generate_salt()
        config.save_verification_material(salt, b"\x02" * 32)
        reloaded = VaultConfig.load(config.config_path)
        assert reloaded.load_verification_material() == (salt, b"\x02" * 32)
        assert reloaded.kdf_iterations == config.kdf_iterations
        assert reloaded.auto_lock_timeout == config.auto_lock_timeout

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(RuntimeError, match="failed to read config"):
            VaultConfig.load(path)


class TestVerificationMaterial:
    """Tests for load/save_verification_material."""

    def test_not_initialized(self):
        with pytest.raises(NotInitialized):
            VaultConfig().load_verification_material()

    def test_save_sets_iterations(self, config):
        config.save_verification_material(generate_salt(), b"\x03" * 32, iterations=5000)
        assert config.kdf_iterations == 5000
        assert config.is_initialized is True

    def test_in_memory_config_skips_file(self):
        config = VaultConfig()
        config.save_verification_material(generate_salt(), b"\x04" * 32)
        assert config.is_initialized is True

    def test_write_failure_restores_material(self, tmp_path):
        """Test a failed save leaves the previous material in place."""
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        config = VaultConfig(config_path=blocker / "config.json")
        with pytest.raises(OSError):
            config.save_verification_material(generate_salt(), b"\x05" * 32)
        assert config.is_initialized is False


class TestTunableSettings:
    """Tests for get_value()/set_value()."""

    def test_get_value(self, config):
        assert config.get_value("auto_lock_timeout") == 5

    def test_set_value_persists(self, config):
        config.set_value("password_length", 24)
        assert VaultConfig.load(config.config_path).password_length == 24

    def test_set_invalid_value(self, config):
        with pytest.raises(ValidationError):
            config.set_value("auto_lock_timeout", -1)

    def test_password_length_floor(self, config):
        with pytest.raises(ValidationError):
            config.set_value("password_length", 4)
        config.set_value("password_length", 8)
        assert config.password_length == 8

    def test_unknown_key(self, config):
        with pytest.raises(KeyError):
            config.get_value("master_hash")
        with pytest.raises(KeyError):
            config.set_value("salt", b"x")
