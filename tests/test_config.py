"""Tests for keystore.config: centralized configuration."""

from pathlib import Path

import pytest

from keystore.config import Config, DatabaseConfig, get_config, reset_config


@pytest.fixture(autouse=True)
def clean_config(clean_env):
    """Reset config singleton and keystore env vars between tests."""
    yield


class TestDatabaseConfig:
    def test_defaults(self):
        db = DatabaseConfig()
        assert db.host == ""
        assert db.port == 5432
        assert db.name == "keystore"

    def test_dict(self):
        d = DatabaseConfig(host="localhost", port=5432, name="test", user="u").dict
        assert d == {"dbname": "test", "port": 5432, "host": "localhost", "user": "u"}

    def test_frozen(self):
        db = DatabaseConfig()
        with pytest.raises(AttributeError):
            db.host = "other"  # type: ignore[misc]


class TestConfig:
    def test_defaults(self):
        cfg = Config()
        assert cfg.backend == "memory"
        assert cfg.master_key == ""
        assert cfg.unique_key_names is False
        assert cfg.key_file == cfg.workspace / ".vault-key"
        assert cfg.data_path == cfg.workspace / "keystore.json"

    def test_master_key_not_in_repr(self):
        assert "hunter2" not in repr(Config(master_key="hunter2"))


class TestLoadFromEnv:
    def test_defaults(self):
        cfg = get_config()
        assert cfg.workspace == Path.home() / ".keystore"
        assert cfg.backend == "memory"
        assert cfg.app_name == "Keystore"

    def test_env_overrides(self, clean_env, tmp_path: Path):
        clean_env.setenv("KEYSTORE_WORKSPACE", str(tmp_path))
        clean_env.setenv("KEYSTORE_MASTER_KEY", "material")
        clean_env.setenv("KEYSTORE_BACKEND", "File")
        clean_env.setenv("KEYSTORE_DATA_FILE", str(tmp_path / "d.json"))
        clean_env.setenv("KEYSTORE_UNIQUE_KEY_NAMES", "yes")
        clean_env.setenv("KEYSTORE_DB_PORT", "6543")
        clean_env.setenv("KEYSTORE_ENV", "production")
        cfg = get_config()
        assert cfg.workspace == tmp_path
        assert cfg.master_key == "material"
        assert cfg.backend == "file"
        assert cfg.data_path == tmp_path / "d.json"
        assert cfg.unique_key_names is True
        assert cfg.db.port == 6543
        assert cfg.environment == "production"

    def test_invalid_backend(self, clean_env):
        clean_env.setenv("KEYSTORE_BACKEND", "etcd")
        with pytest.raises(ValueError, match="KEYSTORE_BACKEND"):
            get_config()

    def test_singleton(self):
        assert get_config() is get_config()

    def test_reset(self, clean_env):
        first = get_config()
        reset_config()
        assert get_config() is not first
