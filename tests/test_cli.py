"""Tests for keystore.cli: command line interface."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from keystore.cli import EXIT_INVALID, EXIT_NOT_FOUND, EXIT_UNREADABLE, main
from keystore.config import reset_config


@pytest.fixture
def workspace(clean_env, tmp_path: Path) -> Path:
    """File-backed vault with a fixed master key, so state survives between invocations."""
    clean_env.setenv("KEYSTORE_WORKSPACE", str(tmp_path))
    clean_env.setenv("KEYSTORE_BACKEND", "file")
    clean_env.setenv("KEYSTORE_MASTER_KEY", "cli-test-material")
    return tmp_path


class TestCli:
    def test_version(self, capsys):
        assert main(["version"]) == 0
        out = capsys.readouterr().out
        assert "keystore" in out
        assert "0.1.0" in out

    def test_version_flag(self, capsys):
        assert main(["--version"]) == 0
        assert "keystore" in capsys.readouterr().out

    def test_no_args(self, capsys):
        assert main([]) == 0

    def test_status(self, workspace, capsys):
        assert main(["status"]) == 0
        out = capsys.readouterr().out
        assert "Master key:  env" in out
        assert "Backend:     file" in out

    def test_status_warns_on_ephemeral_key(self, clean_env, tmp_path, capsys):
        clean_env.setenv("KEYSTORE_WORKSPACE", str(tmp_path))
        assert main(["status"]) == 0
        assert "ephemeral" in capsys.readouterr().out


class TestInitKey:
    def test_creates_key(self, clean_env, tmp_path, capsys):
        assert main(["init-key", "--workspace", str(tmp_path)]) == 0
        assert (tmp_path / ".vault-key").exists()
        assert "Created master key" in capsys.readouterr().out

    def test_existing_key(self, clean_env, tmp_path, capsys):
        main(["init-key", "--workspace", str(tmp_path)])
        capsys.readouterr()
        assert main(["init-key", "--workspace", str(tmp_path)]) == 0
        assert "already exists" in capsys.readouterr().out

    def test_key_file_used_by_vault(self, clean_env, tmp_path, capsys):
        clean_env.setenv("KEYSTORE_WORKSPACE", str(tmp_path))
        main(["init-key"])
        assert main(["status"]) == 0
        assert "Master key:  file" in capsys.readouterr().out


class TestSecretCommands:
    def test_set_get(self, workspace, capsys):
        assert main(["secret", "set", "app", "token", "abc"]) == 0
        capsys.readouterr()
        assert main(["secret", "get", "app", "token"]) == 0
        assert capsys.readouterr().out.strip() == "abc"

    def test_json_value(self, workspace, capsys):
        assert main(["secret", "set", "app", "cfg", '{"a": [1, 2, 3]}', "--type", "json"]) == 0
        capsys.readouterr()
        main(["secret", "get", "app", "cfg"])
        assert json.loads(capsys.readouterr().out) == {"a": [1, 2, 3]}

    def test_number_value(self, workspace, capsys):
        main(["secret", "set", "app", "rate", "42.5", "--type", "number"])
        capsys.readouterr()
        main(["secret", "get", "app", "rate"])
        assert capsys.readouterr().out.strip() == "42.5"

    def test_invalid_number(self, workspace, capsys):
        assert main(["secret", "set", "app", "rate", "abc", "--type", "number"]) == EXIT_INVALID

    def test_invalid_metadata(self, workspace, capsys):
        rc = main(["secret", "set", "app", "k", "v", "--metadata", "{oops"])
        assert rc == EXIT_INVALID

    def test_get_missing(self, workspace, capsys):
        assert main(["secret", "get", "app", "missing"]) == EXIT_NOT_FOUND
        assert "Not found" in capsys.readouterr().out

    def test_list_has_no_values(self, workspace, capsys):
        main(["secret", "set", "app", "token", "very-secret-value", "--metadata", '{"env": "prod"}'])
        capsys.readouterr()
        assert main(["secret", "list", "app"]) == 0
        out = capsys.readouterr().out
        listed = json.loads(out)
        assert [s["key"] for s in listed] == ["token"]
        assert listed[0]["metadata"] == {"env": "prod"}
        assert "very-secret-value" not in out

    def test_delete(self, workspace, capsys):
        main(["secret", "set", "app", "token", "abc"])
        assert main(["secret", "delete", "app", "token"]) == 0
        assert main(["secret", "delete", "app", "token"]) == EXIT_NOT_FOUND

    def test_wrong_key_is_unreadable(self, workspace, clean_env, capsys):
        main(["secret", "set", "app", "token", "abc"])
        clean_env.setenv("KEYSTORE_MASTER_KEY", "different-material")
        reset_config()
        assert main(["secret", "get", "app", "token"]) == EXIT_UNREADABLE
        assert "unreadable" in capsys.readouterr().out

    def test_corrupt_settings_is_unreadable(self, workspace, capsys):
        (workspace / "keystore.json").write_text(json.dumps({"settings": {"app": {"app_name": 42}}}))
        assert main(["secret", "list", "app"]) == EXIT_UNREADABLE
        assert "Cannot open vault" in capsys.readouterr().out


class TestApiKeyCommands:
    def _create(self, capsys, *args) -> dict:
        assert main(["apikey", "create", *args]) == 0
        return json.loads(capsys.readouterr().out)

    def test_create_reveal(self, workspace, capsys):
        created = self._create(capsys, "openai", "api_key", "sk-test-123")
        assert created["key_name"] == "openai"
        assert "sk-test-123" not in json.dumps(created)
        assert main(["apikey", "reveal", "openai"]) == 0
        assert capsys.readouterr().out.strip() == "sk-test-123"

    def test_list(self, workspace, capsys):
        self._create(capsys, "openai", "api_key", "sk-test-123", "--description", "prod")
        assert main(["apikey", "list"]) == 0
        out = capsys.readouterr().out
        assert json.loads(out)[0]["description"] == "prod"
        assert "sk-test-123" not in out

    def test_update_deactivates(self, workspace, capsys):
        created = self._create(capsys, "openai", "api_key", "sk-1")
        assert main(["apikey", "update", created["id"], "--inactive"]) == 0
        capsys.readouterr()
        assert main(["apikey", "reveal", "openai"]) == EXIT_NOT_FOUND

    def test_update_value(self, workspace, capsys):
        created = self._create(capsys, "openai", "api_key", "sk-1")
        main(["apikey", "update", created["id"], "--value", "sk-2"])
        capsys.readouterr()
        main(["apikey", "reveal", "openai"])
        assert capsys.readouterr().out.strip() == "sk-2"

    def test_update_missing(self, workspace, capsys):
        assert main(["apikey", "update", "nope", "--description", "x"]) == EXIT_NOT_FOUND

    def test_invalid_expiry(self, workspace, capsys):
        rc = main(["apikey", "create", "n", "token", "v", "--expires-at", "tomorrow"])
        assert rc == EXIT_INVALID

    def test_naive_expiry_is_utc(self, workspace, capsys):
        created = self._create(capsys, "old", "token", "v", "--expires-at", "2000-01-01T00:00:00")
        assert datetime.fromisoformat(created["expires_at"]) == datetime(2000, 1, 1, tzinfo=UTC)
        assert main(["apikey", "list"]) == 0
        assert json.loads(capsys.readouterr().out)[0]["expires_at"] == created["expires_at"]

    def test_delete(self, workspace, capsys):
        created = self._create(capsys, "openai", "api_key", "sk-1")
        assert main(["apikey", "delete", created["id"]]) == 0
        assert main(["apikey", "delete", created["id"]]) == EXIT_NOT_FOUND
        assert main(["apikey", "reveal", "openai"]) == EXIT_NOT_FOUND
