"""Unit tests for the persisted connection list."""

import sys
from pathlib import Path

import orjson
import pytest

from easysql.models.config import ConnectionConfig
from easysql.storage import ConnectionStore, default_config_dir


class TestDefaultConfigDir:
    def test_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EASYSQL_CONFIG_DIR", str(tmp_path / "custom"))
        assert default_config_dir() == tmp_path / "custom"

    @pytest.mark.skipif(sys.platform == "win32", reason="XDG applies off Windows")
    def test_xdg_config_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv("EASYSQL_CONFIG_DIR", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert default_config_dir() == tmp_path / "easysql"

    @pytest.mark.skipif(sys.platform == "win32", reason="XDG applies off Windows")
    def test_home_fallback(self, monkeypatch):
        monkeypatch.delenv("EASYSQL_CONFIG_DIR", raising=False)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        assert default_config_dir() == Path.home() / ".config" / "easysql"

    def test_store_default_path(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EASYSQL_CONFIG_DIR", str(tmp_path))
        assert ConnectionStore().path == tmp_path / "connections.json"


class TestConnectionStore:
    def test_missing_file_is_empty(self, store: ConnectionStore):
        assert not store.path.exists()
        assert store.load() == []

    def test_empty_file_is_empty(self, store: ConnectionStore):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("")
        assert store.load() == []

    def test_save_then_load(self, store: ConnectionStore):
        configs = [
            ConnectionConfig(id="a", db_type="mysql", host="db", port=3306),
            ConnectionConfig(
                id="b",
                db_type="postgres",
                ssh_enabled=True,
                ssh_host="bastion",
                ssh_user="me",
            ),
        ]

        store.save(configs)

        assert store.path.exists()
        assert store.load() == configs

    def test_saved_file_uses_camel_case_keys(self, store: ConnectionStore):
        store.save([ConnectionConfig(id="a", db_type="sqlite", ssh_enabled=False)])

        saved = orjson.loads(store.path.read_bytes())
        assert isinstance(saved, list)
        assert saved[0]["type"] == "sqlite"
        assert "sshEnabled" in saved[0]
        assert "db_type" not in saved[0]

    def test_loads_file_written_by_the_ui(self, store: ConnectionStore):
        store.path.parent.mkdir(parents=True)
        store.path.write_text(
            '[{"id": "1", "type": "mariadb", "name": "Local", "host": "localhost",'
            ' "port": 3307, "username": "root", "password": ""}]'
        )

        (config,) = store.load()
        assert config.engine == "mariadb"
        assert config.port == 3307
        assert config.database is None

    def test_invalid_content_raises_value_error(self, store: ConnectionStore):
        store.path.parent.mkdir(parents=True)
        store.path.write_text('{"not": "a list"}')

        with pytest.raises(ValueError):
            store.load()

    def test_invalid_json_raises_value_error(self, store: ConnectionStore):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("[{")

        with pytest.raises(ValueError):
            store.load()
