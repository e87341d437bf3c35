"""Unit tests for configuration and result models."""

import pytest
from pydantic import ValidationError

from easysql.models.config import (
    LIVE_POOL,
    PROBE_POOL,
    SQLITE_POOL,
    ConnectionConfig,
    resolve_host,
)
from easysql.models.query import CommandResult, QueryResult
from easysql.models.table import ColumnInfo, PrimaryKey, TableDataResult, TableInfo


class TestConnectionConfig:
    def test_accepts_saved_camel_case_keys(self):
        config = ConnectionConfig.model_validate(
            {
                "id": "prod",
                "type": "MySQL",
                "name": "Production",
                "host": "db.internal",
                "port": 3306,
                "username": "app",
                "password": "secret",
                "database": "shop",
                "sshEnabled": True,
                "sshHost": "bastion",
                "sshUser": "deploy",
                "sshKey": "/home/deploy/.ssh/id_ed25519",
            }
        )

        assert config.db_type == "MySQL"
        assert config.engine == "mysql"
        assert config.ssh_enabled is True
        assert config.ssh_key == "/home/deploy/.ssh/id_ed25519"

    def test_accepts_field_names(self):
        config = ConnectionConfig(id="x", db_type="sqlite", database="/tmp/x.db")
        assert config.engine == "sqlite"

    def test_dump_round_trips_through_aliases(self):
        config = ConnectionConfig(
            id="x", db_type="postgres", ssh_enabled=False, ssh_port=2222
        )
        dumped = config.to_json_dict()

        assert dumped["type"] == "postgres"
        assert dumped["sshEnabled"] is False
        assert dumped["sshPort"] == 2222
        assert ConnectionConfig.model_validate(dumped) == config

    def test_is_frozen(self):
        config = ConnectionConfig(id="x", db_type="mysql")
        with pytest.raises(ValidationError):
            config.host = "elsewhere"

    def test_requires_id(self):
        with pytest.raises(ValidationError):
            ConnectionConfig(id="", db_type="mysql")

    def test_ssh_settings_only_when_enabled(self):
        assert ConnectionConfig(id="x", db_type="mysql").ssh_settings is None
        assert (
            ConnectionConfig(
                id="x", db_type="mysql", ssh_enabled=False, ssh_host="bastion"
            ).ssh_settings
            is None
        )
        assert (
            ConnectionConfig(id="x", db_type="mysql", ssh_enabled=True).ssh_settings
            is None
        )

    def test_ssh_settings_defaults(self):
        config = ConnectionConfig(
            id="x",
            db_type="mysql",
            ssh_enabled=True,
            ssh_host="bastion",
            ssh_password="pw",
        )
        settings = config.ssh_settings

        assert settings is not None
        assert settings.host == "bastion"
        assert settings.port == 22
        assert settings.user == ""
        assert settings.password == "pw"
        assert settings.key_path is None

    def test_sqlite_path_prefers_database(self):
        assert (
            ConnectionConfig(
                id="x", db_type="sqlite", host="/tmp/a.db", database="/tmp/b.db"
            ).sqlite_path
            == "/tmp/b.db"
        )
        assert (
            ConnectionConfig(id="x", db_type="sqlite", host="/tmp/a.db").sqlite_path
            == "/tmp/a.db"
        )


class TestResolveHost:
    def test_localhost_is_rewritten(self):
        assert resolve_host("localhost") == "127.0.0.1"

    def test_other_hosts_unchanged(self):
        assert resolve_host("127.0.0.1") == "127.0.0.1"
        assert resolve_host("db.example.com") == "db.example.com"
        assert resolve_host("LOCALHOST.example.com") == "LOCALHOST.example.com"


class TestPoolSettings:
    def test_live_pool(self):
        assert LIVE_POOL.max_connections == 10
        assert LIVE_POOL.min_connections == 1
        assert LIVE_POOL.acquire_timeout == 30
        assert LIVE_POOL.idle_timeout == 600

    def test_probe_pool(self):
        assert PROBE_POOL.max_connections == 1
        assert PROBE_POOL.acquire_timeout == 10

    def test_sqlite_pool(self):
        assert SQLITE_POOL.max_connections == 5


class TestQueryResult:
    def test_read_shape(self):
        result = QueryResult.read(["id", "name"], [[1, "a"], [2, None]])

        assert result.kind == "read"
        assert result.ok
        assert result.affected_rows is None
        assert result.error is None
        assert result.row_count == 2
        assert result.get_column_values("name") == ["a", None]

    def test_zero_row_read_differs_from_zero_row_write(self):
        empty_read = QueryResult.read([], [])
        empty_write = QueryResult.write(0)

        assert empty_read.is_empty and empty_write.is_empty
        assert empty_read.kind == "read"
        assert empty_write.kind == "write"
        assert empty_read.affected_rows is None
        assert empty_write.affected_rows == 0

    def test_failure_shape(self):
        result = QueryResult.failure("Not connected")

        assert result.kind == "error"
        assert not result.ok
        assert result.columns == []
        assert result.rows == []
        assert result.affected_rows is None

    def test_dump_uses_camel_case_count(self):
        dumped = QueryResult.write(3).model_dump(by_alias=True)
        assert dumped["affectedRows"] == 3
        assert dumped["kind"] == "write"

    def test_to_table_string(self):
        assert QueryResult.failure("boom").to_table_string() == "Error: boom"
        assert QueryResult.write(2).to_table_string() == "2 row(s) affected"
        assert QueryResult.read([], []).to_table_string() == "No rows returned"

        table = QueryResult.read(["a"], [[1], [None], [3]]).to_table_string(max_rows=2)
        assert table.splitlines()[0] == "a"
        assert "NULL" in table
        assert "1 more rows" in table


class TestCommandResult:
    def test_ok_and_fail(self):
        ok = CommandResult.ok("Connected", session_id="s1")
        assert ok.success and ok.message == "Connected" and ok.session_id == "s1"

        failed = CommandResult.fail("Connection not found")
        assert not failed.success and failed.session_id is None

    def test_dump_alias(self):
        assert CommandResult.ok("x", session_id="s").model_dump(by_alias=True) == {
            "success": True,
            "message": "x",
            "sessionId": "s",
        }


class TestTableModels:
    def test_table_info_alias(self):
        info = TableInfo(name="v_orders", is_view=True)
        assert info.model_dump(by_alias=True) == {
            "name": "v_orders",
            "rows": 0,
            "isView": True,
        }

    def test_column_info_primary_key(self):
        assert ColumnInfo(name="id", type="int", key="PRI").is_primary_key
        assert not ColumnInfo(name="name", data_type="text").is_primary_key

    def test_page_count(self):
        assert TableDataResult(total=25, page_size=10).page_count == 3
        assert TableDataResult(total=0, page_size=10).page_count == 0
        assert TableDataResult(total=10, page_size=10).page_count == 1

    def test_page_must_be_positive(self):
        with pytest.raises(ValidationError):
            TableDataResult(page=0)

    def test_primary_key_value_is_free_form(self):
        assert PrimaryKey(column="id", value=5).value == 5
        assert PrimaryKey(column="code", value="O'Brien").value == "O'Brien"
