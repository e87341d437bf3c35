"""Module Tests for tunneled sessions through the DatabaseService

The in-process SSH server echoes whatever reaches the forwarded endpoint,
so no database is involved: the engine layer is either replaced by a
recorder that dials the endpoint it was given, or left real so that its
handshake fails against the echo.
"""

import asyncio
import socket
from typing import Any, Callable

import pytest

from easysql.core import DatabaseConnection, SSHTunnel
from easysql.models.config import ConnectionConfig, PoolSettings, SSHSettings
from easysql.service import DatabaseService

pytestmark = pytest.mark.ssh

QUICK_PROBE_POOL = PoolSettings(
    max_connections=1, min_connections=1, acquire_timeout=2, idle_timeout=None
)


def tunneled_config(
    ssh_settings: Callable[..., SSHSettings], **overrides
) -> ConnectionConfig:
    settings = ssh_settings()
    values: dict[str, Any] = {
        "id": "tunneled",
        "type": "postgres",
        "host": "db.internal",
        "port": 5432,
        "username": "app",
        "password": "secret",
        "database": "app",
        "sshEnabled": True,
        "sshHost": settings.host,
        "sshPort": settings.port,
        "sshUser": settings.user,
        "sshPassword": settings.password,
    }
    values.update(overrides)
    return ConnectionConfig.model_validate(values)


def port_is_closed(port: int) -> bool:
    try:
        socket.create_connection(("127.0.0.1", port), timeout=2).close()
    except OSError:
        return True
    return False


async def echo_roundtrip(host: str, port: int, payload: bytes) -> bytes:
    reader, writer = await asyncio.open_connection(host, port)
    try:
        writer.write(payload)
        await writer.drain()
        return await reader.readexactly(len(payload))
    finally:
        writer.close()
        await writer.wait_closed()


@pytest.fixture
def opened_tunnels(monkeypatch) -> list[SSHTunnel]:
    """Every tunnel the service opens, in order."""
    tunnels: list[SSHTunnel] = []
    original = SSHTunnel.open.__func__

    async def recording_open(cls, *args, **kwargs):
        tunnel = await original(cls, *args, **kwargs)
        tunnels.append(tunnel)
        return tunnel

    monkeypatch.setattr(SSHTunnel, "open", classmethod(recording_open))
    return tunnels


@pytest.fixture
def dialed(monkeypatch) -> list[tuple[str, int]]:
    """Replace the engine layer with one that dials through and echoes."""
    endpoints: list[tuple[str, int]] = []

    async def fake_probe(cls, config, adapter, host, port):
        endpoints.append((host, port))
        assert await echo_roundtrip(host, port, b"startup") == b"startup"

    async def fake_open(cls, config, adapter, host, port):
        await fake_probe(cls, config, adapter, host, port)
        return cls(config, adapter, host, port)

    monkeypatch.setattr(DatabaseConnection, "probe", classmethod(fake_probe))
    monkeypatch.setattr(DatabaseConnection, "open", classmethod(fake_open))
    return endpoints


class TestTunneledSessions:
    async def test_connection_test_reports_tunnel_and_closes_it(
        self,
        service: DatabaseService,
        ssh_endpoint,
        ssh_settings,
        opened_tunnels,
        dialed,
    ):
        result = await service.test(tunneled_config(ssh_settings))

        assert result.success, result.message
        assert result.message == "Connection successful (SSH tunnel)"
        assert ssh_endpoint.server.destinations == [("db.internal", 5432)]

        (tunnel,) = opened_tunnels
        assert dialed == [("127.0.0.1", tunnel.local_port)]
        assert not tunnel.is_active
        assert port_is_closed(tunnel.local_port)
        assert "tunneled" not in service.registry

    async def test_connect_keeps_tunnel_until_disconnect(
        self,
        service: DatabaseService,
        ssh_endpoint,
        ssh_settings,
        opened_tunnels,
        dialed,
    ):
        config = tunneled_config(ssh_settings, type="mysql", port=3306)
        result = await service.connect(config)

        assert result.success, result.message
        assert result.message == "Connected (SSH tunnel)"
        assert result.session_id == "tunneled"

        (tunnel,) = opened_tunnels
        info = service.registry.get("tunneled")
        assert info.tunnel is tunnel
        assert tunnel.is_active
        assert ssh_endpoint.server.destinations == [("db.internal", 3306)]

        disconnected = await service.disconnect("tunneled")

        assert disconnected.success
        assert not tunnel.is_active
        assert port_is_closed(tunnel.local_port)

    async def test_wrong_ssh_password_fails_before_dialing(
        self, service: DatabaseService, ssh_settings, opened_tunnels, dialed
    ):
        config = tunneled_config(ssh_settings, sshPassword="wrong")

        tested = await service.test(config)
        connected = await service.connect(config)

        for result in (tested, connected):
            assert not result.success
            assert result.message.startswith("SSH tunnel error")
        assert dialed == []
        assert "tunneled" not in service.registry


class TestTunnelCleanupOnDialFailure:
    @pytest.fixture(autouse=True)
    def quick_probe_pool(self, monkeypatch):
        monkeypatch.setattr("easysql.adapters.base.PROBE_POOL", QUICK_PROBE_POOL)

    @pytest.mark.postgresql
    async def test_failed_handshake_closes_tunnel(
        self, service: DatabaseService, ssh_endpoint, ssh_settings, opened_tunnels
    ):
        result = await service.test(tunneled_config(ssh_settings))

        assert not result.success
        assert result.message.startswith("Connection failed")
        assert ssh_endpoint.server.destinations
        (tunnel,) = opened_tunnels
        assert not tunnel.is_active
        assert port_is_closed(tunnel.local_port)
