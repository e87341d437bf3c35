"""Unit tests for the session registry using fake connections."""

import asyncio

import pytest

from easysql.core.registry import ConnectionInfo, ConnectionRegistry
from easysql.models.config import ConnectionConfig


class FakeConnection:
    def __init__(self, fail: bool = False):
        self.adapter = object()
        self.dispose_calls = 0
        self.fail = fail

    async def dispose(self) -> None:
        self.dispose_calls += 1
        if self.fail:
            raise RuntimeError("dispose failed")


class FakeTunnel:
    def __init__(self):
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1


def make_info(session_id: str = "s1", tunnel=None, fail: bool = False):
    config = ConnectionConfig(id=session_id, db_type="sqlite")
    return ConnectionInfo(FakeConnection(fail=fail), config, tunnel)


class TestConnectionRegistry:
    async def test_register_and_get(self):
        registry = ConnectionRegistry()
        info = make_info()

        await registry.register("s1", info)

        assert registry.get("s1") is info
        assert "s1" in registry
        assert len(registry) == 1
        assert registry.ids() == ["s1"]

    async def test_unknown_id(self):
        registry = ConnectionRegistry()
        assert registry.get("missing") is None
        assert "missing" not in registry
        assert await registry.remove("missing") is False

    async def test_remove_releases_engine_and_tunnel(self):
        registry = ConnectionRegistry()
        tunnel = FakeTunnel()
        info = make_info(tunnel=tunnel)
        await registry.register("s1", info)

        assert await registry.remove("s1") is True

        assert registry.get("s1") is None
        assert info.connection.dispose_calls == 1
        assert tunnel.close_calls == 1
        assert info.is_released

    async def test_register_replaces_and_retires_previous(self):
        registry = ConnectionRegistry()
        first = make_info()
        second = make_info()

        await registry.register("s1", first)
        await registry.register("s1", second)

        assert registry.get("s1") is second
        assert len(registry) == 1
        assert first.connection.dispose_calls == 1
        assert second.connection.dispose_calls == 0

    async def test_re_registering_same_info_keeps_it(self):
        registry = ConnectionRegistry()
        info = make_info()

        await registry.register("s1", info)
        await registry.register("s1", info)

        assert info.connection.dispose_calls == 0

    async def test_close_all(self):
        registry = ConnectionRegistry()
        infos = [make_info(f"s{i}") for i in range(3)]
        for info in infos:
            await registry.register(info.session_id, info)

        await registry.close_all()

        assert len(registry) == 0
        assert all(info.connection.dispose_calls == 1 for info in infos)


class TestConnectionInfoLeases:
    async def test_release_waits_for_in_flight_lease(self):
        tunnel = FakeTunnel()
        info = make_info(tunnel=tunnel)

        async with info.lease():
            await info.retire()
            assert info.is_retired
            assert info.active_leases == 1
            assert info.connection.dispose_calls == 0
            assert tunnel.close_calls == 0

        assert info.active_leases == 0
        assert info.connection.dispose_calls == 1
        assert tunnel.close_calls == 1

    async def test_release_happens_exactly_once(self):
        tunnel = FakeTunnel()
        info = make_info(tunnel=tunnel)

        async def hold(started: asyncio.Event, finish: asyncio.Event):
            async with info.lease():
                started.set()
                await finish.wait()

        started = [asyncio.Event() for _ in range(3)]
        finish = asyncio.Event()
        tasks = [asyncio.create_task(hold(s, finish)) for s in started]
        for event in started:
            await event.wait()

        await info.retire()
        await info.retire()
        finish.set()
        await asyncio.gather(*tasks)

        assert info.connection.dispose_calls == 1
        assert tunnel.close_calls == 1

    async def test_lease_without_retire_does_not_release(self):
        info = make_info()

        async with info.lease():
            pass

        assert info.connection.dispose_calls == 0
        assert not info.is_released

    async def test_dispose_error_still_closes_tunnel(self, caplog):
        tunnel = FakeTunnel()
        info = make_info(tunnel=tunnel, fail=True)

        await info.retire()

        assert tunnel.close_calls == 1
        assert "dispose failed" in caplog.text

    async def test_lease_released_on_error(self):
        info = make_info()

        with pytest.raises(ValueError):
            async with info.lease():
                raise ValueError("boom")

        assert info.active_leases == 0
