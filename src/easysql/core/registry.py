"""Session registry mapping caller-chosen ids to live connections."""

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from easysql.adapters.base import BaseAdapter
from easysql.core.connection import DatabaseConnection
from easysql.core.tunnel import SSHTunnel
from easysql.models.config import ConnectionConfig

logger = logging.getLogger(__name__)


class ConnectionInfo:
    """A registered session: its engine, the config it came from and its tunnel.

    The engine and tunnel are released exactly once, after the session was
    retired and the last in-flight lease has ended.
    """

    def __init__(
        self,
        connection: DatabaseConnection,
        config: ConnectionConfig,
        tunnel: Optional[SSHTunnel] = None,
    ):
        self.connection = connection
        self.config = config
        self.tunnel = tunnel
        self._leases = 0
        self._retired = False
        self._released = False
        self._lock = threading.Lock()

    @property
    def adapter(self) -> BaseAdapter:
        return self.connection.adapter

    @property
    def session_id(self) -> str:
        return self.config.id

    @property
    def active_leases(self) -> int:
        return self._leases

    @property
    def is_retired(self) -> bool:
        return self._retired

    @property
    def is_released(self) -> bool:
        return self._released

    @asynccontextmanager
    async def lease(self) -> AsyncGenerator["ConnectionInfo", None]:
        """Hold the session open for the duration of one operation."""
        with self._lock:
            self._leases += 1
        try:
            yield self
        finally:
            with self._lock:
                self._leases -= 1
                release = self._retired and self._leases == 0
            if release:
                await self._release()

    async def retire(self) -> None:
        """Mark the session removed; release now if nothing is in flight."""
        with self._lock:
            self._retired = True
            release = self._leases == 0
        if release:
            await self._release()

    async def _release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True

        try:
            await self.connection.dispose()
        except Exception as e:
            logger.warning(f"Error disposing engine for '{self.session_id}': {e}")

        if self.tunnel is not None:
            # paramiko's close joins its transport thread
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.tunnel.close)
        logger.debug(f"Released session '{self.session_id}'")


class ConnectionRegistry:
    """Process-scoped map of session id to :class:`ConnectionInfo`.

    The lock guards the dict only; it is never held while awaiting.
    """

    def __init__(self):
        self._sessions: dict[str, ConnectionInfo] = {}
        self._lock = threading.Lock()

    async def register(self, session_id: str, info: ConnectionInfo) -> None:
        """
        Store a session, replacing and retiring any previous one with that id.

        Args:
            session_id: Caller-chosen session id
            info: Connection to store
        """
        with self._lock:
            previous = self._sessions.get(session_id)
            self._sessions[session_id] = info

        if previous is not None and previous is not info:
            logger.info(f"Replacing existing session '{session_id}'")
            await previous.retire()

    def get(self, session_id: str) -> Optional[ConnectionInfo]:
        with self._lock:
            return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> bool:
        """
        Remove a session and release its resources once idle.

        Returns:
            True if a session was registered under the id
        """
        with self._lock:
            info = self._sessions.pop(session_id, None)

        if info is None:
            return False
        await info.retire()
        return True

    def ids(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def sessions(self) -> list[ConnectionInfo]:
        with self._lock:
            return list(self._sessions.values())

    async def close_all(self) -> None:
        """Remove every session."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for info in sessions:
            await info.retire()

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
