"""Local TCP forwarder through an authenticated SSH session.

The tunnel listens on an ephemeral loopback port. Every accepted socket is
relayed over its own ``direct-tcpip`` channel to the remote endpoint, so a
database driver can dial ``127.0.0.1:<local_port>`` as if it were the
remote server. All socket work happens on daemon threads; the event loop
only waits for the handshake outcome.
"""

import asyncio
import logging
import socket
import threading
from typing import Optional

import paramiko

from easysql.exceptions import SSHTunnelError
from easysql.models.config import LOOPBACK_HOST, SSHSettings

logger = logging.getLogger(__name__)

SSH_CONNECT_TIMEOUT = 10
ACCEPT_POLL_INTERVAL = 0.5
CHUNK_SIZE = 32768


class _Relay:
    """One forwarded connection: a local socket paired with an SSH channel."""

    def __init__(
        self, local: socket.socket, channel: paramiko.Channel, on_close=None
    ):
        self.local = local
        self.channel = channel
        self._on_close = on_close
        self._done = threading.Event()
        self._closed = False
        self._lock = threading.Lock()

    def start(self, name: str) -> None:
        upload = threading.Thread(
            target=self._pump,
            args=(self.local.recv, self.channel.sendall, "upload"),
            name=f"{name}-up",
            daemon=True,
        )
        download = threading.Thread(
            target=self._pump,
            args=(self.channel.recv, self.local.sendall, "download"),
            name=f"{name}-down",
            daemon=True,
        )
        upload.start()
        download.start()

    def _pump(self, read, write, direction: str) -> None:
        try:
            while not self._done.is_set():
                data = read(CHUNK_SIZE)
                if not data:
                    break
                write(data)
        except (OSError, EOFError, paramiko.SSHException) as e:
            if not self._done.is_set():
                logger.warning(f"Tunnel {direction} relay ended: {e}")
        finally:
            self.close()

    def close(self) -> None:
        """Stop both directions. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._done.set()
        try:
            self.local.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.local.close()
        self.channel.close()
        if self._on_close is not None:
            self._on_close(self)


class SSHTunnel:
    """SSH port forward from a loopback listener to ``remote_host:remote_port``."""

    def __init__(self, settings: SSHSettings, remote_host: str, remote_port: int):
        """
        Prepare a tunnel. Nothing is bound or dialed until :meth:`start`.

        Args:
            settings: SSH endpoint and credentials
            remote_host: Database host as seen from the SSH server
            remote_port: Database port as seen from the SSH server
        """
        self.settings = settings
        self.remote_host = remote_host
        self.remote_port = remote_port

        self.ssh_client: Optional[paramiko.SSHClient] = None
        self._listener: Optional[socket.socket] = None
        self._local_port: Optional[int] = None
        self._worker: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._stopped = threading.Event()
        self._error: Optional[SSHTunnelError] = None
        self._relays: set[_Relay] = set()
        self._lock = threading.Lock()

    @property
    def local_port(self) -> int:
        """Ephemeral loopback port the tunnel listens on."""
        if self._local_port is None:
            raise SSHTunnelError("Tunnel is not started")
        return self._local_port

    @property
    def is_active(self) -> bool:
        return (
            self._ready.is_set()
            and self._error is None
            and not self._stopped.is_set()
        )

    @classmethod
    async def open(
        cls, settings: SSHSettings, remote_host: str, remote_port: int
    ) -> "SSHTunnel":
        """
        Start a tunnel and wait until the SSH session is authenticated.

        Args:
            settings: SSH endpoint and credentials
            remote_host: Database host as seen from the SSH server
            remote_port: Database port as seen from the SSH server

        Returns:
            A running tunnel

        Raises:
            SSHTunnelError: If binding, connecting or authenticating fails
        """
        tunnel = cls(settings, remote_host, remote_port)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, tunnel.start)
        except BaseException:
            tunnel.close()
            raise
        return tunnel

    def start(self, timeout: Optional[float] = None) -> int:
        """
        Bind the listener, spawn the worker and block until it is ready.

        Returns:
            The local port

        Raises:
            SSHTunnelError: If the handshake or authentication fails
        """
        if not self.settings.key_path and not self.settings.password:
            raise SSHTunnelError("No SSH key or password provided")

        try:
            listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((LOOPBACK_HOST, 0))
            listener.listen()
            listener.settimeout(ACCEPT_POLL_INTERVAL)
        except OSError as e:
            raise SSHTunnelError(f"Cannot bind local port: {e}") from e

        self._listener = listener
        self._local_port = listener.getsockname()[1]
        self._worker = threading.Thread(
            target=self._serve, name=f"ssh-tunnel-{self._local_port}", daemon=True
        )
        self._worker.start()

        waited = timeout if timeout is not None else SSH_CONNECT_TIMEOUT * 3
        if not self._ready.wait(waited):
            self.close()
            raise SSHTunnelError(
                f"Timed out connecting to {self.settings.host}:{self.settings.port}"
            )
        if self._error is not None:
            raise self._error

        logger.info(
            f"SSH tunnel 127.0.0.1:{self._local_port} -> "
            f"{self.remote_host}:{self.remote_port} via "
            f"{self.settings.host}:{self.settings.port}"
        )
        return self._local_port

    def _connect_client(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs = {
            "hostname": self.settings.host,
            "port": self.settings.port,
            "username": self.settings.user,
            "timeout": SSH_CONNECT_TIMEOUT,
            "allow_agent": False,
            "look_for_keys": False,
        }
        # The key file wins when both are configured
        if self.settings.key_path:
            connect_kwargs["key_filename"] = self.settings.key_path
        else:
            connect_kwargs["password"] = self.settings.password

        try:
            client.connect(**connect_kwargs)
        except paramiko.AuthenticationException as e:
            client.close()
            raise SSHTunnelError(f"SSH authentication failed: {e}") from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise SSHTunnelError(
                f"Cannot connect to SSH server "
                f"{self.settings.host}:{self.settings.port}: {e}"
            ) from e
        return client

    def _serve(self) -> None:
        try:
            self.ssh_client = self._connect_client()
        except SSHTunnelError as e:
            logger.error(str(e))
            self._error = e
            self._ready.set()
            self._close_listener()
            return

        if self._stopped.is_set():
            self.ssh_client.close()
            return
        self._ready.set()
        try:
            self._accept_loop()
        finally:
            self._close_listener()

    def _accept_loop(self) -> None:
        while not self._stopped.is_set():
            listener = self._listener
            if listener is None:
                return
            try:
                local, address = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stopped.is_set():
                    logger.error(f"Tunnel listener failed: {e}")
                return

            threading.Thread(
                target=self._forward,
                args=(local, address),
                name=f"ssh-forward-{address[1]}",
                daemon=True,
            ).start()

    def _forward(self, local: socket.socket, address: tuple) -> None:
        local.settimeout(None)
        transport = self.ssh_client.get_transport() if self.ssh_client else None
        if transport is None or not transport.is_active():
            logger.error("SSH transport is not active; dropping tunneled connection")
            local.close()
            return

        try:
            channel = transport.open_channel(
                "direct-tcpip", (self.remote_host, self.remote_port), address
            )
        except (paramiko.SSHException, OSError) as e:
            logger.error(
                f"Cannot open channel to {self.remote_host}:{self.remote_port}: {e}"
            )
            local.close()
            return

        relay = _Relay(local, channel, on_close=self._discard_relay)
        with self._lock:
            stopped = self._stopped.is_set()
            if not stopped:
                self._relays.add(relay)
        if stopped:
            relay.close()
            return
        relay.start(threading.current_thread().name)

    def _discard_relay(self, relay: _Relay) -> None:
        with self._lock:
            self._relays.discard(relay)

    def _close_listener(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            try:
                listener.close()
            except OSError:
                pass

    def close(self) -> None:
        """Stop accepting, tear down every relay and the SSH session."""
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._ready.set()

        self._close_listener()
        with self._lock:
            relays, self._relays = self._relays, set()
        for relay in relays:
            relay.close()

        if self.ssh_client is not None:
            self.ssh_client.close()
            self.ssh_client = None
        logger.debug(f"SSH tunnel on port {self._local_port} closed")

    def __enter__(self) -> "SSHTunnel":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    async def __aenter__(self) -> "SSHTunnel":
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.start)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
