"""Shared fixtures for module tests: an in-process paramiko SSH server

The server accepts password auth and answers every ``direct-tcpip``
channel by echoing bytes back, recording the requested destination.
"""

import socket
import threading
from typing import Callable, Iterator

import paramiko
import pytest

from easysql.models.config import SSHSettings

SSH_USER = "tester"
SSH_PASSWORD = "secret"


class StubSSHServer(paramiko.ServerInterface):
    def __init__(self):
        self.destinations = []

    def get_allowed_auths(self, username):
        return "password"

    def check_auth_password(self, username, password):
        if username == SSH_USER and password == SSH_PASSWORD:
            return paramiko.AUTH_SUCCESSFUL
        return paramiko.AUTH_FAILED

    def check_channel_request(self, kind, chanid):
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_direct_tcpip_request(self, chanid, origin, destination):
        self.destinations.append(destination)
        return paramiko.OPEN_SUCCEEDED


def _echo(channel: paramiko.Channel) -> None:
    try:
        while True:
            data = channel.recv(4096)
            if not data:
                break
            channel.sendall(data)
    except (OSError, EOFError, paramiko.SSHException):
        pass
    finally:
        channel.close()


class StubSSHEndpoint:
    """Listening socket that runs one paramiko transport per client."""

    def __init__(self, host_key: paramiko.PKey):
        self.host_key = host_key
        self.server = StubSSHServer()
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen()
        self.port = self.listener.getsockname()[1]
        self.transports = []
        self._thread = threading.Thread(target=self._accept, daemon=True)
        self._thread.start()

    def _accept(self) -> None:
        while True:
            try:
                client, _ = self.listener.accept()
            except OSError:
                return
            threading.Thread(target=self._serve, args=(client,), daemon=True).start()

    def _serve(self, client: socket.socket) -> None:
        transport = paramiko.Transport(client)
        self.transports.append(transport)
        transport.add_server_key(self.host_key)
        try:
            transport.start_server(server=self.server)
        except (paramiko.SSHException, EOFError, OSError):
            return
        while transport.is_active():
            channel = transport.accept(0.5)
            if channel is not None:
                threading.Thread(target=_echo, args=(channel,), daemon=True).start()

    def close(self) -> None:
        self.listener.close()
        for transport in self.transports:
            transport.close()


@pytest.fixture(scope="module")
def host_key() -> paramiko.PKey:
    return paramiko.RSAKey.generate(2048)


@pytest.fixture
def ssh_endpoint(host_key) -> Iterator[StubSSHEndpoint]:
    endpoint = StubSSHEndpoint(host_key)
    try:
        yield endpoint
    finally:
        endpoint.close()


@pytest.fixture
def ssh_settings(ssh_endpoint: StubSSHEndpoint) -> Callable[..., SSHSettings]:
    """Factory for settings that reach the stub server, with overrides."""

    def build(**overrides) -> SSHSettings:
        values = {
            "host": "127.0.0.1",
            "port": ssh_endpoint.port,
            "user": SSH_USER,
            "password": SSH_PASSWORD,
        }
        values.update(overrides)
        return SSHSettings(**values)

    return build
