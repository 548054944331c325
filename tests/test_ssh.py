"""Tests for the SSH transport helpers."""

from __future__ import annotations

import socket
import socketserver
import threading
from types import SimpleNamespace

import paramiko
import pytest

from fakes import FakeSSHClient
from mongo_backup.errors import ConfigurationError, ExecutionError
from mongo_backup.models import SSHDescriptor
from mongo_backup.ssh import forward_local_port, open_ssh_client, quote_remote_command


class _UpperHandler(socketserver.BaseRequestHandler):
    def handle(self) -> None:
        while True:
            data = self.request.recv(1024)
            if not data:
                return
            self.request.sendall(data.upper())


@pytest.fixture
def upper_server():
    server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), _UpperHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server.server_address[1]
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def test_forward_round_trips_through_direct_tcpip(upper_server) -> None:
    opened: list[tuple] = []

    def open_channel(kind, dest, src):  # noqa: ANN001
        opened.append((kind, dest))
        return socket.create_connection(("127.0.0.1", upper_server), timeout=5)

    transport = SimpleNamespace(is_active=lambda: True, open_channel=open_channel)
    client = SimpleNamespace(get_transport=lambda: transport)

    with forward_local_port(client, "db.internal", 27017) as port:
        with socket.create_connection(("127.0.0.1", port), timeout=5) as conn:
            conn.sendall(b"ping")
            assert conn.recv(1024) == b"PING"

    assert opened == [("direct-tcpip", ("db.internal", 27017))]
    with pytest.raises(OSError):
        socket.create_connection(("127.0.0.1", port), timeout=1)


def test_forward_requires_active_transport() -> None:
    client = SimpleNamespace(get_transport=lambda: SimpleNamespace(is_active=lambda: False))
    with pytest.raises(ExecutionError):
        with forward_local_port(client, "db.internal", 27017):
            pass


def test_open_ssh_client_maps_transport_errors(ssh_block) -> None:
    ssh = SSHDescriptor.model_validate(ssh_block)
    refused = FakeSSHClient(connect_error=OSError("connection refused"))
    with pytest.raises(ExecutionError, match="connection refused"):
        with open_ssh_client(ssh, client_factory=lambda: refused):
            pass
    assert refused.closed

    denied = FakeSSHClient(connect_error=paramiko.AuthenticationException("denied"))
    with pytest.raises(ConfigurationError):
        with open_ssh_client(ssh, client_factory=lambda: denied):
            pass
    assert denied.closed


def test_quote_remote_command_quotes_every_argument() -> None:
    command = quote_remote_command("mongodump", ["--query", '{"a": 1}', "--db=shop"])
    assert command == "mongodump --query '{\"a\": 1}' --db=shop"
