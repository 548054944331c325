"""SSH transport helpers built on paramiko."""

from __future__ import annotations

import select
import shlex
import socketserver
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Sequence

import paramiko
import structlog

from .connection import resolve_ssh_auth
from .errors import ConfigurationError, ExecutionError
from .models import SSHDescriptor


logger = structlog.get_logger(__name__)

_FORWARD_CHUNK = 16 * 1024


def quote_remote_command(binary: str, args: Sequence[str]) -> str:
    """Return a shell-safe command line; every argument is quoted."""

    return " ".join(shlex.quote(part) for part in (binary, *args))


@contextmanager
def open_ssh_client(
    ssh: SSHDescriptor,
    *,
    timeout: float = 10.0,
    name: str | None = None,
    client_factory: Callable[[], paramiko.SSHClient] | None = None,
) -> Iterator[paramiko.SSHClient]:
    """Yield a connected SSH client and always close it afterwards."""

    connect_kwargs = resolve_ssh_auth(ssh, name=name)
    client = (client_factory or paramiko.SSHClient)()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    try:
        client.connect(timeout=timeout, **connect_kwargs)
    except paramiko.AuthenticationException as exc:
        client.close()
        raise ConfigurationError(
            f"SSH authentication failed for {ssh.username}@{ssh.host}"
        ) from exc
    except (paramiko.SSHException, OSError) as exc:
        client.close()
        raise ExecutionError(f"SSH connection to {ssh.host}:{ssh.port} failed: {exc}") from exc

    logger.info("ssh_connected", host=ssh.host, port=ssh.port, username=ssh.username)
    try:
        yield client
    finally:
        client.close()
        logger.info("ssh_closed", host=ssh.host)


class _ForwardServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    transport: paramiko.Transport
    remote: tuple[str, int]


class _ForwardHandler(socketserver.BaseRequestHandler):
    server: _ForwardServer

    def handle(self) -> None:
        try:
            channel = self.server.transport.open_channel(
                "direct-tcpip",
                self.server.remote,
                self.request.getpeername(),
            )
        except paramiko.SSHException as exc:
            logger.warning("ssh_forward_open_failed", remote=self.server.remote, error=str(exc))
            return
        if channel is None:
            logger.warning("ssh_forward_rejected", remote=self.server.remote)
            return

        try:
            while True:
                readable, _, _ = select.select([self.request, channel], [], [])
                if self.request in readable:
                    data = self.request.recv(_FORWARD_CHUNK)
                    if not data:
                        break
                    channel.sendall(data)
                if channel in readable:
                    data = channel.recv(_FORWARD_CHUNK)
                    if not data:
                        break
                    self.request.sendall(data)
        except OSError as exc:
            logger.debug("ssh_forward_closed", error=str(exc))
        finally:
            channel.close()


@contextmanager
def forward_local_port(
    client: paramiko.SSHClient,
    remote_host: str,
    remote_port: int,
) -> Iterator[int]:
    """Forward an ephemeral ``127.0.0.1`` port to ``remote_host:remote_port``.

    Yields the local port; the listener is shut down on exit.
    """

    transport = client.get_transport()
    if transport is None or not transport.is_active():
        raise ExecutionError("SSH transport is not active")

    server = _ForwardServer(("127.0.0.1", 0), _ForwardHandler)
    server.transport = transport
    server.remote = (remote_host, remote_port)
    local_port = server.server_address[1]
    thread = threading.Thread(
        target=server.serve_forever,
        name=f"ssh-forward-{local_port}",
        daemon=True,
    )
    thread.start()
    logger.info(
        "ssh_tunnel_established",
        local_port=local_port,
        remote_host=remote_host,
        remote_port=remote_port,
    )
    try:
        yield local_port
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
