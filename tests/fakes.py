"""Fakes for paramiko objects used by the SSH tests."""

from __future__ import annotations

from types import SimpleNamespace


class FakeChannel:
    """Stand-in for a paramiko session channel."""

    def __init__(self, stdout_chunks=(), stderr_chunks=(), exit_status=0):
        self._stdout = list(stdout_chunks)
        self._stderr = list(stderr_chunks)
        self.exit_status = exit_status
        self.command = None
        self.closed = False
        self.sent: list[bytes] = []
        self.write_shut = False

    def exec_command(self, command):
        self.command = command

    def recv(self, nbytes):
        if self.closed or not self._stdout:
            return b""
        return self._stdout.pop(0)

    def recv_stderr(self, nbytes):
        if not self._stderr:
            return b""
        return self._stderr.pop(0)

    def recv_exit_status(self):
        return self.exit_status

    def sendall(self, data):
        self.sent.append(data)

    def shutdown_write(self):
        self.write_shut = True

    def close(self):
        self.closed = True


class FakeSSHClient:
    """Stand-in for ``paramiko.SSHClient``."""

    def __init__(self, channel: FakeChannel | None = None, connect_error: Exception | None = None):
        self.channel = channel or FakeChannel()
        self.connect_error = connect_error
        self.connect_kwargs = None
        self.policy = None
        self.closed = False

    def set_missing_host_key_policy(self, policy):
        self.policy = policy

    def connect(self, **kwargs):
        self.connect_kwargs = kwargs
        if self.connect_error is not None:
            raise self.connect_error

    def get_transport(self):
        return SimpleNamespace(open_session=lambda: self.channel, is_active=lambda: True)

    def close(self):
        self.closed = True
