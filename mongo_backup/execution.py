"""Execution strategies: run dump/restore commands locally or over SSH.

Both variants follow the same lifecycle, ``BUILT -> RUNNING -> SUCCEEDED``
or ``FAILED``. A failed backup never leaves a partial archive behind.
"""

from __future__ import annotations

import os
import subprocess
import threading
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Callable

import paramiko
import structlog

from .commands import CommandInvocation
from .connection import select_strategy_kind
from .errors import BackupError, ExecutionError
from .models import ConnectionDescriptor, SSHDescriptor
from .settings import EngineSettings, get_settings
from .ssh import open_ssh_client, quote_remote_command


logger = structlog.get_logger(__name__)


class ExecutionState(str, Enum):
    BUILT = "built"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def remove_partial_archive(path: Path) -> None:
    """Delete an incomplete archive so it is never mistaken for a backup."""

    if not path.exists():
        return
    try:
        path.unlink()
        logger.info("partial_archive_removed", path=str(path))
    except OSError as exc:
        logger.error("partial_archive_cleanup_failed", path=str(path), error=str(exc))


class ExecutionStrategy(ABC):
    """Common lifecycle for the execution variants."""

    kind = "base"

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self.settings = settings or get_settings()
        self.state = ExecutionState.BUILT

    @abstractmethod
    def backup(self, invocation: CommandInvocation, archive_path: Path) -> Path:
        raise NotImplementedError

    @abstractmethod
    def restore(self, invocation: CommandInvocation, archive_path: Path) -> None:
        raise NotImplementedError

    def _start(self, invocation: CommandInvocation, command: str) -> None:
        self.state = ExecutionState.RUNNING
        logger.info(
            "command_started",
            strategy=self.kind,
            connection=invocation.connection,
            command=command,
        )

    def _succeed(self, invocation: CommandInvocation) -> None:
        self.state = ExecutionState.SUCCEEDED
        logger.info("command_succeeded", strategy=self.kind, connection=invocation.connection)

    def _fail(self, cleanup: Path | None) -> None:
        self.state = ExecutionState.FAILED
        if cleanup is not None:
            remove_partial_archive(cleanup)


class LocalExecution(ExecutionStrategy):
    """Spawn the binary on this host with the archive path as a flag."""

    kind = "local"

    def backup(self, invocation: CommandInvocation, archive_path: Path) -> Path:
        full = invocation.with_args(f"--archive={archive_path}")
        self._run(full, cleanup=archive_path)
        if not archive_path.exists():
            self.state = ExecutionState.FAILED
            raise ExecutionError(
                f"{invocation.binary} reported success but produced no archive at {archive_path}",
                command=full.render(),
            )
        return archive_path

    def restore(self, invocation: CommandInvocation, archive_path: Path) -> None:
        self._run(invocation.with_args(f"--archive={archive_path}"), cleanup=None)

    def _run(self, invocation: CommandInvocation, cleanup: Path | None) -> None:
        rendered = invocation.render()
        self._start(invocation, rendered)
        cmd = [invocation.binary, *invocation.args]
        try:
            result = subprocess.run(
                cmd,
                check=True,
                capture_output=True,
                timeout=self.settings.command_timeout,
            )
        except FileNotFoundError as exc:
            self._fail(cleanup)
            raise ExecutionError(f"{invocation.binary} not found", command=rendered) from exc
        except subprocess.TimeoutExpired as exc:
            self._fail(cleanup)
            raise ExecutionError(f"{invocation.binary} timed out", command=rendered) from exc
        except subprocess.CalledProcessError as exc:
            self._fail(cleanup)
            stderr = (exc.stderr or b"").decode("utf-8", errors="ignore")
            _log_output(invocation.binary, stderr)
            raise ExecutionError(
                f"{invocation.binary} exited with code {exc.returncode}: {stderr.strip() or exc.args}",
                command=rendered,
                exit_code=exc.returncode,
                stderr=stderr,
            ) from exc
        except OSError as exc:
            self._fail(cleanup)
            raise ExecutionError(f"failed to start {invocation.binary}: {exc}", command=rendered) from exc

        _log_output(invocation.binary, (result.stderr or b"").decode("utf-8", errors="ignore"))
        self._succeed(invocation)


def _log_output(binary: str, text: str) -> None:
    for line in text.splitlines():
        if line.strip():
            logger.info("command_output", binary=binary, line=line.strip())


def _open_session(client: paramiko.SSHClient) -> paramiko.Channel:
    transport = client.get_transport()
    if transport is None or not transport.is_active():
        raise ExecutionError("SSH transport is not active")
    return transport.open_session()


def _drain(read: Callable[[int], bytes], chunks: list[bytes], binary: str, stream: str) -> None:
    while True:
        data = read(4096)
        if not data:
            return
        chunks.append(data)
        if stream == "stderr":
            logger.warning("remote_stderr", binary=binary, text=data.decode("utf-8", errors="ignore").strip())


class SshExecution(ExecutionStrategy):
    """Run the binary on the SSH host, streaming the archive over the session.

    Backups read the remote stdout chunk by chunk into ``<archive>.tmp``.
    The next chunk is only read once the previous one is written, so a slow
    local disk pauses the remote stream through the SSH window. A failed
    write closes the channel, which terminates the remote command.
    """

    kind = "ssh"

    def __init__(
        self,
        ssh: SSHDescriptor,
        settings: EngineSettings | None = None,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
    ) -> None:
        super().__init__(settings)
        self.ssh = ssh
        self.client_factory = client_factory

    def _open(self, invocation: CommandInvocation):
        return open_ssh_client(
            self.ssh,
            timeout=self.settings.ssh_timeout,
            name=invocation.connection,
            client_factory=self.client_factory,
        )

    def backup(self, invocation: CommandInvocation, archive_path: Path) -> Path:
        full = invocation.with_args("--archive")
        remote = quote_remote_command(full.binary, full.args)
        rendered = full.render()
        tmp_path = archive_path.with_name(f"{archive_path.name}.tmp")
        self._start(invocation, rendered)

        try:
            with self._open(invocation) as client:
                exit_code, stderr = self._stream_to_file(client, remote, tmp_path, full)
            if exit_code != 0:
                raise ExecutionError(
                    f"remote {full.binary} exited with code {exit_code}: {stderr.strip()}",
                    command=rendered,
                    exit_code=exit_code,
                    stderr=stderr,
                )
            os.replace(tmp_path, archive_path)
        except BackupError:
            self._fail(tmp_path)
            raise
        except (paramiko.SSHException, OSError) as exc:
            self._fail(tmp_path)
            raise ExecutionError(f"SSH backup failed: {exc}", command=rendered) from exc

        self._succeed(invocation)
        return archive_path

    def _stream_to_file(
        self,
        client: paramiko.SSHClient,
        remote: str,
        path: Path,
        invocation: CommandInvocation,
    ) -> tuple[int, str]:
        channel = _open_session(client)
        stderr_chunks: list[bytes] = []
        drain = threading.Thread(
            target=_drain,
            args=(channel.recv_stderr, stderr_chunks, invocation.binary, "stderr"),
            daemon=True,
        )
        try:
            channel.exec_command(remote)
            drain.start()
            with path.open("wb") as sink:
                while True:
                    data = channel.recv(self.settings.stream_chunk_size)
                    if not data:
                        break
                    try:
                        sink.write(data)
                    except OSError as exc:
                        channel.close()
                        raise ExecutionError(
                            f"writing archive {path} failed, remote command terminated: {exc}",
                            command=invocation.render(),
                        ) from exc
            exit_code = channel.recv_exit_status()
        finally:
            channel.close()
            if drain.is_alive():
                drain.join(timeout=5)
        return exit_code, b"".join(stderr_chunks).decode("utf-8", errors="ignore")

    def restore(self, invocation: CommandInvocation, archive_path: Path) -> None:
        full = invocation.with_args("--archive")
        remote = quote_remote_command(full.binary, full.args)
        rendered = full.render()
        self._start(invocation, rendered)

        try:
            with self._open(invocation) as client:
                exit_code, stderr = self._stream_from_file(client, remote, archive_path, full)
        except BackupError:
            self._fail(None)
            raise
        except (paramiko.SSHException, OSError) as exc:
            self._fail(None)
            raise ExecutionError(f"SSH restore failed: {exc}", command=rendered) from exc

        if exit_code != 0:
            self._fail(None)
            raise ExecutionError(
                f"remote {full.binary} exited with code {exit_code}: {stderr.strip()}",
                command=rendered,
                exit_code=exit_code,
                stderr=stderr,
            )
        self._succeed(invocation)

    def _stream_from_file(
        self,
        client: paramiko.SSHClient,
        remote: str,
        path: Path,
        invocation: CommandInvocation,
    ) -> tuple[int, str]:
        channel = _open_session(client)
        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        drains = [
            threading.Thread(
                target=_drain,
                args=(channel.recv, stdout_chunks, invocation.binary, "stdout"),
                daemon=True,
            ),
            threading.Thread(
                target=_drain,
                args=(channel.recv_stderr, stderr_chunks, invocation.binary, "stderr"),
                daemon=True,
            ),
        ]
        try:
            channel.exec_command(remote)
            for thread in drains:
                thread.start()
            with path.open("rb") as source:
                for chunk in iter(lambda: source.read(self.settings.stream_chunk_size), b""):
                    channel.sendall(chunk)
            channel.shutdown_write()
            exit_code = channel.recv_exit_status()
        finally:
            channel.close()
            for thread in drains:
                if thread.is_alive():
                    thread.join(timeout=5)
        _log_output(invocation.binary, b"".join(stdout_chunks).decode("utf-8", errors="ignore"))
        return exit_code, b"".join(stderr_chunks).decode("utf-8", errors="ignore")


def select_strategy(
    descriptor: ConnectionDescriptor,
    settings: EngineSettings | None = None,
) -> ExecutionStrategy:
    """Return the execution variant for ``descriptor``."""

    if select_strategy_kind(descriptor) == "ssh":
        return SshExecution(descriptor.ssh, settings)
    return LocalExecution(settings)
