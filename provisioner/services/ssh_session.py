"""Remote SSH session: one authenticated connection per orchestration run.

Uses a blocking paramiko client run inside a single-thread executor so the
asyncio event loop is never blocked.  The executor plus the session lock give
a strict one-command-in-flight ordering guarantee.
"""

from __future__ import annotations

import asyncio
import os
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import paramiko

from provisioner.errors import RemoteConnectionError, TransportError
from provisioner.models.connection import ConnectionDescriptor
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

_CHUNK = 32768
_POLL_INTERVAL = 0.05


class RemoteSession:
    """Owns one paramiko ``SSHClient`` for the lifetime of one run."""

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        *,
        connect_timeout: float = 15.0,
        keepalive_seconds: int = 30,
    ) -> None:
        self.descriptor = descriptor
        self._connect_timeout = connect_timeout
        self._keepalive = keepalive_seconds
        self._client: Optional[paramiko.SSHClient] = None
        self._lock = asyncio.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ssh")

    # ── connection lifecycle ──────────────────────────────────────────

    def _load_key(self) -> paramiko.PKey:
        path = Path(self.descriptor.key_path).expanduser()
        if not path.is_file():
            raise RemoteConnectionError(f"SSH private key file not found: {path}")
        if not os.access(path, os.R_OK):
            raise RemoteConnectionError(f"SSH private key file is not readable: {path}")
        passphrase = (
            self.descriptor.passphrase.get_secret_value()
            if self.descriptor.passphrase is not None
            else None
        )
        try:
            return paramiko.PKey.from_path(path, passphrase=passphrase)
        except paramiko.PasswordRequiredException as exc:
            raise RemoteConnectionError("SSH private key is encrypted; a passphrase is required") from exc
        except (paramiko.SSHException, OSError, ValueError) as exc:
            raise RemoteConnectionError(f"could not load SSH private key {path}: {exc}") from exc

    def _open_sync(self) -> None:
        pkey = self._load_key()
        log.info("ssh.connecting", target=self.descriptor.target)
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=self.descriptor.host,
                port=self.descriptor.port,
                username=self.descriptor.username,
                pkey=pkey,
                timeout=self._connect_timeout,
                banner_timeout=self._connect_timeout,
                auth_timeout=self._connect_timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except paramiko.AuthenticationException as exc:
            client.close()
            raise RemoteConnectionError(f"SSH authentication failed for {self.descriptor.target}") from exc
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise RemoteConnectionError(f"SSH connection to {self.descriptor.target} failed: {exc}") from exc
        transport = client.get_transport()
        if transport is not None and self._keepalive:
            transport.set_keepalive(self._keepalive)
        self._client = client
        log.info("ssh.connected", target=self.descriptor.target)

    def _close_sync(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except (paramiko.SSHException, OSError) as exc:
                log.warning("ssh.close_failed", error=str(exc))
            self._client = None
            log.info("ssh.closed", target=self.descriptor.target)

    # ── helpers ───────────────────────────────────────────────────────

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    def _require_client(self) -> paramiko.SSHClient:
        if self._client is None:
            raise TransportError("SSH session is not open")
        return self._client

    # ── public ────────────────────────────────────────────────────────

    async def open(self) -> None:
        async with self._lock:
            await self._run(self._open_sync)

    async def close(self) -> None:
        async with self._lock:
            await self._run(self._close_sync)
        self._executor.shutdown(wait=False)

    async def exec(self, command: str) -> tuple[int, str, str]:
        """Run *command*; return (exit status, stdout, stderr)."""
        async with self._lock:
            client = self._require_client()
            return await self._run(_exec_wrapper, client, command)

    async def upload(self, local_path: str, remote_path: str) -> None:
        async with self._lock:
            client = self._require_client()
            await self._run(_upload_wrapper, client, local_path, remote_path)

    @property
    def is_connected(self) -> bool:
        if self._client is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()


@asynccontextmanager
async def open_session(
    descriptor: ConnectionDescriptor,
    *,
    connect_timeout: float = 15.0,
    keepalive_seconds: int = 30,
) -> AsyncIterator[RemoteSession]:
    """Open a session and guarantee it is closed on every exit path."""
    session = RemoteSession(
        descriptor,
        connect_timeout=connect_timeout,
        keepalive_seconds=keepalive_seconds,
    )
    try:
        await session.open()
        yield session
    finally:
        await session.close()


# ── module-level sync wrappers (executor-friendly) ────────────────────────

def _exec_wrapper(client: paramiko.SSHClient, command: str) -> tuple[int, str, str]:
    transport = client.get_transport()
    if transport is None or not transport.is_active():
        raise TransportError("SSH transport is not active")
    try:
        chan = transport.open_session()
    except paramiko.SSHException as exc:
        raise TransportError(f"could not open channel: {exc}") from exc

    out = bytearray()
    err = bytearray()
    try:
        chan.exec_command(command)
        while True:
            progressed = False
            if chan.recv_ready():
                out += chan.recv(_CHUNK)
                progressed = True
            if chan.recv_stderr_ready():
                err += chan.recv_stderr(_CHUNK)
                progressed = True
            # exit-status may arrive before the last data; EOF marks the end of both streams
            if (
                chan.exit_status_ready()
                and (chan.eof_received or chan.closed)
                and not chan.recv_ready()
                and not chan.recv_stderr_ready()
            ):
                break
            if not progressed:
                if not transport.is_active():
                    raise TransportError("SSH transport closed while command was running")
                time.sleep(_POLL_INTERVAL)
        status = chan.recv_exit_status()
    except paramiko.SSHException as exc:
        raise TransportError(f"command dispatch failed: {exc}") from exc
    finally:
        chan.close()
    return (
        status,
        out.decode("utf-8", errors="replace"),
        err.decode("utf-8", errors="replace"),
    )


def _upload_wrapper(client: paramiko.SSHClient, local_path: str, remote_path: str) -> None:
    try:
        sftp = client.open_sftp()
    except paramiko.SSHException as exc:
        raise TransportError(f"could not open SFTP channel: {exc}") from exc
    try:
        sftp.put(local_path, remote_path)
    except (OSError, paramiko.SSHException) as exc:
        raise TransportError(f"upload of {local_path} to {remote_path} failed: {exc}") from exc
    finally:
        sftp.close()
