# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/remote/gateway.py

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Tuple

import paramiko

from clusterup.errors import RemoteFailureError, RemoteTimeoutError, UnreachableError
from clusterup.topology.models import Node, Topology
from .operations import RemoteOperation, read_file, write_stdin_to

log = logging.getLogger("clusterup")

_CHUNK = 32768
_POLL_INTERVAL = 0.05


def _load_private_key(key_path: Path) -> paramiko.PKey:
    """Try the key formats we see in practice, newest first."""
    last_exc: Optional[Exception] = None
    for key_cls in (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey):
        try:
            return key_cls.from_private_key_file(str(key_path))
        except paramiko.SSHException as e:
            last_exc = e
        except OSError as e:
            raise UnreachableError("local", f"cannot read SSH key {key_path}: {e}") from e
    raise UnreachableError("local", f"unsupported private key format for {key_path}: {last_exc}")


class ParamikoGateway:
    """
    Remote access through the bastion (gateway) node.

    One SSH connection to the gateway's public address is kept for the run;
    every other node is reached over a direct-tcpip channel on that
    transport, i.e. the equivalent of ``ssh -J user@gateway user@node``.
    At most ``max_sessions`` sessions are open at any time.
    """

    def __init__(
        self,
        topology: Topology,
        *,
        connect_timeout: float = 20.0,
        command_timeout: float = 900.0,
        max_sessions: int = 8,
    ):
        self.gateway = topology.gateway
        self.username = topology.ssh_user
        self.key_path = topology.ssh_key_path
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self._sessions = threading.BoundedSemaphore(max(1, max_sessions))
        self._lock = threading.Lock()
        self._bastion: Optional[paramiko.SSHClient] = None
        self._pkey: Optional[paramiko.PKey] = None

    # ------------------ connection & utils ------------------

    def _private_key(self) -> paramiko.PKey:
        if self._pkey is None:
            self._pkey = _load_private_key(self.key_path)
        return self._pkey

    def _connect(self, node: Node, address: str, sock=None) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=address,
                port=22,
                username=self.username,
                pkey=self._private_key(),
                sock=sock,
                look_for_keys=False,
                allow_agent=False,
                timeout=self.connect_timeout,
                banner_timeout=self.connect_timeout,
                auth_timeout=self.connect_timeout,
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise UnreachableError(node.id, f"{address}: {type(e).__name__}: {e}") from e
        return client

    def _bastion_client(self) -> paramiko.SSHClient:
        with self._lock:
            if self._bastion is not None:
                transport = self._bastion.get_transport()
                if transport is not None and transport.is_active():
                    return self._bastion
                log.debug("[gateway] bastion transport dropped, reconnecting")
                self._bastion.close()
                self._bastion = None
            log.debug("[gateway] connecting to %s@%s", self.username, self.gateway.public_address)
            self._bastion = self._connect(self.gateway, self.gateway.public_address)
            return self._bastion

    @contextmanager
    def _session(self, node: Node) -> Iterator[paramiko.SSHClient]:
        with self._sessions:
            bastion = self._bastion_client()
            if node.is_gateway:
                yield bastion
                return

            transport = bastion.get_transport()
            if transport is None:
                raise UnreachableError(node.id, "bastion transport is not available")
            try:
                channel = transport.open_channel(
                    "direct-tcpip",
                    (node.private_address, 22),
                    ("127.0.0.1", 0),
                    timeout=self.connect_timeout,
                )
            except (paramiko.SSHException, OSError) as e:
                raise UnreachableError(
                    node.id,
                    f"tunnel via {self.gateway.public_address} to {node.private_address} failed: {e}",
                ) from e

            client = self._connect(node, node.private_address, sock=channel)
            try:
                yield client
            finally:
                client.close()

    def _run(
        self,
        client: paramiko.SSHClient,
        node: Node,
        operation: RemoteOperation,
        timeout: float,
        stdin_data: Optional[bytes] = None,
    ) -> Tuple[bytes, bytes, int]:
        try:
            stdin, stdout, stderr = client.exec_command(operation.command(), timeout=timeout)
        except (paramiko.SSHException, OSError) as e:
            raise UnreachableError(node.id, f"could not open session: {e}") from e

        channel = stdout.channel
        if stdin_data is not None:
            stdin.write(stdin_data)
            stdin.flush()
        channel.shutdown_write()

        deadline = time.monotonic() + timeout
        out, err = [], []
        while True:
            while channel.recv_ready():
                out.append(channel.recv(_CHUNK))
            while channel.recv_stderr_ready():
                err.append(channel.recv_stderr(_CHUNK))
            if channel.exit_status_ready() and not channel.recv_ready() and not channel.recv_stderr_ready():
                break
            if time.monotonic() >= deadline:
                channel.close()
                raise RemoteTimeoutError(node.id, operation.name, timeout)
            time.sleep(_POLL_INTERVAL)

        return b"".join(out), b"".join(err), channel.recv_exit_status()

    # ------------------ public API ------------------

    def execute(
        self,
        node: Node,
        operation: RemoteOperation,
        timeout: Optional[float] = None,
        *,
        check: bool = True,
    ) -> Tuple[str, int]:
        """
        Run *operation* on *node*. Returns (stdout, exit_status); with
        check=True a non-zero exit raises RemoteFailureError.
        """
        timeout = timeout or self.command_timeout
        log.debug("[%s] %s", node.id, operation.describe())
        with self._session(node) as client:
            out, err, rc = self._run(client, node, operation, timeout)
        stdout = out.decode("utf-8", errors="replace")
        if rc != 0:
            stderr_text = err.decode("utf-8", errors="replace")
            if not operation.sensitive:
                log.debug("[%s] '%s' exited %d: %s", node.id, operation.name, rc, stderr_text.strip())
            if check:
                raise RemoteFailureError(
                    node.id,
                    operation.name,
                    rc,
                    None if operation.sensitive else stderr_text,
                )
        return stdout, rc

    def fetch(self, node: Node, path: str, *, sudo: bool = True, timeout: Optional[float] = None) -> bytes:
        operation = read_file(path, sudo=sudo)
        timeout = timeout or self.command_timeout
        log.debug("[%s] %s", node.id, operation.describe())
        with self._session(node) as client:
            out, _err, rc = self._run(client, node, operation, timeout)
        if rc != 0:
            raise RemoteFailureError(node.id, operation.name, rc)
        return out

    def push(
        self,
        node: Node,
        path: str,
        data: bytes,
        *,
        mode: int = 0o600,
        owner: Optional[str] = None,
        sudo: bool = True,
        timeout: Optional[float] = None,
        dir_mode: int = 0o755,
    ) -> None:
        operation = write_stdin_to(path, mode=mode, owner=owner, dir_mode=dir_mode, sudo=sudo)
        timeout = timeout or self.command_timeout
        log.debug("[%s] %s (%d bytes)", node.id, operation.describe(), len(data))
        with self._session(node) as client:
            _out, _err, rc = self._run(client, node, operation, timeout, stdin_data=data)
        if rc != 0:
            raise RemoteFailureError(node.id, operation.name, rc)

    def close(self) -> None:
        with self._lock:
            if self._bastion is not None:
                self._bastion.close()
                self._bastion = None
