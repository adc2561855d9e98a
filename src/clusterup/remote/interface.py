# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import Optional, Protocol, Tuple

from clusterup.topology.models import Node
from .operations import RemoteOperation


class RemoteGateway(Protocol):
    """
    Runs operations on cluster nodes through the single jump host.

    Implementations raise UnreachableError, RemoteFailureError or
    RemoteTimeoutError and never retry on their own.
    """

    def execute(
        self,
        node: Node,
        operation: RemoteOperation,
        timeout: Optional[float] = None,
        *,
        check: bool = True,
    ) -> Tuple[str, int]: ...

    def fetch(self, node: Node, path: str, *, sudo: bool = True, timeout: Optional[float] = None) -> bytes: ...

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
    ) -> None: ...

    def close(self) -> None: ...
