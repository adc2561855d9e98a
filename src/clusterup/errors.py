# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/errors.py
from __future__ import annotations

from typing import Optional


class ClusterupError(RuntimeError):
    """Base class for every failure the orchestrator reports."""

    kind = "ClusterupError"


class TopologyError(ClusterupError):
    """The topology violates a structural invariant."""

    kind = "TopologyError"


class InventoryError(ClusterupError):
    """The inventory file could not be read or validated."""

    kind = "InventoryError"


class UnreachableError(ClusterupError):
    """The tunnel (or direct session) to a node could not be established."""

    kind = "UnreachableError"

    def __init__(self, node_id: str, message: str):
        super().__init__(f"[{node_id}] unreachable: {message}")
        self.node_id = node_id


class RemoteFailureError(ClusterupError):
    """A remote operation ran but exited non-zero."""

    kind = "RemoteFailureError"

    def __init__(self, node_id: str, operation: str, exit_status: int, stderr: Optional[str] = None):
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"[{node_id}] '{operation}' exited {exit_status}{detail}")
        self.node_id = node_id
        self.operation = operation
        self.exit_status = exit_status
        self.stderr = stderr


class RemoteTimeoutError(ClusterupError):
    """A remote operation did not finish within its timeout."""

    kind = "TimeoutError"

    def __init__(self, node_id: str, operation: str, timeout: float):
        super().__init__(f"[{node_id}] '{operation}' timed out after {timeout:g}s")
        self.node_id = node_id
        self.operation = operation
        self.timeout = timeout


class TokenUnavailableError(ClusterupError):
    """No usable join token exists on the bootstrap node (yet)."""

    kind = "TokenUnavailableError"


class ClusterUnreachableError(ClusterupError):
    """The cluster API did not answer a post-join probe."""

    kind = "ClusterUnreachableError"


def error_kind(exc: BaseException) -> str:
    return getattr(exc, "kind", type(exc).__name__)
