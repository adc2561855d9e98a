# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/topology/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from clusterup.errors import TopologyError


class Role(str, Enum):
    BOOTSTRAP = "bootstrap"
    CONTROL_PLANE = "control-plane"
    WORKER = "worker"
    GATEWAY = "gateway"


@dataclass(eq=False)
class Node:
    """
    A cluster member (or the gateway). Identity is fixed at load time;
    joined_at / labeled are bookkeeping owned by the sequencer.
    """
    id: str
    role: Role
    private_address: str
    public_address: Optional[str] = None
    joined_at: Optional[datetime] = None
    labeled: bool = False

    @property
    def is_gateway(self) -> bool:
        return self.role is Role.GATEWAY

    @property
    def is_control_plane(self) -> bool:
        return self.role in (Role.BOOTSTRAP, Role.CONTROL_PLANE)

    def __str__(self) -> str:
        return f"{self.id}({self.private_address})"


@dataclass
class Topology:
    """
    Whole-cluster description. control_plane[0] is always the bootstrap node.
    """
    control_plane: List[Node]
    workers: List[Node]
    gateway: Node
    software_version: str
    ssh_key_path: Path
    ssh_user: str = "ubuntu"
    cluster_name: str = "rke2"
    _by_id: Dict[str, Node] = field(init=False, repr=False, default_factory=dict)

    def __post_init__(self) -> None:
        if not self.control_plane:
            raise TopologyError("at least one control-plane node is required")
        if self.control_plane[0].role is not Role.BOOTSTRAP:
            raise TopologyError(
                f"control_plane[0] ({self.control_plane[0].id}) must carry the bootstrap role"
            )
        for n in self.control_plane[1:]:
            if n.role is not Role.CONTROL_PLANE:
                raise TopologyError(f"{n.id} is listed as control plane but has role {n.role.value}")
        for n in self.workers:
            if n.role is not Role.WORKER:
                raise TopologyError(f"{n.id} is listed as worker but has role {n.role.value}")
        if self.gateway.role is not Role.GATEWAY:
            raise TopologyError(f"{self.gateway.id} is not a gateway node")
        if not self.gateway.public_address:
            raise TopologyError("the gateway needs a public address reachable from this host")
        if not self.software_version:
            raise TopologyError("a software version is required")

        seen: Dict[str, str] = {}
        for n in self.all_nodes():
            if n.id in self._by_id:
                raise TopologyError(f"duplicate node id '{n.id}'")
            if n.private_address in seen:
                raise TopologyError(
                    f"{n.id} and {seen[n.private_address]} share address {n.private_address}"
                )
            seen[n.private_address] = n.id
            self._by_id[n.id] = n

    @property
    def bootstrap(self) -> Node:
        return self.control_plane[0]

    @property
    def followers(self) -> List[Node]:
        return list(self.control_plane[1:])

    def cluster_nodes(self) -> List[Node]:
        """Control plane (in order) followed by workers; the gateway excluded."""
        return [*self.control_plane, *self.workers]

    def all_nodes(self) -> List[Node]:
        return [*self.control_plane, *self.workers, self.gateway]

    def node(self, node_id: str) -> Node:
        try:
            return self._by_id[node_id]
        except KeyError:
            raise TopologyError(f"unknown node '{node_id}'") from None

    def by_address(self, address: str) -> Optional[Node]:
        for n in self.cluster_nodes():
            if n.private_address == address:
                return n
        return None

    @classmethod
    def build(
        cls,
        *,
        control_plane: List[str],
        workers: List[str],
        gateway_public: str,
        gateway_private: str,
        software_version: str,
        ssh_key_path: Path,
        ssh_user: str = "ubuntu",
        cluster_name: str = "rke2",
    ) -> "Topology":
        """Build a topology from plain addresses, assigning stable node ids."""
        if not control_plane:
            raise TopologyError("at least one control-plane node is required")
        cps = [
            Node(id=f"cp-{i}", role=Role.BOOTSTRAP if i == 0 else Role.CONTROL_PLANE, private_address=addr)
            for i, addr in enumerate(control_plane)
        ]
        wks = [Node(id=f"worker-{i}", role=Role.WORKER, private_address=addr) for i, addr in enumerate(workers)]
        gw = Node(id="gateway", role=Role.GATEWAY, private_address=gateway_private, public_address=gateway_public)
        return cls(
            control_plane=cps,
            workers=wks,
            gateway=gw,
            software_version=software_version,
            ssh_key_path=Path(ssh_key_path),
            ssh_user=ssh_user,
            cluster_name=cluster_name,
        )
