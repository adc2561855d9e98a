# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/verify/verifier.py

from __future__ import annotations

import json
import logging
import shlex
from dataclasses import dataclass, field
from typing import Collection, FrozenSet, List, Optional

from clusterup.errors import ClusterUnreachableError, RemoteFailureError, RemoteTimeoutError
from clusterup.remote.interface import RemoteGateway
from clusterup.remote.operations import RemoteOperation
from clusterup.topology.models import Node

log = logging.getLogger("clusterup")

ROLE_LABEL_PREFIX = "node-role.kubernetes.io/"
WORKER_ROLE = "worker"


@dataclass(frozen=True)
class Member:
    name: str
    internal_address: Optional[str]
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def has_role(self) -> bool:
        return bool(self.roles)


def parse_members(payload: str) -> List[Member]:
    """Parse ``kubectl get nodes -o json`` output."""
    doc = json.loads(payload or "{}")
    members: List[Member] = []
    for item in doc.get("items", []):
        meta = item.get("metadata", {})
        labels = meta.get("labels") or {}
        roles = frozenset(
            k[len(ROLE_LABEL_PREFIX):] for k in labels if k.startswith(ROLE_LABEL_PREFIX)
        )
        address = None
        for addr in (item.get("status", {}).get("addresses") or []):
            if addr.get("type") == "InternalIP":
                address = addr.get("address")
                break
        members.append(Member(name=meta.get("name", ""), internal_address=address, roles=roles))
    return members


class HealthVerifier:
    """
    Post-join convergence checks run through kubectl on an API endpoint
    node (the gateway by default, using the operator kubeconfig).
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        *,
        kubectl: str = "kubectl",
        kubeconfig: Optional[str] = None,
        sudo: bool = False,
        timeout: float = 120.0,
    ):
        self.gateway = gateway
        self.kubectl = kubectl
        self.kubeconfig = kubeconfig
        self.sudo = sudo
        self.timeout = timeout

    def _op(self, name: str, args: str) -> RemoteOperation:
        cmd = shlex.quote(self.kubectl)
        if self.kubeconfig:
            cmd += f" --kubeconfig {shlex.quote(self.kubeconfig)}"
        return RemoteOperation(name=name, script=f"{cmd} {args}", sudo=self.sudo)

    def _probe(self, node: Node, name: str, args: str) -> str:
        try:
            out, _ = self.gateway.execute(node, self._op(name, args), self.timeout)
        except (RemoteFailureError, RemoteTimeoutError) as e:
            raise ClusterUnreachableError(f"{name} failed on {node.id}: {e}") from e
        return out

    def verify_reachable(self, node: Node) -> None:
        self._probe(node, "list members", "get nodes")
        log.info("[verify] cluster API answers on %s", node.id)

    def list_members(self, node: Node) -> List[Member]:
        out = self._probe(node, "list members", "get nodes -o json")
        try:
            return parse_members(out)
        except json.JSONDecodeError as e:
            raise ClusterUnreachableError(f"unparseable member list from {node.id}: {e}") from e

    def reconcile_worker_labels(
        self,
        node: Node,
        *,
        exclude_addresses: Collection[str] = (),
    ) -> List[Member]:
        """
        Apply the worker role label to every member that carries no role
        label yet. Members whose internal address is in *exclude_addresses*
        (known control-plane nodes) are never labeled.
        """
        unlabeled = [m for m in self.list_members(node) if not m.has_role]
        labeled: List[Member] = []
        for m in unlabeled:
            if m.internal_address in exclude_addresses:
                log.warning(
                    "[verify] control-plane member %s (%s) has no role label yet; not labeling it %s",
                    m.name, m.internal_address, WORKER_ROLE,
                )
                continue
            self.gateway.execute(
                node,
                self._op(
                    f"label {m.name}",
                    f"label node {shlex.quote(m.name)} {ROLE_LABEL_PREFIX}{WORKER_ROLE}= --overwrite",
                ),
                self.timeout,
            )
            labeled.append(m)
        if labeled:
            log.info("[verify] labeled %s as %s", ", ".join(m.name for m in labeled), WORKER_ROLE)
        else:
            log.info("[verify] no unlabeled worker members")
        return labeled

    def verify_workloads_scheduling(self, node: Node) -> None:
        self._probe(node, "list workloads", "get pods -A")
        log.info("[verify] workloads are schedulable across all namespaces")
