# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/loadbalancer/synth.py

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from clusterup.topology.models import Topology

K8S_API_PORT = 6443
SUPERVISOR_PORT = 9345


@dataclass(frozen=True)
class UpstreamGroup:
    name: str
    listen_port: int
    servers: Tuple[Tuple[str, int], ...]


# (group name, port) for every proxied service
PROXIED_SERVICES: Tuple[Tuple[str, int], ...] = (
    ("k8s_api", K8S_API_PORT),
    ("rke2_supervisor", SUPERVISOR_PORT),
)


def synthesize(topology: Topology) -> List[UpstreamGroup]:
    """
    One TCP upstream group per proxied port, each listing every control
    plane node's private address in topology order.
    """
    return [
        UpstreamGroup(
            name=name,
            listen_port=port,
            servers=tuple((n.private_address, port) for n in topology.control_plane),
        )
        for name, port in PROXIED_SERVICES
    ]
