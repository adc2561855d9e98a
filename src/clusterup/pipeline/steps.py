# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/pipeline/steps.py

from __future__ import annotations

import logging
import shlex
from typing import List

import yaml

from clusterup.kube.kubeconfig import (
    RKE2_KUBECONFIG_PATH,
    operator_kubeconfig_path,
    rewrite_server_endpoint,
)
from clusterup.loadbalancer.nginx import NginxRenderer
from clusterup.loadbalancer.synth import SUPERVISOR_PORT, synthesize
from clusterup.remote.interface import RemoteGateway
from clusterup.remote.operations import RemoteOperation
from clusterup.tokens.broker import JoinToken, TokenBroker
from clusterup.topology.models import Node, Topology
from clusterup.verify.verifier import HealthVerifier, Member

log = logging.getLogger("clusterup")

RKE2_CONFIG_PATH = "/etc/rancher/rke2/config.yaml"
RKE2_INSTALL_URL = "https://get.rke2.io"
SERVER_SERVICE = "rke2-server"
AGENT_SERVICE = "rke2-agent"


# ------------------ operations ------------------

def prepare_operation() -> RemoteOperation:
    return RemoteOperation(
        name="prepare node",
        script="""
            swapoff -a
            sed -i -E '/^[^#].*[[:space:]]swap[[:space:]]/ s/^/#/' /etc/fstab
            export DEBIAN_FRONTEND=noninteractive
            apt-get update -y
            apt-get install -y curl jq
        """,
        sudo=True,
    )


def install_rke2_operation(version: str, *, agent: bool = False) -> RemoteOperation:
    """
    Install RKE2 at *version* unless that exact version is already present.
    """
    v = shlex.quote(version)
    install_type = " INSTALL_RKE2_TYPE=agent" if agent else ""
    return RemoteOperation(
        name=f"install rke2 {'agent' if agent else 'server'} {version}",
        script=f"""
            if command -v rke2 >/dev/null 2>&1 && rke2 --version | grep -qF -- {v}; then
              echo "rke2 {version} already installed"
            else
              curl -sfL {RKE2_INSTALL_URL} | INSTALL_RKE2_VERSION={v}{install_type} sh -
            fi
        """,
        sudo=True,
    )


def start_service_operation(service: str) -> RemoteOperation:
    return RemoteOperation(
        name=f"start {service}",
        script=f"""
            systemctl enable {service}
            systemctl start {service}
        """,
        sudo=True,
    )


def install_kubectl_operation() -> RemoteOperation:
    return RemoteOperation(
        name="install kubectl",
        script="""
            if ! command -v kubectl >/dev/null 2>&1; then
              case "$(uname -m)" in
                aarch64|arm64) arch=arm64 ;;
                *) arch=amd64 ;;
              esac
              release="$(curl -fsSL https://dl.k8s.io/release/stable.txt)"
              curl -fsSLo /tmp/kubectl "https://dl.k8s.io/release/${release}/bin/linux/${arch}/kubectl"
              install -m 0755 /tmp/kubectl /usr/local/bin/kubectl
              rm -f /tmp/kubectl
            fi
        """,
        sudo=True,
    )


def bootstrap_config(topology: Topology) -> str:
    return yaml.safe_dump(
        {
            "cluster-init": True,
            "tls-san": [topology.gateway.private_address],
        },
        sort_keys=False,
    )


def join_config(topology: Topology, token: JoinToken) -> str:
    return yaml.safe_dump(
        {
            "server": f"https://{topology.gateway.private_address}:{SUPERVISOR_PORT}",
            "token": token.reveal(),
        },
        sort_keys=False,
    )


# ------------------ phase steps ------------------

class BootstrapSteps:
    """
    Node-level work of every phase. Each method is idempotent and handles
    exactly one node; fan-out and ordering belong to the sequencer.
    """

    def __init__(
        self,
        topology: Topology,
        gateway: RemoteGateway,
        broker: TokenBroker,
        verifier: HealthVerifier,
        renderer: NginxRenderer,
        *,
        command_timeout: float,
    ):
        self.topology = topology
        self.gateway = gateway
        self.broker = broker
        self.verifier = verifier
        self.renderer = renderer
        self.timeout = command_timeout

    @property
    def _owner(self) -> str:
        user = self.topology.ssh_user
        return f"{user}:{user}"

    def prepare(self, node: Node) -> None:
        log.info("[%s] disabling swap and installing prerequisites", node.id)
        self.gateway.execute(node, prepare_operation(), self.timeout)

    def configure_load_balancer(self, node: Node) -> None:
        groups = synthesize(self.topology)
        text = self.renderer.render(groups, cluster_name=self.topology.cluster_name)
        log.info(
            "[%s] configuring nginx upstreams %s",
            node.id, ", ".join(f"{g.name}:{g.listen_port}" for g in groups),
        )
        self.renderer.apply(self.gateway, node, text, timeout=self.timeout)

    def bootstrap_control_plane(self, node: Node) -> None:
        log.info("[%s] installing rke2 server %s (cluster-init)", node.id, self.topology.software_version)
        self.gateway.execute(node, install_rke2_operation(self.topology.software_version), self.timeout)
        self.gateway.push(
            node, RKE2_CONFIG_PATH, bootstrap_config(self.topology).encode(), mode=0o600, timeout=self.timeout,
        )
        self.gateway.execute(node, start_service_operation(SERVER_SERVICE), self.timeout)
        self.broker.bootstrap_completed(node)
        self.broker.fetch_token(node)

    def join_control_plane(self, node: Node, token: JoinToken) -> None:
        log.info("[%s] joining control plane via %s", node.id, self.topology.gateway.private_address)
        self.gateway.execute(node, install_rke2_operation(self.topology.software_version), self.timeout)
        self.gateway.push(
            node, RKE2_CONFIG_PATH, join_config(self.topology, token).encode(), mode=0o600, timeout=self.timeout,
        )
        self.gateway.execute(node, start_service_operation(SERVER_SERVICE), self.timeout)

    def join_worker(self, node: Node, token: JoinToken) -> None:
        log.info("[%s] joining as worker via %s", node.id, self.topology.gateway.private_address)
        self.gateway.execute(
            node, install_rke2_operation(self.topology.software_version, agent=True), self.timeout
        )
        self.gateway.push(
            node, RKE2_CONFIG_PATH, join_config(self.topology, token).encode(), mode=0o600, timeout=self.timeout,
        )
        self.gateway.execute(node, start_service_operation(AGENT_SERVICE), self.timeout)

    def configure_gateway_access(self, node: Node) -> None:
        bootstrap = self.topology.bootstrap
        kubeconfig_path = operator_kubeconfig_path(self.topology.ssh_user)

        self.gateway.execute(node, install_kubectl_operation(), self.timeout)

        admin = self.gateway.fetch(bootstrap, RKE2_KUBECONFIG_PATH, timeout=self.timeout).decode("utf-8")
        self.gateway.push(
            bootstrap, kubeconfig_path, admin.encode("utf-8"),
            mode=0o600, owner=self._owner, dir_mode=0o700, timeout=self.timeout,
        )
        proxied = rewrite_server_endpoint(admin)
        self.gateway.push(
            node, kubeconfig_path, proxied.encode("utf-8"),
            mode=0o600, owner=self._owner, dir_mode=0o700, timeout=self.timeout,
        )
        log.info("[%s] kubeconfig installed at %s (endpoint via local proxy)", node.id, kubeconfig_path)

        self.gateway.execute(
            node,
            RemoteOperation(name="kubectl get nodes", script="kubectl get nodes >/dev/null"),
            self.timeout,
        )

    def verify_health(self, node: Node) -> List[Member]:
        self.verifier.verify_reachable(node)
        labeled = self.verifier.reconcile_worker_labels(
            node,
            exclude_addresses={n.private_address for n in self.topology.control_plane},
        )
        self.verifier.verify_workloads_scheduling(node)
        return labeled
