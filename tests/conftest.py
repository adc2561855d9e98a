from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from clusterup.errors import RemoteFailureError
from clusterup.tokens.broker import NODE_TOKEN_PATH
from clusterup.topology.models import Topology

FAKE_TOKEN = b"K10deadbeef::server:0123456789abcdef\n"
FAKE_KUBECONFIG = (
    "apiVersion: v1\n"
    "clusters:\n"
    "- cluster:\n"
    "    certificate-authority-data: Zm9v\n"
    "    server: https://127.0.0.1:6443\n"
    "  name: default\n"
    "kind: Config\n"
)
CP_ROLES = ("control-plane", "etcd", "master")


class FakeCluster:
    """
    A fake RemoteGateway that keeps just enough node state to act like a
    real RKE2 cluster: services started, files written, members and labels.
    """

    def __init__(self, topology: Topology, fail=None):
        self.topology = topology
        self.fail = dict(fail or {})           # (node_id, op-name prefix) -> exception
        self.calls = []                        # (node_id, op name)
        self.files = {}                        # (node_id, path) -> bytes
        self.members = {}                      # member name -> {"address": ..., "roles": set}
        self.label_ops = []
        self.pushes = {}                       # (node_id, path) -> push kwargs
        self.timeouts = {}                     # (node_id, op name) -> last timeout
        self.closed = False
        self._lock = threading.Lock()

    # ------------------ helpers ------------------

    @staticmethod
    def member_name(address: str) -> str:
        return "ip-" + address.replace(".", "-")

    def ops_for(self, node_id):
        return [name for nid, name in self.calls if nid == node_id]

    def _maybe_fail(self, node, name):
        for (nid, prefix), exc in self.fail.items():
            if nid == node.id and name.startswith(prefix):
                if isinstance(exc, list):
                    # transient failures: raise each once, then succeed
                    if exc:
                        raise exc.pop(0)
                    continue
                raise exc

    def _register(self, node, roles):
        name = self.member_name(node.private_address)
        if name not in self.members:
            self.members[name] = {"address": node.private_address, "roles": set(roles)}

    def _nodes_json(self) -> str:
        items = []
        for name, m in sorted(self.members.items()):
            labels = {"kubernetes.io/hostname": name}
            for r in m["roles"]:
                labels[f"node-role.kubernetes.io/{r}"] = "true" if r != "worker" else ""
            items.append({
                "metadata": {"name": name, "labels": labels},
                "status": {"addresses": [
                    {"type": "InternalIP", "address": m["address"]},
                    {"type": "Hostname", "address": name},
                ]},
            })
        return json.dumps({"items": items})

    # ------------------ RemoteGateway ------------------

    def execute(self, node, operation, timeout=None, *, check=True):
        with self._lock:
            self.calls.append((node.id, operation.name))
            self.timeouts[(node.id, operation.name)] = timeout
            self._maybe_fail(node, operation.name)

            if operation.name == "start rke2-server":
                if node is self.topology.bootstrap:
                    self.files.setdefault((node.id, NODE_TOKEN_PATH), FAKE_TOKEN)
                    self.files.setdefault(
                        (node.id, "/etc/rancher/rke2/rke2.yaml"), FAKE_KUBECONFIG.encode()
                    )
                self._register(node, CP_ROLES)
            elif operation.name == "start rke2-agent":
                self._register(node, ())
            elif operation.name == "list members":
                if "-o json" in operation.script:
                    return self._nodes_json(), 0
                return "\n".join(sorted(self.members)), 0
            elif operation.name.startswith("label "):
                member = operation.name[len("label "):]
                self.label_ops.append(member)
                self.members[member]["roles"].add("worker")
            return "", 0

    def fetch(self, node, path, *, sudo=True, timeout=None):
        with self._lock:
            self.calls.append((node.id, f"read {path}"))
            self._maybe_fail(node, f"read {path}")
            try:
                return self.files[(node.id, path)]
            except KeyError:
                raise RemoteFailureError(node.id, f"read {path}", 1) from None

    def push(self, node, path, data, *, mode=0o600, owner=None, sudo=True, timeout=None, dir_mode=0o755):
        with self._lock:
            self.calls.append((node.id, f"write {path}"))
            self.timeouts[(node.id, f"write {path}")] = timeout
            self.pushes[(node.id, path)] = {"mode": mode, "owner": owner, "sudo": sudo, "dir_mode": dir_mode}
            self._maybe_fail(node, f"write {path}")
            self.files[(node.id, path)] = data

    def close(self):
        self.closed = True


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


def make_topology(cps=("10.0.1.10", "10.0.1.11", "10.0.1.12"), workers=("10.0.2.10", "10.0.2.11")):
    return Topology.build(
        control_plane=list(cps),
        workers=list(workers),
        gateway_public="203.0.113.10",
        gateway_private="10.0.0.5",
        software_version="v1.29.4+rke2r1",
        ssh_key_path=Path("/keys/id_ed25519"),
    )


@pytest.fixture
def topology():
    return make_topology()


@pytest.fixture
def topology_factory():
    return make_topology


@pytest.fixture
def fake_cluster_cls():
    return FakeCluster


@pytest.fixture
def capture():
    return Capture()
