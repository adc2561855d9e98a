import json

import pytest

from clusterup.errors import ClusterUnreachableError, RemoteFailureError
from clusterup.verify.verifier import HealthVerifier, parse_members


def _seed(cluster, roles_by_address):
    for address, roles in roles_by_address.items():
        cluster.members[cluster.member_name(address)] = {"address": address, "roles": set(roles)}


def test_parse_members_reads_roles_and_internal_ip():
    payload = json.dumps({"items": [{
        "metadata": {"name": "n1", "labels": {
            "node-role.kubernetes.io/control-plane": "true",
            "node-role.kubernetes.io/etcd": "true",
            "kubernetes.io/os": "linux",
        }},
        "status": {"addresses": [{"type": "Hostname", "address": "n1"},
                                 {"type": "InternalIP", "address": "10.0.1.10"}]},
    }]})

    [m] = parse_members(payload)

    assert m.name == "n1"
    assert m.internal_address == "10.0.1.10"
    assert m.roles == {"control-plane", "etcd"}


def test_reconcile_labels_exactly_the_unlabeled_members(topology, fake_cluster_cls):
    cluster = fake_cluster_cls(topology)
    _seed(cluster, {
        "10.0.1.10": ("control-plane", "etcd"),
        "10.0.1.11": ("control-plane", "etcd"),
        "10.0.1.12": ("control-plane", "etcd"),
        "10.0.2.10": (),
        "10.0.2.11": (),
    })
    verifier = HealthVerifier(cluster)

    labeled = verifier.reconcile_worker_labels(topology.gateway)

    assert [m.name for m in labeled] == ["ip-10-0-2-10", "ip-10-0-2-11"]
    assert cluster.label_ops == ["ip-10-0-2-10", "ip-10-0-2-11"]
    assert cluster.members["ip-10-0-1-10"]["roles"] == {"control-plane", "etcd"}

    again = verifier.reconcile_worker_labels(topology.gateway)

    assert again == []
    assert cluster.label_ops == ["ip-10-0-2-10", "ip-10-0-2-11"]


def test_reconcile_never_labels_known_control_plane(topology, fake_cluster_cls):
    cluster = fake_cluster_cls(topology)
    _seed(cluster, {"10.0.1.11": (), "10.0.2.10": ()})

    labeled = HealthVerifier(cluster).reconcile_worker_labels(
        topology.gateway, exclude_addresses={"10.0.1.10", "10.0.1.11", "10.0.1.12"},
    )

    assert [m.name for m in labeled] == ["ip-10-0-2-10"]
    assert cluster.label_ops == ["ip-10-0-2-10"]


def test_label_uses_overwrite(topology):
    seen = []

    class Recorder:
        def execute(self, node, op, timeout=None, *, check=True):
            seen.append(op)
            if "-o json" in op.script:
                return json.dumps({"items": [{"metadata": {"name": "w1", "labels": {}}}]}), 0
            return "", 0

    HealthVerifier(Recorder()).reconcile_worker_labels(topology.gateway)

    assert seen[-1].script == "kubectl label node w1 node-role.kubernetes.io/worker= --overwrite"


def test_unanswered_probe_is_cluster_unreachable(topology, fake_cluster_cls):
    cluster = fake_cluster_cls(topology, fail={
        ("gateway", "list members"): RemoteFailureError("gateway", "list members", 1),
    })

    with pytest.raises(ClusterUnreachableError):
        HealthVerifier(cluster).verify_reachable(topology.gateway)


def test_workloads_probe_failure_is_cluster_unreachable(topology, fake_cluster_cls):
    cluster = fake_cluster_cls(topology, fail={
        ("gateway", "list workloads"): RemoteFailureError("gateway", "list workloads", 1),
    })
    verifier = HealthVerifier(cluster)

    verifier.verify_reachable(topology.gateway)
    with pytest.raises(ClusterUnreachableError):
        verifier.verify_workloads_scheduling(topology.gateway)


def test_bootstrap_node_kubectl_is_supported(topology):
    seen = []

    class Recorder:
        def execute(self, node, op, timeout=None, *, check=True):
            seen.append(op)
            return "", 0

    HealthVerifier(
        Recorder(),
        kubectl="/var/lib/rancher/rke2/bin/kubectl",
        kubeconfig="/etc/rancher/rke2/rke2.yaml",
        sudo=True,
    ).verify_workloads_scheduling(topology.bootstrap)

    assert seen[0].sudo is True
    assert seen[0].script == (
        "/var/lib/rancher/rke2/bin/kubectl --kubeconfig /etc/rancher/rke2/rke2.yaml get pods -A"
    )
