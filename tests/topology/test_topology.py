from pathlib import Path

import pytest

from clusterup.errors import TopologyError
from clusterup.topology.models import Node, Role, Topology


def test_build_assigns_ids_and_roles(topology):
    assert [n.id for n in topology.control_plane] == ["cp-0", "cp-1", "cp-2"]
    assert topology.bootstrap.role is Role.BOOTSTRAP
    assert [n.role for n in topology.followers] == [Role.CONTROL_PLANE, Role.CONTROL_PLANE]
    assert [n.id for n in topology.workers] == ["worker-0", "worker-1"]
    assert topology.gateway.public_address == "203.0.113.10"
    assert topology.gateway.is_gateway


def test_cluster_nodes_exclude_gateway(topology):
    ids = [n.id for n in topology.cluster_nodes()]
    assert ids == ["cp-0", "cp-1", "cp-2", "worker-0", "worker-1"]
    assert topology.all_nodes()[-1] is topology.gateway


def test_lookup_by_id_and_address(topology):
    assert topology.node("worker-1").private_address == "10.0.2.11"
    assert topology.by_address("10.0.1.12").id == "cp-2"
    assert topology.by_address("10.0.0.5") is None
    with pytest.raises(TopologyError):
        topology.node("nope")


def test_empty_control_plane_rejected(topology_factory):
    with pytest.raises(TopologyError, match="control-plane"):
        topology_factory(cps=())


def test_duplicate_address_rejected(topology_factory):
    with pytest.raises(TopologyError, match="share address"):
        topology_factory(cps=("10.0.1.10", "10.0.1.11"), workers=("10.0.1.11",))


def test_first_control_plane_must_be_bootstrap():
    gw = Node(id="gateway", role=Role.GATEWAY, private_address="10.0.0.5", public_address="198.51.100.1")
    with pytest.raises(TopologyError, match="bootstrap"):
        Topology(
            control_plane=[Node(id="cp-0", role=Role.CONTROL_PLANE, private_address="10.0.1.10")],
            workers=[],
            gateway=gw,
            software_version="v1.29.4+rke2r1",
            ssh_key_path=Path("/k"),
        )


def test_gateway_needs_public_address():
    with pytest.raises(TopologyError, match="public address"):
        Topology(
            control_plane=[Node(id="cp-0", role=Role.BOOTSTRAP, private_address="10.0.1.10")],
            workers=[],
            gateway=Node(id="gateway", role=Role.GATEWAY, private_address="10.0.0.5"),
            software_version="v1.29.4+rke2r1",
            ssh_key_path=Path("/k"),
        )


def test_node_str_shows_address(topology):
    assert str(topology.bootstrap) == "cp-0(10.0.1.10)"
