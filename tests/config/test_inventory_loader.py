import json

import pytest

from clusterup.config.loader import INVENTORY_ENV, load_inventory, load_topology, resolve_inventory_path
from clusterup.errors import InventoryError, TopologyError

INVENTORY = {
    "ssh_key": "keys/cluster.pem",
    "nginx_lb": {"public_ip": "203.0.113.10", "private_ip": "10.0.0.5"},
    "control_plane": ["10.0.1.10", "10.0.1.11", "10.0.1.12"],
    "workers": ["10.0.2.10"],
    "rke2_version": "v1.29.4+rke2r1",
}


def _write(tmp_path, data, name="inventory.json"):
    p = tmp_path / name
    p.write_text(json.dumps(data) if not isinstance(data, str) else data)
    return p


def test_json_inventory_builds_topology(tmp_path):
    topo = load_topology(_write(tmp_path, INVENTORY))

    assert [n.private_address for n in topo.control_plane] == ["10.0.1.10", "10.0.1.11", "10.0.1.12"]
    assert topo.bootstrap.id == "cp-0"
    assert topo.gateway.private_address == "10.0.0.5"
    assert topo.software_version == "v1.29.4+rke2r1"
    assert topo.ssh_user == "ubuntu"


def test_relative_key_resolves_against_inventory_dir(tmp_path):
    cfg = load_inventory(_write(tmp_path, INVENTORY))
    assert cfg.ssh_key == (tmp_path / "keys" / "cluster.pem").resolve()


def test_yaml_inventory_with_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("RKE2_VERSION", "v1.30.1+rke2r1")
    text = """
ssh_key: /keys/id_ed25519
ssh_user: admin
cluster_name: lab
nginx_lb: {public_ip: 203.0.113.10, private_ip: 10.0.0.5}
control_plane: [10.0.1.10]
rke2_version: ${RKE2_VERSION}
"""
    topo = load_topology(_write(tmp_path, text, "inventory.yaml"))

    assert topo.software_version == "v1.30.1+rke2r1"
    assert topo.ssh_user == "admin"
    assert topo.cluster_name == "lab"
    assert topo.workers == []


@pytest.mark.parametrize("mutate", [
    lambda d: d.pop("rke2_version"),
    lambda d: d.update(control_plane=[]),
    lambda d: d.update(control_plane=["not-an-ip"]),
    lambda d: d.update(rke2_version="  "),
    lambda d: d.pop("nginx_lb"),
])
def test_invalid_inventory_raises(tmp_path, mutate):
    data = json.loads(json.dumps(INVENTORY))
    mutate(data)
    with pytest.raises(InventoryError):
        load_inventory(_write(tmp_path, data))


def test_duplicate_addresses_rejected(tmp_path):
    data = dict(INVENTORY, workers=["10.0.1.10"])
    with pytest.raises(TopologyError, match="share address"):
        load_topology(_write(tmp_path, data))


def test_missing_file_raises(tmp_path):
    with pytest.raises(InventoryError, match="cannot read"):
        load_inventory(tmp_path / "nope.json")


def test_non_mapping_rejected(tmp_path):
    with pytest.raises(InventoryError, match="mapping"):
        load_inventory(_write(tmp_path, "- a\n- b\n", "inv.yaml"))


def test_resolve_inventory_path(monkeypatch, tmp_path):
    monkeypatch.delenv(INVENTORY_ENV, raising=False)
    assert str(resolve_inventory_path(None)) == "inventory/inventory.json"
    monkeypatch.setenv(INVENTORY_ENV, str(tmp_path / "env.json"))
    assert resolve_inventory_path(None) == tmp_path / "env.json"
    assert resolve_inventory_path("explicit.yaml").name == "explicit.yaml"
