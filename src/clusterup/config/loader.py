# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/config/loader.py

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from clusterup.errors import InventoryError
from clusterup.topology.models import Topology
from .models import InventoryConfig

log = logging.getLogger("clusterup")

INVENTORY_ENV = "CLUSTERUP_INVENTORY"


def resolve_inventory_path(path: str | Path | None) -> Path:
    """
    Explicit argument wins, then CLUSTERUP_INVENTORY, then
    ./inventory/inventory.json.
    """
    if path:
        return Path(path)
    env = os.environ.get(INVENTORY_ENV)
    if env:
        return Path(env)
    return Path("inventory") / "inventory.json"


def _load_yaml(path: Path) -> dict:
    """Load a YAML (or JSON) file, expanding ${ENV_VAR} references."""
    try:
        raw = path.read_text()
    except OSError as e:
        raise InventoryError(f"cannot read inventory {path}: {e}") from e
    expanded = os.path.expandvars(raw)
    try:
        data = yaml.safe_load(expanded) or {}
    except yaml.YAMLError as e:
        raise InventoryError(f"inventory {path} is not valid YAML/JSON: {e}") from e
    if not isinstance(data, dict):
        raise InventoryError(f"inventory {path} must contain a mapping at the top level")
    return data


def load_inventory(path: str | Path) -> InventoryConfig:
    """
    Load and validate an inventory file.

    The format mirrors the classic ``inventory.json``::

        ssh_key: ~/.ssh/cluster.pem
        nginx_lb: {public_ip: 203.0.113.10, private_ip: 10.0.0.5}
        control_plane: [10.0.1.10, 10.0.1.11, 10.0.1.12]
        workers: [10.0.2.10, 10.0.2.11]
        rke2_version: v1.29.4+rke2r1

    A relative ``ssh_key`` is resolved against the inventory's directory.
    """
    path = Path(path)
    data = _load_yaml(path)
    try:
        cfg = InventoryConfig.model_validate(data)
    except ValidationError as e:
        raise InventoryError(f"invalid inventory {path}:\n{e}") from e

    key = cfg.ssh_key.expanduser()
    if not key.is_absolute():
        key = (path.parent / key).resolve()
    cfg.ssh_key = key
    log.debug(
        "Loaded inventory %s: %d control plane, %d workers, version=%s",
        path, len(cfg.control_plane), len(cfg.workers), cfg.rke2_version,
    )
    return cfg


def load_topology(path: str | Path) -> Topology:
    return load_inventory(path).to_topology()
