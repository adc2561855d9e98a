# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/config/models.py

from pathlib import Path
from typing import List

from pydantic import BaseModel, Field, IPvAnyAddress, field_validator

from clusterup.topology.models import Topology


class LoadBalancerSpec(BaseModel):
    """The nginx bastion: SSH jump host and TCP load balancer in one."""
    public_ip: str
    private_ip: IPvAnyAddress


class InventoryConfig(BaseModel):
    ssh_key: Path
    ssh_user: str = "ubuntu"
    cluster_name: str = "rke2"
    nginx_lb: LoadBalancerSpec
    control_plane: List[IPvAnyAddress] = Field(min_length=1)
    workers: List[IPvAnyAddress] = Field(default_factory=list)
    rke2_version: str

    @field_validator("rke2_version")
    @classmethod
    def _version_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("rke2_version must not be empty")
        return v.strip()

    def to_topology(self) -> Topology:
        return Topology.build(
            control_plane=[str(a) for a in self.control_plane],
            workers=[str(a) for a in self.workers],
            gateway_public=self.nginx_lb.public_ip,
            gateway_private=str(self.nginx_lb.private_ip),
            software_version=self.rke2_version,
            ssh_key_path=self.ssh_key.expanduser(),
            ssh_user=self.ssh_user,
            cluster_name=self.cluster_name,
        )
