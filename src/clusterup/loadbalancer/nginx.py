# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/loadbalancer/nginx.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from clusterup.remote.interface import RemoteGateway
from clusterup.remote.operations import RemoteOperation
from clusterup.topology.models import Node
from .synth import UpstreamGroup

log = logging.getLogger("clusterup")

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
NGINX_CONF_PATH = "/etc/nginx/nginx.conf"


def _jinja_env(root: Path) -> Environment:
    return Environment(
        loader=FileSystemLoader(str(root)),
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


class NginxRenderer:
    """
    Turns upstream groups into an nginx stream config and applies it on
    the gateway (install, write, ``nginx -t``, restart).
    """

    def __init__(
        self,
        *,
        templates_dir: Optional[Path] = None,
        template_name: str = "nginx.conf.j2",
        conf_path: str = NGINX_CONF_PATH,
        worker_connections: int = 1024,
    ):
        self._env = _jinja_env(templates_dir or TEMPLATES_DIR)
        self.template_name = template_name
        self.conf_path = conf_path
        self.worker_connections = worker_connections

    def render(self, groups: List[UpstreamGroup], *, cluster_name: str = "rke2") -> str:
        if not groups:
            raise ValueError("at least one upstream group is required")
        for g in groups:
            if not g.servers:
                raise ValueError(f"upstream group '{g.name}' has no servers")
        tmpl = self._env.get_template(self.template_name)
        return tmpl.render(
            groups=groups,
            cluster_name=cluster_name,
            worker_connections=self.worker_connections,
        )

    def apply(
        self,
        gateway: RemoteGateway,
        node: Node,
        config_text: str,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        gateway.execute(
            node,
            RemoteOperation(
                name="install nginx",
                script="""
                    export DEBIAN_FRONTEND=noninteractive
                    apt-get update -y
                    apt-get install -y nginx libnginx-mod-stream
                """,
                sudo=True,
            ),
            timeout,
        )
        gateway.push(node, self.conf_path, config_text.encode("utf-8"), mode=0o644, sudo=True, timeout=timeout)
        log.info("[%s] nginx config written to %s", node.id, self.conf_path)
        gateway.execute(node, RemoteOperation(name="validate nginx config", script="nginx -t", sudo=True), timeout)
        gateway.execute(node, RemoteOperation(name="restart nginx", script="systemctl restart nginx", sudo=True), timeout)
