# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/kube/kubeconfig.py

from __future__ import annotations

import re

RKE2_KUBECONFIG_PATH = "/etc/rancher/rke2/rke2.yaml"
LOCAL_PROXY_ENDPOINT = "https://127.0.0.1:6443"

_SERVER_LINE = re.compile(r"^(?P<indent>[ \t]*server:[ \t]*)https://[^\s]+:6443[ \t]*$", re.MULTILINE)


def rewrite_server_endpoint(kubeconfig: str, endpoint: str = LOCAL_PROXY_ENDPOINT) -> str:
    """
    Point every ``server: https://<host>:6443`` entry at *endpoint*.
    Raises ValueError when the document carries no API server entry.
    """
    rewritten, count = _SERVER_LINE.subn(lambda m: f"{m.group('indent')}{endpoint}", kubeconfig)
    if count == 0:
        raise ValueError("kubeconfig has no 'server: https://...:6443' entry to rewrite")
    return rewritten


def operator_kubeconfig_path(username: str) -> str:
    home = "/root" if username == "root" else f"/home/{username}"
    return f"{home}/.kube/config"
