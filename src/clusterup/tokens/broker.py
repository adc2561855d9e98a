# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/tokens/broker.py

from __future__ import annotations

import logging
import threading
from typing import Optional

from clusterup.errors import RemoteFailureError, TokenUnavailableError
from clusterup.remote.interface import RemoteGateway
from clusterup.topology.models import Node

log = logging.getLogger("clusterup")

NODE_TOKEN_PATH = "/var/lib/rancher/rke2/server/node-token"


class JoinToken:
    """
    The cluster join secret. repr/str are masked; use reveal() only where
    the value is written to a node.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    def reveal(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return "JoinToken(<redacted>)"

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, JoinToken) and other._value == self._value

    def __hash__(self) -> int:
        return hash(self._value)


class TokenBroker:
    """
    Fetches the join token from the bootstrap node once per run and hands
    the same value to every later phase.
    """

    def __init__(self, gateway: RemoteGateway, *, token_path: str = NODE_TOKEN_PATH):
        self.gateway = gateway
        self.token_path = token_path
        self._bootstrap: Optional[Node] = None
        self._token: Optional[JoinToken] = None
        self._lock = threading.Lock()

    def bootstrap_completed(self, bootstrap_node: Node) -> None:
        """Called by the sequencer once the bootstrap server is started."""
        self._bootstrap = bootstrap_node

    @property
    def ready(self) -> bool:
        return self._bootstrap is not None

    def fetch_token(self, bootstrap_node: Node) -> JoinToken:
        if self._bootstrap is None:
            raise TokenUnavailableError(
                "join token requested before the bootstrap control plane finished initializing"
            )
        if bootstrap_node is not self._bootstrap:
            raise TokenUnavailableError(
                f"{bootstrap_node.id} is not the bootstrap node ({self._bootstrap.id})"
            )

        with self._lock:
            if self._token is not None:
                return self._token
            try:
                raw = self.gateway.fetch(bootstrap_node, self.token_path)
            except RemoteFailureError as e:
                raise TokenUnavailableError(
                    f"{bootstrap_node.id} has no join token at {self.token_path} "
                    f"(exit {e.exit_status})"
                ) from e

            value = raw.decode("utf-8", errors="replace").strip()
            if not value:
                raise TokenUnavailableError(
                    f"join token at {bootstrap_node.id}:{self.token_path} is empty"
                )
            log.debug("[token] fetched join token from %s (%d chars)", bootstrap_node.id, len(value))
            self._token = JoinToken(value)
            return self._token

    def token(self) -> JoinToken:
        """The token fetched earlier in this run."""
        if self._token is None:
            raise TokenUnavailableError("no join token has been fetched in this run")
        return self._token
