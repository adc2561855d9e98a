# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/pipeline/phases.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


class Phase(str, Enum):
    PREPARE = "Prepare"
    CONFIGURE_LOAD_BALANCER = "ConfigureLoadBalancer"
    BOOTSTRAP_FIRST_CONTROL_PLANE = "BootstrapFirstControlPlane"
    JOIN_FOLLOWER_CONTROL_PLANES = "JoinFollowerControlPlanes"
    JOIN_WORKERS = "JoinWorkers"
    CONFIGURE_GATEWAY_ACCESS = "ConfigureGatewayAccess"
    VERIFY_HEALTH = "VerifyHealth"


PHASE_ORDER: Tuple[Phase, ...] = tuple(Phase)

# distinct, stable process exit codes per failing phase
EXIT_CODES: Dict[Phase, int] = {
    Phase.PREPARE: 10,
    Phase.CONFIGURE_LOAD_BALANCER: 11,
    Phase.BOOTSTRAP_FIRST_CONTROL_PLANE: 20,
    Phase.JOIN_FOLLOWER_CONTROL_PLANES: 21,
    Phase.JOIN_WORKERS: 30,
    Phase.CONFIGURE_GATEWAY_ACCESS: 90,
    Phase.VERIFY_HEALTH: 99,
}

JOIN_PHASES = frozenset({
    Phase.BOOTSTRAP_FIRST_CONTROL_PLANE,
    Phase.JOIN_FOLLOWER_CONTROL_PLANES,
    Phase.JOIN_WORKERS,
})


def parse_phase(value: str) -> Phase:
    """Accept 'JoinWorkers', 'join-workers' or 'JOIN_WORKERS'."""
    norm = value.strip().replace("-", "").replace("_", "").lower()
    for p in Phase:
        if p.value.lower() == norm or p.name.replace("_", "").lower() == norm:
            return p
    raise ValueError(f"unknown phase '{value}' (valid: {', '.join(p.value for p in Phase)})")


class Outcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class NodeResult:
    node_id: str
    outcome: Outcome
    reason: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[BaseException] = None
    duration_ms: int = 0
    detail: Any = None


def aggregate(results: Sequence[NodeResult]) -> Outcome:
    """
    SUCCESS only if every targeted node succeeded. A phase that targets no
    node succeeds trivially; one whose every node was skipped is SKIPPED.
    """
    if not results:
        return Outcome.SUCCESS
    outcomes = {r.outcome for r in results}
    if outcomes == {Outcome.SUCCESS}:
        return Outcome.SUCCESS
    if outcomes == {Outcome.SKIPPED}:
        return Outcome.SKIPPED
    return Outcome.FAILED


@dataclass
class PhaseResult:
    phase: Phase
    results: List[NodeResult] = field(default_factory=list)

    @property
    def outcome(self) -> Outcome:
        return aggregate(self.results)

    @property
    def first_failure(self) -> Optional[NodeResult]:
        for r in self.results:
            if r.outcome is Outcome.FAILED:
                return r
        for r in self.results:
            if r.outcome is not Outcome.SUCCESS:
                return r
        return None

    def targets(self) -> List[str]:
        return [r.node_id for r in self.results]


class Decision(str, Enum):
    ADVANCE = "ADVANCE"
    HALT = "HALT"
    DONE = "DONE"


def transition(current: Phase, outcome: Outcome) -> Tuple[Decision, Optional[Phase]]:
    """
    Pure transition function of the pipeline. A phase advances only on
    SUCCESS (or when it was deliberately skipped on resume).
    """
    if outcome not in (Outcome.SUCCESS, Outcome.SKIPPED):
        return Decision.HALT, None
    idx = PHASE_ORDER.index(current)
    if idx + 1 >= len(PHASE_ORDER):
        return Decision.DONE, None
    return Decision.ADVANCE, PHASE_ORDER[idx + 1]
