# src/clusterup/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict, field
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events of one pipeline run
    cluster: str      # cluster name from the inventory

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(cluster: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "cluster": cluster,
    }


# ---------------------------------------------------------------------
# Pipeline lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PipelineStarted(BaseEvent):
    phases: List[str]
    nodes: int

@dataclass(frozen=True)
class PipelineSummary(BaseEvent):
    status: str                   # "CONVERGED" | "FAILED"
    exit_code: int
    failed_phase: Optional[str] = None
    failed_node: Optional[str] = None
    error_kind: Optional[str] = None


# ---------------------------------------------------------------------
# Phase lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PhaseStarted(BaseEvent):
    phase: str
    targets: List[str] = field(default_factory=list)

@dataclass(frozen=True)
class PhaseSucceeded(BaseEvent):
    phase: str
    duration_ms: int

@dataclass(frozen=True)
class PhaseFailed(BaseEvent):
    phase: str
    node: str
    error_kind: str
    error: str

@dataclass(frozen=True)
class PhaseSkipped(BaseEvent):
    phase: str


# ---------------------------------------------------------------------
# Node lifecycle (one per targeted node per phase)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NodeSucceeded(BaseEvent):
    phase: str
    node: str
    address: str
    duration_ms: int

@dataclass(frozen=True)
class NodeFailed(BaseEvent):
    phase: str
    node: str
    address: str
    error_kind: str
    error: str

@dataclass(frozen=True)
class NodeSkipped(BaseEvent):
    phase: str
    node: str
    reason: str


# ---------------------------------------------------------------------
# Tokens & membership
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class TokenFetched(BaseEvent):
    node: str                     # never the token itself

@dataclass(frozen=True)
class MembersLabeled(BaseEvent):
    members: List[str]
    role: str
