# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/pipeline/sequencer.py

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from clusterup.errors import ClusterupError, UnreachableError, error_kind
from clusterup.loadbalancer.nginx import NginxRenderer
from clusterup.remote.interface import RemoteGateway
from clusterup.tokens.broker import TokenBroker
from clusterup.topology.models import Node, Topology
from clusterup.utils.retry import retry
from clusterup.verify.verifier import HealthVerifier, Member
from clusterup.observers.dispatcher import EventBus
from clusterup.observers.interface import Observer
from clusterup.observers.events import (
    new_ctx,
    PipelineStarted,
    PipelineSummary,
    PhaseStarted,
    PhaseSucceeded,
    PhaseFailed,
    PhaseSkipped,
    NodeSucceeded,
    NodeFailed,
    NodeSkipped,
    TokenFetched,
    MembersLabeled,
)
from .phases import (
    EXIT_CODES,
    JOIN_PHASES,
    PHASE_ORDER,
    Decision,
    NodeResult,
    Outcome,
    Phase,
    PhaseResult,
    transition,
)
from .steps import BootstrapSteps

log = logging.getLogger("clusterup")


@dataclass
class PipelineOptions:
    max_sessions: int = 8
    command_timeout: float = 900.0
    reachability_retries: int = 3     # attempts per node operation on UnreachableError
    retry_delay: float = 5.0
    start_at: Optional[Phase] = None
    cancel_on_failure: bool = True


@dataclass
class RunReport:
    phases: List[PhaseResult] = field(default_factory=list)
    failed_phase: Optional[Phase] = None
    failed_node: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.failed_phase is None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else EXIT_CODES[self.failed_phase]

    def summary(self) -> str:
        if self.ok:
            return f"CONVERGED phases={len(self.phases)}"
        return (
            f"FAILED phase={self.failed_phase.value} node={self.failed_node} "
            f"kind={self.error_kind}: {self.error}"
        )


NodeWork = Callable[[Node], Any]


class Sequencer:
    """
    Drives the fixed bootstrap pipeline. Phases run strictly in order with
    a barrier between them; node work inside a phase fans out over a thread
    pool. The first failing phase halts the run.
    """

    def __init__(
        self,
        topology: Topology,
        gateway: RemoteGateway,
        *,
        broker: Optional[TokenBroker] = None,
        verifier: Optional[HealthVerifier] = None,
        renderer: Optional[NginxRenderer] = None,
        options: Optional[PipelineOptions] = None,
        observers: Optional[List[Observer]] = None,
        run_id: Optional[str] = None,
    ):
        self.topology = topology
        self.gateway = gateway
        self.options = options or PipelineOptions()
        self.broker = broker or TokenBroker(gateway)
        self.verifier = verifier or HealthVerifier(gateway, timeout=self.options.command_timeout)
        self.renderer = renderer or NginxRenderer()
        self.steps = BootstrapSteps(
            topology,
            gateway,
            self.broker,
            self.verifier,
            self.renderer,
            command_timeout=self.options.command_timeout,
        )
        self.bus = EventBus(observers or [])
        self.run_id = run_id or str(uuid.uuid4())

    def _ctx(self) -> Dict[str, Any]:
        # fresh timestamp per event, same run id for the whole run
        return new_ctx(cluster=self.topology.cluster_name, run_id=self.run_id)

    # ------------------ planning ------------------

    def targets(self, phase: Phase) -> List[Node]:
        t = self.topology
        return {
            Phase.PREPARE: t.cluster_nodes(),
            Phase.CONFIGURE_LOAD_BALANCER: [t.gateway],
            Phase.BOOTSTRAP_FIRST_CONTROL_PLANE: [t.bootstrap],
            Phase.JOIN_FOLLOWER_CONTROL_PLANES: t.followers,
            Phase.JOIN_WORKERS: list(t.workers),
            Phase.CONFIGURE_GATEWAY_ACCESS: [t.gateway],
            Phase.VERIFY_HEALTH: [t.gateway],
        }[phase]

    def plan(self) -> List[Tuple[Phase, List[Node]]]:
        return [(p, self.targets(p)) for p in PHASE_ORDER]

    def _work(self, phase: Phase) -> NodeWork:
        if phase is Phase.PREPARE:
            return self.steps.prepare
        if phase is Phase.CONFIGURE_LOAD_BALANCER:
            return self.steps.configure_load_balancer
        if phase is Phase.BOOTSTRAP_FIRST_CONTROL_PLANE:
            return self.steps.bootstrap_control_plane
        if phase is Phase.JOIN_FOLLOWER_CONTROL_PLANES:
            token = self._fetch_token()
            return lambda node: self.steps.join_control_plane(node, token)
        if phase is Phase.JOIN_WORKERS:
            token = self._fetch_token()
            return lambda node: self.steps.join_worker(node, token)
        if phase is Phase.CONFIGURE_GATEWAY_ACCESS:
            return self.steps.configure_gateway_access
        if phase is Phase.VERIFY_HEALTH:
            return self.steps.verify_health
        raise ValueError(f"no work defined for {phase}")

    def _fetch_token(self):
        bootstrap = self.topology.bootstrap
        token = self.broker.fetch_token(bootstrap)
        self.bus.emit(TokenFetched(node=bootstrap.id, **self._ctx()))
        return token

    # ------------------ node fan-out ------------------

    def _run_node(self, phase: Phase, node: Node, work: NodeWork, cancelled: threading.Event) -> NodeResult:
        if cancelled.is_set():
            return self._skipped(phase, node, "cancelled after a sibling failed")

        def _on_retry(attempt: int, exc: Exception) -> None:
            log.warning(
                "[%s] %s: unreachable (attempt %d/%d), retrying in %gs: %s",
                node.id, phase.value, attempt, self.options.reachability_retries,
                self.options.retry_delay, exc,
            )

        call = retry(
            retries=self.options.reachability_retries,
            delay=self.options.retry_delay,
            retry_on=(UnreachableError,),
            on_retry=_on_retry,
        )(work)

        t0 = time.monotonic()
        try:
            detail = call(node)
        except Exception as e:
            # recorded unmodified; the phase aggregate decides what happens next
            duration_ms = int((time.monotonic() - t0) * 1000)
            log.error("[%s] %s failed: %s", node.id, phase.value, e)
            if not isinstance(e, ClusterupError):
                log.debug("[%s] unexpected error", node.id, exc_info=True)
            self.bus.emit(NodeFailed(
                phase=phase.value, node=node.id, address=node.private_address,
                error_kind=error_kind(e), error=str(e), **self._ctx(),
            ))
            if self.options.cancel_on_failure:
                # siblings that have not started yet see this and skip
                cancelled.set()
            return NodeResult(
                node_id=node.id, outcome=Outcome.FAILED, reason=str(e),
                error_kind=error_kind(e), error=e, duration_ms=duration_ms,
            )

        duration_ms = int((time.monotonic() - t0) * 1000)
        self.bus.emit(NodeSucceeded(
            phase=phase.value, node=node.id, address=node.private_address,
            duration_ms=duration_ms, **self._ctx(),
        ))
        return NodeResult(node_id=node.id, outcome=Outcome.SUCCESS, duration_ms=duration_ms, detail=detail)

    def _skipped(self, phase: Phase, node: Node, reason: str) -> NodeResult:
        self.bus.emit(NodeSkipped(phase=phase.value, node=node.id, reason=reason, **self._ctx()))
        return NodeResult(node_id=node.id, outcome=Outcome.SKIPPED, reason=reason)

    def _fan_out(self, phase: Phase, targets: List[Node], work: NodeWork) -> PhaseResult:
        if not targets:
            return PhaseResult(phase=phase)

        results: Dict[str, NodeResult] = {}
        cancelled = threading.Event()
        siblings_cancelled = False
        workers = max(1, min(len(targets), self.options.max_sessions))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"clusterup-{phase.name.lower()}") as pool:
            futures = {pool.submit(self._run_node, phase, node, work, cancelled): node for node in targets}
            for fut in as_completed(futures):
                node = futures[fut]
                if fut.cancelled():
                    results[node.id] = self._skipped(phase, node, "cancelled after a sibling failed")
                    continue
                res = fut.result()
                results[node.id] = res
                if res.outcome is Outcome.FAILED and self.options.cancel_on_failure and not siblings_cancelled:
                    siblings_cancelled = True
                    for other in futures:
                        other.cancel()

        return PhaseResult(phase=phase, results=[results[n.id] for n in targets])

    # ------------------ phases ------------------

    def _skip_phase(self, phase: Phase) -> PhaseResult:
        log.info("[pipeline] %s skipped (resuming at %s)", phase.value, self.options.start_at.value)
        self.bus.emit(PhaseSkipped(phase=phase.value, **self._ctx()))
        if phase is Phase.BOOTSTRAP_FIRST_CONTROL_PLANE:
            # resuming past bootstrap: the operator asserts it already ran
            self.broker.bootstrap_completed(self.topology.bootstrap)
        return PhaseResult(
            phase=phase,
            results=[
                NodeResult(node_id=n.id, outcome=Outcome.SKIPPED, reason="resume")
                for n in self.targets(phase)
            ],
        )

    def _execute_phase(self, phase: Phase) -> PhaseResult:
        targets = self.targets(phase)
        self.bus.emit(PhaseStarted(phase=phase.value, targets=[n.id for n in targets], **self._ctx()))
        log.info("[pipeline] %s -> %s", phase.value, ", ".join(n.id for n in targets) or "(no targets)")

        t0 = time.monotonic()
        try:
            work = self._work(phase)
        except ClusterupError as e:
            # phase prelude (token fetch) failed; attribute it to the bootstrap node
            source = self.topology.bootstrap
            self.bus.emit(NodeFailed(
                phase=phase.value, node=source.id, address=source.private_address,
                error_kind=error_kind(e), error=str(e), **self._ctx(),
            ))
            result = PhaseResult(phase=phase, results=[NodeResult(
                node_id=source.id, outcome=Outcome.FAILED, reason=str(e),
                error_kind=error_kind(e), error=e,
            )])
        else:
            result = self._fan_out(phase, targets, work)

        if result.outcome is Outcome.SUCCESS:
            self._record_success(phase, result)
            self.bus.emit(PhaseSucceeded(
                phase=phase.value, duration_ms=int((time.monotonic() - t0) * 1000), **self._ctx(),
            ))
        else:
            failure = result.first_failure
            self.bus.emit(PhaseFailed(
                phase=phase.value, node=failure.node_id,
                error_kind=failure.error_kind or "Cancelled", error=failure.reason or "", **self._ctx(),
            ))
        return result

    def _record_success(self, phase: Phase, result: PhaseResult) -> None:
        if phase in JOIN_PHASES:
            now = datetime.now(timezone.utc)
            for r in result.results:
                node = self.topology.node(r.node_id)
                if node.joined_at is None:
                    node.joined_at = now
        elif phase is Phase.VERIFY_HEALTH:
            labeled: List[Member] = []
            for r in result.results:
                labeled.extend(r.detail or [])
            for m in labeled:
                node = self.topology.by_address(m.internal_address) if m.internal_address else None
                if node is not None:
                    node.labeled = True
                else:
                    log.warning("[verify] labeled member %s is not part of the topology", m.name)
            self.bus.emit(MembersLabeled(members=[m.name for m in labeled], role="worker", **self._ctx()))

    # ------------------ public API ------------------

    def run(self) -> RunReport:
        report = RunReport()
        start_at = self.options.start_at
        start_index = PHASE_ORDER.index(start_at) if start_at else 0

        self.bus.emit(PipelineStarted(
            phases=[p.value for p in PHASE_ORDER],
            nodes=len(self.topology.all_nodes()),
            **self._ctx(),
        ))

        phase: Optional[Phase] = PHASE_ORDER[0]
        while phase is not None:
            if PHASE_ORDER.index(phase) < start_index:
                result = self._skip_phase(phase)
            else:
                result = self._execute_phase(phase)
            report.phases.append(result)

            decision, nxt = transition(phase, result.outcome)
            if decision is Decision.HALT:
                failure = result.first_failure
                report.failed_phase = phase
                report.failed_node = failure.node_id
                report.error_kind = failure.error_kind or "Cancelled"
                report.error = failure.error
                log.error("[pipeline] halted: %s", report.summary())
                break
            phase = nxt

        if report.ok:
            log.info("[pipeline] cluster %s converged", self.topology.cluster_name)
        self.bus.emit(PipelineSummary(
            status="CONVERGED" if report.ok else "FAILED",
            exit_code=report.exit_code,
            failed_phase=report.failed_phase.value if report.failed_phase else None,
            failed_node=report.failed_node,
            error_kind=report.error_kind,
            **self._ctx(),
        ))
        return report
