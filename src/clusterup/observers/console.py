# src/clusterup/observers/console.py
from __future__ import annotations

import typer

from .events import (
    BaseEvent,
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

_RULE = "═" * 60


class ConsoleObserver:
    """Colored status lines for a human watching the run."""

    def _info(self, msg: str) -> None:
        typer.echo(typer.style("[INFO] ", fg=typer.colors.BLUE, bold=True) + msg)

    def _ok(self, msg: str) -> None:
        typer.echo(typer.style("[SUCCESS] ", fg=typer.colors.GREEN, bold=True) + msg)

    def _warn(self, msg: str) -> None:
        typer.echo(typer.style("[WARN] ", fg=typer.colors.YELLOW, bold=True) + msg)

    def _error(self, msg: str) -> None:
        typer.echo(typer.style("[ERROR] ", fg=typer.colors.RED, bold=True) + msg, err=True)

    def notify(self, event: BaseEvent) -> None:
        if isinstance(event, PipelineStarted):
            self._info(f"cluster={event.cluster} run={event.run_id} nodes={event.nodes}")
            self._info("phases: " + " -> ".join(event.phases))
        elif isinstance(event, PhaseStarted):
            typer.secho(f"\n{_RULE}\n  {event.phase}\n{_RULE}", fg=typer.colors.BLUE)
            if event.targets:
                self._info("targets: " + ", ".join(event.targets))
        elif isinstance(event, NodeSucceeded):
            self._ok(f"{event.node} ({event.address}) done in {event.duration_ms}ms")
        elif isinstance(event, NodeFailed):
            self._error(f"{event.node} ({event.address}) {event.error_kind}: {event.error}")
        elif isinstance(event, NodeSkipped):
            self._warn(f"{event.node} skipped: {event.reason}")
        elif isinstance(event, PhaseSucceeded):
            self._ok(f"{event.phase} complete ({event.duration_ms}ms)")
        elif isinstance(event, PhaseFailed):
            self._error(f"{event.phase} failed on {event.node} ({event.error_kind})")
        elif isinstance(event, PhaseSkipped):
            self._warn(f"{event.phase} skipped")
        elif isinstance(event, TokenFetched):
            self._info(f"join token retrieved from {event.node}")
        elif isinstance(event, MembersLabeled):
            if event.members:
                self._info(f"labeled {', '.join(event.members)} as {event.role}")
            else:
                self._info("all members already carry a role label")
        elif isinstance(event, PipelineSummary):
            if event.status == "CONVERGED":
                typer.secho(f"\n{_RULE}\n  Cluster converged\n{_RULE}", fg=typer.colors.GREEN, bold=True)
            else:
                self._error(
                    f"pipeline halted in {event.failed_phase} on {event.failed_node} "
                    f"({event.error_kind}); exit={event.exit_code}"
                )
