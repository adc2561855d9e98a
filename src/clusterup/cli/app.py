# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from clusterup.config.loader import load_topology, resolve_inventory_path
from clusterup.errors import ClusterupError
from clusterup.loadbalancer.nginx import NginxRenderer
from clusterup.loadbalancer.synth import synthesize
from clusterup.logging.log import init_logging
from clusterup.observers.console import ConsoleObserver
from clusterup.observers.jsonfile import JsonFileObserver
from clusterup.observers.logger import LoggerObserver
from clusterup.pipeline.phases import EXIT_CODES, parse_phase
from clusterup.pipeline.sequencer import PipelineOptions, Sequencer
from clusterup.remote.gateway import ParamikoGateway


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Bootstrap a highly-available RKE2 cluster behind an nginx bastion")

INVENTORY_ARG = typer.Argument(
    None,
    help="Inventory file (YAML or JSON). Defaults to $CLUSTERUP_INVENTORY or inventory/inventory.json",
)


def _load(inventory: Optional[Path]):
    path = resolve_inventory_path(inventory)
    try:
        return load_topology(path)
    except ClusterupError as e:
        typer.secho(f"[ERROR] {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def up(
    inventory: Optional[Path] = INVENTORY_ARG,
    start_at: Optional[str] = typer.Option(
        None, "--start-at", help="Resume at this phase; earlier phases are skipped (e.g. JoinWorkers)"
    ),
    max_sessions: int = typer.Option(
        8, "--max-sessions", min=1, help="Maximum simultaneous SSH sessions through the gateway"
    ),
    connect_timeout: float = typer.Option(20.0, "--connect-timeout", help="SSH connect timeout (seconds)"),
    command_timeout: float = typer.Option(900.0, "--command-timeout", help="Per remote operation timeout (seconds)"),
    retries: int = typer.Option(
        3, "--retries", min=1, help="Attempts per node operation when the node is unreachable"
    ),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Directory for run logs (default ~/.clusterup/logs)"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Show DEBUG output on the console"),
):
    """
    Run the full pipeline:
      Prepare -> ConfigureLoadBalancer -> BootstrapFirstControlPlane ->
      JoinFollowerControlPlanes -> JoinWorkers -> ConfigureGatewayAccess -> VerifyHealth
    """
    try:
        start_phase = parse_phase(start_at) if start_at else None
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--start-at")

    # logging first, so inventory loading lands in the run log
    logger, run_id, log_path = init_logging(base_dir=log_dir, verbose=debug)
    topology = _load(inventory)

    observers = [
        ConsoleObserver(),
        LoggerObserver(logger),
        JsonFileObserver(log_path.with_suffix(".jsonl")),
    ]

    options = PipelineOptions(
        max_sessions=max_sessions,
        command_timeout=command_timeout,
        reachability_retries=retries,
        start_at=start_phase,
    )
    gateway = ParamikoGateway(
        topology,
        connect_timeout=connect_timeout,
        command_timeout=command_timeout,
        max_sessions=max_sessions,
    )
    try:
        report = Sequencer(topology, gateway, options=options, observers=observers, run_id=run_id).run()
    finally:
        gateway.close()

    logger.info("result: %s", report.summary())
    typer.echo(f"Log file: {log_path}")
    raise typer.Exit(code=report.exit_code)


@app.command()
def plan(inventory: Optional[Path] = INVENTORY_ARG):
    """Show phases and their target nodes without connecting to anything."""
    topology = _load(inventory)
    # the gateway is never used by planning
    seq = Sequencer(topology, gateway=None)  # type: ignore[arg-type]
    typer.echo(f"cluster: {topology.cluster_name}  version: {topology.software_version}")
    typer.echo(f"gateway: {topology.gateway.public_address} ({topology.gateway.private_address})")
    for phase, targets in seq.plan():
        names = ", ".join(str(n) for n in targets) or "(none)"
        typer.echo(f"  [{EXIT_CODES[phase]:>3}] {phase.value:<28} {names}")


@app.command("render-lb")
def render_lb(inventory: Optional[Path] = INVENTORY_ARG):
    """Print the nginx stream configuration derived from the inventory."""
    topology = _load(inventory)
    typer.echo(NginxRenderer().render(synthesize(topology), cluster_name=topology.cluster_name), nl=False)


if __name__ == "__main__":
    app()
