"""Typer CLI entrypoint for custody staking."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import DeploymentConfig
from .errors import CustodyError
from .events import EventBus
from .logging_utils import AuditTrail, configure_logging
from .simulation import run_lifecycle_simulation

app = typer.Typer(help="Operator console for custody staking deployments")
console = Console()


def _load_config(path: Path) -> DeploymentConfig:
    try:
        return DeploymentConfig.load(path)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        console.print(Panel(f"Invalid configuration: {exc}", style="bold red"))
        raise typer.Exit(code=2) from exc


@app.command()
def simulate(
    config: Path = typer.Option(..., "--config", help="Deployment configuration (YAML)"),
    stake: int = typer.Option(1_000, min=1, help="Whole tokens to stake"),
    reward_bps: int = typer.Option(250, min=0, help="Reward on release, in basis points"),
    attestors: int = typer.Option(3, min=1, help="Number of generated attestors"),
    threshold: int = typer.Option(2, min=1, help="Signatures required for release"),
    signing: Optional[int] = typer.Option(None, min=0, help="Attestors that actually co-sign"),
    log_file: Optional[Path] = typer.Option(None, help="JSON-lines audit trail of custody events"),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON"),
) -> None:
    """Rehearse a full stake to fulfillment cycle in memory."""
    deployment_config = _load_config(config)
    target_log = log_file or deployment_config.resolved_log_file()
    audit = AuditTrail(target_log) if target_log else None
    configure_logging(audit=audit)
    try:
        summary = run_lifecycle_simulation(
            deployment_config,
            stake_tokens=stake,
            reward_bps=reward_bps,
            attestor_count=attestors,
            threshold=threshold,
            signing_attestors=signing,
            audit=audit,
        )
    except CustodyError as exc:
        console.print(Panel(f"{exc.code}: {exc}", title="Simulation aborted", style="bold red"))
        raise typer.Exit(code=2) from exc

    if as_json:
        typer.echo(json.dumps(summary.to_dict(), indent=2))
        return

    table = Table(title="Custody events")
    table.add_column("#", justify="right")
    table.add_column("Event")
    table.add_column("Payload")
    for event in summary.events:
        payload = {key: value for key, value in event.items() if key not in {"type", "sequence"}}
        table.add_row(str(event["sequence"]), event["type"], json.dumps(payload, default=str))
    console.print(table)
    console.print(
        Panel(
            f"Staker {summary.staker} finished in {summary.final_state}\n"
            f"Staked {summary.staked} base units, released {summary.released}\n"
            f"Pool balance {summary.pool_balance_after_stake} -> {summary.pool_balance_after_release}",
            title="Summary",
            style="bold green",
        )
    )


@app.command("inspect-config")
def inspect_config(config: Path = typer.Option(..., "--config", help="Deployment configuration (YAML)")) -> None:
    """Validate a configuration file and print the resolved values."""
    deployment_config = _load_config(config)
    payload = deployment_config.model_dump()
    payload["minimum_stake"] = str(deployment_config.minimum_stake)
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def serve(
    config: Path = typer.Option(..., "--config", help="Deployment configuration (YAML)"),
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8085, help="Bind port"),
) -> None:
    """Serve the relay and query API for a fresh in-memory deployment."""
    import uvicorn

    from .deployment import CustodyDeployment
    from .process import create_app

    deployment_config = _load_config(config)
    target_log = deployment_config.resolved_log_file()
    audit = AuditTrail(target_log) if target_log else None
    configure_logging(audit=audit)
    bus = EventBus()
    if audit is not None:
        audit.attach(bus)
    application = create_app(CustodyDeployment(deployment_config, bus=bus))
    console.print(Panel(f"Serving custody API on http://{host}:{port}"))
    uvicorn.run(application, host=host, port=port)


if __name__ == "__main__":  # pragma: no cover
    app()
