"""PetroWise Hub CLI entry point."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="petrowise",
    help="PetroWise Hub: API discovery and operational data aggregation",
    no_args_is_help=True,
)
console = Console()


def _load(path: Path | None = None):
    from petrowise_hub.config.loader import load_config, load_config_or_default

    try:
        config = load_config(path) if path else load_config_or_default()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


@app.command()
def scan(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .petrowise.yaml"),
) -> None:
    """Probe every configured service, fetch specs and map endpoints."""
    from petrowise_hub.discovery.orchestrator import DiscoveryOrchestrator

    config = _load(path)
    orchestrator = DiscoveryOrchestrator(config)
    run = asyncio.run(orchestrator.full_discovery())

    table = Table(title="Service Discovery")
    table.add_column("Service", style="bold")
    table.add_column("URL")
    table.add_column("Status")
    table.add_column("Version")
    table.add_column("Spec")
    table.add_column("Endpoints", justify="right")

    for s in run.scan.services:
        style = "green" if s.status.value == "online" else "yellow"
        endpoints = run.endpoints.get(s.id)
        table.add_row(
            s.name,
            s.base_url,
            f"[{style}]{s.status.value}[/{style}]",
            s.version or "—",
            s.openapi_url or "—",
            str(len(endpoints)) if endpoints is not None else "—",
        )
    console.print(table)

    scan_result = run.scan
    console.print(
        f"{scan_result.services_online} online, {scan_result.services_offline} offline, "
        f"{scan_result.total_endpoints} endpoints in {scan_result.duration_ms:.0f}ms"
    )
    for err in scan_result.errors:
        console.print(f"[red]✗ {err.service} (port {err.port}): {err.error}[/red]")
    if not scan_result.success:
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8000, help="Bind port"),
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .petrowise.yaml"),
) -> None:
    """Start the PetroWise Hub API server."""
    import uvicorn

    from petrowise_hub.config.loader import CONFIG_ENV_VAR

    if path is not None:
        # the server process builds its own config on import
        os.environ[CONFIG_ENV_VAR] = str(path.resolve())
    console.print(f"[bold]PetroWise Hub[/bold] starting on http://{host}:{port}")
    uvicorn.run("petrowise_hub.api.app:app", host=host, port=port, reload=False)


@app.command()
def metrics(
    period: str = typer.Option("daily", "--period", help="daily, weekly, monthly or yearly"),
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .petrowise.yaml"),
) -> None:
    """Print enterprise metrics for a period from the configured store."""
    from petrowise_hub.aggregation.metrics import MetricsAggregator, Period
    from petrowise_hub.store import create_store

    try:
        selected = Period(period)
    except ValueError:
        console.print(f"[red]Unknown period: {period}[/red]")
        console.print(f"Available: {', '.join(p.value for p in Period)}")
        raise typer.Exit(1)

    config = _load(path)

    async def _compute():
        store = create_store(config.storage)
        try:
            return await MetricsAggregator(store, config.metrics).get_enterprise_metrics(selected)
        finally:
            await store.close()

    result = asyncio.run(_compute())

    table = Table(title=f"Enterprise Metrics ({result.period})")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Fuel gallons", f"{result.fuel.total_gallons:,.1f}")
    table.add_row("Fuel revenue", f"${result.fuel.total_revenue:,.2f}")
    table.add_row("Fuel margin", f"${result.fuel.gross_margin:,.2f}")
    table.add_row("Work orders", str(result.auto.work_order_count))
    table.add_row("Service revenue", f"${result.auto.total_revenue:,.2f}")
    table.add_row("Service profit", f"${result.auto.gross_profit:,.2f}")
    table.add_row("Combined revenue", f"${result.combined.total_revenue:,.2f}")
    table.add_row("Combined margin", f"{result.combined.profit_margin:.1f}%")
    table.add_row("Revenue change", f"{result.trends.revenue_change:+.1f}%")
    table.add_row("Volume change", f"{result.trends.volume_change:+.1f}%")
    console.print(table)


config_app = typer.Typer(name="config", help="Configuration commands")
app.add_typer(config_app)


@config_app.command("validate")
def config_validate(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .petrowise.yaml"),
) -> None:
    """Validate configuration file."""
    import yaml

    from petrowise_hub.config.loader import load_config

    errors: list[str] = []
    try:
        config = load_config(path=path)
        console.print("[green]✓[/green] YAML parses correctly")
        console.print("[green]✓[/green] Pydantic validation passes")
    except FileNotFoundError as exc:
        console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(1)
    except yaml.YAMLError as exc:
        console.print(f"[red]✗ YAML parsing failed: {exc}[/red]")
        raise typer.Exit(1)
    except ValueError as exc:
        console.print("[green]✓[/green] YAML parses correctly")
        console.print(f"[red]✗ Pydantic validation failed: {exc}[/red]")
        raise typer.Exit(1)

    seen_ports: dict[int, str] = {}
    for svc in config.services:
        if svc.port in seen_ports:
            errors.append(f"Service '{svc.name}' reuses port {svc.port} of '{seen_ports[svc.port]}'")
        seen_ports[svc.port] = svc.name
        if not svc.health_paths:
            errors.append(f"Service '{svc.name}' has no health paths")
        if not svc.openapi_paths:
            errors.append(f"Service '{svc.name}' has no OpenAPI paths")

    if config.storage.backend not in ("sqlite", "memory"):
        errors.append(f"Unknown storage backend '{config.storage.backend}'")

    alert_ids = [a.id for a in config.alerts]
    for dup in sorted({i for i in alert_ids if alert_ids.count(i) > 1}):
        errors.append(f"Duplicate alert id '{dup}'")

    if not errors:
        console.print(f"[green]✓[/green] {len(config.services)} candidate service(s) configured")
        if config.alerts:
            console.print(f"[green]✓[/green] {len(config.alerts)} alert(s) configured")
        console.print("\n[green bold]Configuration is valid.[/green bold]")
    else:
        for err in errors:
            console.print(f"[red]✗ {err}[/red]")
        console.print(f"\n[red bold]{len(errors)} validation error(s) found.[/red bold]")
        raise typer.Exit(1)


@config_app.command("show")
def config_show(
    path: Path | None = typer.Option(None, "--path", "-p", help="Path to .petrowise.yaml"),
) -> None:
    """Print resolved configuration."""
    from petrowise_hub.config.loader import load_config

    try:
        config = load_config(path=path)
    except FileNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]{config.hub.name}[/bold] v{config.hub.version}\n")

    console.print("[bold]Discovery:[/bold]")
    console.print(f"  Request timeout: {config.discovery.request_timeout}s")
    console.print(f"  Health timeout: {config.discovery.health_timeout}s")
    console.print(f"  Retries: {config.discovery.max_retries} (delay {config.discovery.retry_delay}s)\n")

    console.print("[bold]Services:[/bold]")
    for svc in config.services:
        console.print(f"  {svc.name} ({svc.type.value}) @ {svc.base_url}")

    console.print("\n[bold]Storage:[/bold]")
    console.print(f"  {config.storage.backend}: {config.storage.db_path}")

    if config.alerts:
        console.print("\n[bold]Alerts:[/bold]")
        for alert in config.alerts:
            state = "" if alert.enabled else " [dim](disabled)[/dim]"
            console.print(f"  {alert.id}: {alert.name} ({alert.severity.value}){state}")


def main() -> None:
    app()
