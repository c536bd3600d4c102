# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Command Line Interface

Usage:
    devicegate init-db                       # Create tables
    devicegate identity create               # Seed an identity
    devicegate sessions list IDENTITY        # Show live device sessions
    devicegate sessions revoke IDENTITY DEV  # Log one device out
    devicegate sessions revoke-all IDENTITY  # Log every device out
    devicegate reconcile IDENTITY | --all    # Repair device index drift
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .core.exceptions import DeviceGateError
from .core.settings import get_settings
from .data.database import Database
from .data.repositories import IdentityRepository
from .observability.logging import configure_logging, set_request_context
from .observability.metrics import init_metrics
from .sessions.engine import SessionEngine

app = typer.Typer(
    name="devicegate", help="DeviceGate - Device Session Admission & Consistency Engine"
)
console = Console()


@app.callback()
def main(
    log_level: str = typer.Option(None, help="Override OBSERVABILITY_LOG_LEVEL"),
):
    """Configure logging and metrics for every command."""
    settings = get_settings()
    configure_logging(
        level=log_level or settings.observability.log_level,
        format=settings.observability.log_format,
    )
    init_metrics(
        namespace=settings.observability.metrics_namespace,
        app_version=__version__,
        environment=settings.environment,
    )
    # One correlation id per invocation
    set_request_context(request_id=uuid4().hex)


@asynccontextmanager
async def _open_engine() -> AsyncIterator[SessionEngine]:
    settings = get_settings()
    db = Database(settings.database)
    try:
        yield SessionEngine(db, settings)
    finally:
        await db.close()


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except DeviceGateError as e:
        console.print(f"[red]{e.error_code}:[/] {e.message}")
        raise typer.Exit(1)


# ============================================================
# DATABASE COMMANDS
# ============================================================


@app.command("init-db")
def init_db():
    """Create the identities and device_sessions tables."""

    async def _init():
        db = Database(get_settings().database)
        try:
            await db.create_schema()
        finally:
            await db.close()

    _run(_init())
    console.print("[green]Database schema created.[/]")


# ============================================================
# IDENTITY COMMANDS
# ============================================================

identity_app = typer.Typer(help="Identity commands (profile store seeding)")
app.add_typer(identity_app, name="identity")


@identity_app.command("create")
def identity_create(
    identity_id: str = typer.Option(None, "--id", help="Identity id (generated if omitted)"),
    for_system: bool = typer.Option(False, help="Administrator (system) account"),
):
    """Create an identity with an empty device index."""

    async def _create():
        db = Database(get_settings().database)
        try:
            async with db.session_factory() as session:
                async with session.begin():
                    repo = IdentityRepository(session)
                    if identity_id and await repo.get(identity_id):
                        console.print(f"[red]Identity '{identity_id}' already exists.[/]")
                        raise typer.Exit(code=1)
                    identity = await repo.create(identity_id=identity_id, for_system=for_system)
            console.print(f"[green]Identity created:[/] {identity.id}")
        finally:
            await db.close()

    _run(_create())


# ============================================================
# SESSION COMMANDS
# ============================================================

sessions_app = typer.Typer(help="Device session commands")
app.add_typer(sessions_app, name="sessions")


@sessions_app.command("list")
def sessions_list(identity: str = typer.Argument(..., help="Identity id")):
    """List live device sessions, oldest login first."""

    async def _list():
        async with _open_engine() as engine:
            sessions = await engine.list_active_sessions(identity)

        if not sessions:
            console.print("[yellow]No active sessions.[/]")
            return

        table = Table(title=f"Active sessions ({len(sessions)})")
        table.add_column("Device", style="cyan")
        table.add_column("Agent", style="white")
        table.add_column("Platform", style="green")
        table.add_column("Login at", style="dim")
        for s in sessions:
            table.add_row(s.device, s.device_agent, s.platform.value, s.login_at.isoformat())
        console.print(table)

    _run(_list())


@sessions_app.command("revoke")
def sessions_revoke(
    identity: str = typer.Argument(..., help="Identity id"),
    device: str = typer.Argument(..., help="Device id"),
):
    """Log one device out."""

    async def _revoke():
        async with _open_engine() as engine:
            await engine.revoke_device(identity, device)
        console.print(f"[green]Device '{device}' logged out.[/]")

    _run(_revoke())


@sessions_app.command("revoke-all")
def sessions_revoke_all(
    identity: str = typer.Argument(..., help="Identity id"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """Log every device of an identity out."""
    if not force:
        confirm = typer.confirm(f"Log out every device of {identity}?")
        if not confirm:
            raise typer.Abort()

    async def _revoke_all():
        async with _open_engine() as engine:
            count = await engine.revoke_all_devices(identity)
        console.print(f"[green]Terminated {count} session(s).[/]")

    _run(_revoke_all())


# ============================================================
# MAINTENANCE COMMANDS
# ============================================================


@app.command()
def reconcile(
    identity: str = typer.Argument(None, help="Identity id"),
    all_identities: bool = typer.Option(False, "--all", help="Sweep every identity"),
    batch_size: int = typer.Option(None, help="Identities per page when sweeping"),
):
    """Repair device index drift for one identity or all of them."""
    if not identity and not all_identities:
        console.print("[red]Pass an identity id or --all.[/]")
        raise typer.Exit(code=2)

    async def _reconcile():
        async with _open_engine() as engine:
            if all_identities:
                sweep = await engine.reconcile_all(batch_size)
                table = Table(title="Reconcile sweep")
                table.add_column("Scanned", style="cyan")
                table.add_column("Repaired", style="green")
                table.add_column("Removed", style="white")
                table.add_column("Restored", style="white")
                table.add_column("Failed", style="red")
                table.add_row(
                    str(sweep.scanned),
                    str(sweep.repaired),
                    str(sweep.removed_count),
                    str(sweep.restored_count),
                    str(len(sweep.failed)),
                )
                console.print(table)
                if sweep.failed:
                    raise typer.Exit(code=1)
                return

            result = await engine.reconcile(identity)
            console.print(
                f"Removed {result.removed_count} stale entr(ies): {result.invalid_devices or '-'}"
            )
            if result.restored_devices:
                console.print(f"Restored: {result.restored_devices}")

    _run(_reconcile())


# ============================================================
# UTILITY COMMANDS
# ============================================================


@app.command()
def version():
    """Show version information."""
    console.print(f"DeviceGate v{__version__}")


if __name__ == "__main__":
    app()
