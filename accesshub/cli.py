"""AccessHub CLI.

Commands:
- init: Initialize database schema
- create-user: Add an operator account
- stats: Show directory and request statistics
- pending: List pending door requests
- report: Generate an access report (JSON or CSV)
- web serve: Run the API server
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from accesshub.config import get_config
from accesshub.core.errors import AccessHubError
from accesshub.db.connection import close_db, get_engine, get_session
from accesshub.db.models import Base, UserModel
from accesshub.models import UserRole, parse_enum
from accesshub.reporting.access_reports import generate_report
from accesshub.reporting.dashboard_metrics import compute_dashboard_metrics
from accesshub.requests.service import list_requests
from accesshub.web.auth import hash_password

app = typer.Typer(
    name="accesshub",
    help="AccessHub - building door access management",
    no_args_is_help=True,
)

web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()


def _with_session(work):
    """Run `work(session)` in a fresh event loop, closing the engine afterwards."""

    async def _main():
        try:
            async with get_session() as session:
                return await work(session)
        finally:
            await close_db()

    return asyncio.run(_main())


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        try:
            async with get_engine().begin() as conn:
                if drop:
                    console.print("[yellow]Dropping existing tables...[/yellow]")
                    await conn.run_sync(Base.metadata.drop_all)
                console.print("[green]Creating tables...[/green]")
                await conn.run_sync(Base.metadata.create_all)
        finally:
            await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="create-user")
def create_user(
    username: str = typer.Argument(..., help="Login name"),
    email: str = typer.Option(..., "--email", help="Email address"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, confirmation_prompt=True),
    role: str = typer.Option(UserRole.OPERATOR.value, "--role", help="admin, manager, operator or viewer"),
    full_name: str | None = typer.Option(None, "--name", help="Display name"),
):
    """Create a user account."""
    if parse_enum(UserRole, role) is None:
        console.print(f"[red]✗ Unknown role:[/red] {role}")
        raise typer.Exit(1)

    async def _create(session) -> int:
        user = UserModel(
            username=username,
            email=email,
            full_name=full_name or username,
            password_hash=hash_password(password),
            role=role,
        )
        session.add(user)
        await session.flush()
        return user.id

    user_id = _with_session(_create)
    console.print(f"[bold green]✓[/bold green] Created {role} '{username}' (id={user_id})")


@app.command()
def stats(
    days: int = typer.Option(7, "--days", help="Window for request activity"),
):
    """Show directory and request statistics."""

    metrics = _with_session(lambda session: compute_dashboard_metrics(session, days=days))

    table = Table(title="AccessHub Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")

    table.add_row("Buildings", str(metrics.total_buildings))
    table.add_row("Floors", str(metrics.total_floors))
    table.add_row("Doors", str(metrics.total_doors))
    table.add_row("Users", str(metrics.total_users))
    table.add_row("Pending Requests", str(metrics.pending_requests))
    for item in metrics.lock_status:
        table.add_row(f"Doors {item['status']}", str(item["count"]))

    console.print(table)


@app.command()
def pending(
    limit: int = typer.Option(20, "--limit", help="Maximum rows to show"),
):
    """List pending door requests, newest first."""

    page = _with_session(lambda session: list_requests(session, limit=limit, status="pending"))

    table = Table(title=f"Pending Door Requests ({page['total']})")
    table.add_column("ID", justify="right")
    table.add_column("Door")
    table.add_column("Building")
    table.add_column("Requester", style="cyan")
    table.add_column("Purpose")
    table.add_column("Created")
    for row in page["data"]:
        table.add_row(
            str(row["id"]),
            row["door_name"] or "-",
            row["building_name"] or "-",
            row["requester_name"],
            row["purpose"],
            str(row["created_at"]),
        )
    console.print(table)


@app.command()
def report(
    building_id: int = typer.Argument(..., help="Building ID"),
    floor: str = typer.Option("all", "--floor", help="Floor ID or 'all'"),
    door: str = typer.Option("all", "--door", help="Door ID or 'all'"),
    report_type: str = typer.Option("summary", "--type", help="Report type"),
    group_by: str | None = typer.Option(None, "--group-by", help="hour, day, week, month or year"),
    output_format: str = typer.Option("json", "--format", help="json or csv"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write to file"),
):
    """Generate an access report over door lock history."""

    async def _report(session):
        return await generate_report(
            session,
            building_id,
            floor=floor,
            door=door,
            report_type=report_type,
            group_by=group_by,
            output_format=output_format.lower(),
        )

    try:
        result = _with_session(_report)
    except AccessHubError as exc:
        console.print(f"[red]✗ {exc.message}[/red]")
        raise typer.Exit(1) from exc

    text = result if isinstance(result, str) else json.dumps(result, indent=2, default=str)
    if output:
        output.write_text(text)
        console.print(f"[bold green]✓[/bold green] Report written to {output}")
    else:
        typer.echo(text)


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(5000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the AccessHub API server."""
    import uvicorn

    typer.echo(f"Starting AccessHub API on http://{host}:{port}")
    uvicorn.run(
        "accesshub.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=1,
    )


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
