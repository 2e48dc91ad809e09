"""
Command Line Interface for DB Distribution.
"""

from datetime import datetime
from typing import Optional

import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import get_settings
from ..db.base import get_session_local, init_database
from ..db.services import DatabaseService, JobService, ServerService
from ..primitives import utc_now
from ..storage.keys import build_object_key

app = typer.Typer(help="DB Distribution - database backup coordination")
console = Console()

SAMPLE_SERVER_DNS = "sql-sample-01"
SAMPLE_DATABASES = ("CRM", "ERP")
SAMPLE_JOB_ID = "11111111-1111-1111-1111-111111111111"


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the API server."""
    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    rprint(Panel.fit(f"Starting DB Distribution on http://{host}:{port}", style="bold blue"))
    uvicorn.run(
        "db_distribution.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=1 if reload else settings.api_workers,
    )


@app.command("init-db")
def init_db():
    """Create database tables."""
    init_database()
    console.print("✅ Database tables created")


@app.command()
def seed():
    """Insert a sample server, its databases and one pending job (idempotent)."""
    session = get_session_local()()
    try:
        servers = ServerService(session)
        databases = DatabaseService(session)
        jobs = JobService(session)

        server = servers.get_by_dns(SAMPLE_SERVER_DNS)
        if server is None:
            server = servers.create("Sample SQL Server", SAMPLE_SERVER_DNS)
            console.print(f"✅ Created server {server.dns}")
        for db_name in SAMPLE_DATABASES:
            if databases.find_by_name(server.id, db_name) is None:
                databases.create(server.id, db_name)
                console.print(f"✅ Registered database {db_name}")

        if jobs.get(SAMPLE_JOB_ID) is None:
            jobs.create(
                ticket="TICKET-123",
                server=server.dns,
                database=SAMPLE_DATABASES[0],
                requested_by="seed@example.com",
                job_id=SAMPLE_JOB_ID,
            )
            console.print(f"✅ Created sample job {SAMPLE_JOB_ID}")
    finally:
        session.close()

    console.print("Seed complete")


@app.command()
def servers(
    all_servers: bool = typer.Option(False, "--all", help="Include inactive servers"),
):
    """List registered servers and their databases."""
    session = get_session_local()()
    try:
        items = ServerService(session).list(active_only=not all_servers)
        if not items:
            console.print("No servers registered")
            return

        table = Table(title="Registered Servers", show_header=True, header_style="bold cyan")
        table.add_column("Name", style="yellow")
        table.add_column("DNS", style="cyan")
        table.add_column("Active", style="green")
        table.add_column("Databases")

        for server in items:
            names = ", ".join(
                db.db_name if db.is_active else f"{db.db_name} (inactive)"
                for db in server.databases
            )
            table.add_row(
                server.name,
                server.dns,
                "🟢 yes" if server.is_active else "🔴 no",
                names or "-",
            )
        console.print(table)
    finally:
        session.close()


@app.command("object-key")
def object_key(
    server: str = typer.Argument(..., help="Server DNS name"),
    database: str = typer.Argument(..., help="Database name"),
    ticket: str = typer.Argument(..., help="Change ticket"),
    at: Optional[str] = typer.Option(None, help="ISO-8601 timestamp (default: now, UTC)"),
    prefix: Optional[str] = typer.Option(None, help="Key prefix (default: from settings)"),
):
    """Print the storage key a backup would be written to."""
    if at:
        try:
            moment = datetime.fromisoformat(at.replace("Z", "+00:00"))
        except ValueError:
            console.print("❌ Invalid timestamp. Use ISO-8601, e.g. 2024-03-05T14:07:00Z")
            raise typer.Exit(code=1)
    else:
        moment = utc_now()

    prefix = prefix or get_settings().azure_storage_backups_prefix
    typer.echo(build_object_key(server, database, ticket, moment, prefix))


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    rprint(Panel.fit(f"DB Distribution v{__version__}", style="bold green"))


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
