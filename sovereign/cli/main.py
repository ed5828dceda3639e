"""
CLI for serving the API and inspecting memory logs and state roots.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from sovereign.config import Settings
from sovereign.core.canon import canonical_json_str
from sovereign.core.errors import StorageError
from sovereign.core.types import DigestFraming
from sovereign.crypto.hashing import digest_contents
from sovereign.storage import SQLiteStorage

app = typer.Typer(
    name="sovereign",
    help="Serve and inspect wallet-authenticated chat memory",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. DATABASE_URL environment variable (sqlite://...)
    3. Default: ./sovereign.db
    """
    if db_flag:
        return db_flag.resolve()
    url = Settings.from_env().database_url
    if url.startswith("sqlite://"):
        url = url[len("sqlite://"):]
    return Path(url).resolve()


def open_storage(ctx: typer.Context, db: Optional[Path]) -> SQLiteStorage:
    if db is None and ctx.obj:
        db = ctx.obj.get("db")
    db_path = get_db_path(db)

    if not db_path.exists():
        console.print(f"[red]Database file not found: {db_path}[/]")
        console.print("[yellow]To get started:[/]")
        console.print("  • Run the server and log in at least once (creates/populates DB)")
        console.print("  • Set env var: export DATABASE_URL=sqlite:///path/to/your.db")
        console.print("  • Or use --db: sovereign users --db /custom/path.db")
        raise typer.Exit(1)

    try:
        return SQLiteStorage(db_path)
    except StorageError as e:
        console.print(f"[red]Failed to open database: {str(e)}[/]")
        console.print("[yellow]The file may be corrupted or not a valid SQLite DB.[/]")
        raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to SQLite database (overrides DATABASE_URL env var)",
    ),
):
    """Manage wallet-authenticated chat memory."""
    ctx.obj = {"db": db}


@app.command()
def serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: HOST or 127.0.0.1)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default: PORT or 3001)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
    log_level: str = typer.Option("info", "--log-level", help="Python logging level"),
):
    """Run the HTTP API."""
    import uvicorn

    from sovereign.api.app import create_app
    from sovereign.service import build_services

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if db is None and ctx.obj:
        db = ctx.obj.get("db")
    settings = Settings.from_env().with_overrides(
        host=host,
        port=port,
        database_url=f"sqlite://{db.resolve()}" if db else None,
    )
    services = build_services(settings)
    console.print(f"[green]Backend running on http://{settings.host}:{settings.port}[/]")
    try:
        uvicorn.run(create_app(services), host=settings.host, port=settings.port, log_level=log_level.lower())
    finally:
        services.close()


@app.command()
def users(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
):
    """List identities with entry counts and last activity."""
    storage = open_storage(ctx, db)

    with storage:
        identities = storage.list_users()
        if not identities:
            console.print("[yellow]No users found in database.[/]")
            console.print("  (DB exists but nobody has logged in yet)")
            return

        table = Table(title="Identities")
        table.add_column("Identity")
        table.add_column("Entries")
        table.add_column("Last Activity")

        for identity in identities:
            count = storage.get_entry_count(identity)
            last_ts = storage.get_latest_timestamp(identity) or "—"
            table.add_row(identity, str(count), last_ts)

    console.print(table)


@app.command()
def memories(
    ctx: typer.Context,
    identity: str = typer.Argument(..., help="Identity (base58 public key)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of recent entries to show"),
):
    """Show the most recent memory entries of an identity."""
    storage = open_storage(ctx, db)

    with storage:
        entries = storage.query_entries(identity, limit=limit)

    if not entries:
        console.print(f"[yellow]No memory entries found for '{identity}'[/]")
        return

    for entry in entries:
        console.print(f"[bold cyan]{entry.sequence:4d} | {entry.created_at} | {entry.id}[/]")
        console.print(f"  {entry.content[:160]}{'...' if len(entry.content) > 160 else ''}")
        console.print("  " + "─" * 90)


@app.command()
def root(
    ctx: typer.Context,
    identity: str = typer.Argument(..., help="Identity (base58 public key)"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
    framing: Optional[DigestFraming] = typer.Option(
        None, "--framing", help="Digest framing (default: SOVEREIGN_DIGEST_FRAMING, else concat)"
    ),
):
    """Print the current state root of an identity."""
    if framing is None:
        framing = Settings.from_env().digest_framing
    storage = open_storage(ctx, db)

    with storage:
        entries = storage.load_entries(identity)
        anchored = storage.latest_anchor(identity)

    state_root = digest_contents((e.content for e in entries), framing)
    console.print(f"[green]{state_root}[/]")
    console.print(f"  {len(entries)} entries, framing={framing.value}")
    if anchored is not None:
        marker = "current" if anchored.state_root == state_root else "stale"
        console.print(f"  last anchored {anchored.committed_at} ({marker}): {anchored.receipt_id}")


@app.command()
def export(
    ctx: typer.Context,
    identity: str = typer.Argument(..., help="Identity to export"),
    db: Optional[Path] = typer.Option(None, "--db", hidden=True),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: <identity>.jsonl)"),
):
    """Export an identity's memory log as JSONL (one entry per line, log order)."""
    storage = open_storage(ctx, db)

    with storage:
        entries = storage.load_entries(identity)

    if not entries:
        console.print(f"[yellow]No memory entries found for '{identity}'[/]")
        raise typer.Exit(0)

    out_path = output or Path(f"{identity}.jsonl")
    with open(out_path, "w", encoding="utf-8") as f:
        for entry in entries:
            f.write(canonical_json_str(entry.to_dict()))
            f.write("\n")

    console.print(f"[green]Exported {len(entries)} entries to {out_path}[/]")
    console.print("Format: JSONL — canonical JSON, embeddings omitted")


if __name__ == "__main__":
    app()
