"""
Command Line Interface for the DeFarm engine.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..db.base import create_db_engine, init_database
from ..engines import DfidEngine, ItemsEngine, StorageHistoryManager, parse_dfid
from ..logging_config import configure_logging
from ..storage import SqlStorage

app = typer.Typer(help="DeFarm - identity resolution and circuit sharing")
console = Console()

DatabaseUrl = typer.Option(None, "--database-url", help="Overrides DEFARM_DATABASE_URL")


def _storage(database_url: Optional[str]) -> SqlStorage:
    return SqlStorage(create_db_engine(database_url))


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Log level (default from settings)"),
    log_format: Optional[str] = typer.Option(None, help="json or console"),
):
    """Configure logging before any command runs."""
    configure_logging(log_level, log_format)


@app.command()
def init_db(database_url: Optional[str] = DatabaseUrl):
    """Create all tables."""
    init_database(create_db_engine(database_url))
    console.print("✅ Database initialized")


@app.command()
def generate_dfid(
    count: int = typer.Option(1, min=1, help="How many DFIDs to mint"),
    database_url: Optional[str] = DatabaseUrl,
):
    """Mint DFIDs from the database-backed sequence."""
    engine = DfidEngine.for_storage(_storage(database_url))
    for _ in range(count):
        console.print(engine.generate_dfid())


@app.command()
def validate_dfid(dfid: str = typer.Argument(..., help="DFID to check")):
    """Check a DFID's structure, date and checksum."""
    parts = parse_dfid(dfid)
    if parts is None:
        console.print(f"❌ {dfid} is not a valid DFID")
        raise typer.Exit(code=1)
    console.print(f"✅ {dfid} (issued {parts.issued_on.isoformat()}, sequence {parts.sequence})")


@app.command()
def stats(database_url: Optional[str] = DatabaseUrl):
    """Show item statistics."""
    statistics = ItemsEngine(_storage(database_url)).get_item_statistics()

    table = Table(title="Item Statistics", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    for name, value in statistics.model_dump().items():
        shown = f"{value:.3f}" if isinstance(value, float) else str(value)
        table.add_row(name.replace("_", " ").title(), shown)
    console.print(table)


@app.command()
def history(
    dfid: str = typer.Argument(..., help="DFID to inspect"),
    database_url: Optional[str] = DatabaseUrl,
):
    """Show the storage history and CID timeline of a DFID."""
    manager = StorageHistoryManager(_storage(database_url))
    records = manager.get_storage_history(dfid)
    if not records:
        console.print(f"No storage history for {dfid}")
        raise typer.Exit(code=1)

    table = Table(title=f"Storage History: {dfid}", show_header=True, header_style="bold cyan")
    table.add_column("Stored At", style="yellow")
    table.add_column("Adapter", style="green")
    table.add_column("Location")
    table.add_column("Triggered By", style="blue")
    table.add_column("Active", style="magenta")
    for record in records:
        table.add_row(
            record.stored_at.isoformat(),
            record.adapter_type.value,
            record.storage_location.model_dump_json(),
            record.triggered_by,
            "🟢" if record.is_active else "⚪",
        )
    console.print(table)

    timeline = manager.get_item_timeline(dfid)
    if timeline:
        tl_table = Table(title="CID Timeline", show_header=True, header_style="bold cyan")
        tl_table.add_column("Ledger Time", style="yellow")
        tl_table.add_column("CID", style="green")
        tl_table.add_column("Transaction")
        tl_table.add_column("Network", style="blue")
        for entry in timeline:
            tl_table.add_row(
                str(entry.ledger_timestamp), entry.cid, entry.transaction_hash, entry.network
            )
        console.print(tl_table)


if __name__ == "__main__":
    app()
