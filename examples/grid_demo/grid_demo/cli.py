"""CLI for the virtual grid demo app.

Commands::

    uv run demo                # Run the Reflex demo app
    uv run demo run            # Same as above
    uv run demo generate       # Write the sample clients parquet file
"""

import os
from pathlib import Path

import typer

app = typer.Typer(
    name="demo",
    help="Virtual grid demo app.",
    invoke_without_command=True,
)

DATA_DIR: Path = Path(__file__).resolve().parent / "data"
CLIENTS_PATH: Path = DATA_DIR / "clients.parquet"


def _run_app() -> None:
    """Start the Reflex demo app."""
    app_dir = Path(__file__).resolve().parent.parent
    os.chdir(app_dir)

    from reflex.reflex import cli

    cli(["run"])


@app.callback(invoke_without_command=True)
def default(ctx: typer.Context) -> None:
    """Run the demo app (default when no subcommand is given)."""
    if ctx.invoked_subcommand is None:
        _run_app()


@app.command()
def run() -> None:
    """Run the Reflex demo app."""
    _run_app()


@app.command()
def generate(
    rows: int = typer.Option(50_000, "--rows", "-n", help="Number of client rows"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace an existing file"),
) -> None:
    """Write a synthetic clients table to the demo's data/ directory."""
    from grid_demo.grid_demo import build_clients_lazyframe

    if CLIENTS_PATH.exists() and not overwrite:
        typer.echo(f"Clients file already exists: {CLIENTS_PATH} (use --overwrite)")
        raise typer.Exit()

    DATA_DIR.mkdir(parents=True, exist_ok=True)
    build_clients_lazyframe(rows).sink_parquet(CLIENTS_PATH)
    size_mb = CLIENTS_PATH.stat().st_size / (1024 * 1024)
    typer.echo(f"Wrote {rows:,} rows to {CLIENTS_PATH} ({size_mb:.1f} MB)")
    typer.echo("Run the demo with: uv run demo")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
