"""CLI for reflex-virtual-grid -- browse tabular files in a virtualized grid.

Usage::

    # View a CSV / TSV / Parquet file
    reflex-virtual-grid view data.csv

    # Bigger pages, taller rows, rows identified by the "client_id" column
    reflex-virtual-grid view clients.parquet --page-size 100 --row-height 40 --id-field client_id

Every format is served page by page through ``LazyFrameDataSource``; only
the requested slice of the file is ever collected.
"""

import logging
import os
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Annotated, Optional

import typer

from reflex_virtual_grid.config import GridConfig
from reflex_virtual_grid.errors import ConfigurationError

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="reflex-virtual-grid",
    help="Browse tabular data files in a virtualized, incrementally-loaded grid.",
    no_args_is_help=True,
)

_SUPPORTED_SUFFIXES: frozenset[str] = frozenset({
    ".csv", ".tsv", ".parquet", ".pq", ".json", ".ndjson", ".jsonl",
    ".ipc", ".arrow", ".feather",
})

_LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR")


def _build_app_code(
    file_path: Path,
    config: GridConfig,
    id_field: str | None,
    height: int,
    title: str,
    log_level: str,
) -> str:
    """Generate the Reflex app module source code.

    The generated module wires ``scan_file`` into a ``LazyFrameDataSource``
    and renders it with ``virtual_grid``.
    """
    abs_path = str(file_path.resolve())
    # Escape backslashes and quotes for embedding in Python string literal
    safe_path = abs_path.replace("\\", "\\\\").replace('"', '\\"')
    id_kwarg = f", id_field={id_field!r}" if id_field else ""

    template = _APP_TEMPLATE
    template = template.replace("__FILENAME__", file_path.name)
    template = template.replace("__SAFE_PATH__", safe_path)
    template = template.replace("__ID_KWARG__", id_kwarg)
    template = template.replace("__CONFIG__", repr(config.to_dict()))
    template = template.replace("__TITLE__", title.replace('"', '\\"'))
    template = template.replace("__HEIGHT__", str(height))
    template = template.replace("__LOG_LEVEL__", log_level)
    return template


# ---------------------------------------------------------------------------
# App template -- uses __PLACEHOLDER__ tokens for dynamic parts.
# ---------------------------------------------------------------------------

_APP_TEMPLATE = '''"""Auto-generated viewer app for: __FILENAME__"""

import logging
from pathlib import Path

import reflex as rx

from reflex_virtual_grid import (
    GridConfig,
    LazyFrameDataSource,
    VirtualGridMixin,
    scan_file,
    virtual_grid,
    virtual_grid_detail_box,
    virtual_grid_filters,
    virtual_grid_stats_bar,
)

logging.basicConfig(level="__LOG_LEVEL__", format="%(levelname)s %(name)s: %(message)s")

_PATH = Path("__SAFE_PATH__")
_SOURCE = LazyFrameDataSource(scan_file(_PATH)__ID_KWARG__)
_CONFIG = GridConfig.from_dict(__CONFIG__)


class ViewerState(VirtualGridMixin, rx.State):
    """Viewer state using VirtualGridMixin for incremental browsing."""

    def load_data(self):
        yield from self.set_data_source(_SOURCE, config=_CONFIG, container_height=__HEIGHT__)


def index() -> rx.Component:
    return rx.box(
        rx.heading("__TITLE__", size="6", margin_bottom="0.5em"),
        rx.cond(
            ViewerState.vg_loaded,
            rx.fragment(
                virtual_grid_stats_bar(ViewerState),
                virtual_grid_filters(ViewerState, [c.accessor for c in _SOURCE.column_defs()]),
                virtual_grid(ViewerState, height=__HEIGHT__),
                virtual_grid_detail_box(ViewerState),
            ),
            rx.text("Loading...", color="var(--gray-9)"),
        ),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


app = rx.App()
app.add_page(index, on_load=ViewerState.load_data)
'''


@app.command()
def view(
    file: Annotated[Path, typer.Argument(help="Path to the data file (CSV, TSV, Parquet, JSON, NDJSON, IPC)")],
    page_size: Annotated[int, typer.Option("--page-size", "-n", help="Rows fetched per page")] = 20,
    row_height: Annotated[int, typer.Option("--row-height", help="Row height in pixels")] = 45,
    ttl: Annotated[float, typer.Option("--ttl", help="Seconds a cached result stays fresh")] = 300.0,
    id_field: Annotated[Optional[str], typer.Option("--id-field", help="Column holding row identity")] = None,
    height: Annotated[int, typer.Option("--height", "-h", help="Grid body height in pixels")] = 600,
    port: Annotated[int, typer.Option("--port", "-p", help="Port for the Reflex frontend")] = 3000,
    title: Annotated[Optional[str], typer.Option("--title", "-t", help="Page title")] = None,
    log_level: Annotated[str, typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR")] = "INFO",
) -> None:
    """View a data file in a virtualized browser grid.

    Supports: CSV, TSV, Parquet, JSON, NDJSON, IPC/Arrow/Feather.
    Rows are fetched a page at a time as you scroll.
    """
    log_level = log_level.upper()
    if log_level not in _LOG_LEVELS:
        typer.echo(f"Error: unknown log level: {log_level}", err=True)
        raise typer.Exit(code=1)
    logging.basicConfig(level=log_level, format="%(levelname)s %(name)s: %(message)s")

    file = file.resolve()
    if not file.exists():
        typer.echo(f"Error: file not found: {file}", err=True)
        raise typer.Exit(code=1)
    if file.suffix.lower() not in _SUPPORTED_SUFFIXES:
        typer.echo(f"Error: unsupported file type: {file.suffix or file.name}", err=True)
        raise typer.Exit(code=1)

    try:
        config = GridConfig(
            row_height=row_height,
            page_size=page_size,
            ttl=ttl,
            row_id_field=id_field or "__row_id__",
        )
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if title is None:
        title = f"{file.name} -- Virtual Grid"

    app_code = _build_app_code(file, config, id_field, height, title, log_level)

    # Create a temporary Reflex app directory.
    tmp_dir = Path(tempfile.mkdtemp(prefix="virtual_grid_viewer_"))
    app_name = "viewer_app"
    app_pkg = tmp_dir / app_name
    app_pkg.mkdir()
    (app_pkg / "__init__.py").write_text("")
    (app_pkg / f"{app_name}.py").write_text(app_code)

    rxconfig_code = f"""import reflex as rx
config = rx.Config(app_name="{app_name}", frontend_port={port})
"""
    (tmp_dir / "rxconfig.py").write_text(rxconfig_code)

    logger.info("[VirtualGrid] generated viewer app in %s", tmp_dir)
    typer.echo(f"Launching viewer for: {file}")
    typer.echo(f"Page size: {config.page_size} | Row height: {config.row_height}px | Port: {port}")

    os.chdir(tmp_dir)

    # reflex's CLI calls sys.exit() on completion, hence the subprocess.
    typer.echo("Initializing Reflex project...")
    subprocess.run(
        [sys.executable, "-m", "reflex", "init"],
        cwd=str(tmp_dir),
        check=True,
    )

    typer.echo("Starting viewer...")
    os.execvp(sys.executable, [sys.executable, "-m", "reflex", "run"])


@app.command()
def info(
    file: Annotated[Path, typer.Argument(help="Path to the data file")],
) -> None:
    """Print the columns a file would show and its total row count."""
    from reflex_virtual_grid.sources import LazyFrameDataSource, scan_file

    try:
        source = LazyFrameDataSource(scan_file(file))
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    for column in source.column_defs():
        typer.echo(f"{column.accessor}\t{source.schema[column.accessor]}")
    typer.echo(f"rows: {source.count():,}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
