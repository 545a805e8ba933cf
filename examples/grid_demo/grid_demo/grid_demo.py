"""Example Reflex app demonstrating the virtual grid.

Two tabs:
  1. Clients -- a 50 000-row polars LazyFrame (or ``data/clients.parquet``
     when ``demo generate`` has been run) served page by page through
     ``LazyFrameDataSource``.  Filter, sort the loaded rows, hide columns.
  2. Samples (flaky API) -- a ``CallableDataSource`` that simulates a slow
     remote endpoint which fails now and then, to show cancellation of
     superseded requests and the inline retry affordance.
"""

import asyncio
import random
from pathlib import Path
from typing import Any

import polars as pl
import reflex as rx

from reflex_virtual_grid import (
    CallableDataSource,
    CancellationToken,
    ColumnDef,
    FilterSet,
    GridConfig,
    LazyFrameDataSource,
    VirtualGridMixin,
    virtual_grid,
    virtual_grid_detail_box,
    virtual_grid_filters,
    virtual_grid_stats_bar,
)

CLIENTS_PATH: Path = Path(__file__).parent / "data" / "clients.parquet"

_CITIES: list[str] = [
    "Lisbon", "Porto", "Madrid", "Sevilla", "Lyon", "Berlin", "Hamburg",
    "Milano", "Torino", "Gdansk", "Utrecht", "Gent", "Brno", "Graz",
]
_FIRST_NAMES: list[str] = [
    "Alice", "Bruno", "Carla", "Diego", "Elena", "Fabio", "Greta", "Hugo",
    "Ines", "Jonas", "Katia", "Luis", "Marta", "Nuno", "Olga", "Pablo",
]
_LAST_NAMES: list[str] = [
    "Silva", "Garcia", "Rossi", "Müller", "Dubois", "Novak", "Jansen",
    "Costa", "Ferreira", "Lopez", "Weber", "Bianchi",
]


# ---------------------------------------------------------------------------
# Sample data builders
# ---------------------------------------------------------------------------

def build_clients_lazyframe(n_rows: int = 50_000, seed: int = 7) -> pl.LazyFrame:
    """Create a synthetic clients table."""
    rng = random.Random(seed)
    return pl.LazyFrame(
        {
            "id": list(range(1, n_rows + 1)),
            "first_name": [rng.choice(_FIRST_NAMES) for _ in range(n_rows)],
            "last_name": [rng.choice(_LAST_NAMES) for _ in range(n_rows)],
            "city": [rng.choice(_CITIES) for _ in range(n_rows)],
            "age": [rng.randint(18, 90) if rng.random() > 0.05 else None for _ in range(n_rows)],
            "balance": [round(rng.uniform(-500, 25_000), 2) for _ in range(n_rows)],
            "active": [rng.random() > 0.2 for _ in range(n_rows)],
        }
    )


def _clients_source() -> LazyFrameDataSource:
    lf = pl.scan_parquet(CLIENTS_PATH) if CLIENTS_PATH.exists() else build_clients_lazyframe()
    return LazyFrameDataSource(
        lf,
        id_field="id",
        descriptions={
            "balance": "Account balance in EUR",
            "active": "Has logged in during the last 90 days",
        },
    )


CLIENTS_SOURCE: LazyFrameDataSource = _clients_source()
CLIENTS_CONFIG = GridConfig(row_height=36, page_size=50, cache_namespace="clients")

_SAMPLE_KINDS: list[str] = ["blood", "saliva", "tissue", "urine"]
_SAMPLE_TOTAL: int = 730


async def _fetch_samples(
    filters: FilterSet,
    page_index: int,
    page_size: int,
    token: CancellationToken,
) -> list[dict[str, Any]]:
    """Simulated remote endpoint: 150-900 ms latency, ~15 % failures."""
    await asyncio.sleep(random.uniform(0.15, 0.9))
    token.raise_if_cancelled()
    if random.random() < 0.15:
        raise ConnectionError("sample service unavailable (HTTP 503)")

    kind = str(filters.active.get("kind", "")).strip().lower()
    rows = [
        {
            "sample_id": f"S{i:05d}",
            "kind": _SAMPLE_KINDS[i % len(_SAMPLE_KINDS)],
            "volume_ml": round((i * 37 % 100) / 10, 1),
            "collected": f"2026-{(i % 12) + 1:02d}-{(i % 28) + 1:02d}",
        }
        for i in range(_SAMPLE_TOTAL)
    ]
    if kind:
        rows = [r for r in rows if kind in r["kind"]]
    start = (page_index - 1) * page_size
    return rows[start:start + page_size]


SAMPLES_SOURCE = CallableDataSource(_fetch_samples)
SAMPLES_COLUMNS: list[ColumnDef] = [
    ColumnDef("sample_id", header="Sample"),
    ColumnDef("kind"),
    ColumnDef("volume_ml", header="Volume (ml)", render=lambda row: f"{row['volume_ml']:.1f}"),
    ColumnDef("collected", sortable=False),
]
SAMPLES_CONFIG = GridConfig(
    row_height=40,
    page_size=25,
    ttl=30.0,
    row_id_field="sample_id",
    request_timeout=5.0,
    cache_namespace="samples",
)


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

class ClientsGrid(VirtualGridMixin, rx.State):
    """Clients table browsed through a LazyFrame."""

    def load_data(self):
        yield from self.set_data_source(
            CLIENTS_SOURCE,
            config=CLIENTS_CONFIG,
            initially_visible=["first_name", "last_name", "city", "age", "balance"],
            container_height=560,
            dropdown_filters=["city", "active"],
        )


class SamplesGrid(VirtualGridMixin, rx.State):
    """Lab samples from a slow, unreliable service."""

    def load_data(self):
        yield from self.set_data_source(
            SAMPLES_SOURCE,
            SAMPLES_COLUMNS,
            SAMPLES_CONFIG,
            container_height=480,
        )


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

def clients_tab() -> rx.Component:
    return rx.vstack(
        rx.text(
            "Pages of 50 rows are collected from the LazyFrame as you scroll. "
            "Header clicks sort the rows loaded so far; click a row or use the "
            "arrow keys to see its details.",
            size="2",
            color="var(--gray-10)",
        ),
        rx.cond(
            ClientsGrid.vg_loaded,
            rx.fragment(
                virtual_grid_stats_bar(ClientsGrid),
                virtual_grid_filters(ClientsGrid, ["first_name", "last_name", "city", "active"]),
                virtual_grid(ClientsGrid, height=560),
                virtual_grid_detail_box(ClientsGrid),
            ),
            rx.button("Load clients", on_click=ClientsGrid.load_data),
        ),
        width="100%",
    )


def samples_tab() -> rx.Component:
    return rx.vstack(
        rx.text(
            "Every fetch takes up to a second and some fail. Typing a new "
            "filter cancels the request in flight; failed loads offer Retry.",
            size="2",
            color="var(--gray-10)",
        ),
        rx.cond(
            SamplesGrid.vg_loaded,
            rx.fragment(
                virtual_grid_stats_bar(SamplesGrid),
                virtual_grid_filters(SamplesGrid, ["kind"]),
                rx.button(
                    "Invalidate cache",
                    on_click=SamplesGrid.invalidate_vg_cache(False, True),
                    variant="outline",
                    size="1",
                ),
                virtual_grid(SamplesGrid, height=480, empty_message="No samples match"),
            ),
            rx.button("Load samples", on_click=SamplesGrid.load_data),
        ),
        width="100%",
    )


def index() -> rx.Component:
    """Render the main page with tabs."""
    return rx.box(
        rx.heading("Virtual Grid Demo", size="7", margin_bottom="0.5em"),
        rx.tabs.root(
            rx.tabs.list(
                rx.tabs.trigger("Clients (LazyFrame)", value="clients"),
                rx.tabs.trigger("Samples (flaky API)", value="samples"),
            ),
            rx.tabs.content(clients_tab(), value="clients", padding_top="1em"),
            rx.tabs.content(samples_tab(), value="samples", padding_top="1em"),
            default_value="clients",
        ),
        padding="2em",
        max_width="1200px",
        margin="0 auto",
    )


app = rx.App()
app.add_page(index, on_load=ClientsGrid.load_data)
