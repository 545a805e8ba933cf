"""Client-side sort over the loaded rows.

Sorting never touches fetch state: it produces a new list from the merged
row array each time the view is rendered.

Comparison policy for two non-null values ``a`` and ``b``:

1. both ``str``: locale-aware, via :func:`locale.strxfrm`;
2. both natively comparable numbers (``int``, ``float``, ``Decimal``,
   ``bool``) or both the same temporal type: natural ordering;
3. otherwise both are coerced with ``float()``; if both succeed they are
   compared numerically;
4. otherwise ``str(a)`` and ``str(b)`` are compared with rule 1.

``None``, absent keys and ``NaN`` are null.  Nulls go last when ascending
and first when descending.  Ties keep their original relative order.
"""

import datetime
import functools
import locale
import math
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from reflex_virtual_grid.models import Row, SortDirection, SortSpec

_NUMERIC_TYPES = (int, float, Decimal)
_TEMPORAL_TYPES = (datetime.datetime, datetime.date, datetime.time, datetime.timedelta)


def _is_null(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return False


def _sort_value(row: Any, key: str) -> Any:
    # Malformed rows sort as null rather than raising.
    if not isinstance(row, Mapping):
        return None
    return row.get(key)


def _compare_text(a: str, b: str) -> int:
    ka, kb = locale.strxfrm(a), locale.strxfrm(b)
    if ka == kb:
        # Locale collation can tie distinct strings; fall back to code points.
        return (a > b) - (a < b)
    return (ka > kb) - (ka < kb)


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def compare_values(a: Any, b: Any) -> int:
    """Three-way comparison of two non-null sort values (see module docstring)."""
    if isinstance(a, str) and isinstance(b, str):
        return _compare_text(a, b)
    if isinstance(a, _NUMERIC_TYPES) and isinstance(b, _NUMERIC_TYPES):
        return (a > b) - (a < b)
    for temporal in _TEMPORAL_TYPES:
        if isinstance(a, temporal) and isinstance(b, temporal):
            # datetime is a date subclass; compare only like with like.
            if type(a) is type(b):
                return (a > b) - (a < b)
            break
    fa, fb = _as_float(a), _as_float(b)
    if fa is not None and fb is not None:
        return (fa > fb) - (fa < fb)
    return _compare_text(str(a), str(b))


def sort_rows(rows: Sequence[Row], spec: SortSpec) -> list[Row]:
    """Return a new, stably sorted list of *rows*; the input is not mutated."""
    if spec.key is None:
        return list(rows)

    key = spec.key
    non_null: list[tuple[int, Any, Row]] = []
    nulls: list[Row] = []
    for index, row in enumerate(rows):
        value = _sort_value(row, key)
        if _is_null(value):
            nulls.append(row)
        else:
            non_null.append((index, value, row))

    def _cmp(x: tuple[int, Any, Row], y: tuple[int, Any, Row]) -> int:
        return compare_values(x[1], y[1])

    descending = spec.direction == SortDirection.DESC
    # ``sorted`` is stable for reverse=True too: equal keys keep input order.
    ordered = sorted(non_null, key=functools.cmp_to_key(_cmp), reverse=descending)
    sorted_rows = [row for _, _, row in ordered]
    if descending:
        return nulls + sorted_rows
    return sorted_rows + nulls


def next_sort_spec(current: SortSpec, key: str) -> SortSpec:
    """Header-click cycle: active ascending column flips to descending,
    anything else sorts ascending by *key*."""
    if current.key == key and current.direction == SortDirection.ASC:
        return SortSpec(key=key, direction=SortDirection.DESC)
    return SortSpec(key=key, direction=SortDirection.ASC)
