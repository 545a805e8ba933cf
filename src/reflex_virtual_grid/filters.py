"""Filter sets and their deterministic fingerprints.

A fingerprint is the cache key and the in-flight request key.  Two filter
sets with the same non-empty entries fingerprint identically, whatever the
order in which the entries were inserted.
"""

import json
from collections.abc import Iterator, Mapping
from typing import Any


def is_empty_value(value: Any) -> bool:
    """Return True for values that mean "no filter": None, blank text, empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


class FilterSet(Mapping[str, Any]):
    """An ordered, immutable mapping of filter name to value.

    Empty values are kept in the mapping (so a form can round-trip its
    fields) but are excluded from :attr:`active` and from the fingerprint.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        merged: dict[str, Any] = dict(items or {})
        merged.update(kwargs)
        self._items = merged

    @classmethod
    def coerce(cls, value: "FilterSet | Mapping[str, Any] | None") -> "FilterSet":
        if isinstance(value, FilterSet):
            return value
        return cls(value or {})

    def __getitem__(self, key: str) -> Any:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"FilterSet({self._items!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FilterSet):
            return self.active == other.active
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.fingerprint)

    @property
    def active(self) -> dict[str, Any]:
        """The non-empty entries, in insertion order."""
        return {k: v for k, v in self._items.items() if not is_empty_value(v)}

    @property
    def fingerprint(self) -> str:
        return fingerprint(self)

    def with_value(self, name: str, value: Any) -> "FilterSet":
        """Return a copy with *name* set to *value* (blank values clear it)."""
        items = dict(self._items)
        items[name] = value
        return FilterSet(items)

    def without(self, name: str) -> "FilterSet":
        items = {k: v for k, v in self._items.items() if k != name}
        return FilterSet(items)


def _normalise_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return value


def fingerprint(
    filters: "FilterSet | Mapping[str, Any] | None",
    namespace: str | None = None,
) -> str:
    """Deterministic string identity of the non-empty entries in *filters*.

    The entries are serialised as JSON with sorted keys, so insertion order
    never matters.  An optional *namespace* is prefixed (``"clients:{...}"``)
    so grids over different record types never share cache keys.
    """
    active = FilterSet.coerce(filters).active
    payload = {k: _normalise_value(v) for k, v in active.items()}
    text = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str, ensure_ascii=False)
    if namespace:
        return f"{namespace}:{text}"
    return text
