"""Process-wide result cache keyed by filter fingerprint.

The cache is advisory.  Any consumer must tolerate a miss at any time and
fall back to a fresh fetch.

Entries use *sliding* expiry: every write for a fingerprint pushes
``expires_at`` to ``now + ttl``.  An expired entry reads as a miss.  Writes
sweep every expired entry at most once per half TTL, so filter
combinations nobody asks for again do not pile up.

An entry always starts at page 1: a later page arriving for a missing
fingerprint is not cached on its own, because readers treat an entry as the
whole result set from the first row.  Use :meth:`ResultCache.store` to seed
an entry with rows that already start at row 1.

Appends are idempotent on row identity, so several grid instances may
interleave writes for the same fingerprint without locking.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from reflex_virtual_grid.models import CacheEntry, Page, Row

logger = logging.getLogger(__name__)

_DEFAULT_ID_FIELD: str = "id"


def merge_unique(
    existing: list[Row],
    seen: set[Any],
    incoming: list[Row],
    id_field: str,
    *,
    context: str = "",
) -> int:
    """Append rows from *incoming* whose identity is not in *seen*.

    *existing* and *seen* are updated in place.  Rows that collide with an
    already-loaded identity are dropped and logged.  Returns the number of
    rows appended.
    """
    appended = 0
    collisions: list[Any] = []
    for row in incoming:
        identity = row.get(id_field)
        if identity in seen:
            collisions.append(identity)
            continue
        seen.add(identity)
        existing.append(row)
        appended += 1
    if collisions:
        preview = ", ".join(repr(c) for c in collisions[:5])
        more = f" (+{len(collisions) - 5} more)" if len(collisions) > 5 else ""
        logger.warning(
            "[VirtualGrid] identity collision%s: %d duplicate row(s) dropped by %r: %s%s",
            f" in {context}" if context else "",
            len(collisions),
            id_field,
            preview,
            more,
        )
    return appended


class ResultCache:
    """Maps a fingerprint to a TTL-bounded snapshot of fetched rows."""

    def __init__(
        self,
        *,
        id_field: str = _DEFAULT_ID_FIELD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._id_field = id_field
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        # Identity sets per fingerprint, kept beside the entries for O(1) dedup.
        self._identities: dict[str, set[Any]] = {}
        self._next_sweep: float = float("-inf")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        return isinstance(fingerprint, str) and self.get(fingerprint) is not None

    def get(self, fingerprint: str) -> CacheEntry | None:
        """Return the live entry for *fingerprint*, or ``None`` on a miss."""
        entry = self._entries.get(fingerprint)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            return None
        return entry

    def put(
        self,
        fingerprint: str,
        page: Page,
        has_more: bool,
        ttl: float,
        *,
        id_field: str | None = None,
    ) -> CacheEntry | None:
        """Create or extend the entry for *fingerprint* and return it.

        Repeated writes append the page's rows, skipping identities that are
        already stored, refresh ``has_more`` and slide the expiry forward.
        Only page 1 may create an entry; a later page for a missing or
        expired fingerprint is not cached and ``None`` is returned.
        """
        key_field = id_field or self._id_field
        now = self._clock()
        self._sweep(now, ttl)
        entry = self._live_entry(fingerprint, now)

        if entry is None:
            if page.page_index > 1:
                logger.debug(
                    "[VirtualGrid] cache skip: %s page=%d has no page 1 entry",
                    fingerprint, page.page_index,
                )
                return None
            return self._create(fingerprint, list(page.rows), has_more, ttl, 1, key_field, now)

        added = merge_unique(
            entry.rows,
            self._identities[fingerprint],
            list(page.rows),
            key_field,
            context=f"cache {fingerprint}",
        )
        entry.has_more = has_more
        entry.fetched_at = now
        entry.expires_at = now + ttl
        entry.pages_loaded = max(entry.pages_loaded, page.page_index)
        logger.debug(
            "[VirtualGrid] cache append: %s page=%d +%d rows, total=%d",
            fingerprint, page.page_index, added, entry.total_loaded,
        )
        return entry

    def store(
        self,
        fingerprint: str,
        rows: list[Row],
        has_more: bool,
        ttl: float,
        *,
        pages_loaded: int,
        id_field: str | None = None,
    ) -> CacheEntry:
        """Replace the entry for *fingerprint* with a complete row set.

        *rows* must start at row 1 and cover ``pages_loaded`` pages.  A grid
        uses this to re-seed the cache from its merged rows after the entry
        was invalidated or expired mid-scroll.
        """
        now = self._clock()
        self._sweep(now, ttl)
        self._drop(fingerprint)
        return self._create(
            fingerprint, list(rows), has_more, ttl, pages_loaded, id_field or self._id_field, now,
        )

    def invalidate(self, fingerprint: str | None = None) -> int:
        """Remove one entry, or every entry when *fingerprint* is ``None``.

        This is the mutation hook: call it after any create/update/delete
        so no grid serves stale rows.  Returns the number of entries removed.
        """
        if fingerprint is None:
            removed = len(self._entries)
            self._entries.clear()
            self._identities.clear()
            logger.info("[VirtualGrid] cache invalidate all: %d entries", removed)
            return removed
        if fingerprint not in self._entries:
            return 0
        self._drop(fingerprint)
        logger.info("[VirtualGrid] cache invalidate: %s", fingerprint)
        return 1

    def invalidate_namespace(self, namespace: str) -> int:
        """Remove every entry whose fingerprint carries *namespace*."""
        prefix = f"{namespace}:"
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            self._drop(key)
        if keys:
            logger.info("[VirtualGrid] cache invalidate namespace %r: %d entries", namespace, len(keys))
        return len(keys)

    def clear_expired(self) -> int:
        """Evict every expired entry now; returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            self._drop(key)
        if expired:
            logger.debug("[VirtualGrid] cache evict (expired): %d entries", len(expired))
        return len(expired)

    def info(self) -> dict[str, Any]:
        return {"size": len(self._entries), "keys": list(self._entries)}

    def _live_entry(self, fingerprint: str, now: float) -> CacheEntry | None:
        entry = self._entries.get(fingerprint)
        if entry is not None and now >= entry.expires_at:
            self._drop(fingerprint)
            return None
        return entry

    def _create(
        self,
        fingerprint: str,
        incoming: list[Row],
        has_more: bool,
        ttl: float,
        pages_loaded: int,
        id_field: str,
        now: float,
    ) -> CacheEntry:
        rows: list[Row] = []
        seen: set[Any] = set()
        merge_unique(rows, seen, incoming, id_field, context=f"cache {fingerprint}")
        entry = CacheEntry(
            fingerprint=fingerprint,
            rows=rows,
            has_more=has_more,
            fetched_at=now,
            expires_at=now + ttl,
            pages_loaded=pages_loaded,
        )
        self._entries[fingerprint] = entry
        self._identities[fingerprint] = seen
        logger.debug(
            "[VirtualGrid] cache create: %s pages=%d rows=%d",
            fingerprint, pages_loaded, len(rows),
        )
        return entry

    def _sweep(self, now: float, ttl: float) -> None:
        # Throttled to once per half TTL.
        if now < self._next_sweep:
            return
        self._next_sweep = now + ttl / 2
        self.clear_expired()

    def _drop(self, fingerprint: str) -> None:
        self._entries.pop(fingerprint, None)
        self._identities.pop(fingerprint, None)


_result_cache: ResultCache | None = None


def get_result_cache() -> ResultCache:
    """Return (or create) the process-wide cache shared by all grids."""
    global _result_cache
    if _result_cache is None:
        _result_cache = ResultCache()
    return _result_cache


def reset_result_cache() -> None:
    """Tear down the process-wide cache; the next access builds a new one."""
    global _result_cache
    _result_cache = None
