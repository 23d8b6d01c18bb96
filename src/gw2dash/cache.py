"""
In-memory result cache for item lookups.
"""

from __future__ import annotations

import asyncio
import time
import typing as t
from dataclasses import dataclass

import structlog

from gw2dash.models import FetchFailure, ItemResult

log = structlog.get_logger(__name__)

DEFAULT_ITEM_TTL_SECONDS = 60 * 60
DEFAULT_FAILURE_TTL_SECONDS = 60


@dataclass(frozen=True)
class CacheEntry:
    """
    Cached lookup outcome for one item.

    Parameters
    ----------
    value : ItemResult
        Item detail, or failure sentinel when the lookup failed.
    stored_at : float
        Clock reading when the entry was written.
    """

    value: ItemResult
    stored_at: float

    @property
    def failed(self) -> bool:
        return isinstance(self.value, FetchFailure)


class ItemCache:
    """
    Process-wide mapping from item id to its lookup outcome.

    Entries are never removed. Freshness only decides whether a new request
    may be served from the cache or must start a new lookup cycle.

    Notes
    -----
    Reads are plain dictionary lookups. Writers notify waiters through one
    shared future per item id, so any number of callers interested in the
    same id observe the same resolution.
    """

    def __init__(
        self,
        *,
        item_ttl_seconds: float = DEFAULT_ITEM_TTL_SECONDS,
        failure_ttl_seconds: float = DEFAULT_FAILURE_TTL_SECONDS,
        clock: t.Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize an empty cache.

        Parameters
        ----------
        item_ttl_seconds : float, optional
            How long a successful lookup may be reused.
        failure_ttl_seconds : float, optional
            How long a failure sentinel may be reused before a new lookup is allowed.
        clock : typing.Callable[[], float], optional
            Monotonic clock used to timestamp entries.
        """
        self._item_ttl_seconds = item_ttl_seconds
        self._failure_ttl_seconds = failure_ttl_seconds
        self._clock = clock
        self._entries: dict[int, CacheEntry] = {}
        self._waiters: dict[int, asyncio.Future[ItemResult]] = {}
        self._subscribers: dict[int, int] = {}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get_entry(self, item_id: int) -> CacheEntry | None:
        return self._entries.get(item_id)

    def get(self, item_id: int) -> ItemResult | None:
        """
        Return the cached outcome for an item, fresh or not.

        Parameters
        ----------
        item_id : int
            Item identifier.

        Returns
        -------
        ItemResult | None
            Detail, failure sentinel, or ``None`` when never resolved.
        """
        entry = self._entries.get(item_id)
        return entry.value if entry is not None else None

    def is_fresh(self, item_id: int) -> bool:
        entry = self._entries.get(item_id)
        if entry is None:
            return False
        ttl = self._failure_ttl_seconds if entry.failed else self._item_ttl_seconds
        return self._clock() - entry.stored_at < ttl

    def get_fresh(self, item_id: int) -> ItemResult | None:
        if not self.is_fresh(item_id):
            return None
        return self._entries[item_id].value

    def set(self, item_id: int, value: ItemResult) -> None:
        """
        Store an outcome and wake every waiter subscribed to the item.

        Parameters
        ----------
        item_id : int
            Item identifier.
        value : ItemResult
            Item detail or failure sentinel.
        """
        self._entries[item_id] = CacheEntry(value=value, stored_at=self._clock())
        waiter = self._waiters.pop(item_id, None)
        self._subscribers.pop(item_id, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(value)
        log.debug(
            event="Cached item result",
            item_id=item_id,
            failed=isinstance(value, FetchFailure),
            notified=waiter is not None,
        )

    def subscribe(self, item_id: int) -> asyncio.Future[ItemResult]:
        """
        Return the shared future resolved by the next write for an item.

        Parameters
        ----------
        item_id : int
            Item identifier.

        Returns
        -------
        asyncio.Future[ItemResult]
            Future shared by every subscriber of ``item_id``.
        """
        waiter = self._waiters.get(item_id)
        if waiter is None or waiter.done():
            waiter = asyncio.get_running_loop().create_future()
            self._waiters[item_id] = waiter
            self._subscribers[item_id] = 0
        self._subscribers[item_id] += 1
        return waiter

    def unsubscribe(self, item_id: int, waiter: asyncio.Future[ItemResult]) -> None:
        """
        Release one subscription, dropping the shared future with its last subscriber.

        Parameters
        ----------
        item_id : int
            Item identifier.
        waiter : asyncio.Future[ItemResult]
            Future returned by ``subscribe``. Stale futures from earlier cycles are ignored.
        """
        if self._waiters.get(item_id) is not waiter:
            return
        self._subscribers[item_id] -= 1
        if self._subscribers[item_id] <= 0:
            del self._waiters[item_id]
            del self._subscribers[item_id]
            log.debug(event="Dropped unclaimed item waiter", item_id=item_id)

    def has_waiter(self, item_id: int) -> bool:
        waiter = self._waiters.get(item_id)
        return waiter is not None and not waiter.done()
