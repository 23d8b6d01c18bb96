"""
Core engine batching single-item detail requests into bulk lookups.
Callers ask for one item at a time; requests arriving close together are
collected over a short debounce window and resolved by one lookup per chunk.
"""

from __future__ import annotations

import asyncio
import typing as t
import uuid

import structlog

from gw2dash.cache import ItemCache
from gw2dash.exceptions import InvalidIdentifier, UpstreamUnavailable, WaiterTimeout
from gw2dash.models import FetchFailure, ItemDetail, ItemResult
from gw2dash.status import FailureReason, ItemState

log = structlog.get_logger(__name__)


class ItemLookup(t.Protocol):
    """
    Bulk-capable item lookup consumed by the batcher.

    Attributes
    ----------
    max_batch_size : int
        Maximum number of ids accepted by one ``lookup_items`` call.
    """

    max_batch_size: int

    async def lookup_items(self, ids: t.Iterable[int]) -> t.Mapping[int, ItemDetail]: ...


def validate_item_id(item_id: t.Any) -> int:
    if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id <= 0:
        raise InvalidIdentifier(item_id)
    return item_id


def chunked(ids: t.Iterable[int], size: int) -> list[list[int]]:
    ordered = sorted(ids)
    return [ordered[start : start + size] for start in range(0, len(ordered), size)]


class ItemBatcher:
    """
    Collect item requests, dispatch them in bulk, and resolve waiters from the cache.

    A batch is flushed when no new request arrived for ``batch_window_seconds``,
    or at the latest ``max_batch_delay_seconds`` after its first request, so a
    steady stream of requests cannot postpone a flush forever.

    Notes
    -----
    Waiters never read the lookup response directly: the dispatcher writes
    every outcome into the ``ItemCache`` and waiters are woken by it.
    """

    def __init__(
        self,
        lookup: ItemLookup,
        cache: ItemCache | None = None,
        batch_window_seconds: float = 0.05,
        max_batch_delay_seconds: float = 0.5,
        max_batch_size: int | None = None,
        wait_timeout_seconds: float = 10.0,
        lookup_timeout_seconds: float = 30.0,
    ):
        """
        Initialize the batcher.

        Parameters
        ----------
        lookup : ItemLookup
            Upstream bulk lookup.
        cache : ItemCache | None, optional
            Result cache shared by all waiters. A new one is created when omitted.
        batch_window_seconds : float
            Debounce delay measured from the most recent request.
        max_batch_delay_seconds : float
            Upper bound on how long the first request of a batch can wait for a flush.
        max_batch_size : int | None
            Largest chunk sent in one lookup. Defaults to the lookup's own limit.
        wait_timeout_seconds : float
            Ceiling on how long a single caller waits for its item.
        lookup_timeout_seconds : float
            Ceiling on one chunk lookup, after which the chunk counts as failed.
        """
        self._lookup = lookup
        self._cache = cache if cache is not None else ItemCache()
        self._batch_window_seconds = batch_window_seconds
        self._max_batch_delay_seconds = max(max_batch_delay_seconds, batch_window_seconds)
        self._max_batch_size = min(max_batch_size or lookup.max_batch_size, lookup.max_batch_size)
        self._wait_timeout_seconds = wait_timeout_seconds
        self._lookup_timeout_seconds = lookup_timeout_seconds

        # Request collection
        self._pending: set[int] = set()
        self._pending_lock = asyncio.Lock()
        self._window_task: asyncio.Task[None] | None = None
        self._batch_started_at: float | None = None

        # Dispatched ids awaiting their lookup outcome
        self._in_flight: set[int] = set()
        self._batch_tasks: set[asyncio.Task[None]] = set()

        log.debug(
            event="Initialized ItemBatcher",
            batch_window_seconds=batch_window_seconds,
            max_batch_delay_seconds=self._max_batch_delay_seconds,
            max_batch_size=self._max_batch_size,
            wait_timeout_seconds=wait_timeout_seconds,
            lookup_timeout_seconds=lookup_timeout_seconds,
        )

    @property
    def cache(self) -> ItemCache:
        return self._cache

    def state(self, item_id: int) -> ItemState:
        """
        Report where an item currently is in its request cycle.

        Parameters
        ----------
        item_id : int
            Item identifier.

        Returns
        -------
        ItemState
            Current state of the item.
        """
        if item_id in self._pending:
            return ItemState.PENDING
        if item_id in self._in_flight:
            return ItemState.DISPATCHED
        if item_id in self._cache:
            return ItemState.RESOLVED
        return ItemState.UNREQUESTED

    def request_item(self, item_id: int) -> t.Coroutine[t.Any, t.Any, ItemResult]:
        """
        Request one item's details.

        The id is validated immediately; the returned coroutine queues the id
        and resolves once the item lands in the cache.

        Parameters
        ----------
        item_id : int
            Positive item identifier.

        Returns
        -------
        typing.Coroutine[typing.Any, typing.Any, ItemResult]
            Awaitable resolving to the item detail or a ``FetchFailure``.

        Raises
        ------
        InvalidIdentifier
            If ``item_id`` is not a positive integer.
        """
        return self._wait_for_item(item_id=validate_item_id(item_id))

    async def request_items(self, item_ids: t.Iterable[int]) -> dict[int, ItemResult]:
        """
        Request several items concurrently.

        Parameters
        ----------
        item_ids : typing.Iterable[int]
            Item identifiers; duplicates are collapsed.

        Returns
        -------
        dict[int, ItemResult]
            Outcome per requested id.
        """
        unique_ids = list(dict.fromkeys(validate_item_id(item_id) for item_id in item_ids))
        results = await asyncio.gather(*(self._wait_for_item(item_id=i) for i in unique_ids))
        return dict(zip(unique_ids, results))

    async def _wait_for_item(self, *, item_id: int) -> ItemResult:
        cached = self._cache.get_fresh(item_id)
        if cached is not None:
            log.debug(event="Item served from cache", item_id=item_id)
            return cached

        waiter = self._cache.subscribe(item_id)
        try:
            await self._enqueue(item_id=item_id)
            return await asyncio.wait_for(
                asyncio.shield(waiter),
                timeout=self._wait_timeout_seconds,
            )
        except TimeoutError:
            timeout = WaiterTimeout(item_id=item_id, timeout_seconds=self._wait_timeout_seconds)
            log.warning(
                event="Gave up waiting for item",
                item_id=item_id,
                state=self.state(item_id),
                wait_timeout_seconds=self._wait_timeout_seconds,
            )
            return FetchFailure(
                item_id=item_id,
                reason=FailureReason.WAITER_TIMEOUT,
                message=str(object=timeout),
            )
        finally:
            self._cache.unsubscribe(item_id, waiter)

    async def _enqueue(self, *, item_id: int) -> None:
        """
        Add an id to the pending set and re-arm the window timer.

        Parameters
        ----------
        item_id : int
            Item identifier.
        """
        async with self._pending_lock:
            if item_id in self._in_flight and item_id not in self._pending:
                log.debug(event="Item already dispatched", item_id=item_id)
                return

            self._pending.add(item_id)
            now = asyncio.get_running_loop().time()
            if self._batch_started_at is None:
                self._batch_started_at = now
            deadline = self._batch_started_at + self._max_batch_delay_seconds
            delay = max(0.0, min(self._batch_window_seconds, deadline - now))
            log.debug(
                event="Pending batch updated",
                item_id=item_id,
                pending_count=len(self._pending),
                delay_seconds=delay,
            )
            self._rearm_window_timer(delay=delay)

    def _rearm_window_timer(self, *, delay: float) -> None:
        current_task = asyncio.current_task()
        window_task = self._window_task
        if window_task and not window_task.done() and window_task is not current_task:
            window_task.cancel()
        self._window_task = asyncio.create_task(
            coro=self._window_timer(delay=delay),
            name=f"item_batch_window_{uuid.uuid4()}",
        )

    async def _window_timer(self, *, delay: float) -> None:
        """
        Flush the pending batch once the debounce delay elapses.

        Parameters
        ----------
        delay : float
            Seconds to wait before flushing.
        """
        try:
            await asyncio.sleep(delay=delay)
            async with self._pending_lock:
                item_ids = self._drain_pending()
            if item_ids:
                log.debug(event="Batch window elapsed, dispatching", item_count=len(item_ids))
                self._dispatch(item_ids=item_ids)
            else:
                log.debug(event="Batch window elapsed with empty batch")
        except asyncio.CancelledError:
            log.debug(event="Window timer cancelled")
            raise

    def _drain_pending(self) -> set[int]:
        """
        Snapshot and clear the pending set. Caller must hold the pending lock.

        Returns
        -------
        set[int]
            Ids moved to the in-flight set.
        """
        current_task = asyncio.current_task()
        window_task = self._window_task
        if window_task and not window_task.done() and window_task is not current_task:
            window_task.cancel()
        self._window_task = None
        self._batch_started_at = None

        item_ids = self._pending
        self._pending = set()
        self._in_flight |= item_ids
        return item_ids

    def _dispatch(self, *, item_ids: set[int]) -> None:
        log.info(event="Dispatching item batch", item_count=len(item_ids))
        task = asyncio.create_task(
            coro=self._process_batch(item_ids=item_ids),
            name=f"item_batch_{uuid.uuid4()}",
        )
        self._batch_tasks.add(task)
        task.add_done_callback(self._on_batch_task_done)

    def _on_batch_task_done(self, task: asyncio.Task[None]) -> None:
        """
        Cleanup callback for background batch tasks.

        Parameters
        ----------
        task : asyncio.Task[None]
            Completed task.
        """
        self._batch_tasks.discard(task)
        try:
            _ = task.exception()
        except asyncio.CancelledError:
            pass

    async def _process_batch(self, *, item_ids: set[int]) -> None:
        chunks = chunked(ids=item_ids, size=self._max_batch_size)
        log.debug(event="Processing item batch", item_count=len(item_ids), chunk_count=len(chunks))
        await asyncio.gather(*(self._process_chunk(chunk=chunk) for chunk in chunks))

    async def _process_chunk(self, *, chunk: list[int]) -> None:
        """
        Look up one chunk and write every outcome into the cache.

        A failed chunk fails only its own ids.

        Parameters
        ----------
        chunk : list[int]
            Ids to look up, at most ``max_batch_size`` of them.
        """
        try:
            try:
                details = await asyncio.wait_for(
                    self._lookup.lookup_items(chunk),
                    timeout=self._lookup_timeout_seconds,
                )
            except TimeoutError:
                timeout_error = UpstreamUnavailable(
                    path="/items",
                    detail=f"lookup timed out after {self._lookup_timeout_seconds}s",
                )
                self._fail_chunk(chunk=chunk, error=timeout_error)
            except Exception as error:
                self._fail_chunk(chunk=chunk, error=error)
            else:
                self._apply_results(chunk=chunk, details=details)
        finally:
            self._in_flight.difference_update(chunk)

    def _apply_results(self, *, chunk: list[int], details: t.Mapping[int, ItemDetail]) -> None:
        requested = set(chunk)
        for item_id, detail in details.items():
            if item_id in requested:
                self._in_flight.discard(item_id)
                self._cache.set(item_id, detail)
        missing = requested - details.keys()
        if missing:
            log.warning(
                event="Missing items in lookup response",
                missing_count=len(missing),
                missing_ids=sorted(missing),
            )
        for item_id in missing:
            self._in_flight.discard(item_id)
            self._cache.set(
                item_id,
                FetchFailure(
                    item_id=item_id,
                    reason=FailureReason.MISSING_FROM_RESPONSE,
                    message=f"Item {item_id} was not returned by the lookup",
                ),
            )
        log.info(
            event="Resolved item chunk",
            requested_count=len(requested),
            resolved_count=len(requested) - len(missing),
        )

    def _fail_chunk(self, *, chunk: list[int], error: Exception) -> None:
        log.error(
            event="Item lookup failed",
            item_count=len(chunk),
            first_id=chunk[0],
            last_id=chunk[-1],
            error=str(object=error),
        )
        for item_id in chunk:
            self._in_flight.discard(item_id)
            self._cache.set(
                item_id,
                FetchFailure(
                    item_id=item_id,
                    reason=FailureReason.UPSTREAM_UNAVAILABLE,
                    message=str(object=error),
                ),
            )

    async def flush(self) -> None:
        """
        Dispatch the pending batch now instead of waiting for the window.
        """
        async with self._pending_lock:
            item_ids = self._drain_pending()
        if item_ids:
            log.info(event="Flushing pending items", item_count=len(item_ids))
            self._dispatch(item_ids=item_ids)

    async def close(self) -> None:
        """
        Flush pending requests and wait for in-flight lookups to finish.
        """
        await self.flush()
        if self._batch_tasks:
            await asyncio.gather(*list(self._batch_tasks), return_exceptions=True)
        log.debug(event="ItemBatcher closed")

    async def __aenter__(self) -> "ItemBatcher":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: t.Any,
    ) -> None:
        await self.close()
