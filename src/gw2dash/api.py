"""
Main endpoint for users.
Exposes an `item_batching` function that wires an ItemBatcher to the Guild Wars 2
API from settings. The batcher is an async context manager flushing pending
requests on exit.
"""

from gw2dash.cache import ItemCache
from gw2dash.client import GW2Client
from gw2dash.config import Settings
from gw2dash.core import ItemBatcher, ItemLookup


def build_client(settings: Settings) -> GW2Client:
    return GW2Client(
        api_key=settings.api_key,
        base_url=settings.base_url,
        lang=settings.lang,
        timeout_seconds=settings.lookup_timeout_seconds,
        max_batch_size=settings.max_batch_size,
    )


def item_batching(
    settings: Settings | None = None,
    client: ItemLookup | None = None,
    cache: ItemCache | None = None,
) -> ItemBatcher:
    """
    Create an item batcher configured from settings.<br>
    Item requests issued through the batcher are coalesced over the batch window
    and sent as bulk lookups of at most ``max_batch_size`` ids.

    Parameters
    ----------
    settings : Settings | None, optional
        Runtime settings. Read from the environment when omitted.
    client : ItemLookup | None, optional
        Upstream lookup. A ``GW2Client`` built from ``settings`` when omitted.
    cache : ItemCache | None, optional
        Result cache to share between batchers. A new one when omitted.

    Returns
    -------
    ItemBatcher
        Batcher to use as ``async with item_batching() as batcher: ...``.
    """
    if settings is None:
        settings = Settings.from_env()
    if client is None:
        client = build_client(settings)
    if cache is None:
        cache = ItemCache(
            item_ttl_seconds=settings.item_ttl_seconds,
            failure_ttl_seconds=settings.failure_ttl_seconds,
        )
    return ItemBatcher(
        lookup=client,
        cache=cache,
        batch_window_seconds=settings.batch_window_seconds,
        max_batch_delay_seconds=settings.max_batch_delay_seconds,
        max_batch_size=min(settings.max_batch_size, client.max_batch_size),
        wait_timeout_seconds=settings.wait_timeout_seconds,
        lookup_timeout_seconds=settings.lookup_timeout_seconds,
    )
