"""Rate-limited batch backfill of missing prices."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING

from .models import EnrichmentItem, is_valid_price

if TYPE_CHECKING:
    from .clob_client import ClobClient

logger = logging.getLogger(__name__)

PriceFetcher = Callable[[EnrichmentItem], Awaitable[float | None]]

DEFAULT_BATCH_SIZE = 10
DEFAULT_DELAY_MS = 200
DEFAULT_MAX_ITEMS = 100


def merge_price(item: EnrichmentItem, fetched: object) -> EnrichmentItem:
    """Apply a fetch result to an item without ever losing a valid price."""
    if is_valid_price(fetched):
        return dataclasses.replace(item, price=float(fetched))  # type: ignore[arg-type]
    return item


async def _fetch_soft(fetch_one: PriceFetcher, item: EnrichmentItem) -> float | None:
    try:
        return await fetch_one(item)
    except Exception as e:
        logger.warning("Price fetch failed for %s: %s", item.ref, e)
        return None


async def enrich(
    items: Sequence[EnrichmentItem],
    fetch_one: PriceFetcher,
    batch_size: int = DEFAULT_BATCH_SIZE,
    delay_ms: float = DEFAULT_DELAY_MS,
    max_items: int | None = DEFAULT_MAX_ITEMS,
) -> list[EnrichmentItem]:
    """Fill in prices for items that lack one, in rate-limited batches.

    Items that already hold a valid price are passed through without a
    fetch. Of the rest, at most ``max_items`` (None for no cap) are fetched,
    ``batch_size`` at a time concurrently, with ``delay_ms`` of sleep between
    consecutive batches and none after the last. Failed, missing or
    non-positive results leave the item untouched.

    Returns a new list in the input order.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    if delay_ms < 0:
        raise ValueError("delay_ms must not be negative")

    result = list(items)
    pending = [i for i, item in enumerate(result) if not item.has_price]
    if max_items is not None and len(pending) > max_items:
        logger.info("Enrichment capped at %d of %d items lacking prices", max_items, len(pending))
        pending = pending[:max_items]
    if not pending:
        return result

    batches = [pending[start : start + batch_size] for start in range(0, len(pending), batch_size)]
    enriched = 0
    for n, batch in enumerate(batches):
        prices = await asyncio.gather(*(_fetch_soft(fetch_one, result[i]) for i in batch))
        for i, price in zip(batch, prices):
            merged = merge_price(result[i], price)
            if merged is not result[i]:
                enriched += 1
            result[i] = merged

        if n < len(batches) - 1:
            await asyncio.sleep(delay_ms / 1000)

    logger.info("Enriched %d/%d items in %d batches", enriched, len(pending), len(batches))
    return result


def clob_price_fetcher(client: ClobClient, side: str = "BUY") -> PriceFetcher:
    """Adapt ClobClient.fetch_price to the enrich() fetcher signature.

    Item refs are CLOB token ids.
    """

    async def fetch(item: EnrichmentItem) -> float | None:
        return await client.fetch_price(item.ref, side)

    return fetch


def clob_market_price_fetcher(client: ClobClient) -> PriceFetcher:
    """Fetch a binary market's YES price from its YES/NO token pair.

    The item payload is a mapping with ``yes`` and/or ``no`` token ids; a
    missing payload treats ``ref`` as the YES token. A side the venue does
    not price is inferred as 1 - other by ClobClient.fetch_market_prices.
    """

    async def fetch(item: EnrichmentItem) -> float | None:
        tokens = item.payload if isinstance(item.payload, Mapping) else {"yes": item.ref}
        yes_token, no_token = tokens.get("yes"), tokens.get("no")
        if not yes_token and not no_token:
            logger.warning("No CLOB token ids for %s", item.ref)
            return None
        yes, _ = await client.fetch_market_prices(yes_token, no_token)
        return yes or None

    return fetch
