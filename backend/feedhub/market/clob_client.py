"""CLOB REST client for live order books, prices and price histories."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

import httpx

from .interface import LiveBookSource
from .models import LiveBook, PriceLevel
from .normalize import HistorySample, normalize_book_side, normalize_history, normalize_price
from .sim_params import BOOK_DEPTH

logger = logging.getLogger(__name__)

CLOB_API_URL = "https://clob.polymarket.com"
RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})
HISTORY_INTERVALS = ("1m", "5m", "1h", "1d")


def _with_cumulative(pairs: list[tuple[float, float]], side: str) -> list[PriceLevel]:
    """Attach cumulative depth growing away from the best price."""
    levels = []
    running = 0.0
    for price, size in pairs:
        running += size
        levels.append(PriceLevel(price=price, size=size, cumulative=float(round(running)), side=side))  # type: ignore[arg-type]
    return levels


def book_from_payload(payload: Any) -> LiveBook | None:
    """Normalize a /book payload. None if neither side has a usable level."""
    if not isinstance(payload, dict):
        return None

    bids = sorted(normalize_book_side(payload.get("bids")), key=lambda p: p[0], reverse=True)[:BOOK_DEPTH]
    asks = sorted(normalize_book_side(payload.get("asks")), key=lambda p: p[0])[:BOOK_DEPTH]
    if not bids and not asks:
        return None

    if bids and asks:
        mid = (bids[0][0] + asks[0][0]) / 2
    elif bids:
        mid = bids[0][0]
    else:
        mid = asks[0][0]

    levels = _with_cumulative(asks, "ask") + _with_cumulative(bids, "bid")
    return LiveBook(levels=levels, mid_price=mid)


class ClobClient(LiveBookSource):
    """Async client for the public CLOB REST API.

    Every call soft-fails: transport errors, timeouts, bad statuses and
    malformed payloads are logged and turned into None / [] so that callers
    can fall back to synthetic data. Transport errors, 429 and 5xx responses
    are retried up to ``max_retries`` times with jittered exponential backoff.
    """

    def __init__(
        self,
        base_url: str = CLOB_API_URL,
        timeout: float = 5.0,
        max_retries: int = 2,
        backoff: float = 0.25,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._max_retries = max(0, max_retries)
        self._backoff = backoff
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # --- Public API ---

    async def fetch_book(self, token_id: str) -> LiveBook | None:
        if not token_id:
            return None
        payload = await self._get_json("/book", {"token_id": token_id})
        if payload is None:
            return None
        book = book_from_payload(payload)
        if book is None:
            logger.warning("CLOB book for %s had no usable levels", token_id)
        return book

    async def fetch_price(self, token_id: str, side: str = "BUY") -> float | None:
        """Best price for a token, or None if missing, invalid or unreachable."""
        if not token_id or not token_id.strip():
            logger.warning("fetch_price called with empty token id")
            return None
        payload = await self._get_json("/price", {"token_id": token_id, "side": side})
        if payload is None:
            return None
        price = normalize_price(payload)
        if price is None:
            logger.warning("Invalid price returned for token %s: %r", token_id, payload)
        return price

    async def fetch_market_prices(
        self,
        yes_token_id: str | None = None,
        no_token_id: str | None = None,
    ) -> tuple[float, float]:
        """Fetch YES/NO prices concurrently, inferring a missing side as 1 - other."""

        async def _maybe(token_id: str | None) -> float | None:
            return await self.fetch_price(token_id) if token_id else None

        yes, no = await asyncio.gather(_maybe(yes_token_id), _maybe(no_token_id))

        yes_price = yes or 0.0
        no_price = no or 0.0
        if yes is not None and no is None and 0 < yes < 1:
            no_price = 1 - yes
        if no is not None and yes is None and 0 < no < 1:
            yes_price = 1 - no
        return yes_price, no_price

    async def fetch_price_history(
        self,
        token_id: str,
        interval: str = "1h",
        fidelity: int = 100,
    ) -> list[HistorySample]:
        """Fetch and normalize a price history.

        Raises ValueError for an unknown interval or a fidelity outside
        1..1000. Upstream failures return [].
        """
        if interval not in HISTORY_INTERVALS:
            raise ValueError(f"Invalid interval {interval!r}. Must be one of: {', '.join(HISTORY_INTERVALS)}")
        if not 1 <= fidelity <= 1000:
            raise ValueError("Fidelity must be a number between 1 and 1000")

        payload = await self._get_json(
            "/prices-history",
            {"market": token_id, "interval": interval, "fidelity": fidelity},
        )
        if payload is None:
            return []
        return normalize_history(payload)

    # --- Internal ---

    def _backoff_delay(self, attempt: int) -> float:
        return self._backoff * (2**attempt) * random.uniform(0.5, 1.5)

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any | None:
        """GET with retries. Returns decoded JSON or None on any failure."""
        reason = "no attempt made"
        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.get(path, params=params)
            except httpx.HTTPError as e:
                reason = f"{type(e).__name__}: {e}"
            else:
                if response.status_code in RETRY_STATUSES:
                    reason = f"HTTP {response.status_code}"
                elif response.is_error:
                    logger.warning("CLOB %s failed: HTTP %d", path, response.status_code)
                    return None
                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        logger.warning("CLOB %s returned malformed JSON: %s", path, e)
                        return None

            if attempt < self._max_retries:
                delay = self._backoff_delay(attempt)
                logger.debug("CLOB %s attempt %d failed (%s); retrying in %.2fs", path, attempt + 1, reason, delay)
                await asyncio.sleep(delay)

        logger.warning("CLOB %s gave up after %d attempts: %s", path, self._max_retries + 1, reason)
        return None
