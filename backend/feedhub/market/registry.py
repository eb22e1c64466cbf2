"""Process-wide registry of per-entity feed state and tickers."""

from __future__ import annotations

import asyncio
import logging
import math
import random
from collections.abc import Callable, Coroutine
from threading import Lock
from typing import Any

from .interface import LiveBookSource
from .models import (
    FeedState,
    LiveBook,
    OrderbookState,
    book_message,
    history_message,
    tick_message,
)
from .orderbook import OrderbookSynthesizer, clamp_mid
from .sim_params import BOOK_TICK_SECONDS, DEFAULT_MID_PRICE, HISTORY_TICK_SECONDS
from .simulator import backfill, step

logger = logging.getLogger(__name__)

HISTORY = "history"
ORDERBOOK = "orderbook"

_CLOSED = None  # Queue sentinel that ends iteration


class Subscription:
    """One subscriber's view of a channel: an ordered queue of messages.

    The registry publishes into the queue; the connection iterates it. When the
    queue is full the oldest message is dropped so a slow client cannot stall
    the ticker. close() is idempotent and detaches from the registry on the
    first call only.
    """

    def __init__(
        self,
        channel: str,
        entity_id: str,
        on_close: Callable[[Subscription], None],
        maxsize: int = 64,
    ) -> None:
        self.channel = channel
        self.entity_id = entity_id
        self._on_close = on_close
        self._queue: asyncio.Queue[dict | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, message: dict | None) -> None:
        if self._closed and message is not _CLOSED:
            return
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning("Subscriber queue full for %s/%s; dropped oldest message", self.channel, self.entity_id)
        self._queue.put_nowait(message)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.publish(_CLOSED)
        self._on_close(self)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> dict:
        message = await self._queue.get()
        if message is _CLOSED:
            raise StopAsyncIteration
        return message


class FeedRegistry:
    """Owns every FeedState and OrderbookState, keyed by entity id.

    State is created lazily on first use and lives until the registry stops,
    or until its last subscriber leaves when ``evict_idle`` is set. Each
    (channel, entity id) pair has at most one ticker task, which is the only
    writer of that entity's state after creation and broadcasts each new
    message to every subscriber.

    Lifecycle:
        registry = FeedRegistry(live_source=source)
        registry.start()
        sub = registry.subscribe_history("btc-100k")
        async for message in sub: ...
        sub.close()
        await registry.stop()
    """

    def __init__(
        self,
        live_source: LiveBookSource | None = None,
        history_interval: float = HISTORY_TICK_SECONDS,
        book_interval: float = BOOK_TICK_SECONDS,
        evict_idle: bool = False,
        synthesizer: OrderbookSynthesizer | None = None,
        rng: Callable[[], float] = random.random,
        queue_size: int = 64,
    ) -> None:
        self._live = live_source
        self._history_interval = history_interval
        self._book_interval = book_interval
        self._evict_idle = evict_idle
        self._synth = synthesizer or OrderbookSynthesizer()
        self._rng = rng
        self._queue_size = queue_size

        self._histories: dict[str, FeedState] = {}
        self._books: dict[str, OrderbookState] = {}
        self._lock = Lock()

        self._subscribers: dict[tuple[str, str], set[Subscription]] = {}
        self._tickers: dict[tuple[str, str], asyncio.Task] = {}
        self._running = False

    # --- Lifecycle ---

    def start(self) -> None:
        self._running = True
        logger.info(
            "Feed registry started (history every %.1fs, book every %.1fs, live books %s)",
            self._history_interval,
            self._book_interval,
            "on" if self._live else "off",
        )

    async def stop(self) -> None:
        """Cancel every ticker and end every subscription. Safe to call twice."""
        self._running = False
        tasks = list(self._tickers.values())
        self._tickers.clear()
        for subs in list(self._subscribers.values()):
            for sub in list(subs):
                sub.close()

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Feed registry stopped")

    @property
    def running(self) -> bool:
        return self._running

    # --- State ---

    def history_state(self, entity_id: str) -> FeedState:
        """Get or create the probability walk for an entity."""
        with self._lock:
            state = self._histories.get(entity_id)
            if state is None:
                state = backfill(entity_id)
                self._histories[entity_id] = state
                logger.info("Created history state for %s", entity_id)
            return state

    def book_state(
        self,
        entity_id: str,
        initial_mid: float | None = None,
        token_id: str | None = None,
    ) -> OrderbookState:
        """Get or create the order book for an entity.

        ``initial_mid`` only matters on creation. The first non-empty
        ``token_id`` seen for an entity is remembered for live fetches.
        """
        with self._lock:
            state = self._books.get(entity_id)
            if state is None:
                usable = initial_mid is not None and math.isfinite(initial_mid) and initial_mid > 0
                mid = clamp_mid(initial_mid) if usable else DEFAULT_MID_PRICE
                state = OrderbookState(mid_price=mid, levels=self._synth.synthesize(mid))
                self._books[entity_id] = state
                logger.info("Created order book for %s at mid %.4f", entity_id, mid)
            if token_id and not state.token_id:
                state.token_id = token_id
            return state

    def has_history(self, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._histories

    def has_book(self, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._books

    # --- Subscriptions ---

    def subscribe_history(self, entity_id: str) -> Subscription:
        """Subscribe to an entity's probability feed.

        The first queued message is the full history; ticks follow.
        """
        self._ensure_running()
        state = self.history_state(entity_id)
        sub = self._new_subscription(HISTORY, entity_id)
        sub.publish(history_message(state))
        self._attach(sub, self._run_history)
        return sub

    async def subscribe_book(
        self,
        entity_id: str,
        initial_mid: float | None = None,
        token_id: str | None = None,
    ) -> Subscription:
        """Subscribe to an entity's order book.

        The first queued message is a snapshot, taken from the live venue when
        the entity has a token and the venue answers, else from local state.
        Live books are sent as the venue reports them; only the synthetic mid
        is clamped.
        """
        self._ensure_running()
        state = self.book_state(entity_id, initial_mid, token_id)
        live = await self._fetch_live(state.token_id)
        self._ensure_running()
        # Idle eviction may have replaced the state while the live fetch was in flight
        state = self.book_state(entity_id, initial_mid, token_id)
        if live is not None:
            snapshot = book_message("snapshot", live.mid_price, live.levels)
        else:
            snapshot = book_message("snapshot", state.mid_price, state.levels)

        sub = self._new_subscription(ORDERBOOK, entity_id)
        sub.publish(snapshot)
        self._attach(sub, self._run_book)
        return sub

    def subscriber_count(self, channel: str, entity_id: str) -> int:
        return len(self._subscribers.get((channel, entity_id), ()))

    @property
    def active_tickers(self) -> int:
        return len(self._tickers)

    # --- Internals ---

    def _ensure_running(self) -> None:
        if not self._running:
            raise RuntimeError("FeedRegistry is not running; call start() first")

    def _new_subscription(self, channel: str, entity_id: str) -> Subscription:
        return Subscription(channel, entity_id, on_close=self._detach, maxsize=self._queue_size)

    def _attach(self, sub: Subscription, runner: Callable[[str], Coroutine[Any, Any, None]]) -> None:
        key = (sub.channel, sub.entity_id)
        self._subscribers.setdefault(key, set()).add(sub)
        if key not in self._tickers:
            self._tickers[key] = asyncio.create_task(runner(sub.entity_id), name=f"{sub.channel}-ticker:{sub.entity_id}")
            logger.debug("Started %s ticker for %s", sub.channel, sub.entity_id)

    def _detach(self, sub: Subscription) -> None:
        key = (sub.channel, sub.entity_id)
        subs = self._subscribers.get(key)
        if not subs or sub not in subs:
            return
        subs.discard(sub)
        if subs:
            return

        del self._subscribers[key]
        task = self._tickers.pop(key, None)
        if task is not None:
            task.cancel()
            logger.debug("Stopped %s ticker for %s", sub.channel, sub.entity_id)
        if self._evict_idle:
            with self._lock:
                store = self._histories if sub.channel == HISTORY else self._books
                store.pop(sub.entity_id, None)
            logger.info("Evicted idle %s state for %s", sub.channel, sub.entity_id)

    def _broadcast(self, key: tuple[str, str], message: dict) -> None:
        for sub in list(self._subscribers.get(key, ())):
            sub.publish(message)

    async def _run_history(self, entity_id: str) -> None:
        """Ticker: step the walk every interval and broadcast the new point."""
        key = (HISTORY, entity_id)
        while True:
            await asyncio.sleep(self._history_interval)
            try:
                point = step(self._histories[entity_id], self._rng)
                self._broadcast(key, tick_message(point))
            except Exception:
                logger.exception("History tick failed for %s", entity_id)

    async def _run_book(self, entity_id: str) -> None:
        """Ticker: prefer a live book, else drift the synthetic one."""
        key = (ORDERBOOK, entity_id)
        while True:
            await asyncio.sleep(self._book_interval)
            try:
                state = self._books[entity_id]
                live = await self._fetch_live(state.token_id)
                if live is not None:
                    message = book_message("update", live.mid_price, live.levels)
                else:
                    self._synth.drift(state, self._rng)
                    message = book_message("update", state.mid_price, state.levels)
                self._broadcast(key, message)
            except Exception:
                logger.exception("Order book tick failed for %s", entity_id)

    async def _fetch_live(self, token_id: str | None) -> LiveBook | None:
        if not token_id or self._live is None:
            return None
        try:
            book = await self._live.fetch_book(token_id)
        except Exception as e:
            logger.warning("Live book fetch for %s raised: %s", token_id, e)
            return None
        if book is None or not book.levels:
            return None
        return book
