"""Synthetic order book generation around a mid-price."""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence

import numpy as np

from .models import OrderbookState, PriceLevel
from .sim_params import (
    BOOK_DEPTH,
    DRIFT_TICKS,
    MAX_MID_PRICE,
    MIN_PRICE,
    SIZE_JITTER,
    SIZE_MIN,
    SIZE_SPAN,
    TICK_FRACTION,
)


def tick_config(mid_price: float) -> tuple[float, float]:
    """Return (tick_size, spread) for a mid-price."""
    tick_size = max(mid_price * TICK_FRACTION, MIN_PRICE)
    return tick_size, tick_size * 2


def clamp_mid(mid_price: float) -> float:
    return max(MIN_PRICE, min(MAX_MID_PRICE, mid_price))


def _previous_sizes(previous: Sequence[PriceLevel] | None, side: str) -> list[float]:
    """Sizes of the previous levels on one side, highest price first."""
    if not previous:
        return []
    same_side = sorted((lvl for lvl in previous if lvl.side == side), key=lambda lvl: lvl.price, reverse=True)
    return [lvl.size for lvl in same_side]


def _side_sizes(previous_sizes: list[float], rng: np.random.Generator) -> np.ndarray:
    """Draw BOOK_DEPTH sizes, reusing previous sizes slot by slot where present."""
    base = SIZE_MIN + rng.random(BOOK_DEPTH) * SIZE_SPAN
    for slot, size in enumerate(previous_sizes[:BOOK_DEPTH]):
        base[slot] = size
    jitter = 1 - SIZE_JITTER + rng.random(BOOK_DEPTH) * 2 * SIZE_JITTER
    return base * jitter


class OrderbookSynthesizer:
    """Builds a 5x5 synthetic book around a mid-price.

    Asks are generated farthest first (offsets 5..1) and bids nearest first
    (offsets 1..5), with cumulative depth accumulated in generation order.
    On the ask side that means the best ask carries the full five-level sum,
    unlike the bid side and unlike live books. Consumers render it as is.
    """

    def __init__(self, rng: np.random.Generator | None = None) -> None:
        self._rng = rng or np.random.default_rng()

    def synthesize(self, mid_price: float, previous_levels: Sequence[PriceLevel] | None = None) -> list[PriceLevel]:
        tick_size, spread = tick_config(mid_price)

        # Previous asks are sorted high to low, so slot 0 is the farthest ask (offset 5)
        ask_offsets = np.arange(BOOK_DEPTH, 0, -1)
        ask_prices = np.maximum(MIN_PRICE, mid_price + spread / 2 + ask_offsets * tick_size)
        ask_sizes = _side_sizes(_previous_sizes(previous_levels, "ask"), self._rng)

        bid_offsets = np.arange(1, BOOK_DEPTH + 1)
        bid_prices = np.maximum(MIN_PRICE, mid_price - spread / 2 - bid_offsets * tick_size)
        bid_sizes = _side_sizes(_previous_sizes(previous_levels, "bid"), self._rng)

        levels = _build_side(ask_prices, ask_sizes, "ask") + _build_side(bid_prices, bid_sizes, "bid")
        levels.sort(key=lambda lvl: lvl.price, reverse=True)
        return levels

    def drift(self, state: OrderbookState, rng: Callable[[], float] = random.random) -> OrderbookState:
        """Nudge the mid-price by a bounded random amount and regenerate levels."""
        tick_size, _ = tick_config(state.mid_price)
        drift = (rng() - 0.5) * tick_size * DRIFT_TICKS
        state.mid_price = clamp_mid(state.mid_price + drift)
        state.levels = self.synthesize(state.mid_price, state.levels)
        return state


def _build_side(prices: np.ndarray, sizes: np.ndarray, side: str) -> list[PriceLevel]:
    cumulative = np.cumsum(sizes)
    return [
        PriceLevel(
            price=round(float(price), 4),
            size=float(round(float(size))),
            cumulative=float(round(float(cum))),
            side=side,  # type: ignore[arg-type]
        )
        for price, size, cum in zip(prices, sizes, cumulative)
    ]
