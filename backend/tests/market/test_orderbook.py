"""Tests for the synthetic order book."""

import numpy as np
import pytest

from feedhub.market.models import OrderbookState
from feedhub.market.orderbook import OrderbookSynthesizer, clamp_mid, tick_config


def _split(levels):
    asks = [lvl for lvl in levels if lvl.side == "ask"]
    bids = [lvl for lvl in levels if lvl.side == "bid"]
    return asks, bids


@pytest.fixture
def synth():
    return OrderbookSynthesizer(rng=np.random.default_rng(7))


class TestTickConfig:
    def test_tick_is_two_percent_of_mid(self):
        tick, spread = tick_config(0.5)
        assert tick == pytest.approx(0.01)
        assert spread == pytest.approx(0.02)

    def test_tick_has_floor(self):
        tick, spread = tick_config(0.001)
        assert tick == 0.0001
        assert spread == 0.0002

    def test_clamp_mid(self):
        assert clamp_mid(5.0) == 0.99
        assert clamp_mid(-1.0) == 0.0001
        assert clamp_mid(0.42) == 0.42


class TestSynthesize:
    """Unit tests for OrderbookSynthesizer.synthesize()."""

    def test_five_levels_per_side(self, synth):
        asks, bids = _split(synth.synthesize(0.5))
        assert len(asks) == 5
        assert len(bids) == 5

    def test_asks_above_and_bids_below_mid(self, synth):
        for mid in (0.0001, 0.003, 0.25, 0.5, 0.75, 0.99):
            asks, bids = _split(synth.synthesize(mid))
            assert all(lvl.price >= mid for lvl in asks)
            assert all(lvl.price <= mid for lvl in bids)

    def test_strict_separation_at_half(self, synth):
        asks, bids = _split(synth.synthesize(0.5))
        assert all(lvl.price > 0.5 for lvl in asks)
        assert all(lvl.price < 0.5 for lvl in bids)

    def test_exact_prices_at_half(self, synth):
        asks, bids = _split(synth.synthesize(0.5))
        assert [lvl.price for lvl in asks] == [0.56, 0.55, 0.54, 0.53, 0.52]
        assert [lvl.price for lvl in bids] == [0.48, 0.47, 0.46, 0.45, 0.44]

    def test_sorted_descending(self, synth):
        prices = [lvl.price for lvl in synth.synthesize(0.5)]
        assert prices == sorted(prices, reverse=True)

    def test_sizes_in_initial_range(self, synth):
        for lvl in synth.synthesize(0.5):
            assert 1800 <= lvl.size <= 7700

    def test_ask_cumulative_peaks_at_best_ask(self, synth):
        """Asks accumulate farthest to nearest, so the best ask holds the total."""
        asks, _ = _split(synth.synthesize(0.5))
        best_ask = min(asks, key=lambda lvl: lvl.price)
        farthest = max(asks, key=lambda lvl: lvl.price)
        assert best_ask.cumulative == max(lvl.cumulative for lvl in asks)
        assert farthest.cumulative == farthest.size
        cumulatives = [lvl.cumulative for lvl in asks]  # high price to low
        assert cumulatives == sorted(cumulatives)

    def test_bid_cumulative_grows_away_from_mid(self, synth):
        _, bids = _split(synth.synthesize(0.5))
        assert bids[0].cumulative == bids[0].size
        cumulatives = [lvl.cumulative for lvl in bids]  # high price to low
        assert cumulatives == sorted(cumulatives)

    def test_previous_sizes_perturbed_within_ten_percent(self, synth):
        first = synth.synthesize(0.5)
        second = synth.synthesize(0.5, first)
        for before, after in zip(first, second):
            assert before.side == after.side
            assert before.size * 0.9 - 1 <= after.size <= before.size * 1.1 + 1


class TestDrift:
    """Unit tests for OrderbookSynthesizer.drift()."""

    def test_drift_is_bounded_by_quarter_tick(self, synth):
        state = OrderbookState(mid_price=0.5, levels=synth.synthesize(0.5))
        tick, _ = tick_config(0.5)
        synth.drift(state, rng=lambda: 0.999999)
        assert 0.5 < state.mid_price <= 0.5 + tick * 0.25

    def test_drift_regenerates_levels(self, synth):
        state = OrderbookState(mid_price=0.5, levels=synth.synthesize(0.5))
        synth.drift(state, rng=lambda: 0.0)
        asks, bids = _split(state.levels)
        assert all(lvl.price >= state.mid_price for lvl in asks)
        assert all(lvl.price <= state.mid_price for lvl in bids)

    def test_drift_clamps_to_range(self, synth):
        high = OrderbookState(mid_price=0.99, levels=[])
        for _ in range(50):
            synth.drift(high, rng=lambda: 1.0)
        assert high.mid_price == 0.99

        low = OrderbookState(mid_price=0.0001, levels=[])
        for _ in range(50):
            synth.drift(low, rng=lambda: 0.0)
        assert low.mid_price == 0.0001
