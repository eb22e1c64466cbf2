"""Tests for the seeded probability simulator."""

from datetime import datetime, timedelta, timezone

from feedhub.market.models import FeedState
from feedhub.market.sim_params import HISTORY_CAP
from feedhub.market.simulator import SeededRandom, backfill, displayed_probability, fnv1a_32, step

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestSeededRandom:
    """Unit tests for the hash and PRNG."""

    def test_fnv1a_known_values(self):
        """Test FNV-1a against published reference values."""
        assert fnv1a_32("") == 2166136261
        assert fnv1a_32("a") == 0xE40C292C
        assert fnv1a_32("foobar") == 0xBF9CF968

    def test_fnv1a_folds_utf16_code_units(self):
        """Astral characters hash as their surrogate pair, like JS charCodeAt."""

        def fold(units):
            h = 2166136261
            for unit in units:
                h = ((h ^ unit) * 16777619) & 0xFFFFFFFF
            return h

        assert fnv1a_32("caf\u00e9") == fold([0x63, 0x61, 0x66, 0xE9])
        assert fnv1a_32("m-\U0001F600") == fold([0x6D, 0x2D, 0xD83D, 0xDE00])
        assert fnv1a_32("\U0001F600") != fold([0x1F600])

    def test_same_seed_same_stream(self):
        a = SeededRandom.for_entity("btc-100k")
        b = SeededRandom.for_entity("btc-100k")
        assert [a() for _ in range(50)] == [b() for _ in range(50)]

    def test_different_ids_diverge(self):
        a = SeededRandom.for_entity("btc-100k")
        b = SeededRandom.for_entity("eth-10k")
        assert [a() for _ in range(5)] != [b() for _ in range(5)]

    def test_values_in_unit_interval(self):
        rand = SeededRandom(12345)
        for _ in range(10_000):
            value = rand.random()
            assert 0.0 <= value < 1.0


class TestBackfill:
    """Unit tests for backfill()."""

    def test_deterministic_for_same_id(self):
        """Two backfills of the same id are identical, dates included when now is pinned."""
        first = backfill("btc-100k", now=NOW)
        second = backfill("btc-100k", now=NOW)
        assert first.base_level == second.base_level
        assert first.level == second.level
        assert list(first.history) == list(second.history)

    def test_probabilities_stable_across_clock(self):
        """Probabilities do not depend on the wall clock."""
        first = backfill("btc-100k", now=NOW)
        later = backfill("btc-100k", now=NOW + timedelta(hours=3))
        assert [p.probability for p in first.history] == [p.probability for p in later.history]

    def test_history_has_full_window(self):
        state = backfill("btc-100k", now=NOW)
        assert len(state.history) == HISTORY_CAP

    def test_base_level_range(self):
        for entity in ("a", "b", "default", "btc-100k", "election-2028"):
            state = backfill(entity, now=NOW)
            assert 40.0 <= state.base_level < 80.0

    def test_probabilities_are_bounded_ints(self):
        for entity in ("a", "b", "default", "btc-100k"):
            for point in backfill(entity, now=NOW).history:
                assert isinstance(point.probability, int)
                assert 5 <= point.probability <= 95

    def test_points_five_minutes_apart_oldest_first(self):
        state = backfill("btc-100k", now=NOW)
        dates = [datetime.fromisoformat(p.date.replace("Z", "+00:00")) for p in state.history]
        assert dates[-1] == NOW
        assert dates[0] == NOW - timedelta(minutes=5 * (HISTORY_CAP - 1))
        for earlier, later in zip(dates, dates[1:]):
            assert later - earlier == timedelta(minutes=5)

    def test_date_format(self):
        state = backfill("btc-100k", now=NOW)
        assert state.history[-1].date == "2024-03-01T12:00:00.000Z"


class TestStep:
    """Unit tests for the live step."""

    def test_step_appends_point(self):
        state = backfill("btc-100k", now=NOW)
        point = step(state)
        assert state.history[-1] == point
        assert len(state.history) == HISTORY_CAP

    def test_step_evicts_oldest_fifo(self):
        """Once full, each tick evicts exactly the oldest point."""
        state = backfill("btc-100k", now=NOW)
        before = list(state.history)
        point = step(state)
        after = list(state.history)
        assert after[:-1] == before[1:]
        assert after[-1] == point

    def test_history_never_exceeds_cap(self):
        state = backfill("btc-100k", now=NOW)
        for _ in range(200):
            step(state)
            assert len(state.history) <= HISTORY_CAP

    def test_step_mean_reverts_without_shock(self):
        """With a neutral draw the level moves 10% of the way to the base."""
        state = FeedState(base_level=50.0, level=90.0)
        step(state, rng=lambda: 0.5)
        assert abs(state.level - 86.0) < 1e-9

    def test_step_probabilities_bounded(self):
        state = FeedState(base_level=50.0, level=200.0)
        point = step(state, rng=lambda: 0.99)
        assert point.probability == 95
        state = FeedState(base_level=50.0, level=-200.0)
        point = step(state, rng=lambda: 0.0)
        assert point.probability == 5

    def test_step_grows_short_history(self):
        state = FeedState(base_level=50.0, level=50.0)
        step(state)
        step(state)
        assert len(state.history) == 2


def test_displayed_probability_rounds_half_up():
    assert displayed_probability(50.5) == 51
    assert displayed_probability(50.49) == 50
    assert displayed_probability(1.0) == 5
    assert displayed_probability(99.0) == 95
