"""Tests for ChaosLab deterministic randomness.

Tests cover:
- Seed folding over UTF-16 code units
- Reference mulberry32 sequences
- should_trigger bounds and convergence
- Jittered backoff delays
"""

from __future__ import annotations

import pytest

from chaoslab.rng import (
    SeededRandomStream,
    derive_seed,
    fold_seed,
    jittered_delay,
    seeded,
    should_trigger,
)


# ---------------------------------------------------------------------------
# Seeded stream
# ---------------------------------------------------------------------------


class TestSeededRandomStream:
    """Test the seeded generator against reference output."""

    @pytest.mark.parametrize("seed, expected", [
        ("1337", [0.5112153806257993, 0.7888539466075599, 0.21866345102898777]),
        ("test-seed", [0.0014080577529966831, 0.8907317696139216, 0.6810560114681721]),
        ("", [0.26642920868471265, 0.0003297457005828619, 0.2232720274478197]),
        ("héllo-🌍", [0.8247694892343134, 0.6650503415148705, 0.01677463948726654]),
    ])
    def test_reference_sequences(self, seed, expected):
        assert seeded(seed).take(3) == expected

    def test_fold_seed(self):
        assert fold_seed("1337") == 1510406
        assert fold_seed("test-seed") == 3068638924
        # astral characters fold as two surrogate code units
        assert fold_seed("héllo-🌍") == 395420336

    def test_same_seed_same_sequence(self):
        a = seeded("replay")
        b = seeded("replay")
        assert a.take(50) == b.take(50)

    def test_streams_are_independent(self):
        a = seeded("x")
        a.take(10)
        b = seeded("x")
        assert b() == seeded("x")()

    def test_values_in_unit_interval(self):
        for value in seeded("bounds").take(2000):
            assert 0.0 <= value < 1.0

    def test_distinct_seeds_differ(self):
        assert seeded("a").take(5) != seeded("b").take(5)

    def test_draw_counter_and_repr(self):
        stream = SeededRandomStream("count")
        stream.take(4)
        assert stream.draws == 4
        assert "count" in repr(stream)

    def test_derive_seed(self):
        assert derive_seed("1337", "cfetch", 2) == "1337:cfetch:2"


# ---------------------------------------------------------------------------
# Fault decision
# ---------------------------------------------------------------------------


class TestShouldTrigger:
    """Test the probability test."""

    @pytest.mark.parametrize("draw", [0.0, 0.25, 0.999999])
    def test_zero_probability_never_triggers(self, draw):
        assert should_trigger(0, draw) is False
        assert should_trigger(-0.5, draw) is False

    @pytest.mark.parametrize("draw", [0.0, 0.5, 0.999999])
    def test_certain_probability_always_triggers(self, draw):
        assert should_trigger(1.0, draw) is True

    def test_threshold_is_exclusive(self):
        assert should_trigger(0.3, 0.2999) is True
        assert should_trigger(0.3, 0.3) is False

    def test_frequency_converges(self):
        stream = seeded("should-test-prob")
        hits = sum(1 for _ in range(10000) if should_trigger(0.3, stream()))
        assert hits == 2999
        assert abs(hits / 10000 - 0.3) < 0.02


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------


class TestJitteredDelay:
    """Test jittered exponential backoff."""

    def test_reference_delays(self):
        rand = seeded("1337:tw")
        assert [jittered_delay(250, 2.0, a, 0.2, rand) for a in range(3)] == [298, 479, 1153]

        rand = seeded("delay-test")
        assert [jittered_delay(100, 2.0, a, 0.2, rand) for a in range(3)] == [106, 170, 354]

    def test_no_jitter_is_pure_exponential(self):
        rand = seeded("flat")
        assert [jittered_delay(100, 2.0, a, 0.0, rand) for a in range(4)] == [100, 200, 400, 800]

    @pytest.mark.parametrize("factor", [1.0, 1.2, 1.5, 2.0, 3.0])
    def test_monotonic_without_jitter(self, factor):
        rand = seeded("mono")
        delays = [jittered_delay(250, factor, a, 0.0, rand) for a in range(8)]
        assert delays == sorted(delays)

    def test_consumes_one_draw(self):
        stream = seeded("draws")
        jittered_delay(100, 2.0, 0, 0.5, stream)
        assert stream.draws == 1

    def test_never_negative(self):
        assert jittered_delay(100, 2.0, 0, 1.0, lambda: 0.0) == 0
        assert jittered_delay(0, 2.0, 3, 0.2, lambda: 0.9) == 0
