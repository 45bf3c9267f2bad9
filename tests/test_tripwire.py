"""Tests for the ChaosLab tripwire.

Tests cover:
- Disabled passthrough
- Seeded jittered backoff and exhaustion
- Recovery after retries
- Loop arrest (explicit signal and identical failures)
- Cancellation
- Stats
"""

from __future__ import annotations

import asyncio

import pytest

from chaoslab.events import RecordingEventSink
from chaoslab.tripwire import LoopArrestSignal, Tripwire, run_with_tripwire
from chaoslab.types import TripwireConfig

from tests.conftest import FakeSleep


class Flaky:
    """Fails ``failures`` times, then returns ``value``."""

    def __init__(self, failures: int, value: str = "done", error: Exception = None):
        self.failures = failures
        self.value = value
        self.error = error or RuntimeError("boom")
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


def enabled(**kwargs) -> TripwireConfig:
    return TripwireConfig(enabled=True, **kwargs)


# ---------------------------------------------------------------------------
# Disabled
# ---------------------------------------------------------------------------


class TestDisabledTripwire:
    """Test the single-attempt path."""

    @pytest.mark.asyncio
    async def test_success(self):
        sleep = FakeSleep()
        op = Flaky(0)
        result = await run_with_tripwire("op", op, TripwireConfig(enabled=False), "1337", sleep=sleep)
        assert result.ok
        assert result.value == "done"
        assert result.attempts == 1
        assert result.retries == 0
        assert not result.arrested
        assert op.calls == 1
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_failure_is_not_retried(self):
        sleep = FakeSleep()
        op = Flaky(5)
        result = await run_with_tripwire("op", op, TripwireConfig(enabled=False), "1337", sleep=sleep)
        assert not result.ok
        assert result.retries == 0
        assert result.error == "boom"
        assert op.calls == 1
        assert sleep.calls == []


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------


class TestRetries:
    """Test backoff and exhaustion."""

    @pytest.mark.asyncio
    async def test_exhaustion_uses_seeded_delays(self):
        sleep = FakeSleep()
        sink = RecordingEventSink()
        op = Flaky(100)

        result = await run_with_tripwire(
            "web.fetch", op, enabled(), "1337", sleep=sleep, event_sink=sink,
        )

        assert not result.ok
        assert result.exhausted
        assert result.retries == 3
        assert result.attempts == 4
        assert result.delays_ms == [298, 479, 1153]
        assert sleep.calls == [0.298, 0.479, 1.153]
        assert op.calls == 4
        assert sink.count("retry") == 3
        assert sink.count("recovered") == 0

    @pytest.mark.asyncio
    async def test_retry_event_payload(self):
        sink = RecordingEventSink()
        await run_with_tripwire("web.fetch", Flaky(1), enabled(), "1337", sleep=FakeSleep(), event_sink=sink)

        retry = sink.get_event_log()[0]
        assert retry["type"] == "retry"
        assert retry["data"] == {"operation": "web.fetch", "attempts": 1, "backoff_ms": 298}

    @pytest.mark.asyncio
    async def test_recovery_after_retries(self):
        sleep = FakeSleep()
        sink = RecordingEventSink()

        result = await run_with_tripwire("op", Flaky(2), enabled(), "1337", sleep=sleep, event_sink=sink)

        assert result.ok
        assert result.value == "done"
        assert result.retries == 2
        assert sleep.calls == [0.298, 0.479]
        recovered = sink.get_event_log()[-1]
        assert recovered["type"] == "recovered"
        assert recovered["data"]["action"] == "retry(2)"

    @pytest.mark.asyncio
    async def test_first_try_success_records_nothing(self):
        sink = RecordingEventSink()
        result = await run_with_tripwire("op", Flaky(0), enabled(), "1337", event_sink=sink)
        assert result.ok
        assert result.retries == 0
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_zero_max_retries(self):
        sleep = FakeSleep()
        result = await run_with_tripwire("op", Flaky(1), enabled(max_retries=0), "s", sleep=sleep)
        assert not result.ok
        assert result.attempts == 1
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_unjittered_backoff(self):
        sleep = FakeSleep()
        config = enabled(backoff_base_ms=100, jitter_fraction=0.0)
        await run_with_tripwire("op", Flaky(100), config, "any", sleep=sleep)
        assert sleep.calls == [0.1, 0.2, 0.4]

    @pytest.mark.asyncio
    async def test_same_seed_same_waits(self):
        waits = []
        for _ in range(2):
            sleep = FakeSleep()
            await run_with_tripwire("op", Flaky(100), enabled(), "replay", sleep=sleep)
            waits.append(sleep.calls)
        assert waits[0] == waits[1]

    @pytest.mark.asyncio
    async def test_sync_operation(self):
        result = await run_with_tripwire("op", lambda: 42, enabled(), "s")
        assert result.value == 42


# ---------------------------------------------------------------------------
# Loop arrest
# ---------------------------------------------------------------------------


class TestLoopArrest:
    """Test arrest by signal and by identical failures."""

    @pytest.mark.asyncio
    async def test_signal_stops_immediately(self):
        sleep = FakeSleep()
        sink = RecordingEventSink()
        op = Flaky(100, error=LoopArrestSignal("stuck"))

        result = await run_with_tripwire("op", op, enabled(), "1337", sleep=sleep, event_sink=sink)

        assert not result.ok
        assert result.arrested
        assert not result.exhausted
        assert result.retries == 0
        assert op.calls == 1
        assert sleep.calls == []
        assert sink.count("loop_arrest") == 1
        assert sink.get_event_log()[0]["data"]["reason"] == "signal"

    @pytest.mark.asyncio
    async def test_identical_failures_arrest(self):
        sleep = FakeSleep()
        sink = RecordingEventSink()
        op = Flaky(100, error=ValueError("same"))

        result = await run_with_tripwire(
            "op", op, enabled(loop_arrest_n=2), "1337", sleep=sleep, event_sink=sink,
        )

        assert result.arrested
        assert result.retries == 1
        assert result.attempts == 2
        assert sleep.calls == [0.298]
        arrest = sink.get_event_log()[-1]
        assert arrest["type"] == "loop_arrest"
        assert arrest["data"]["identical_failures"] == 2

    @pytest.mark.asyncio
    async def test_varied_failures_are_not_arrested(self):
        calls = {"n": 0}

        async def op():
            calls["n"] += 1
            raise RuntimeError(f"failure {calls['n']}")

        result = await run_with_tripwire("op", op, enabled(loop_arrest_n=2), "s", sleep=FakeSleep())
        assert not result.arrested
        assert result.exhausted
        assert calls["n"] == 4

    @pytest.mark.asyncio
    async def test_detector_off_by_default(self):
        result = await run_with_tripwire("op", Flaky(100), enabled(), "s", sleep=FakeSleep())
        assert not result.arrested


# ---------------------------------------------------------------------------
# Cancellation and stats
# ---------------------------------------------------------------------------


class TestTripwireLifecycle:
    """Test cancellation and counters."""

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        async def op():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await run_with_tripwire("op", op, enabled(), "s", sleep=FakeSleep())

    @pytest.mark.asyncio
    async def test_stats(self):
        tripwire = Tripwire("web.fetch", enabled(), seed="1337", sleep=FakeSleep())
        await tripwire.execute(Flaky(1))
        await tripwire.execute(Flaky(100))

        stats = tripwire.get_stats()
        assert stats["operation"] == "web.fetch"
        assert stats["calls"] == 2
        assert stats["total_retries"] == 4
        assert stats["successful_retries"] == 1
        assert stats["exhausted"] == 1
        assert stats["arrested"] == 0

    def test_result_to_dict(self):
        from chaoslab.tripwire import TripwireResult

        result = TripwireResult(ok=False, retries=2, delays_ms=[1, 2], error="x")
        assert result.to_dict()["delays_ms"] == [1, 2]
        assert result.to_dict()["arrested"] is False
