"""Tests for the ChaosLab scenarios.

Tests cover:
- Registry and kind resolution
- Fetch scenario (clean, recovered, fallback, fail fast, loop arrest)
- JSON scenario (malformed body recovery)
- RAG scenario (context faults and answers)
- Baseline vs chaos comparison
- Run timeout
"""

from __future__ import annotations

import pytest

from chaoslab.config import ChaosLabConfig
from chaoslab.presets import get_preset
from chaoslab.scenarios import (
    DEMO_DOCUMENT,
    ScenarioKind,
    ScenarioRunner,
    ScenarioTimeoutError,
    UnknownScenarioError,
    get_scenario,
    list_scenarios,
)
from chaoslab.scenarios.fetch import FALLBACK_HTML, extract_structure, summarize
from chaoslab.scenarios.json_table import format_table
from chaoslab.scenarios.rag import find_answer
from chaoslab.types import FaultConfig, TraceStatus, TripwireConfig

from tests.conftest import SAMPLE_USERS, SlowTransport


@pytest.fixture
def runner(config, transport, sleep) -> ScenarioRunner:
    return ScenarioRunner(config, transport=transport, sleep=sleep)


def operations(result):
    return [r.operation for r in result.rows]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    """Test scenario lookup."""

    def test_all_kinds_registered(self):
        kinds = [s["kind"] for s in list_scenarios()]
        assert kinds == ["fetch", "json", "rag"]

    def test_case_insensitive_lookup(self):
        assert get_scenario("FETCH").kind == ScenarioKind.FETCH
        assert get_scenario(ScenarioKind.RAG).kind == ScenarioKind.RAG

    def test_unknown_kind(self):
        with pytest.raises(UnknownScenarioError):
            get_scenario("nope")

    @pytest.mark.asyncio
    async def test_runner_rejects_unknown_kind(self, runner):
        with pytest.raises(UnknownScenarioError):
            await runner.run("nope")


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------


class TestFetchScenario:
    """Test fetch -> extract -> summarize."""

    @pytest.mark.asyncio
    async def test_clean_run(self, runner, transport):
        result = await runner.run("fetch", "1337", chaos=False)

        assert operations(result) == ["web.fetch", "extract_structured", "summarize"]
        assert all(r.status == TraceStatus.OK for r in result.rows)
        assert result.metrics.overall_score == 100
        assert result.output["structure"]["title"] == "Herman Melville - Moby-Dick"
        assert transport.calls == [ChaosLabConfig().targets.fetch_url]

    @pytest.mark.asyncio
    async def test_recovers_by_retry(self, runner, sleep):
        result = await runner.run("fetch", "seed-8", faults=FaultConfig(http_500_rate=0.5))

        first = result.rows[0]
        assert first.status == TraceStatus.RECOVERED
        assert first.fault_kind == "http_500"
        assert first.action == "retry(1)"
        assert sleep.calls == [0.256]
        assert [e["type"] for e in result.events] == ["fault", "fault", "retry", "recovered"]
        assert result.metrics.retries == 1

    @pytest.mark.asyncio
    async def test_first_attempt_fault_recovered_without_backoff(self, runner, sleep):
        faults = FaultConfig(latency_ms=2000, latency_rate=0.2, http_500_rate=0.1)
        result = await runner.run("fetch", "1337", faults=faults)

        assert result.rows[0].action == "retry(0)"
        assert result.rows[0].fault_kind == "http_500"
        assert sleep.calls == []
        assert result.event_count("retry") == 0

    @pytest.mark.asyncio
    async def test_fallback_after_exhaustion(self, runner, sleep):
        result = await runner.run("fetch", "1337", faults=FaultConfig(http_500_rate=1.0))

        first = result.rows[0]
        assert first.status == TraceStatus.RECOVERED
        assert first.action == "fallback"
        assert result.output["html"] == FALLBACK_HTML
        assert sleep.calls == [0.298, 0.479, 1.153]
        assert result.event_count("fallback") == 1
        assert result.metrics.fallbacks == 1
        assert operations(result) == ["web.fetch", "extract_structured", "summarize"]

    @pytest.mark.asyncio
    async def test_fail_fast_stops_the_scenario(self, runner):
        result = await runner.run(
            "fetch", "1337",
            faults=FaultConfig(http_500_rate=1.0),
            tripwire=TripwireConfig(fallback_strategy="fail_fast"),
        )

        assert len(result.rows) == 1
        assert result.rows[0].status == TraceStatus.FAILED
        assert result.output["html"] is None
        assert result.metrics.success_after_fault == 0.0
        assert result.metrics.overall_score < 60

    @pytest.mark.asyncio
    async def test_identical_failures_arrest_the_loop(self, runner, sleep):
        result = await runner.run(
            "fetch", "1337",
            faults=FaultConfig(http_500_rate=1.0),
            tripwire=TripwireConfig(loop_arrest_n=2),
        )

        assert result.rows[0].action == "loop_arrest"
        assert result.metrics.loop_arrests == 1
        assert len(sleep.calls) == 1

    @pytest.mark.asyncio
    async def test_full_preset_recovers_on_final_attempt(self, runner, sleep):
        full = get_preset("full")
        result = await runner.run("fetch", "4242", faults=full.faults, tripwire=full.tripwire)

        first = result.rows[0]
        assert first.status == TraceStatus.RECOVERED
        assert first.fault_kind == "tool_unavailable"
        assert first.action == "retry(1)"
        assert sleep.calls == [2.42]
        assert result.output["html"] is not None

    @pytest.mark.asyncio
    async def test_full_preset_fails_when_final_attempt_faults(self, runner):
        full = get_preset("full")
        result = await runner.run("fetch", "7777", faults=full.faults, tripwire=full.tripwire)

        assert len(result.rows) == 1
        assert result.rows[0].status == TraceStatus.FAILED
        assert result.output["html"] is None

    @pytest.mark.asyncio
    async def test_same_seed_same_trace(self, config, transport):
        faults = FaultConfig(http_500_rate=0.5, rate_429=0.2)
        shapes = []
        for _ in range(2):
            result = await ScenarioRunner(config, transport=transport, sleep=_noop).run("fetch", "replay", faults=faults)
            shapes.append([(r.operation, r.status, r.fault_kind, r.action) for r in result.rows])
        assert shapes[0] == shapes[1]

    def test_extract_and_summarize(self):
        page = "<h1>Title &amp; more</h1><p>First.</p><p> </p><h2>Sub</h2>"
        structure = extract_structure(page)
        assert structure["headings"] == ["Title & more", "Sub"]
        assert structure["paragraphs"] == ["First."]
        assert summarize(structure) == "Title & more. First."
        assert summarize({"title": "x" * 300}, limit=10) == "xxxxxxx..."


async def _noop(seconds: float) -> None:
    return None


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


class TestJsonScenario:
    """Test JSON -> table."""

    @pytest.mark.asyncio
    async def test_clean_run(self, runner):
        result = await runner.run("json", "4242", chaos=False)

        assert operations(result) == ["web.fetch", "format_table"]
        assert result.output["data"] == SAMPLE_USERS
        assert result.output["table"]["columns"] == ["id", "name", "email"]

    @pytest.mark.asyncio
    async def test_malformed_body_recovered(self, runner, transport):
        result = await runner.run("json", "4242", faults=FaultConfig(malformed_rate=1.0))

        first = result.rows[0]
        assert first.operation == "extract_structured"
        assert first.status == TraceStatus.RECOVERED
        assert first.fault_kind == "malformed_json"
        assert first.action == "retry(0)"
        assert result.output["data"] == SAMPLE_USERS
        assert len(transport.calls) == 2

    def test_format_table_mixed_records(self):
        table = format_table([{"a": 1}, {"b": 2}, 3])
        assert table["columns"] == ["a", "b"]
        assert table["rows"] == [[1, None], [None, 2], [3]]


# ---------------------------------------------------------------------------
# RAG
# ---------------------------------------------------------------------------


class TestRagScenario:
    """Test retrieval under context faults."""

    @pytest.mark.asyncio
    async def test_answers_from_demo_document(self, runner):
        result = await runner.run("rag", "1337", chaos=False)

        assert operations(result) == ["rag.retrieve", "rag.answer", "rag.answer"]
        assert result.rows[0].note == f"len={len(DEMO_DOCUMENT)}"
        assert "Mean Time To Recovery" in result.answers["What is MTTR?"]
        assert "jitter" in result.answers["Why backoff with jitter?"]

    @pytest.mark.asyncio
    async def test_truncation_and_injection(self, runner):
        result = await runner.run("rag", "1337", faults=FaultConfig(ctx_bytes=100, inj_seed="benign-01"))

        retrieve = result.rows[0]
        assert retrieve.fault_kind == "context_truncate,inject"
        assert "benign-injection:benign-01" in result.output["text"]
        assert result.answers["Why backoff with jitter?"] == ""
        assert result.rows[2].status == TraceStatus.FAILED

    @pytest.mark.asyncio
    async def test_generous_budget_only_injects(self, runner):
        result = await runner.run("rag", "1337", faults=FaultConfig(ctx_bytes=800, inj_seed="benign-01"))
        assert result.rows[0].fault_kind == "inject"

    @pytest.mark.asyncio
    async def test_custom_document(self, runner):
        result = await runner.run("rag", "1", chaos=False, document="Nothing useful here.")
        assert all(r.status == TraceStatus.FAILED for r in result.rows[1:])

    def test_find_answer_returns_whole_line(self):
        doc = "intro\nMTTR is the mean time to recovery.\noutro"
        assert find_answer(doc, r"MTTR.+?recovery") == "MTTR is the mean time to recovery."
        assert find_answer(doc, r"absent") is None


# ---------------------------------------------------------------------------
# Comparison and limits
# ---------------------------------------------------------------------------


class TestRunner:
    """Test comparison, serialisation and timeouts."""

    @pytest.mark.asyncio
    async def test_compare(self, runner):
        comparison = await runner.compare("fetch", "seed-8", faults=FaultConfig(http_500_rate=0.5))

        assert not comparison.baseline.chaos
        assert comparison.baseline.metrics.fault_count == 0
        assert comparison.chaos.rows[0].action == "retry(1)"
        assert comparison.to_dict()["score_delta"] == comparison.score_delta

    @pytest.mark.asyncio
    async def test_default_seed_and_faults_from_config(self, transport, sleep):
        config = ChaosLabConfig(default_seed="seed-8", faults=FaultConfig(http_500_rate=0.5))
        result = await ScenarioRunner(config, transport=transport, sleep=sleep).run("fetch")
        assert result.seed == "seed-8"
        assert result.rows[0].action == "retry(1)"

    @pytest.mark.asyncio
    async def test_result_to_dict(self, runner):
        data = (await runner.run("json", "1", chaos=False)).to_dict()
        assert data["scenario"] == "json"
        assert data["trace"][0]["index"] == 1
        assert data["metrics"]["overall_score"] == 100
        assert data["run_id"]

    @pytest.mark.asyncio
    async def test_timeout(self):
        config = ChaosLabConfig(scenario_timeout_seconds=0.05)
        with pytest.raises(ScenarioTimeoutError, match="exceeded"):
            await ScenarioRunner(config, transport=SlowTransport()).run("fetch", "1", chaos=False)
