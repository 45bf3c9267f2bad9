"""ChaosLab Scenario Framework.

Provides:
- ScenarioKind: closed set of runnable scenarios
- ScenarioStrategy: one implementation per kind, resolved via a registry
- ScenarioContext: per-run state (pipelines, recorder, event sink, policy)
- ScenarioRunner: runs a scenario, scores it and compares baseline vs chaos
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union

import httpx
import structlog

from chaoslab.config import ChaosLabConfig, TargetsConfig, get_config
from chaoslab.events import ChaosEventSink, EventKind, LoggingEventSink, RecordingEventSink
from chaoslab.faults.context import ContextFaultPipeline
from chaoslab.faults.network import (
    FetchTransport,
    HttpxTransport,
    JsonFaultPipeline,
    NetworkFaultPipeline,
)
from chaoslab.faults.rules import Sleeper
from chaoslab.scoring import compute_score
from chaoslab.trace import TraceRecorder
from chaoslab.tripwire import Tripwire, TripwireResult
from chaoslab.types import (
    ChaosLabError,
    FaultConfig,
    ScenarioMetrics,
    TraceRow,
    TraceStatus,
    TripwireConfig,
)

logger = structlog.get_logger(__name__)


class ScenarioKind(str, Enum):
    """Runnable scenarios."""

    FETCH = "fetch"
    JSON = "json"
    RAG = "rag"


class UnknownScenarioError(ChaosLabError):
    """Requested scenario kind does not exist."""
    pass


class ScenarioStepError(ChaosLabError):
    """A scenario step saw a bad status or payload and may be retried."""
    pass


class ScenarioTimeoutError(ChaosLabError):
    """A scenario run exceeded the configured timeout."""
    pass


# =============================================================================
# Per-run context
# =============================================================================


@dataclass
class ScenarioContext:
    """Everything one scenario run needs. Nothing here is shared across runs."""

    seed: str
    chaos: bool
    faults: FaultConfig
    tripwire_config: TripwireConfig
    recorder: TraceRecorder
    event_sink: ChaosEventSink
    network: NetworkFaultPipeline
    json_pipeline: JsonFaultPipeline
    context_pipeline: ContextFaultPipeline
    targets: TargetsConfig = field(default_factory=TargetsConfig)
    sleep: Optional[Sleeper] = None
    document: Optional[str] = None
    answers: Dict[str, str] = field(default_factory=dict)

    def tripwire(self, operation_id: str) -> Tripwire:
        return Tripwire(
            operation_id,
            config=self.tripwire_config,
            seed=self.seed,
            sleep=self.sleep,
            event_sink=self.event_sink,
        )

    def record_unrecovered(
        self,
        operation: str,
        started: float,
        fault_kind: Optional[str],
        result: TripwireResult,
        note: Optional[str] = None,
    ) -> bool:
        """Record a step whose retries did not succeed.

        Returns True when the fallback payload should be used. Under
        ``fail_fast`` the step is recorded as failed and no fallback is used.
        """
        if self.tripwire_config.fails_fast:
            self.recorder.end(
                operation,
                started,
                TraceStatus.FAILED,
                fault_kind=fault_kind,
                action="loop_arrest" if result.arrested else None,
                note=result.error,
            )
            return False

        self.event_sink.record(EventKind.FALLBACK, {"operation": operation, "to": "cached"})
        self.event_sink.record(EventKind.RECOVERED, {"operation": operation, "action": "fallback"})
        self.recorder.end(
            operation,
            started,
            TraceStatus.RECOVERED,
            fault_kind=fault_kind,
            action="loop_arrest" if result.arrested else "fallback",
            note=note,
        )
        return True


# =============================================================================
# Strategies and registry
# =============================================================================


class ScenarioStrategy(ABC):
    """A runnable scenario."""

    kind: ScenarioKind
    description: str = ""

    @abstractmethod
    async def run(self, ctx: ScenarioContext) -> Dict[str, Any]:
        """Drive the scenario, recording one trace row per step."""
        pass


_scenarios: Dict[ScenarioKind, Type[ScenarioStrategy]] = {}


def register_scenario(kind: ScenarioKind) -> Callable[[Type[ScenarioStrategy]], Type[ScenarioStrategy]]:
    """Class decorator registering a strategy for ``kind``."""

    def decorator(cls: Type[ScenarioStrategy]) -> Type[ScenarioStrategy]:
        cls.kind = kind
        _scenarios[kind] = cls
        return cls

    return decorator


def resolve_kind(kind: Union[str, ScenarioKind]) -> ScenarioKind:
    try:
        return ScenarioKind(str(getattr(kind, "value", kind)).lower())
    except ValueError:
        raise UnknownScenarioError(
            f"Unknown scenario '{kind}'. Available: {', '.join(k.value for k in ScenarioKind)}"
        ) from None


def get_scenario(kind: Union[str, ScenarioKind]) -> ScenarioStrategy:
    resolved = resolve_kind(kind)
    if resolved not in _scenarios:
        raise UnknownScenarioError(f"No strategy registered for '{resolved.value}'")
    return _scenarios[resolved]()


def list_scenarios() -> List[Dict[str, str]]:
    return [
        {"kind": kind.value, "description": _scenarios[kind].description}
        for kind in ScenarioKind
        if kind in _scenarios
    ]


# =============================================================================
# Results
# =============================================================================


@dataclass
class ScenarioResult:
    """Outcome of one scenario run."""

    kind: ScenarioKind
    seed: str
    chaos: bool
    rows: Tuple[TraceRow, ...]
    metrics: ScenarioMetrics
    events: List[Dict[str, Any]] = field(default_factory=list)
    output: Dict[str, Any] = field(default_factory=dict)
    answers: Dict[str, str] = field(default_factory=dict)
    run_id: str = ""

    def event_count(self, event_kind: str) -> int:
        wanted = event_kind.lower()
        return sum(1 for e in self.events if str(e.get("type", "")).lower() == wanted)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "scenario": self.kind.value,
            "seed": self.seed,
            "chaos": self.chaos,
            "trace": [row.to_dict() for row in self.rows],
            "metrics": self.metrics.to_dict(),
            "events": list(self.events),
            "output": self.output,
            "answers": dict(self.answers),
        }


@dataclass
class ComparisonResult:
    """Baseline and chaos runs of the same scenario and seed."""

    baseline: ScenarioResult
    chaos: ScenarioResult

    @property
    def score_delta(self) -> int:
        return self.chaos.metrics.overall_score - self.baseline.metrics.overall_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseline": self.baseline.to_dict(),
            "chaos": self.chaos.to_dict(),
            "score_delta": self.score_delta,
        }


# =============================================================================
# Runner
# =============================================================================


class ScenarioRunner:
    """
    Runs scenarios end to end.

    Each run gets its own recorder, event log, pipelines and random
    streams. Without an injected transport a fresh httpx client is opened
    per run.
    """

    def __init__(
        self,
        config: Optional[ChaosLabConfig] = None,
        transport: Optional[FetchTransport] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.config = config or get_config()
        self._transport = transport
        self._sleep = sleep

    async def run(
        self,
        kind: Union[str, ScenarioKind],
        seed: Optional[str] = None,
        chaos: bool = True,
        faults: Optional[FaultConfig] = None,
        tripwire: Optional[TripwireConfig] = None,
        document: Optional[str] = None,
    ) -> ScenarioResult:
        """Run one scenario and score its trace."""
        strategy = get_scenario(kind)
        seed = seed if seed is not None else self.config.default_seed
        run_faults = (faults or self.config.faults) if chaos else FaultConfig()
        run_tripwire = tripwire or self.config.tripwire
        run_id = uuid.uuid4().hex[:12]

        log = logger.bind(run_id=run_id, scenario=strategy.kind.value, seed=seed, chaos=chaos)
        log.info("Scenario started")

        if self._transport is not None:
            ctx, output, recording = await self._run_with_transport(
                strategy, self._transport, seed, chaos, run_faults, run_tripwire, document, run_id,
            )
        else:
            async with httpx.AsyncClient(timeout=self.config.http.timeout) as client:
                transport = HttpxTransport(
                    client=client,
                    timeout=self.config.http.timeout,
                    user_agent=self.config.http.user_agent,
                )
                ctx, output, recording = await self._run_with_transport(
                    strategy, transport, seed, chaos, run_faults, run_tripwire, document, run_id,
                )

        metrics = compute_score(ctx.recorder.rows, self.config.scoring.mttr_target_seconds)
        events = recording.get_event_log()

        log.info(
            "Scenario finished",
            score=metrics.overall_score,
            faults=metrics.fault_count,
            retries=metrics.retries,
            fallbacks=metrics.fallbacks,
        )

        return ScenarioResult(
            kind=strategy.kind,
            seed=seed,
            chaos=chaos,
            rows=ctx.recorder.rows,
            metrics=metrics,
            events=events,
            output=output,
            answers=dict(ctx.answers),
            run_id=run_id,
        )

    async def _run_with_transport(
        self,
        strategy: ScenarioStrategy,
        transport: FetchTransport,
        seed: str,
        chaos: bool,
        faults: FaultConfig,
        tripwire: TripwireConfig,
        document: Optional[str],
        run_id: str,
    ) -> Tuple[ScenarioContext, Dict[str, Any], RecordingEventSink]:
        recording = RecordingEventSink()
        sink = LoggingEventSink(inner=recording, run_id=run_id)
        network = NetworkFaultPipeline(transport=transport, sleep=self._sleep, event_sink=sink)

        ctx = ScenarioContext(
            seed=seed,
            chaos=chaos,
            faults=faults,
            tripwire_config=tripwire,
            recorder=TraceRecorder(),
            event_sink=sink,
            network=network,
            json_pipeline=JsonFaultPipeline(network=network),
            context_pipeline=ContextFaultPipeline(event_sink=sink),
            targets=self.config.targets,
            sleep=self._sleep,
            document=document,
        )

        coro = strategy.run(ctx)
        timeout = self.config.scenario_timeout_seconds
        if timeout:
            try:
                output = await asyncio.wait_for(coro, timeout=timeout)
            except asyncio.TimeoutError:
                raise ScenarioTimeoutError(
                    f"Scenario '{strategy.kind.value}' exceeded {timeout}s"
                ) from None
        else:
            output = await coro

        return ctx, output, recording

    async def compare(
        self,
        kind: Union[str, ScenarioKind],
        seed: Optional[str] = None,
        faults: Optional[FaultConfig] = None,
        tripwire: Optional[TripwireConfig] = None,
        document: Optional[str] = None,
    ) -> ComparisonResult:
        """Run a baseline then a chaos run with the same seed."""
        baseline = await self.run(kind, seed, chaos=False, tripwire=tripwire, document=document)
        chaos = await self.run(kind, seed, chaos=True, faults=faults, tripwire=tripwire, document=document)
        return ComparisonResult(baseline=baseline, chaos=chaos)
