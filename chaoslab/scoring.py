"""ChaosLab Scoring Engine.

Maps a trace to resilience metrics:

    score = 50 * success_after_fault + 30 * (1 - mttr_normalized) + 20 * idempotency

A row is a fault occurrence when it carries a fault kind. MTTR is the mean
duration of fault rows in seconds, normalised against a target. The
idempotency term is a fixed full bonus; no re-invocation is measured.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Optional, Union

import structlog

from chaoslab.types import ScenarioMetrics, TraceRow

logger = structlog.get_logger(__name__)

DEFAULT_MTTR_TARGET_SECONDS = 30.0
IDEMPOTENCY = 1.0

RowLike = Union[TraceRow, Mapping[str, Any]]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _field(row: RowLike, *names: str) -> Any:
    if isinstance(row, TraceRow):
        return getattr(row, names[0], None)
    if isinstance(row, Mapping):
        for name in names:
            if row.get(name) is not None:
                return row.get(name)
    return None


def _duration_ms(row: RowLike) -> float:
    value = _field(row, "duration_ms")
    try:
        duration = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(duration) or duration < 0:
        return 0.0
    return duration


def _status(row: RowLike) -> str:
    status = _field(row, "status")
    return str(getattr(status, "value", status) or "")


class ScoringEngine:
    """Computes ScenarioMetrics from trace rows."""

    weights = {
        "success_after_fault": 50,
        "mttr": 30,
        "idempotency": 20,
    }

    def __init__(self, mttr_target_seconds: float = DEFAULT_MTTR_TARGET_SECONDS):
        self.mttr_target_seconds = mttr_target_seconds

    def normalise_mttr(self, mttr_seconds: float) -> float:
        if mttr_seconds <= 0:
            return 0.0
        if self.mttr_target_seconds <= 0:
            return 1.0
        return min(1.0, mttr_seconds / self.mttr_target_seconds)

    def compute(self, rows: Iterable[RowLike]) -> ScenarioMetrics:
        fault_count = 0
        recovered = 0
        retries = 0
        loop_arrests = 0
        fallbacks = 0
        durations: List[float] = []

        for row in rows:
            if _field(row, "fault_kind", "fault"):
                fault_count += 1
                if _status(row) in ("ok", "recovered"):
                    recovered += 1
                durations.append(_duration_ms(row))

            action = _field(row, "action")
            if isinstance(action, str):
                if action.startswith("retry"):
                    retries += 1
                elif action == "loop_arrest":
                    loop_arrests += 1
                elif action == "fallback":
                    fallbacks += 1

        success = recovered / fault_count if fault_count else 1.0
        mttr_seconds = (sum(durations) / len(durations) / 1000.0) if durations else 0.0
        mttr_norm = self.normalise_mttr(mttr_seconds)

        raw = (
            self.weights["success_after_fault"] * success
            + self.weights["mttr"] * (1 - mttr_norm)
            + self.weights["idempotency"] * IDEMPOTENCY
        )
        score = max(0, min(100, round_half_up(raw)))

        metrics = ScenarioMetrics(
            success_after_fault=success,
            mttr_seconds=mttr_seconds,
            idempotency=IDEMPOTENCY,
            overall_score=score,
            retries=retries,
            loop_arrests=loop_arrests,
            fallbacks=fallbacks,
            fault_count=fault_count,
            recovered_count=recovered,
            mttr_normalized=mttr_norm,
        )
        logger.debug(
            "Score computed",
            faults=fault_count,
            recovered=recovered,
            success=success,
            score=score,
        )
        return metrics


def compute_score(
    rows: Optional[Iterable[RowLike]],
    mttr_target_seconds: float = DEFAULT_MTTR_TARGET_SECONDS,
) -> ScenarioMetrics:
    """Score a trace. Never raises on missing or malformed optional fields."""
    return ScoringEngine(mttr_target_seconds).compute(rows or ())


def passes_gate(score: Union[int, float], score_min: Union[int, float]) -> bool:
    return score >= score_min
