"""ChaosLab Types.

Core data model shared by the fault pipelines, the tripwire, the trace
recorder and the scoring engine:

- FaultConfig / TripwireConfig: immutable per-run configuration snapshots
- TraceRow / TraceStatus: one recorded outcome of a scenario step
- ScenarioMetrics: the derived resilience metrics for one run
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field


class ChaosLabError(Exception):
    """Base class for errors raised by ChaosLab."""
    pass


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TraceStatus(str, Enum):
    """Outcome of a single scenario step."""

    OK = "ok"
    RECOVERED = "recovered"
    FAILED = "failed"


class FaultKind(str, Enum):
    """Fault tags applied by the pipelines."""

    TOOL_UNAVAILABLE = "tool_unavailable"
    LATENCY_SPIKE = "latency_spike"
    HTTP_500 = "http_500"
    RATE_LIMIT_429 = "rate_limit_429"
    NETWORK_ERROR = "network_error"
    MALFORMED_JSON = "malformed_json"
    CONTEXT_TRUNCATE = "context_truncate"
    INJECT = "inject"


class FallbackStrategy(str, Enum):
    """What a scenario does when the tripwire gives up."""

    USE_CACHED_SUMMARY = "use_cached_summary"
    FAIL_FAST = "fail_fast"


# ---------------------------------------------------------------------------
# Configuration snapshots
# ---------------------------------------------------------------------------


class FaultConfig(BaseModel):
    """Fault injection settings for one scenario run.

    Rates are probabilities in [0, 1]. A zero-valued config injects nothing.
    """

    latency_ms: int = Field(default=0, ge=0)
    latency_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    http_500_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    rate_429: float = Field(default=0.0, ge=0.0, le=1.0)
    malformed_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    ctx_bytes: int = Field(default=0, ge=0)
    injection_seed: str = Field(default="", alias="inj_seed")
    tool_unavailable_steps: int = Field(default=0, ge=0)

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "extra": "forbid",
    }

    @property
    def is_quiet(self) -> bool:
        """True when no fault can ever trigger."""
        return (
            (self.latency_ms == 0 or self.latency_rate == 0)
            and self.http_500_rate == 0
            and self.rate_429 == 0
            and self.malformed_rate == 0
            and self.ctx_bytes == 0
            and not self.injection_seed
            and self.tool_unavailable_steps == 0
        )


class TripwireConfig(BaseModel):
    """Retry/backoff/loop-arrest policy."""

    enabled: bool = True
    max_retries: int = Field(default=3, ge=0)
    backoff_base_ms: int = Field(default=250, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    jitter_fraction: float = Field(default=0.2, ge=0.0, le=1.0)
    loop_arrest_n: int = Field(default=0, ge=0)  # 0 disables the detector
    fallback_strategy: str = FallbackStrategy.USE_CACHED_SUMMARY.value

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @property
    def fails_fast(self) -> bool:
        return self.fallback_strategy == FallbackStrategy.FAIL_FAST.value


# ---------------------------------------------------------------------------
# Trace and metrics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TraceRow:
    """One recorded outcome of a scenario step."""

    index: int
    operation: str
    duration_ms: int
    status: TraceStatus
    fault_kind: Optional[str] = None
    action: Optional[str] = None
    note: Optional[str] = None

    @property
    def is_fault(self) -> bool:
        return bool(self.fault_kind)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TraceRow":
        """Build a row from a trace document.

        Accepts both the snake_case field names and the short keys used by
        exported browser traces (``i``, ``tool``, ``fault``).
        """
        status = data.get("status") or TraceStatus.OK.value
        return cls(
            index=int(data.get("index", data.get("i", 0)) or 0),
            operation=str(data.get("operation", data.get("tool", "")) or ""),
            duration_ms=max(0, int(data.get("duration_ms") or 0)),
            status=TraceStatus(status),
            fault_kind=data.get("fault_kind", data.get("fault")) or None,
            action=data.get("action") or None,
            note=data.get("note") or None,
        )


@dataclass(frozen=True)
class ScenarioMetrics:
    """Resilience metrics derived from one trace."""

    success_after_fault: float = 1.0
    mttr_seconds: float = 0.0
    idempotency: float = 1.0
    overall_score: int = 100
    retries: int = 0
    loop_arrests: int = 0
    fallbacks: int = 0

    fault_count: int = 0
    recovered_count: int = 0
    mttr_normalized: float = 0.0

    @property
    def grade(self) -> str:
        if self.overall_score >= 90:
            return "excellent"
        elif self.overall_score >= 70:
            return "good"
        elif self.overall_score >= 50:
            return "poor"
        return "critical"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["grade"] = self.grade
        return data
