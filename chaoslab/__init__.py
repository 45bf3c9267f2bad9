"""
ChaosLab - deterministic chaos testing for agent tool flows

Injects seeded faults into small network-backed operations with:
- Fault Pipelines (latency, 500/429, malformed JSON, context truncation, injection)
- Tripwire (retry, jittered backoff, loop arrest)
- Resilience Scoring (success after fault, MTTR, idempotency)
- Scenarios, presets and eval suites
"""

__version__ = "1.0.0"

from chaoslab.faults import (
    apply_context_faults,
    json_fetch_with_faults,
    network_fetch_with_faults,
)
from chaoslab.scoring import compute_score
from chaoslab.tripwire import LoopArrestSignal, TripwireResult, run_with_tripwire
from chaoslab.types import (
    ChaosLabError,
    FaultConfig,
    ScenarioMetrics,
    TraceRow,
    TraceStatus,
    TripwireConfig,
)

__all__ = [
    "apply_context_faults",
    "json_fetch_with_faults",
    "network_fetch_with_faults",
    "compute_score",
    "run_with_tripwire",
    "LoopArrestSignal",
    "TripwireResult",
    "ChaosLabError",
    "FaultConfig",
    "ScenarioMetrics",
    "TraceRow",
    "TraceStatus",
    "TripwireConfig",
    "__version__",
]
