"""ChaosLab Presets.

Named chaos profiles bundling a FaultConfig with a TripwireConfig:

- quick: light faults, default retry policy
- network: heavier network faults, more retries
- heavy: frequent faults and an unavailable tool on the first attempt
- full: everything at once, fail fast when retries run out
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Union

from pydantic import BaseModel

from chaoslab.types import ChaosLabError, FallbackStrategy, FaultConfig, TripwireConfig


class UnknownPresetError(ChaosLabError):
    """Requested preset does not exist."""
    pass


class PresetName(str, Enum):
    QUICK = "quick"
    NETWORK = "network"
    HEAVY = "heavy"
    FULL = "full"


class ChaosPreset(BaseModel):
    """A named fault and tripwire bundle."""

    name: str
    description: str
    faults: FaultConfig
    tripwire: TripwireConfig

    model_config = {"frozen": True}

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


PRESETS: Dict[PresetName, ChaosPreset] = {
    PresetName.QUICK: ChaosPreset(
        name=PresetName.QUICK.value,
        description="Light latency, server errors and malformed payloads",
        faults=FaultConfig(
            latency_ms=1000,
            latency_rate=0.1,
            http_500_rate=0.05,
            rate_429=0.05,
            malformed_rate=0.1,
            ctx_bytes=8192,
            injection_seed="benign-01",
        ),
        tripwire=TripwireConfig(
            loop_arrest_n=3,
            backoff_base_ms=250,
            backoff_factor=2.0,
            jitter_fraction=0.2,
            max_retries=3,
        ),
    ),
    PresetName.NETWORK: ChaosPreset(
        name=PresetName.NETWORK.value,
        description="Slow, flaky network with aggressive rate limiting",
        faults=FaultConfig(
            latency_ms=3000,
            latency_rate=0.3,
            http_500_rate=0.15,
            rate_429=0.2,
            malformed_rate=0.05,
            ctx_bytes=8192,
            injection_seed="network-01",
        ),
        tripwire=TripwireConfig(
            loop_arrest_n=3,
            backoff_base_ms=500,
            backoff_factor=2.0,
            jitter_fraction=0.3,
            max_retries=5,
        ),
    ),
    PresetName.HEAVY: ChaosPreset(
        name=PresetName.HEAVY.value,
        description="Frequent faults, tight context and a tool down on first call",
        faults=FaultConfig(
            latency_ms=2000,
            latency_rate=0.4,
            http_500_rate=0.25,
            rate_429=0.3,
            malformed_rate=0.2,
            ctx_bytes=4096,
            injection_seed="heavy-01",
            tool_unavailable_steps=1,
        ),
        tripwire=TripwireConfig(
            loop_arrest_n=2,
            backoff_base_ms=1000,
            backoff_factor=1.5,
            jitter_fraction=0.4,
            max_retries=2,
        ),
    ),
    PresetName.FULL: ChaosPreset(
        name=PresetName.FULL.value,
        description=(
            "Every fault type at high rates; no fallback data. The tool is down "
            "for the first two attempts of each step and only one retry is "
            "allowed, so a step recovers only when its final attempt draws clean"
        ),
        faults=FaultConfig(
            latency_ms=5000,
            latency_rate=0.5,
            http_500_rate=0.4,
            rate_429=0.35,
            malformed_rate=0.3,
            ctx_bytes=2048,
            injection_seed="chaos-01",
            tool_unavailable_steps=2,
        ),
        tripwire=TripwireConfig(
            loop_arrest_n=2,
            backoff_base_ms=2000,
            backoff_factor=1.2,
            jitter_fraction=0.5,
            max_retries=1,
            fallback_strategy=FallbackStrategy.FAIL_FAST.value,
        ),
    ),
}


def get_preset(name: Union[str, PresetName]) -> ChaosPreset:
    """Look up a preset by name (case-insensitive)."""
    try:
        key = PresetName(str(getattr(name, "value", name)).lower())
    except ValueError:
        raise UnknownPresetError(
            f"Unknown preset '{name}'. Available: {', '.join(list_presets())}"
        ) from None
    return PRESETS[key]


def list_presets() -> List[str]:
    return [p.value for p in PresetName]
