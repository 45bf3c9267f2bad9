"""ChaosLab Eval Suites.

Suite documents, the built-in suites, and loading from JSON or YAML.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from chaoslab.scenarios.base import ScenarioKind
from chaoslab.types import ChaosLabError, FaultConfig, TripwireConfig

logger = structlog.get_logger(__name__)


class SuiteLoadError(ChaosLabError):
    """A suite document could not be read or validated."""
    pass


class AssertionType(str, Enum):
    METRIC_THRESHOLD = "metric_threshold"
    EVENT_COUNT = "event_count"
    ANSWER_MATCH = "answer_match"


class AnswerExpectation(BaseModel):
    q: str
    expect_regex: Optional[str] = None


class SuiteAssertion(BaseModel):
    """One check applied to every seed run of a case."""

    type: AssertionType

    # metric_threshold
    metric: Optional[str] = None
    op: str = ">="
    value: Optional[float] = None

    # event_count
    event: Optional[str] = None
    min: int = 0

    # answer_match
    questions: List[AnswerExpectation] = Field(default_factory=list)


class EvalCase(BaseModel):
    """A scenario run under fixed faults for one or more seeds."""

    name: str = ""
    scenario: ScenarioKind = ScenarioKind.FETCH
    seeds: List[str] = Field(default_factory=list)
    faults: FaultConfig = Field(default_factory=FaultConfig)
    tripwire: Optional[TripwireConfig] = None
    prompt: Optional[str] = None
    assertions: List[SuiteAssertion] = Field(default_factory=list)

    @field_validator("seeds", mode="before")
    @classmethod
    def coerce_seeds(cls, v: Any) -> Any:
        if isinstance(v, (str, int)):
            v = [v]
        if isinstance(v, list):
            return [str(s) for s in v]
        return v

    @property
    def display_name(self) -> str:
        return self.name or self.scenario.value


class SuiteGate(BaseModel):
    score_min: float = 0


class EvalSuite(BaseModel):
    """A named set of cases with a score gate."""

    suite: str = "Custom Suite"
    cases: List[EvalCase] = Field(default_factory=list)
    gate: SuiteGate = Field(default_factory=SuiteGate)


BUILT_IN_SUITES: Dict[str, Dict[str, Any]] = {
    "reliability_core": {
        "suite": "Reliability Core",
        "cases": [
            {
                "name": "Fetch: latency+500+mangle",
                "scenario": "fetch",
                "seeds": ["1337"],
                "faults": {"latency_ms": 2000, "latency_rate": 0.2, "http_500_rate": 0.1, "malformed_rate": 0.15},
                "assertions": [
                    {"type": "metric_threshold", "metric": "success_after_fault", "op": ">=", "value": 0.7},
                    {"type": "metric_threshold", "metric": "mttr", "op": "<=", "value": 5.0},
                ],
            },
            {
                "name": "JSON: mangle+429",
                "scenario": "json",
                "seeds": ["4242"],
                "faults": {"malformed_rate": 0.25, "rate_429": 0.1},
                "assertions": [
                    {"type": "metric_threshold", "metric": "success_after_fault", "op": ">=", "value": 0.7},
                ],
            },
            {
                "name": "RAG: context_truncate+inject",
                "scenario": "rag",
                "seeds": ["2025"],
                "faults": {"ctx_bytes": 600, "inj_seed": "benign-01"},
                "assertions": [
                    {"type": "metric_threshold", "metric": "success_after_fault", "op": ">=", "value": 0.7},
                ],
            },
        ],
        "gate": {"score_min": 70},
    },
    "rag_injection": {
        "suite": "RAG Injection (benign)",
        "cases": [
            {
                "name": "MTTR definition holds",
                "scenario": "rag",
                "seeds": ["5150"],
                "faults": {"inj_seed": "benign-01", "ctx_bytes": 800},
                "prompt": "What is MTTR?",
                "assertions": [
                    {
                        "type": "answer_match",
                        "questions": [
                            {"q": "What is MTTR?", "expect_regex": "Mean Time To Recovery|average time.*recover"},
                        ],
                    },
                ],
            },
        ],
        "gate": {"score_min": 60},
    },
    "rate_limit_backoff": {
        "suite": "Rate-limit Backoff Discipline",
        "cases": [
            {
                "name": "Hit 429 then back off and recover",
                "scenario": "fetch",
                "seeds": ["7777"],
                "faults": {"rate_429": 0.3, "latency_ms": 500, "latency_rate": 0.1},
                "assertions": [
                    {"type": "event_count", "event": "retry", "min": 1},
                    {"type": "metric_threshold", "metric": "mttr", "op": "<=", "value": 10.0},
                ],
            },
        ],
        "gate": {"score_min": 60},
    },
}


def list_suites() -> List[Dict[str, Any]]:
    return [
        {"key": key, "suite": data["suite"], "cases": len(data["cases"]), "score_min": data["gate"]["score_min"]}
        for key, data in BUILT_IN_SUITES.items()
    ]


def suite_from_dict(data: Mapping[str, Any]) -> EvalSuite:
    try:
        return EvalSuite.model_validate(dict(data))
    except ValidationError as e:
        raise SuiteLoadError(f"Invalid suite document: {e}") from e


def get_builtin_suite(key: str) -> EvalSuite:
    if key not in BUILT_IN_SUITES:
        raise SuiteLoadError(
            f"Unknown suite '{key}'. Available: {', '.join(BUILT_IN_SUITES)}"
        )
    return suite_from_dict(BUILT_IN_SUITES[key])


def parse_suite(text: str) -> EvalSuite:
    """Parse a suite from JSON or YAML text."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SuiteLoadError(f"Suite is neither JSON nor YAML: {e}") from e

    if not isinstance(data, dict):
        raise SuiteLoadError("Suite document must be a mapping")
    return suite_from_dict(data)


def load_suite(source: Union[str, Path]) -> EvalSuite:
    """Load a suite by built-in key or from a JSON/YAML file."""
    if isinstance(source, str) and source in BUILT_IN_SUITES:
        return get_builtin_suite(source)

    path = Path(source)
    if not path.exists():
        raise SuiteLoadError(f"Suite not found: {source}")

    logger.debug("Loading suite", path=str(path))
    return parse_suite(path.read_text(encoding="utf-8"))
