"""Assertion checks for eval cases."""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from chaoslab.evals.suites import AssertionType, SuiteAssertion
from chaoslab.types import ScenarioMetrics

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "==": operator.eq,
}

_METRIC_ALIASES = {
    "mttr": "mttr_seconds",
    "mttr_s": "mttr_seconds",
    "score": "overall_score",
}


@dataclass
class AssertionResult:
    kind: str
    passed: bool
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "pass": self.passed, **self.details}


def metric_value(metrics: ScenarioMetrics, name: str) -> Optional[float]:
    value = metrics.to_dict().get(_METRIC_ALIASES.get(name, name))
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def compare(value: float, op: str, target: float) -> bool:
    fn = _OPERATORS.get(op)
    return bool(fn(value, target)) if fn else False


def check_assertion(
    assertion: SuiteAssertion,
    metrics: ScenarioMetrics,
    events: List[Mapping[str, Any]],
    answers: Mapping[str, str],
) -> AssertionResult:
    if assertion.type == AssertionType.METRIC_THRESHOLD:
        value = metric_value(metrics, assertion.metric or "")
        passed = (
            value is not None
            and assertion.value is not None
            and compare(value, assertion.op or ">=", assertion.value)
        )
        return AssertionResult("metric", passed, {
            "metric": assertion.metric,
            "op": assertion.op,
            "target": assertion.value,
            "got": value,
        })

    if assertion.type == AssertionType.EVENT_COUNT:
        wanted = str(assertion.event or "").lower()
        count = sum(1 for e in events if str(e.get("type", "")).lower() == wanted)
        return AssertionResult("events", count >= assertion.min, {
            "event": assertion.event,
            "count": count,
            "min": assertion.min,
        })

    # answer_match checks the first question only
    expectation = assertion.questions[0] if assertion.questions else None
    question = expectation.q if expectation else ""
    answer = answers.get(question, "")
    passed = True
    if expectation and expectation.expect_regex:
        try:
            passed = re.search(expectation.expect_regex, answer, re.IGNORECASE) is not None
        except re.error:
            # an unusable pattern does not fail the case
            passed = True
    return AssertionResult("answer", passed, {
        "question": question,
        "excerpt": answer[:160],
    })


def check_assertions(
    assertions: List[SuiteAssertion],
    metrics: ScenarioMetrics,
    events: List[Mapping[str, Any]],
    answers: Mapping[str, str],
) -> List[AssertionResult]:
    return [check_assertion(a, metrics, events, answers) for a in assertions]
