"""ChaosLab Eval Runner - run suites and gate on the overall score.

Provides:
- SeedRun / CaseReport / SuiteReport: structured eval outcomes
- EvalRunner: runs every case for every seed and applies the gate
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import structlog

from chaoslab.evals.assertions import AssertionResult, check_assertions
from chaoslab.evals.suites import EvalCase, EvalSuite, load_suite
from chaoslab.scenarios.base import ScenarioRunner
from chaoslab.scoring import passes_gate, round_half_up
from chaoslab.types import ScenarioMetrics

logger = structlog.get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SeedRun:
    """One chaos run of a case."""

    seed: str
    metrics: ScenarioMetrics
    assertions: List[AssertionResult] = field(default_factory=list)
    baseline: Optional[ScenarioMetrics] = None

    @property
    def passed(self) -> bool:
        return all(a.passed for a in self.assertions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seed": self.seed,
            "metrics": self.metrics.to_dict(),
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "assertions": [a.to_dict() for a in self.assertions],
            "pass": self.passed,
        }


@dataclass
class CaseReport:
    name: str
    scenario: str
    runs: List[SeedRun] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.runs)

    @property
    def score_avg(self) -> int:
        scores = [r.metrics.overall_score for r in self.runs]
        return round_half_up(sum(scores) / max(1, len(scores)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "scenario": self.scenario,
            "runs": [r.to_dict() for r in self.runs],
            "pass": self.passed,
            "score_avg": self.score_avg,
        }


@dataclass
class SuiteReport:
    suite: str
    score_min: float
    cases: List[CaseReport] = field(default_factory=list)
    started: str = ""
    finished: str = ""

    @property
    def overall_score(self) -> int:
        total = sum(c.score_avg for c in self.cases)
        return round_half_up(total / max(1, len(self.cases)))

    @property
    def passed_gate(self) -> bool:
        return passes_gate(self.overall_score, self.score_min)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suite": self.suite,
            "started": self.started,
            "finished": self.finished,
            "cases": [c.to_dict() for c in self.cases],
            "overall_score": self.overall_score,
            "score_min": self.score_min,
            "passed_gate": self.passed_gate,
        }


class EvalRunner:
    """Runs eval suites through a ScenarioRunner."""

    def __init__(self, runner: Optional[ScenarioRunner] = None):
        self.runner = runner or ScenarioRunner()

    async def run_case(self, case: EvalCase, include_baseline: bool = False) -> CaseReport:
        seeds = case.seeds or [self.runner.config.default_seed]
        report = CaseReport(name=case.display_name, scenario=case.scenario.value)

        for seed in seeds:
            baseline: Optional[ScenarioMetrics] = None
            if include_baseline:
                base = await self.runner.run(case.scenario, seed, chaos=False, tripwire=case.tripwire)
                baseline = base.metrics

            result = await self.runner.run(
                case.scenario,
                seed,
                chaos=True,
                faults=case.faults,
                tripwire=case.tripwire,
            )
            assertions = check_assertions(case.assertions, result.metrics, result.events, result.answers)
            run = SeedRun(seed=seed, metrics=result.metrics, assertions=assertions, baseline=baseline)
            report.runs.append(run)

            logger.info(
                "Eval case run",
                case=report.name,
                seed=seed,
                score=result.metrics.overall_score,
                passed=run.passed,
            )

        return report

    async def run_suite(self, suite: EvalSuite, include_baseline: bool = False) -> SuiteReport:
        report = SuiteReport(suite=suite.suite, score_min=suite.gate.score_min, started=_now())
        for case in suite.cases:
            report.cases.append(await self.run_case(case, include_baseline))
        report.finished = _now()

        logger.info(
            "Eval suite finished",
            suite=suite.suite,
            overall_score=report.overall_score,
            passed_gate=report.passed_gate,
        )
        return report

    async def run(self, source: Union[str, EvalSuite], include_baseline: bool = False) -> SuiteReport:
        """Run a suite given as an EvalSuite, a built-in key or a file path."""
        suite = source if isinstance(source, EvalSuite) else load_suite(source)
        return await self.run_suite(suite, include_baseline)
