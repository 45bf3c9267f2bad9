"""
ChaosLab API Routes

FastAPI routes for running scenarios, scoring traces and running evals.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chaoslab.evals import EvalRunner, get_builtin_suite, list_suites, suite_from_dict
from chaoslab.presets import UnknownPresetError, get_preset, list_presets
from chaoslab.scenarios import ScenarioRunner, ScenarioTimeoutError, UnknownScenarioError, list_scenarios
from chaoslab.scoring import compute_score
from chaoslab.types import ChaosLabError, FaultConfig, TripwireConfig

logger = structlog.get_logger(__name__)


# ==================== Request Models ====================

class RunRequest(BaseModel):
    """Request to run a scenario."""
    scenario: str = Field(..., description="fetch, json or rag")
    seed: Optional[str] = Field(default=None, description="Seed; the configured default when omitted")
    chaos: bool = True
    preset: Optional[str] = Field(default=None, description="Preset supplying faults and tripwire")
    faults: Optional[FaultConfig] = None
    tripwire: Optional[TripwireConfig] = None
    document: Optional[str] = Field(default=None, description="Document for the rag scenario")


class CompareRequest(BaseModel):
    """Request to run baseline and chaos back to back."""
    scenario: str
    seed: Optional[str] = None
    preset: Optional[str] = None
    faults: Optional[FaultConfig] = None
    tripwire: Optional[TripwireConfig] = None
    document: Optional[str] = None


class ScoreRequest(BaseModel):
    """Request to score an existing trace."""
    trace: List[Dict[str, Any]] = Field(default_factory=list)
    mttr_target_seconds: float = 30.0


class EvalRunRequest(BaseModel):
    """Request to run an eval suite, built-in or inline."""
    suite: Optional[str] = Field(default=None, description="Built-in suite key")
    document: Optional[Dict[str, Any]] = Field(default=None, description="Inline suite document")
    include_baseline: bool = False


def resolve_chaos(
    preset: Optional[str],
    faults: Optional[FaultConfig],
    tripwire: Optional[TripwireConfig],
) -> Tuple[Optional[FaultConfig], Optional[TripwireConfig]]:
    """Explicit faults/tripwire take precedence over the preset's."""
    if preset:
        bundle = get_preset(preset)
        return faults or bundle.faults, tripwire or bundle.tripwire
    return faults, tripwire


def _error_status(error: ChaosLabError) -> int:
    if isinstance(error, (UnknownScenarioError, UnknownPresetError)):
        return 404
    if isinstance(error, ScenarioTimeoutError):
        return 504
    return 400


# ==================== Route Setup Functions ====================

def setup_routes(app: FastAPI, runner: ScenarioRunner) -> None:
    """Setup all routes for the ChaosLab API."""
    eval_runner = EvalRunner(runner)

    @app.exception_handler(ChaosLabError)
    async def chaoslab_error_handler(request: Request, exc: ChaosLabError):
        logger.warning("Request rejected", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=_error_status(exc), content={"detail": str(exc)})

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"healthy": True, "default_seed": runner.config.default_seed}

    @app.get("/api/scenarios")
    async def scenarios():
        return {"scenarios": list_scenarios()}

    @app.get("/api/presets")
    async def presets():
        return {"presets": [get_preset(name).to_dict() for name in list_presets()]}

    @app.post("/api/run")
    async def run_scenario(request: RunRequest):
        """Run one scenario and return its trace, metrics and events."""
        faults, tripwire = resolve_chaos(request.preset, request.faults, request.tripwire)
        result = await runner.run(
            request.scenario,
            seed=request.seed,
            chaos=request.chaos,
            faults=faults,
            tripwire=tripwire,
            document=request.document,
        )
        return result.to_dict()

    @app.post("/api/compare")
    async def compare_scenario(request: CompareRequest):
        """Run baseline then chaos with the same seed."""
        faults, tripwire = resolve_chaos(request.preset, request.faults, request.tripwire)
        comparison = await runner.compare(
            request.scenario,
            seed=request.seed,
            faults=faults,
            tripwire=tripwire,
            document=request.document,
        )
        return comparison.to_dict()

    @app.post("/api/score")
    async def score_trace(request: ScoreRequest):
        """Score a trace document."""
        metrics = compute_score(request.trace, request.mttr_target_seconds)
        return metrics.to_dict()

    @app.get("/api/evals")
    async def evals():
        return {"suites": list_suites()}

    @app.post("/api/evals/run")
    async def run_evals(request: EvalRunRequest):
        """Run a suite and report the gate result."""
        if request.document is not None:
            suite = suite_from_dict(request.document)
        elif request.suite:
            suite = get_builtin_suite(request.suite)
        else:
            raise HTTPException(status_code=422, detail="Provide either 'suite' or 'document'")

        report = await eval_runner.run_suite(suite, include_baseline=request.include_baseline)
        return report.to_dict()