"""
ChaosLab Command Line Interface

Runs scenarios, comparisons, scoring and eval suites locally and prints
JSON results.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from chaoslab.config import ChaosLabConfig, get_config, set_config
from chaoslab.evals import EvalRunner, load_suite
from chaoslab.presets import get_preset, list_presets
from chaoslab.scenarios import ScenarioRunner
from chaoslab.scoring import compute_score
from chaoslab.types import ChaosLabError, FaultConfig, TripwireConfig


def _add_chaos_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("scenario", help="Scenario to run: fetch, json or rag")
    parser.add_argument("--seed", help="Seed (defaults to the configured seed)")
    parser.add_argument("--preset", help=f"Chaos preset: {', '.join(list_presets())}")
    parser.add_argument("--faults", type=json.loads, help="Fault settings as JSON")
    parser.add_argument("--tripwire", type=json.loads, help="Tripwire settings as JSON")
    parser.add_argument("--document", type=Path, help="Document file for the rag scenario")


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="chaoslab",
        description="ChaosLab - deterministic chaos testing for agent tool flows",
    )
    parser.add_argument("--config", type=Path, help="JSON configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run one scenario")
    _add_chaos_options(run_parser)
    run_parser.add_argument("--baseline", action="store_true", help="Run without faults")

    # Compare command
    compare_parser = subparsers.add_parser("compare", help="Run baseline and chaos")
    _add_chaos_options(compare_parser)

    # Score command
    score_parser = subparsers.add_parser("score", help="Score a trace JSON file")
    score_parser.add_argument("trace", type=Path, help="Trace file")
    score_parser.add_argument("--mttr-target", type=float, default=None, help="MTTR target in seconds")

    # Eval command
    eval_parser = subparsers.add_parser("eval", help="Run an eval suite")
    eval_parser.add_argument("suite", help="Built-in suite key or a JSON/YAML suite file")
    eval_parser.add_argument("--baseline", action="store_true", help="Also run baselines")
    eval_parser.add_argument("--strict", action="store_true", help="Exit non-zero when the gate fails")

    # Presets command
    subparsers.add_parser("presets", help="List chaos presets")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start the ChaosLab API server")
    server_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    server_parser.add_argument("--port", type=int, default=8000, help="Port")
    server_parser.add_argument("--reload", action="store_true", help="Auto-reload")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.config:
            set_config(ChaosLabConfig.from_file(args.config))
        config = get_config()

        if args.command == "server":
            from chaoslab.main import run_server
            run_server(host=args.host, port=args.port, reload=args.reload)
            return 0

        from chaoslab.main import setup_logging
        setup_logging(config.log_level.value, config.log_format)

        if args.command == "run":
            result = asyncio.run(cmd_run(config, args))
        elif args.command == "compare":
            result = asyncio.run(cmd_compare(config, args))
        elif args.command == "score":
            result = cmd_score(config, args.trace, args.mttr_target)
        elif args.command == "eval":
            result = asyncio.run(cmd_eval(config, args.suite, args.baseline))
        else:
            result = {"presets": [get_preset(name).to_dict() for name in list_presets()]}
    except (ChaosLabError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))

    if args.command == "eval" and args.strict and not result["passed_gate"]:
        return 2
    return 0


def _chaos_settings(args: argparse.Namespace) -> Dict[str, Any]:
    faults: Optional[FaultConfig] = None
    tripwire: Optional[TripwireConfig] = None
    if args.preset:
        preset = get_preset(args.preset)
        faults, tripwire = preset.faults, preset.tripwire
    if args.faults is not None:
        faults = FaultConfig.model_validate(args.faults)
    if args.tripwire is not None:
        tripwire = TripwireConfig.model_validate(args.tripwire)

    document = args.document.read_text(encoding="utf-8") if args.document else None
    return {"faults": faults, "tripwire": tripwire, "document": document}


async def cmd_run(config: ChaosLabConfig, args: argparse.Namespace) -> Dict[str, Any]:
    """Run one scenario."""
    runner = ScenarioRunner(config=config)
    result = await runner.run(
        args.scenario,
        seed=args.seed,
        chaos=not args.baseline,
        **_chaos_settings(args),
    )
    return result.to_dict()


async def cmd_compare(config: ChaosLabConfig, args: argparse.Namespace) -> Dict[str, Any]:
    """Run baseline and chaos with the same seed."""
    runner = ScenarioRunner(config=config)
    comparison = await runner.compare(args.scenario, seed=args.seed, **_chaos_settings(args))
    return comparison.to_dict()


def cmd_score(config: ChaosLabConfig, trace_path: Path, mttr_target: Optional[float]) -> Dict[str, Any]:
    """Score a trace file: a list of rows or an object with a "trace" list."""
    with open(trace_path) as f:
        data = json.load(f)

    rows = data.get("trace", data.get("rows", [])) if isinstance(data, dict) else data
    target = mttr_target if mttr_target is not None else config.scoring.mttr_target_seconds
    return compute_score(rows if isinstance(rows, list) else [], target).to_dict()


async def cmd_eval(config: ChaosLabConfig, suite: str, include_baseline: bool) -> Dict[str, Any]:
    """Run an eval suite."""
    runner = EvalRunner(ScenarioRunner(config=config))
    report = await runner.run_suite(load_suite(suite), include_baseline=include_baseline)
    return report.to_dict()


if __name__ == "__main__":
    sys.exit(main())
