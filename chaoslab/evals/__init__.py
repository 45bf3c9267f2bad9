"""ChaosLab eval suites."""

from chaoslab.evals.assertions import AssertionResult, check_assertion, check_assertions
from chaoslab.evals.runner import CaseReport, EvalRunner, SeedRun, SuiteReport
from chaoslab.evals.suites import (
    BUILT_IN_SUITES,
    EvalCase,
    EvalSuite,
    SuiteAssertion,
    SuiteLoadError,
    get_builtin_suite,
    list_suites,
    load_suite,
    parse_suite,
    suite_from_dict,
)

__all__ = [
    "AssertionResult",
    "check_assertion",
    "check_assertions",
    "CaseReport",
    "EvalRunner",
    "SeedRun",
    "SuiteReport",
    "BUILT_IN_SUITES",
    "EvalCase",
    "EvalSuite",
    "SuiteAssertion",
    "SuiteLoadError",
    "get_builtin_suite",
    "list_suites",
    "load_suite",
    "parse_suite",
    "suite_from_dict",
]
