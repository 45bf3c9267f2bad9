"""ChaosLab scenarios.

Importing this package registers the built-in strategies.
"""

from chaoslab.scenarios.base import (
    ComparisonResult,
    ScenarioContext,
    ScenarioKind,
    ScenarioResult,
    ScenarioRunner,
    ScenarioStepError,
    ScenarioStrategy,
    ScenarioTimeoutError,
    UnknownScenarioError,
    get_scenario,
    list_scenarios,
    register_scenario,
)
from chaoslab.scenarios.fetch import FetchScenario
from chaoslab.scenarios.json_table import JsonTableScenario
from chaoslab.scenarios.rag import DEMO_DOCUMENT, RagScenario

__all__ = [
    "ComparisonResult",
    "ScenarioContext",
    "ScenarioKind",
    "ScenarioResult",
    "ScenarioRunner",
    "ScenarioStepError",
    "ScenarioStrategy",
    "ScenarioTimeoutError",
    "UnknownScenarioError",
    "get_scenario",
    "list_scenarios",
    "register_scenario",
    "FetchScenario",
    "JsonTableScenario",
    "RagScenario",
    "DEMO_DOCUMENT",
]
