"""JSON -> table scenario."""

from __future__ import annotations

import itertools
import json
from typing import Any, Dict, List

import structlog

from chaoslab.scenarios.base import (
    ScenarioContext,
    ScenarioKind,
    ScenarioStepError,
    ScenarioStrategy,
    register_scenario,
)
from chaoslab.types import FaultKind, TraceStatus

logger = structlog.get_logger(__name__)

FALLBACK_USERS: List[Dict[str, Any]] = [
    {"id": 1, "name": "Sample User", "email": "user@example.com"},
]


def parse_json_body(body: str) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        raise ScenarioStepError("malformed JSON body") from None


def format_table(data: Any) -> Dict[str, List[Any]]:
    """Columns and rows for a list of flat records."""
    records = data if isinstance(data, list) else [data]
    columns: List[str] = []
    for record in records:
        if isinstance(record, dict):
            for key in record:
                if key not in columns:
                    columns.append(key)

    rows = []
    for record in records:
        if isinstance(record, dict):
            rows.append([record.get(c) for c in columns])
        else:
            rows.append([record])
    return {"columns": columns, "rows": rows}


@register_scenario(ScenarioKind.JSON)
class JsonTableScenario(ScenarioStrategy):
    """Fetch JSON records and render them as a table."""

    description = "JSON -> Table"
    operation = "web.fetch"
    extract_operation = "extract_structured"

    async def run(self, ctx: ScenarioContext) -> Dict[str, Any]:
        url = ctx.targets.json_url
        started = ctx.recorder.start()
        response = await ctx.json_pipeline.fetch(url, ctx.seed, ctx.faults, attempt=0)
        fault = response.fault
        body = response.body

        try:
            data = parse_json_body(body)
        except ScenarioStepError:
            fault_kind = fault or FaultKind.MALFORMED_JSON.value
            clean = ctx.faults.model_copy(update={"malformed_rate": 0.0})
            attempts = itertools.count(1)

            async def reparse() -> Any:
                if not ctx.chaos:
                    return parse_json_body(body)
                retry = await ctx.json_pipeline.fetch(url, ctx.seed, clean, attempt=next(attempts))
                if not retry.ok:
                    raise ScenarioStepError(f"HTTP {retry.status}")
                return parse_json_body(retry.body)

            result = await ctx.tripwire(self.extract_operation).execute(reparse)
            if result.ok:
                data = result.value
                ctx.recorder.end(
                    self.extract_operation,
                    started,
                    TraceStatus.RECOVERED,
                    fault_kind=fault_kind,
                    action=f"retry({result.retries})",
                )
            elif ctx.record_unrecovered(self.extract_operation, started, fault_kind, result):
                data = FALLBACK_USERS
            else:
                logger.warning("JSON extraction failed without fallback", url=url, error=result.error)
                return {"data": None, "error": result.error}
        else:
            ctx.recorder.end(
                self.operation,
                started,
                TraceStatus.OK,
                fault_kind=fault,
                note="fault_injected_but_recovered" if fault else None,
            )

        started = ctx.recorder.start()
        table = format_table(data)
        ctx.recorder.end("format_table", started, TraceStatus.OK)

        return {"data": data, "table": table}
