"""Fetch -> extract -> summarize scenario."""

from __future__ import annotations

import html
import itertools
import re
from typing import Any, Dict, List

import structlog

from chaoslab.faults.network import FetchResponse
from chaoslab.scenarios.base import (
    ScenarioContext,
    ScenarioKind,
    ScenarioStepError,
    ScenarioStrategy,
    register_scenario,
)
from chaoslab.types import TraceStatus

logger = structlog.get_logger(__name__)

FALLBACK_HTML = (
    "<html><body><h1>Sample HTML</h1>"
    "<p>This is fallback content for testing.</p></body></html>"
)

_TAG_RE = re.compile(r"<[^>]+>")
_HEADING_RE = re.compile(r"<h([1-6])[^>]*>(.*?)</h\1>", re.IGNORECASE | re.DOTALL)
_PARAGRAPH_RE = re.compile(r"<p[^>]*>(.*?)</p>", re.IGNORECASE | re.DOTALL)


def _text(fragment: str) -> str:
    return " ".join(html.unescape(_TAG_RE.sub(" ", fragment)).split())


def extract_structure(page: str) -> Dict[str, Any]:
    """Headings and paragraphs of an HTML page."""
    headings = [_text(m.group(2)) for m in _HEADING_RE.finditer(page)]
    paragraphs = [_text(m.group(1)) for m in _PARAGRAPH_RE.finditer(page)]
    return {
        "title": headings[0] if headings else "",
        "headings": headings,
        "paragraphs": [p for p in paragraphs if p],
    }


def summarize(structure: Dict[str, Any], limit: int = 200) -> str:
    parts: List[str] = []
    if structure.get("title"):
        parts.append(structure["title"])
    parts.extend(structure.get("paragraphs", []))
    summary = ". ".join(parts)
    return summary if len(summary) <= limit else summary[: limit - 3].rstrip() + "..."


@register_scenario(ScenarioKind.FETCH)
class FetchScenario(ScenarioStrategy):
    """Fetch a page, extract its structure and summarize it."""

    description = "Fetch -> Extract -> Summarize"
    operation = "web.fetch"

    async def run(self, ctx: ScenarioContext) -> Dict[str, Any]:
        url = ctx.targets.fetch_url
        started = ctx.recorder.start()
        response = await ctx.network.fetch(url, ctx.seed, ctx.faults, attempt=0)
        fault = response.fault

        if not response.ok:
            fault_kind = fault or str(response.status)
            attempts = itertools.count(1)

            async def refetch() -> FetchResponse:
                retry = await ctx.network.fetch(url, ctx.seed, ctx.faults, attempt=next(attempts))
                if not retry.ok:
                    raise ScenarioStepError(f"HTTP {retry.status}")
                return retry

            result = await ctx.tripwire(self.operation).execute(refetch)
            if result.ok:
                ctx.recorder.end(
                    self.operation,
                    started,
                    TraceStatus.RECOVERED,
                    fault_kind=fault_kind,
                    action=f"retry({result.retries})",
                )
                page = result.value.body
            elif ctx.record_unrecovered(self.operation, started, fault_kind, result, note="cached html"):
                page = FALLBACK_HTML
            else:
                logger.warning("Fetch failed without fallback", url=url, error=result.error)
                return {"html": None, "error": result.error}
        else:
            ctx.recorder.end(
                self.operation,
                started,
                TraceStatus.OK,
                fault_kind=fault,
                note="fault_injected_but_recovered" if fault else None,
            )
            page = response.body

        started = ctx.recorder.start()
        structure = extract_structure(page)
        ctx.recorder.end("extract_structured", started, TraceStatus.OK)

        started = ctx.recorder.start()
        summary = summarize(structure)
        ctx.recorder.end("summarize", started, TraceStatus.OK)

        return {"html": page, "structure": structure, "summary": summary}
