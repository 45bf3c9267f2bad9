"""Mini retrieval-augmented answering scenario."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from chaoslab.scenarios.base import (
    ScenarioContext,
    ScenarioKind,
    ScenarioStrategy,
    register_scenario,
)
from chaoslab.types import FaultKind, TraceStatus

DEMO_DOCUMENT = """# Demo Document

## What is MTTR?

MTTR (Mean Time To Recovery) is the average time it takes to restore service after a failure occurs. This is a key metric for measuring system resilience.

## Why use exponential backoff with jitter?

Exponential backoff with jitter helps prevent thundering herd problems by randomizing the delay between retries, making systems more resilient during high load situations."""


@dataclass(frozen=True)
class Question:
    text: str
    pattern: str


QUESTIONS: List[Question] = [
    Question("What is MTTR?", r"MTTR.+?recovery"),
    Question("Why backoff with jitter?", r"jitter.+?retries"),
]


def find_answer(document: str, pattern: str) -> Optional[str]:
    """Return the line of ``document`` that answers ``pattern``, if any."""
    match = re.search(pattern, document, re.IGNORECASE)
    if match is None:
        return None
    start = document.rfind("\n", 0, match.start()) + 1
    end = document.find("\n", match.end())
    return document[start:end if end != -1 else len(document)].strip()


@register_scenario(ScenarioKind.RAG)
class RagScenario(ScenarioStrategy):
    """Retrieve a document under context faults and answer built-in questions."""

    description = "Mini-RAG"

    async def run(self, ctx: ScenarioContext) -> Dict[str, Any]:
        document = ctx.document if ctx.document is not None else DEMO_DOCUMENT

        started = ctx.recorder.start()
        context = ctx.context_pipeline.apply(document, ctx.faults)
        faults = []
        if context.truncated:
            faults.append(FaultKind.CONTEXT_TRUNCATE.value)
        if FaultKind.INJECT.value in context.faults:
            faults.append(FaultKind.INJECT.value)
        ctx.recorder.end(
            "rag.retrieve",
            started,
            TraceStatus.OK,
            fault_kind=",".join(faults) or None,
            note=f"len={len(context.text)}",
        )

        for question in QUESTIONS:
            started = ctx.recorder.start()
            answer = find_answer(context.text, question.pattern)
            ctx.answers[question.text] = answer or ""
            ctx.recorder.end(
                "rag.answer",
                started,
                TraceStatus.OK if answer else TraceStatus.FAILED,
                note=question.text,
            )

        return {"text": context.text}
