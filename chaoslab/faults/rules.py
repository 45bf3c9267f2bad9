"""ChaosLab Fault Rules.

Every injected fault is a FaultRule evaluated by one pipeline runner:

- FaultRule: name (the fault tag), probability, and an async apply step
- FaultContext: mutable state threaded through one pipeline pass
- FaultPipeline: evaluates rules in order, tags the context and
  short-circuits when a rule produces a response
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import structlog

from chaoslab.events import ChaosEventSink, EventKind, ensure_sink
from chaoslab.rng import RandomSource, should_trigger
from chaoslab.types import FaultConfig

logger = structlog.get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class FaultContext:
    """State for one pass through a pipeline."""

    config: FaultConfig
    rand: RandomSource
    attempt: int = 0
    url: str = ""
    body: Optional[str] = None
    sleep: Sleeper = asyncio.sleep

    fault: Optional[str] = None
    applied: List[str] = field(default_factory=list)
    response: Any = None

    def tag(self, name: str, override: bool = True) -> None:
        """Record ``name`` as applied; set it as the fault tag when allowed."""
        self.applied.append(name)
        if override or self.fault is None:
            self.fault = name

    @property
    def short_circuited(self) -> bool:
        return self.response is not None


class FaultRule(ABC):
    """A single injectable fault.

    ``override_tag`` controls whether the rule replaces a tag set by an
    earlier rule or only fills an empty one.
    """

    name: str = ""
    override_tag: bool = True

    @abstractmethod
    def probability(self, config: FaultConfig) -> float:
        """Chance that the rule fires under ``config``."""
        pass

    def armed(self, ctx: FaultContext) -> bool:
        """Whether a draw should be taken at all."""
        return self.probability(ctx.config) > 0

    def triggers(self, ctx: FaultContext) -> bool:
        # Unarmed rules take no draw so the stream stays aligned.
        if not self.armed(ctx):
            return False
        return should_trigger(self.probability(ctx.config), ctx.rand())

    @abstractmethod
    async def apply(self, ctx: FaultContext) -> None:
        """Inject the fault into ``ctx``."""
        pass

    def describe(self, ctx: FaultContext) -> Dict[str, Any]:
        return {"type": self.name}


class FaultPipeline:
    """Runs an ordered list of fault rules over a context."""

    def __init__(
        self,
        tag: str,
        rules: Sequence[FaultRule],
        event_sink: Optional[ChaosEventSink] = None,
    ) -> None:
        self.tag = tag
        self.rules = list(rules)
        self.event_sink = ensure_sink(event_sink)

    async def run(self, ctx: FaultContext) -> FaultContext:
        for rule in self.rules:
            if not rule.triggers(ctx):
                continue

            await rule.apply(ctx)
            ctx.tag(rule.name, override=rule.override_tag)
            self.event_sink.record(EventKind.FAULT, rule.describe(ctx))
            logger.debug(
                "Fault injected",
                pipeline=self.tag,
                fault=rule.name,
                attempt=ctx.attempt,
            )

            if ctx.short_circuited:
                break

        return ctx
