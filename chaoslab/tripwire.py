"""ChaosLab Tripwire.

Retry/backoff/loop-arrest orchestration around a single fallible operation.

Provides:
- Tripwire: sequential attempts with seeded, jittered exponential backoff
- TripwireResult: outcome of one orchestrated operation
- LoopArrestSignal: raised by an operation to stop retrying immediately
- run_with_tripwire: functional entry point
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import structlog

from chaoslab.events import ChaosEventSink, EventKind, ensure_sink
from chaoslab.faults.rules import Sleeper
from chaoslab.rng import jittered_delay, seeded
from chaoslab.types import ChaosLabError, TripwireConfig

logger = structlog.get_logger(__name__)

Operation = Callable[[], Union[Any, Awaitable[Any]]]


class LoopArrestSignal(ChaosLabError):
    """Raised by an operation to stop the tripwire without further attempts."""
    pass


@dataclass
class TripwireResult:
    """Outcome of an orchestrated operation."""

    ok: bool
    value: Any = None
    retries: int = 0
    arrested: bool = False
    attempts: int = 0
    delays_ms: List[int] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        return not self.ok and not self.arrested

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "retries": self.retries,
            "arrested": self.arrested,
            "attempts": self.attempts,
            "delays_ms": list(self.delays_ms),
            "error": self.error,
        }


class Tripwire:
    """
    Retry orchestrator for one logical step.

    Attempts run strictly one after another. Backoff delays are drawn from
    the stream ``seed + ":tw"``, so a given seed always waits the same way.
    Any ``Exception`` other than LoopArrestSignal is retryable;
    cancellation is never swallowed.
    """

    def __init__(
        self,
        operation_id: str,
        config: Optional[TripwireConfig] = None,
        seed: str = "",
        sleep: Optional[Sleeper] = None,
        event_sink: Optional[ChaosEventSink] = None,
    ):
        self.operation_id = operation_id
        self.config = config or TripwireConfig()
        self.seed = seed
        self._sleep = sleep or asyncio.sleep
        self.event_sink = ensure_sink(event_sink)

        self._calls = 0
        self._total_retries = 0
        self._successful_retries = 0
        self._exhausted = 0
        self._arrested = 0

    async def _invoke(self, operation: Operation) -> Any:
        result = operation()
        if asyncio.iscoroutine(result) or asyncio.isfuture(result):
            result = await result
        return result

    async def execute(self, operation: Operation) -> TripwireResult:
        """Run ``operation`` under the configured policy."""
        self._calls += 1

        if not self.config.enabled:
            return await self._execute_once(operation)

        cfg = self.config
        rand = seeded(f"{self.seed}:tw")
        retries = 0
        delays: List[int] = []
        last_fingerprint: Optional[Tuple[str, str]] = None
        streak = 0

        for attempt in range(cfg.max_retries + 1):
            try:
                value = await self._invoke(operation)
            except LoopArrestSignal as e:
                return self._arrest(retries, attempt + 1, delays, str(e), reason="signal")
            except Exception as e:
                fingerprint = (type(e).__name__, str(e))
                streak = streak + 1 if fingerprint == last_fingerprint else 1
                last_fingerprint = fingerprint

                if cfg.loop_arrest_n > 0 and streak >= cfg.loop_arrest_n:
                    return self._arrest(
                        retries, attempt + 1, delays, str(e),
                        reason="identical_failures", streak=streak,
                    )

                if attempt >= cfg.max_retries:
                    self._exhausted += 1
                    logger.warning(
                        "Retries exhausted",
                        operation=self.operation_id,
                        attempts=attempt + 1,
                        error=str(e),
                    )
                    return TripwireResult(
                        ok=False,
                        retries=retries,
                        attempts=attempt + 1,
                        delays_ms=delays,
                        error=str(e),
                    )

                delay = jittered_delay(
                    cfg.backoff_base_ms,
                    cfg.backoff_factor,
                    attempt,
                    cfg.jitter_fraction,
                    rand,
                )
                delays.append(delay)
                self.event_sink.record(EventKind.RETRY, {
                    "operation": self.operation_id,
                    "attempts": attempt + 1,
                    "backoff_ms": delay,
                })
                logger.warning(
                    f"Retry attempt {attempt + 1}/{cfg.max_retries}",
                    operation=self.operation_id,
                    error=str(e),
                    delay_ms=delay,
                )

                await self._sleep(delay / 1000.0)
                retries += 1
                self._total_retries += 1
            else:
                if retries > 0:
                    self._successful_retries += 1
                    self.event_sink.record(EventKind.RECOVERED, {
                        "operation": self.operation_id,
                        "action": f"retry({retries})",
                    })
                    logger.info(
                        "Retry succeeded",
                        operation=self.operation_id,
                        retries=retries,
                    )
                return TripwireResult(
                    ok=True,
                    value=value,
                    retries=retries,
                    attempts=attempt + 1,
                    delays_ms=delays,
                )

        # max_retries >= 0, so the loop always returns
        raise AssertionError("unreachable")

    async def _execute_once(self, operation: Operation) -> TripwireResult:
        try:
            value = await self._invoke(operation)
        except Exception as e:
            logger.info("Tripwire disabled, step failed", operation=self.operation_id, error=str(e))
            return TripwireResult(ok=False, attempts=1, error=str(e))
        return TripwireResult(ok=True, value=value, attempts=1)

    def _arrest(
        self,
        retries: int,
        attempts: int,
        delays: List[int],
        error: str,
        reason: str,
        streak: int = 0,
    ) -> TripwireResult:
        self._arrested += 1
        data: Dict[str, Any] = {"operation": self.operation_id, "reason": reason}
        if streak:
            data["identical_failures"] = streak
        self.event_sink.record(EventKind.LOOP_ARREST, data)
        logger.warning("Loop arrested", attempts=attempts, error=error, **data)
        return TripwireResult(
            ok=False,
            retries=retries,
            arrested=True,
            attempts=attempts,
            delays_ms=delays,
            error=error,
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "operation": self.operation_id,
            "calls": self._calls,
            "total_retries": self._total_retries,
            "successful_retries": self._successful_retries,
            "exhausted": self._exhausted,
            "arrested": self._arrested,
        }


async def run_with_tripwire(
    operation_id: str,
    operation: Operation,
    config: Optional[TripwireConfig] = None,
    seed: str = "",
    *,
    sleep: Optional[Sleeper] = None,
    event_sink: Optional[ChaosEventSink] = None,
) -> TripwireResult:
    """Run ``operation`` through a one-off Tripwire."""
    tripwire = Tripwire(operation_id, config=config, seed=seed, sleep=sleep, event_sink=event_sink)
    return await tripwire.execute(operation)
