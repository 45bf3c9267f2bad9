"""ChaosLab Network Fault Pipelines.

Provides:
- FetchResponse: transport-neutral response carrying the fault tag
- FetchTransport / HttpxTransport: the real network primitive
- NetworkFaultPipeline: tool-unavailable, latency, 500 and 429 faults
  in front of a real fetch, with transport failures normalised to 502
- JsonFaultPipeline: network pipeline plus malformed-body mutation

Each pass draws from its own stream keyed by seed, pipeline tag and
attempt number, so retries see fresh but reproducible decisions.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

import httpx
import structlog

from chaoslab.events import ChaosEventSink, EventKind, ensure_sink
from chaoslab.faults.rules import FaultContext, FaultPipeline, FaultRule, Sleeper
from chaoslab.rng import derive_seed, seeded
from chaoslab.types import FaultConfig, FaultKind

logger = structlog.get_logger(__name__)

FAULT_HEADER = "x-chaos-fault"
USER_AGENT = "ChaosLab/1.0"

NETWORK_TAG = "cfetch"
JSON_TAG = "cjson"


@dataclass
class FetchResponse:
    """Response returned by the fault pipelines."""

    status: int
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def fault(self) -> Optional[str]:
        return self.headers.get(FAULT_HEADER)

    def with_fault(self, fault: Optional[str]) -> "FetchResponse":
        if not fault:
            return self
        return replace(self, headers={**self.headers, FAULT_HEADER: fault})

    def json(self) -> Any:
        return json.loads(self.body)

    @classmethod
    def synthetic(cls, status: int, fault: str, url: str = "", body: str = "") -> "FetchResponse":
        return cls(status=status, body=body, headers={FAULT_HEADER: fault}, url=url)

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "FetchResponse":
        return cls(
            status=response.status_code,
            body=response.text,
            headers={k.lower(): v for k, v in response.headers.items()},
            url=str(response.request.url) if response.request is not None else "",
        )


class FetchTransport(ABC):
    """Network call primitive: ``url -> FetchResponse`` or raise."""

    @abstractmethod
    async def fetch(self, url: str) -> FetchResponse:
        pass

    async def aclose(self) -> None:
        return None


class HttpxTransport(FetchTransport):
    """Fetches over httpx.

    Uses the supplied client when given; otherwise opens a short-lived
    client per request.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        user_agent: str = USER_AGENT,
    ) -> None:
        self._client = client
        self.timeout = timeout
        self.user_agent = user_agent

    async def fetch(self, url: str) -> FetchResponse:
        headers = {"user-agent": self.user_agent}
        if self._client is not None:
            response = await self._client.get(url, headers=headers, follow_redirects=True)
            return FetchResponse.from_httpx(response)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url, headers=headers, follow_redirects=True)
            return FetchResponse.from_httpx(response)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()


# -- Rules --


class ToolUnavailableRule(FaultRule):
    """Tool refuses the first ``tool_unavailable_steps`` attempts with a 503.

    Attempts are counted per step: the initial call is attempt 0 and the
    tripwire numbers its calls from 1, so its retries see the 503 too until
    the attempt number reaches ``tool_unavailable_steps``.
    """

    name = FaultKind.TOOL_UNAVAILABLE.value

    def probability(self, config: FaultConfig) -> float:
        return 1.0 if config.tool_unavailable_steps > 0 else 0.0

    def triggers(self, ctx: FaultContext) -> bool:
        return ctx.attempt < ctx.config.tool_unavailable_steps

    async def apply(self, ctx: FaultContext) -> None:
        ctx.response = FetchResponse.synthetic(503, self.name, url=ctx.url)

    def describe(self, ctx: FaultContext) -> Dict[str, Any]:
        return {"type": self.name, "attempt": ctx.attempt}


class LatencySpikeRule(FaultRule):
    name = FaultKind.LATENCY_SPIKE.value

    def probability(self, config: FaultConfig) -> float:
        return config.latency_rate

    def armed(self, ctx: FaultContext) -> bool:
        return ctx.config.latency_ms > 0 and ctx.config.latency_rate > 0

    async def apply(self, ctx: FaultContext) -> None:
        await ctx.sleep(ctx.config.latency_ms / 1000.0)

    def describe(self, ctx: FaultContext) -> Dict[str, Any]:
        return {"type": "latency", "delay_ms": ctx.config.latency_ms}


class Http500Rule(FaultRule):
    name = FaultKind.HTTP_500.value

    def probability(self, config: FaultConfig) -> float:
        return config.http_500_rate

    async def apply(self, ctx: FaultContext) -> None:
        ctx.response = FetchResponse.synthetic(500, self.name, url=ctx.url)

    def describe(self, ctx: FaultContext) -> Dict[str, Any]:
        return {"type": "500"}


class RateLimit429Rule(FaultRule):
    name = FaultKind.RATE_LIMIT_429.value

    def probability(self, config: FaultConfig) -> float:
        return config.rate_429

    async def apply(self, ctx: FaultContext) -> None:
        ctx.response = FetchResponse.synthetic(429, self.name, url=ctx.url)

    def describe(self, ctx: FaultContext) -> Dict[str, Any]:
        return {"type": "429"}


class MalformedJsonRule(FaultRule):
    """Toggles the closing brace of the body.

    The body is mutated whenever the draw fires, but the tag only fills an
    empty slot: a body already tagged by a network fault stays tagged with
    that earlier fault.
    """

    name = FaultKind.MALFORMED_JSON.value
    override_tag = False

    def probability(self, config: FaultConfig) -> float:
        return config.malformed_rate

    async def apply(self, ctx: FaultContext) -> None:
        ctx.body = toggle_closing_brace(ctx.body or "")


def toggle_closing_brace(text: str) -> str:
    text = text.strip()
    return text[:-1] if text.endswith("}") else text + "}"


# -- Pipelines --


class NetworkFaultPipeline:
    """Network-fetch pipeline."""

    def __init__(
        self,
        transport: Optional[FetchTransport] = None,
        sleep: Optional[Sleeper] = None,
        event_sink: Optional[ChaosEventSink] = None,
    ) -> None:
        self.transport = transport or HttpxTransport()
        self._sleep = sleep or asyncio.sleep
        self.event_sink = ensure_sink(event_sink)
        self._pipeline = FaultPipeline(
            NETWORK_TAG,
            [ToolUnavailableRule(), LatencySpikeRule(), Http500Rule(), RateLimit429Rule()],
            event_sink=self.event_sink,
        )

    async def fetch(
        self,
        url: str,
        seed: str,
        config: FaultConfig,
        attempt: int = 0,
    ) -> FetchResponse:
        ctx = FaultContext(
            config=config,
            rand=seeded(derive_seed(seed, NETWORK_TAG, attempt)),
            attempt=attempt,
            url=url,
            sleep=self._sleep,
        )
        await self._pipeline.run(ctx)

        if ctx.short_circuited:
            logger.info("Request short-circuited", url=url, fault=ctx.fault, attempt=attempt)
            return ctx.response

        try:
            response = await self.transport.fetch(url)
        except Exception as e:
            logger.warning("Transport failure", url=url, attempt=attempt, error=str(e))
            ctx.tag(FaultKind.NETWORK_ERROR.value)
            self.event_sink.record(EventKind.FAULT, {
                "type": FaultKind.NETWORK_ERROR.value,
                "error": str(e),
            })
            return FetchResponse.synthetic(502, ctx.fault, url=url, body=str(e))

        return response.with_fault(ctx.fault)


class JsonFaultPipeline:
    """JSON-body pipeline layered on the network pipeline."""

    def __init__(
        self,
        network: Optional[NetworkFaultPipeline] = None,
        event_sink: Optional[ChaosEventSink] = None,
    ) -> None:
        self.network = network or NetworkFaultPipeline(event_sink=event_sink)
        self.event_sink = ensure_sink(event_sink) if event_sink is not None else self.network.event_sink
        self._pipeline = FaultPipeline(JSON_TAG, [MalformedJsonRule()], event_sink=self.event_sink)

    async def fetch(
        self,
        url: str,
        seed: str,
        config: FaultConfig,
        attempt: int = 0,
    ) -> FetchResponse:
        response = await self.network.fetch(url, seed, config, attempt)

        ctx = FaultContext(
            config=config,
            rand=seeded(derive_seed(seed, JSON_TAG, attempt)),
            attempt=attempt,
            url=url,
            body=response.body,
        )
        ctx.fault = response.fault
        await self._pipeline.run(ctx)

        result = FetchResponse(
            status=response.status,
            body=ctx.body or "",
            headers={"content-type": "application/json"},
            url=response.url or url,
        )
        return result.with_fault(ctx.fault)


async def network_fetch_with_faults(
    url: str,
    seed: str,
    config: FaultConfig,
    attempt: int = 0,
    *,
    transport: Optional[FetchTransport] = None,
    sleep: Optional[Sleeper] = None,
    event_sink: Optional[ChaosEventSink] = None,
) -> FetchResponse:
    """Fetch ``url`` through the network fault pipeline."""
    pipeline = NetworkFaultPipeline(transport=transport, sleep=sleep, event_sink=event_sink)
    return await pipeline.fetch(url, seed, config, attempt)


async def json_fetch_with_faults(
    url: str,
    seed: str,
    config: FaultConfig,
    attempt: int = 0,
    *,
    transport: Optional[FetchTransport] = None,
    sleep: Optional[Sleeper] = None,
    event_sink: Optional[ChaosEventSink] = None,
) -> FetchResponse:
    """Fetch ``url`` through the JSON-body pipeline; the body may be malformed."""
    network = NetworkFaultPipeline(transport=transport, sleep=sleep, event_sink=event_sink)
    return await JsonFaultPipeline(network=network).fetch(url, seed, config, attempt)
