"""ChaosLab fault pipelines."""

from chaoslab.faults.context import (
    ContextFaultPipeline,
    ContextResult,
    apply_context_faults,
    injection_marker,
)
from chaoslab.faults.network import (
    FAULT_HEADER,
    FetchResponse,
    FetchTransport,
    HttpxTransport,
    JsonFaultPipeline,
    NetworkFaultPipeline,
    json_fetch_with_faults,
    network_fetch_with_faults,
)
from chaoslab.faults.rules import FaultContext, FaultPipeline, FaultRule

__all__ = [
    "ContextFaultPipeline",
    "ContextResult",
    "apply_context_faults",
    "injection_marker",
    "FAULT_HEADER",
    "FetchResponse",
    "FetchTransport",
    "HttpxTransport",
    "JsonFaultPipeline",
    "NetworkFaultPipeline",
    "json_fetch_with_faults",
    "network_fetch_with_faults",
    "FaultContext",
    "FaultPipeline",
    "FaultRule",
]
