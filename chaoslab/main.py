"""
ChaosLab - deterministic chaos testing for agent tool flows

Main entry point for the HTTP API.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chaoslab import __version__
from chaoslab.api.routes import setup_routes
from chaoslab.config import ChaosLabConfig, get_config, set_config
from chaoslab.faults.network import FetchTransport
from chaoslab.scenarios import ScenarioRunner


# Configure structured logging
def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    renderer = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


def create_app(
    config: Optional[ChaosLabConfig] = None,
    transport: Optional[FetchTransport] = None,
) -> FastAPI:
    """
    Create and configure the ChaosLab FastAPI application.

    Args:
        config: Optional configuration override
        transport: Optional network primitive used instead of httpx

    Returns:
        Configured FastAPI application
    """
    if config:
        set_config(config)
    else:
        config = get_config()

    setup_logging(config.log_level.value, config.log_format)

    app = FastAPI(
        title="ChaosLab",
        description="""
        Deterministic fault injection, retry orchestration and resilience
        scoring for small network-backed tool flows.
        """,
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_routes(app, ScenarioRunner(config=config, transport=transport))
    logger.info("ChaosLab API ready", version=__version__)
    return app


def run_server(
    host: str = "127.0.0.1",
    port: int = 8000,
    reload: bool = False,
) -> None:
    """
    Run the ChaosLab server.

    Args:
        host: Host to bind to
        port: Port to bind to
        reload: Enable auto-reload for development
    """
    config = get_config()
    config.host = host
    config.port = port
    set_config(config)

    uvicorn.run(
        "chaoslab.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=config.log_level.value.lower(),
    )


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="ChaosLab API server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    run_server(host=args.host, port=args.port, reload=args.reload)
