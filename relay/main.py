"""ODoH relay FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()         → app.state.config
  2. create_http_client()  → app.state.http_client
  3. app.state.ready = True

Shutdown (reverse): app.state.ready = False → close the HTTP client.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from relay import __version__
from relay.config import Config, load_config
from relay.health import router as health_router
from relay.proxy.engine import create_http_client, router as engine_router
from relay.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def require_ready(request: Request) -> None:
    """FastAPI dependency: raises HTTP 503 if app.state.ready is not True."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail={"status": "starting"})


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown sequence."""
    logger.info("ODoH relay starting up...")

    # load_config() raises SystemExit on an invalid file, before ready=True.
    config: Config = load_config()
    app.state.config = config
    logger.info(
        "Config loaded",
        endpoint_name=config.relay.endpoint_name,
        timeout_s=config.relay.timeout_s,
    )

    http_client: httpx.AsyncClient = create_http_client(
        config.relay.timeout_s,
        config.relay.connect_timeout_s,
    )
    app.state.http_client = http_client
    logger.info(
        "HTTP relay client created",
        timeout_s=config.relay.timeout_s,
        connect_timeout_s=config.relay.connect_timeout_s,
    )

    app.state.ready = True
    logger.info("ODoH relay ready", endpoint_name=config.relay.endpoint_name)

    yield

    logger.info("ODoH relay shutting down...")
    app.state.ready = False

    try:
        await http_client.aclose()
        logger.info("HTTP relay client closed")
    except Exception as exc:
        logger.warning("HTTP relay client close error (non-fatal)", error=str(exc))

    logger.info("ODoH relay shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the relay FastAPI application.

    Call this function directly in tests to get an isolated app instance:
        app = create_app()

    Returns:
        Configured FastAPI application with lifespan and routers.
    """
    application = FastAPI(
        title="ODoH Relay",
        description="Oblivious DNS-over-HTTPS relay (RFC 9230)",
        version=__version__,
        lifespan=lifespan,
        # The catch-all relay route owns every path; no schema endpoints.
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    application.state.ready = False

    # health_router first: GET /health must win over the catch-all.
    application.include_router(health_router)
    application.include_router(engine_router, dependencies=[Depends(require_ready)])

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    return application


app = create_app()
