"""Health endpoint for the ODoH relay.

  GET /health — 503 before lifespan startup completes, 200 afterwards.

Only GET is routed here; a POST to ``/health/...`` is an ordinary relay
request (path-segment addressing with targethost ``health``).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from relay.config import Config

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Liveness / readiness check.

    Response body (200):
        {"status": "ok", "service": "odoh-relay", "endpoint": "<endpoint_name>"}

    Response body (503):
        {"status": "starting"}
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail={"status": "starting"})

    config: Config = request.app.state.config
    return {
        "status": "ok",
        "service": "odoh-relay",
        "endpoint": config.relay.endpoint_name,
    }
