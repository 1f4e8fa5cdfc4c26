"""ODoH relay dispatcher and route.

One inbound request moves through:

  RESOLVE → VALIDATE_METHOD → VALIDATE_HOST → VALIDATE_PATH →
  BUILD_REQUEST → AWAIT_UPSTREAM → BUILD_RESPONSE → DONE

with a single terminal ERROR reachable from any step:

  - not POST                   → 500 ``Only POST``       (upstream never called)
  - empty targethost           → 400 ``Missing targethost``
  - empty targetpath           → 400 ``Missing targetpath``
  - anything raised elsewhere  → 500 with the exception message

``relay_request()`` is the core: it raises ``RelayError`` for templated
failures and lets anything else propagate. ``relay_handler()`` is the hosting
boundary: it turns every failure into exactly one empty-bodied error response
carrying ``Proxy-Status: <endpoint>; error=http_request_error``. Nothing is
retried.

The only suspension points are the upstream send and, in BUFFERED mode, the
inbound body read. No state is shared between requests except the pooled
``httpx.AsyncClient`` owned by the application lifespan.
"""

from __future__ import annotations

import httpx
from fastapi import APIRouter, Request, Response

from relay.config import DEFAULT_CONNECT_TIMEOUT_S, DEFAULT_TIMEOUT_S, Config
from relay.constants import FIELD_TARGETHOST, FIELD_TARGETPATH, ODOH_METHOD
from relay.models.errors import (
    MissingField,
    RelayError,
    WrongMethod,
    build_error_response,
    describe_exception,
    error_response_for,
)
from relay.models.responses import RelayResponse
from relay.proxy.builders import build_request, build_response
from relay.proxy.target import resolve_target
from relay.utils.logger import (
    PerformanceLogger,
    bind_request_context,
    clear_request_context,
    get_logger,
)
from relay.utils.ulid import generate_ulid

logger = get_logger(__name__)

# ─── Router ───────────────────────────────────────────────────────────────────

router = APIRouter(tags=["relay"])

# ─── Constants ────────────────────────────────────────────────────────────────

POOL_MAX_CONNECTIONS: int = 100
POOL_MAX_KEEPALIVE: int = 100
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds

# Every verb reaches the handler so a non-POST gets the templated 500, not a 405.
RELAY_ROUTE_METHODS: list[str] = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"]


# ─── httpx.AsyncClient factory ────────────────────────────────────────────────


def create_http_client(
    timeout_s: float = DEFAULT_TIMEOUT_S,
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
) -> httpx.AsyncClient:
    """Create the shared upstream client.

    Created once at lifespan startup and stored in app.state.http_client.
    Redirects are off by default; ``relay_request()`` turns them on per send
    for the forward modes that can replay their body.
    """
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(timeout_s, connect=connect_timeout_s),
        follow_redirects=False,
    )


# ─── Dispatcher ───────────────────────────────────────────────────────────────


async def relay_request(
    request: Request,
    client: httpx.AsyncClient,
    endpoint_name: str,
) -> RelayResponse:
    """Relay one inbound ODoH request to its target and build the reply.

    Args:
        request:       Inbound request. Its body is read at most once.
        client:        Transport used for the single upstream call.
        endpoint_name: Name reported in Proxy-Status.

    Returns:
        RelayResponse streaming the upstream body back to the caller.

    Raises:
        WrongMethod:  Inbound verb is not POST.
        MissingField: targethost or targetpath could not be resolved.
        Exception:    Anything raised while building or sending; the caller
                      maps it to a 500.
    """
    target = resolve_target(request.url, request.scope.get("raw_path"))

    if request.method != ODOH_METHOD:
        raise WrongMethod(request.method)
    if not target.host:
        raise MissingField(FIELD_TARGETHOST)
    if not target.path:
        raise MissingField(FIELD_TARGETPATH)

    fwdreq = await build_request(target, request)

    with PerformanceLogger(
        "upstream_fetch",
        logger,
        target=target.url,
        mode=target.mode.name,
    ):
        upstream = await client.send(
            fwdreq,
            stream=True,
            follow_redirects=target.mode.follows_redirects,
        )

    try:
        response = build_response(target.mode, upstream, fwdreq, endpoint_name)
    except Exception:
        await upstream.aclose()
        raise

    logger.info(
        "request_relayed",
        mode=target.mode.name,
        target=target.url,
        status_code=upstream.status_code,
        redirects=len(upstream.history),
    )
    return response


# ─── Relay route ──────────────────────────────────────────────────────────────


@router.api_route("/{path:path}", methods=RELAY_ROUTE_METHODS)
async def relay_handler(request: Request) -> Response:
    """Catch-all relay entry point.

    Accepts both addressing forms:

      POST /dns-query?targethost=H&targetpath=P&fwd=M
      POST /H/P/M

    Returns:
        The relayed upstream response, or an empty-bodied error response.
    """
    config: Config = request.app.state.config
    http_client: httpx.AsyncClient = request.app.state.http_client
    endpoint_name = config.relay.endpoint_name

    bind_request_context(generate_ulid(), request.method, request.url.path)
    try:
        return await relay_request(request, http_client, endpoint_name)
    except RelayError as exc:
        logger.info(
            "relay_rejected",
            status_code=exc.status_code,
            reason=exc.message,
        )
        return error_response_for(exc, endpoint_name)
    except Exception as exc:
        status_text = describe_exception(exc)
        logger.error(
            "relay_failed",
            error=status_text,
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return build_error_response(500, status_text, endpoint_name)
    finally:
        clear_request_context()
