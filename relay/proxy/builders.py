"""Outgoing request and final response builders for the ODoH relay.

Request builders, one per forward mode. All target ``https://{host}{path}``
with POST:

  STREAMED (default)  Inbound body passed through as a stream. Fresh header
                      set: ODoH policy plus the inbound Content-Length;
                      a chunked body is left for the transport to re-chunk.
  CLONED              Inbound request cloned: headers and body stream kept
                      verbatim (Host is re-derived from the target URL). The
                      body is left for the transport to consume.
  BUFFERED            Inbound body read fully into memory first. Fresh header
                      set with Content-Length from the buffered length.

The inbound body is read exactly once in every mode: by the transport in
STREAMED and CLONED, by ``build_buffered_request()`` in BUFFERED.

Response builders, paired with the mode:

  STREAMED, BUFFERED  build_rewrite_response(): every upstream header renamed
                      into the ``x-`` namespace, see headers.py.
  CLONED              build_cloned_response(): upstream headers kept as-is,
                      Proxy-Status and ``x-fwdreq-*`` set on top.

Both keep the upstream status code and status text and relay the upstream body
bytes untouched; the upstream response is closed once the body is sent.
"""

from __future__ import annotations

from typing import AsyncIterator

import httpx
from starlette.background import BackgroundTask
from starlette.datastructures import MutableHeaders
from starlette.requests import Request

from relay.constants import ODOH_METHOD
from relay.models.responses import RelayResponse
from relay.proxy.headers import (
    build_forward_headers,
    fwdreq_headers,
    proxy_status,
    rewrite_response_headers,
    streamed_content_length,
)
from relay.proxy.target import ForwardMode, ResolvedTarget

# Derived by httpx from the target URL; the relay's own Host must not leak.
_HOST_HEADER: str = "host"


class ReplayableBody:
    """Inbound body handed to the transport lazily, replayable once drained.

    The first iteration pulls from the inbound stream and records each chunk;
    later iterations (a 307/308 redirect being followed) replay the record.
    Iterating again before the first pass finished raises StreamConsumed.
    """

    def __init__(self, source: AsyncIterator[bytes]) -> None:
        self._source = source
        self._chunks: list[bytes] = []
        self._started = False
        self._drained = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._drained:
            for chunk in self._chunks:
                yield chunk
            return
        if self._started:
            raise httpx.StreamConsumed()
        self._started = True
        async for chunk in self._source:
            self._chunks.append(chunk)
            yield chunk
        self._drained = True


# ─── Request builders ─────────────────────────────────────────────────────────


def build_streamed_request(target: ResolvedTarget, request: Request) -> httpx.Request:
    """Outgoing request whose body is the inbound stream, unbuffered."""
    length = streamed_content_length(
        request.headers.get("content-length"),
        request.headers.get("transfer-encoding"),
    )
    return httpx.Request(
        ODOH_METHOD,
        target.url,
        headers=build_forward_headers(length),
        content=request.stream(),
    )


def build_cloned_request(target: ResolvedTarget, request: Request) -> httpx.Request:
    """Outgoing request cloned from the inbound one, method forced to POST.

    No policy headers are added: the inbound header list (duplicates included)
    goes out unchanged apart from Host. The body is wrapped, not read, so the
    transport can replay it when following a redirect.
    """
    headers = [
        (name, value)
        for name, value in request.headers.items()
        if name.lower() != _HOST_HEADER
    ]
    return httpx.Request(
        ODOH_METHOD,
        target.url,
        headers=headers,
        content=ReplayableBody(request.stream()),
    )


async def build_buffered_request(target: ResolvedTarget, request: Request) -> httpx.Request:
    """Outgoing request built from the fully buffered inbound body.

    Replayable, so the transport can follow redirects without re-reading the
    inbound stream.
    """
    body: bytes = await request.body()
    return httpx.Request(
        ODOH_METHOD,
        target.url,
        headers=build_forward_headers(str(len(body))),
        content=body,
    )


async def build_request(target: ResolvedTarget, request: Request) -> httpx.Request:
    """Select and run the request builder for ``target.mode``."""
    if target.mode is ForwardMode.BUFFERED:
        return await build_buffered_request(target, request)
    if target.mode is ForwardMode.CLONED:
        return build_cloned_request(target, request)
    return build_streamed_request(target, request)


# ─── Response builders ────────────────────────────────────────────────────────


def build_rewrite_response(
    upstream: httpx.Response,
    fwdreq: httpx.Request,
    endpoint_name: str,
) -> RelayResponse:
    """Annotated-rewrite response: only ``x-*`` copies, Content-Type and Proxy-Status."""
    headers = rewrite_response_headers(
        upstream.headers.items(),
        fwdreq.headers.items(),
        endpoint_name,
        upstream.status_code,
    )
    return RelayResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        status_text=upstream.reason_phrase,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )


def build_cloned_response(
    upstream: httpx.Response,
    fwdreq: httpx.Request,
    endpoint_name: str,
) -> RelayResponse:
    """Selective-clone response: upstream headers kept, annotations added.

    No upstream header is removed or renamed. Proxy-Status and each
    ``x-fwdreq-{name}`` replace any upstream header of the same name.
    """
    headers = MutableHeaders(
        raw=[
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, value in upstream.headers.multi_items()
        ]
    )
    annotations = {
        **proxy_status(endpoint_name, upstream.status_code),
        **fwdreq_headers(fwdreq.headers.items()),
    }
    for name, value in annotations.items():
        headers[name] = value
    return RelayResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        status_text=upstream.reason_phrase,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )


def build_response(
    mode: ForwardMode,
    upstream: httpx.Response,
    fwdreq: httpx.Request,
    endpoint_name: str,
) -> RelayResponse:
    """Select the response builder paired with ``mode``."""
    if mode is ForwardMode.CLONED:
        return build_cloned_response(upstream, fwdreq, endpoint_name)
    return build_rewrite_response(upstream, fwdreq, endpoint_name)
