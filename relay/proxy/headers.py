"""Header policy for the ODoH relay.

Static header templates are modelled as small immutable mappings and combined
with ``merge_headers()``: an ordered, left-to-right overlay where the last
writer wins on a (case-insensitive) key collision. Nothing here mutates its
inputs.

  - build_forward_headers():    fresh header set for STREAMED / BUFFERED
                                outgoing requests (ODoH content negotiation,
                                no caching, explicit Content-Length).
  - proxy_status*():            RFC 9230 §4.1 Proxy-Status annotations.
  - rewrite_response_headers(): diagnostic rewrite of every upstream response
                                header to ``x-{name}`` and every outgoing
                                request header to ``x-fwdreq-{name}``.
  - fwdreq_headers():           only the ``x-fwdreq-{name}`` half, used when the
                                upstream response is cloned.

The rewrite exists because intermediaries in front of the relay strip some
response headers (``Location`` for one); renamed copies survive and the
caller can recover them.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from relay.constants import (
    FWDREQ_HEADER_PREFIX,
    HDR_ACCEPT,
    HDR_CACHE_CONTROL,
    HDR_CONTENT_LENGTH,
    HDR_CONTENT_TYPE,
    HDR_FWDREQ_COUNT,
    HDR_ORIG_COUNT,
    HDR_PROXY_STATUS,
    ODOH_CACHE_CONTROL,
    ODOH_MEDIA_TYPE,
    PROXY_STATUS_ERROR_TOKEN,
    RESPONSE_HEADER_PREFIX,
)

# ─── Static templates ─────────────────────────────────────────────────────────

ODOH_HDR_CONTENT_TYPE: Mapping[str, str] = MappingProxyType({HDR_CONTENT_TYPE: ODOH_MEDIA_TYPE})
ODOH_HDR_CACHE_CONTROL: Mapping[str, str] = MappingProxyType({HDR_CACHE_CONTROL: ODOH_CACHE_CONTROL})
ODOH_HDR_ACCEPT: Mapping[str, str] = MappingProxyType({HDR_ACCEPT: ODOH_MEDIA_TYPE})

DEFAULT_CONTENT_LENGTH: str = "0"


# ─── Overlay ──────────────────────────────────────────────────────────────────


def merge_headers(*overlays: Mapping[str, str]) -> Mapping[str, str]:
    """Merge header overlays left-to-right into a single read-only mapping.

    Keys are compared case-insensitively. On a collision the later overlay's
    key spelling and value replace the earlier entry, which keeps its original
    position.

    Args:
        overlays: Header mappings, lowest precedence first.

    Returns:
        Read-only mapping of the merged headers.
    """
    merged: dict[str, tuple[str, str]] = {}
    for overlay in overlays:
        for name, value in overlay.items():
            merged[name.lower()] = (name, value)
    return MappingProxyType({name: value for name, value in merged.values()})


# ─── Outgoing request ─────────────────────────────────────────────────────────


def content_length_or_default(value: Optional[str]) -> str:
    """Normalise an inbound Content-Length value; ``"0"`` if absent or invalid."""
    if value is None:
        return DEFAULT_CONTENT_LENGTH
    try:
        length = int(value.strip())
    except ValueError:
        return DEFAULT_CONTENT_LENGTH
    if length < 0:
        return DEFAULT_CONTENT_LENGTH
    return str(length)


def streamed_content_length(
    content_length: Optional[str],
    transfer_encoding: Optional[str],
) -> Optional[str]:
    """Content-Length for a body relayed as a stream.

    A chunked inbound body has no length to copy; ``None`` leaves the framing
    to the transport. Transfer-Encoding overrides Content-Length (RFC 9112
    §6.3), so a request carrying both is treated as chunked.
    """
    if transfer_encoding:
        return None
    return content_length_or_default(content_length)


def build_forward_headers(content_length: Optional[str]) -> Mapping[str, str]:
    """Fresh header set for a STREAMED or BUFFERED outgoing request.

    Original request headers are not carried over; only the computed
    Content-Length is, and only when there is one.
    """
    length = {HDR_CONTENT_LENGTH: content_length} if content_length is not None else {}
    return merge_headers(
        ODOH_HDR_CONTENT_TYPE,
        ODOH_HDR_CACHE_CONTROL,
        ODOH_HDR_ACCEPT,
        length,
    )


# ─── Proxy-Status (RFC 9230 §4.1) ─────────────────────────────────────────────


def proxy_status(endpoint_name: str, status_code: int) -> Mapping[str, str]:
    """Proxy-Status reporting the status received from the target."""
    return MappingProxyType({HDR_PROXY_STATUS: f"{endpoint_name}; received-status={status_code}"})


def proxy_status_error(endpoint_name: str) -> Mapping[str, str]:
    """Proxy-Status reporting a relay-side failure."""
    return MappingProxyType({HDR_PROXY_STATUS: f"{endpoint_name}; error={PROXY_STATUS_ERROR_TOKEN}"})


# ─── Diagnostic rewrite ───────────────────────────────────────────────────────


def fwdreq_headers(request_headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Rename every outgoing-request header to ``x-fwdreq-{name}``."""
    return {f"{FWDREQ_HEADER_PREFIX}{name.lower()}": value for name, value in request_headers}


def rewrite_response_headers(
    upstream_headers: Iterable[tuple[str, str]],
    request_headers: Iterable[tuple[str, str]],
    endpoint_name: str,
    status_code: int,
) -> Mapping[str, str]:
    """Build the complete header set of an annotated-rewrite response.

    No upstream header survives under its original name. The result holds,
    in order: ``x-{name}`` for each upstream header, ``x-fwdreq-{name}`` for
    each outgoing-request header, both counts, the ODoH Content-Type and the
    Proxy-Status annotation.

    Args:
        upstream_headers: (name, value) pairs from the upstream response, one
                          pair per distinct name (e.g. ``httpx.Headers.items()``).
        request_headers:  (name, value) pairs of the request that was sent.
        endpoint_name:    Name reported in Proxy-Status.
        status_code:      Upstream status, echoed in Proxy-Status.

    Returns:
        Read-only mapping of the response headers.
    """
    renamed: dict[str, str] = {}
    orig_count = 0
    for name, value in upstream_headers:
        renamed[f"{RESPONSE_HEADER_PREFIX}{name.lower()}"] = value
        orig_count += 1

    forwarded = fwdreq_headers(request_headers)
    renamed.update(forwarded)

    counts = {
        HDR_ORIG_COUNT: str(orig_count),
        HDR_FWDREQ_COUNT: str(len(forwarded)),
    }
    return merge_headers(
        renamed,
        counts,
        ODOH_HDR_CONTENT_TYPE,
        proxy_status(endpoint_name, status_code),
    )
