"""Shared constants for the ODoH relay.

Protocol values used across the resolver, header policy and dispatcher are
defined here. No magic strings in other modules; import from here.

References:
  RFC 9230 §4   — Oblivious DNS over HTTPS relay behaviour
  RFC 9230 §4.1 — Proxy-Status reporting by the relay
"""

from __future__ import annotations

# ─── Protocol ─────────────────────────────────────────────────────────────────

# The single HTTP verb accepted inbound and used for every outgoing request.
ODOH_METHOD: str = "POST"

# Media type for ODoH messages (RFC 9230 §4.1).
ODOH_MEDIA_TYPE: str = "application/oblivious-dns-message"

# Relayed messages must never be cached by intermediaries.
ODOH_CACHE_CONTROL: str = "no-cache, no-store"

# Outgoing requests are always sent over TLS.
TARGET_SCHEME: str = "https"

# Default name reported in Proxy-Status; overridable via relay.endpoint_name.
DEFAULT_ENDPOINT_NAME: str = "RethinkDNS"

# ─── Addressing ───────────────────────────────────────────────────────────────

FIELD_TARGETHOST: str = "targethost"
FIELD_TARGETPATH: str = "targetpath"
FIELD_FWD: str = "fwd"

# Path-segment form: /{targethost}/{targetpath}/{fwd}
# Index 0 is always the empty string before the leading slash.
PATH_SEGMENT_INDEX: dict[str, int] = {
    FIELD_TARGETHOST: 1,
    FIELD_TARGETPATH: 2,
    FIELD_FWD: 3,
}

# ─── Header names ─────────────────────────────────────────────────────────────

HDR_CONTENT_TYPE: str = "Content-Type"
HDR_CACHE_CONTROL: str = "Cache-Control"
HDR_ACCEPT: str = "Accept"
HDR_CONTENT_LENGTH: str = "Content-Length"
HDR_PROXY_STATUS: str = "Proxy-Status"

# Diagnostic rewrite namespace.
RESPONSE_HEADER_PREFIX: str = "x-"
FWDREQ_HEADER_PREFIX: str = "x-fwdreq-"
HDR_ORIG_COUNT: str = "x-orig-hdr-count"
HDR_FWDREQ_COUNT: str = "x-fwdreq-hdr-count"

# RFC 9230 §4.1 error token used for every relay-side failure.
PROXY_STATUS_ERROR_TOKEN: str = "http_request_error"
