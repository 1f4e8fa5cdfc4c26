"""Target resolution for the ODoH relay.

The target of a relayed request is addressed in one of two ways, and the two
may be mixed:

  https://relay.example/dns-query?targethost=H&targetpath=P&fwd=M
  https://relay.example/H/P/M

Each field is resolved independently: the query parameter wins, the path
segment is the fallback. A target can therefore be assembled from both
sources (host from the query, path from the URL), which is intended.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Union

from starlette.datastructures import URL, QueryParams

from relay.constants import (
    FIELD_FWD,
    FIELD_TARGETHOST,
    FIELD_TARGETPATH,
    PATH_SEGMENT_INDEX,
    TARGET_SCHEME,
)


class ForwardMode(enum.IntEnum):
    """How the outgoing request is built and the response reconstructed."""

    STREAMED = 0
    CLONED = 1
    BUFFERED = 2

    @property
    def follows_redirects(self) -> bool:
        """Whether the transport should follow upstream redirects.

        A STREAMED body cannot be replayed, so its redirects go back to the
        caller. BUFFERED bodies are plain bytes and CLONED requests keep
        full fidelity, so the transport may follow.
        """
        return self is not ForwardMode.STREAMED


# Explicit, total token table; anything not listed maps to STREAMED.
_MODE_TOKENS: dict[str, ForwardMode] = {
    "0": ForwardMode.STREAMED,
    "1": ForwardMode.CLONED,
    "2": ForwardMode.BUFFERED,
    "streamed": ForwardMode.STREAMED,
    "cloned": ForwardMode.CLONED,
    "buffered": ForwardMode.BUFFERED,
}


@dataclass(frozen=True)
class ResolvedTarget:
    """Upstream target of a single relayed request.

    ``host`` or ``path`` may be empty here; the dispatcher rejects such
    targets with MissingField before anything is built. A non-empty path is
    normalised to start with ``/`` on construction.
    """

    host: str
    path: str
    mode: ForwardMode = ForwardMode.STREAMED

    def __post_init__(self) -> None:
        if self.path:
            object.__setattr__(self, "path", ensure_leading_slash(self.path))

    @property
    def url(self) -> str:
        """Absolute outgoing URL, ``https://{host}{path}``."""
        return f"{TARGET_SCHEME}://{self.host}{self.path}"


def parse_forward_mode(token: str) -> ForwardMode:
    """Map a raw ``fwd`` token to a ForwardMode, defaulting to STREAMED."""
    normalized = token.strip().lower()
    if normalized in _MODE_TOKENS:
        return _MODE_TOKENS[normalized]
    try:
        number = int(normalized)
    except ValueError:
        return ForwardMode.STREAMED
    # "02", "+1" and the like
    return _MODE_TOKENS.get(str(number), ForwardMode.STREAMED)


def ensure_leading_slash(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"


def wire_path(url: URL, raw_path: Optional[bytes] = None) -> str:
    """Request path with its percent-encoding intact.

    ASGI servers decode ``scope["path"]``, so ``%2F`` and ``%3F`` inside a
    segment would split it or start a query. ``scope["raw_path"]`` keeps the
    bytes as received; some servers include the query string in it.
    """
    if raw_path:
        return raw_path.decode("latin-1").split("?", 1)[0]
    return url.path


def query_value(url: URL, name: str) -> str:
    """Value of a query parameter, or ``""`` when absent."""
    return QueryParams(url.query).get(name) or ""


def segment_value(path: str, name: str) -> str:
    """Value of the path segment assigned to ``name``, or ``""``.

    An empty path (``""`` or ``"/"``) offers no segments at all. The segment
    count is checked before indexing.
    """
    if not path or path == "/":
        return ""
    index = PATH_SEGMENT_INDEX.get(name)
    if index is None:
        return ""
    segments = path.split("/")
    if len(segments) > index:
        return segments[index]
    return ""


def field_value(url: URL, name: str, path: Optional[str] = None) -> str:
    """Query parameter first, path segment as the fallback.

    ``path`` overrides ``url.path`` as the source of segments.
    """
    return query_value(url, name) or segment_value(url.path if path is None else path, name)


def resolve_target(url: Union[str, URL], raw_path: Optional[bytes] = None) -> ResolvedTarget:
    """Resolve host, path and forward mode from an inbound request URL.

    The returned path starts with ``/`` when non-empty; an empty host or path
    is returned as-is for the dispatcher to reject. Path segments are relayed
    still percent-encoded.

    Args:
        url:      Inbound URL, either a string or a Starlette ``URL``.
        raw_path: ``scope["raw_path"]`` of the inbound request, if known.

    Returns:
        ResolvedTarget for the request.
    """
    if not isinstance(url, URL):
        url = URL(url)
    path = wire_path(url, raw_path)
    return ResolvedTarget(
        host=field_value(url, FIELD_TARGETHOST, path),
        path=field_value(url, FIELD_TARGETPATH, path),
        mode=parse_forward_mode(field_value(url, FIELD_FWD, path)),
    )
