"""Response objects returned to the relay caller.

ASGI servers always emit the standard reason phrase for a status code, so the
upstream status text (or the relay's error message) cannot travel on the
status line. These subclasses keep it on the response object as
``status_text`` so the dispatcher, the logs and the tests can see it.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from starlette.background import BackgroundTask
from starlette.responses import Response, StreamingResponse


class RelayResponse(StreamingResponse):
    """Streamed response relayed from the upstream target."""

    def __init__(
        self,
        content: Any,
        status_code: int,
        status_text: str = "",
        headers: Optional[Mapping[str, str]] = None,
        background: Optional[BackgroundTask] = None,
    ) -> None:
        super().__init__(
            content=content,
            status_code=status_code,
            headers=headers,
            background=background,
        )
        self.status_text = status_text


class RelayErrorResponse(Response):
    """Terminal error response: empty body, error Proxy-Status only."""

    def __init__(
        self,
        status_code: int,
        status_text: str,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(content=b"", status_code=status_code, headers=headers)
        self.status_text = status_text
