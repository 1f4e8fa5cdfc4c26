"""Relay error taxonomy and the terminal error response builder.

Three failure classes reach the caller:

  WrongMethod:
      Inbound verb is not POST → HTTP 500 ``Only POST``.
      The upstream is never contacted.

  MissingField:
      targethost or targetpath empty after both addressing schemes were
      tried → HTTP 400 ``Missing targethost`` / ``Missing targetpath``.

  Anything else (resolution bug, bad target URL, transport failure, timeout):
      Caught at the route boundary → HTTP 500 with the exception message.

Every error response carries ``Proxy-Status: <endpoint>; error=http_request_error``
(RFC 9230 §4.1) and an empty body. Nothing is retried: ODoH clients retry at a
higher layer.
"""

from __future__ import annotations

from relay.constants import FIELD_TARGETHOST, FIELD_TARGETPATH, ODOH_METHOD
from relay.models.responses import RelayErrorResponse
from relay.proxy.headers import proxy_status_error


class RelayError(Exception):
    """Base class for failures with a templated status code."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class WrongMethod(RelayError):
    """Inbound request used a verb other than the relay's single accepted one."""

    status_code = 500

    def __init__(self, method: str) -> None:
        super().__init__(f"Only {ODOH_METHOD}")
        self.method = method


class MissingField(RelayError):
    """targethost or targetpath could not be resolved from the URL."""

    status_code = 400

    def __init__(self, field: str) -> None:
        if field not in (FIELD_TARGETHOST, FIELD_TARGETPATH):
            raise ValueError(f"not a required field: {field!r}")
        super().__init__(f"Missing {field}")
        self.field = field


def describe_exception(exc: BaseException) -> str:
    """Status text for an unexpected failure: its message, else its type name."""
    return str(exc) or type(exc).__name__


def build_error_response(
    status_code: int,
    status_text: str,
    endpoint_name: str,
) -> RelayErrorResponse:
    """Build the empty-bodied error response sent for every ERROR transition.

    Args:
        status_code:   400 or 500.
        status_text:   Human-readable reason (kept on ``response.status_text``).
        endpoint_name: Name reported in the Proxy-Status header.

    Returns:
        RelayErrorResponse with only the error-flavoured Proxy-Status header.
    """
    return RelayErrorResponse(
        status_code=status_code,
        status_text=status_text,
        headers=proxy_status_error(endpoint_name),
    )


def error_response_for(exc: RelayError, endpoint_name: str) -> RelayErrorResponse:
    """Convert a templated relay failure into its terminal response."""
    return build_error_response(exc.status_code, exc.message, endpoint_name)
