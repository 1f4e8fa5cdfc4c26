"""Request id generation for the ODoH relay.

Each relayed request gets a ULID used as the ``request_id`` field of every
structured log line emitted while handling it. The id is never sent upstream:
a CLONED request must leave with exactly the inbound headers.

Uses the `python-ulid` library; do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 — charset ``[0-9A-HJKMNP-TV-Z]``, exactly 26 chars.
    """
    return str(ULID())
