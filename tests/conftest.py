"""Root test configuration for the ODoH relay.

Clears every relay environment variable so that a developer's shell settings
cannot leak into config loading or the app lifespan. Tests that exercise an
override set it again with their own monkeypatch.
"""

import pytest

RELAY_ENV_VARS = (
    "ODOH_RELAY_CONFIG",
    "ODOH_RELAY_PORT",
    "ODOH_RELAY_ENDPOINT_NAME",
)


@pytest.fixture(autouse=True)
def clean_relay_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in RELAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
