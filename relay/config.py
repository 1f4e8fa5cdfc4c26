"""Config loading for the ODoH relay.

Reads `.odoh-relay/config.yaml` (or `~/.odoh-relay/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided, for testing or explicit override)
  2. ODOH_RELAY_CONFIG environment variable (if set)
  3. `.odoh-relay/config.yaml` (working directory, for development)
  4. `~/.odoh-relay/config.yaml` (home directory, for production deployments)

Environment variable overrides:
  ODOH_RELAY_PORT          — overrides server.port (1-65535)
  ODOH_RELAY_ENDPOINT_NAME — overrides relay.endpoint_name
  ODOH_RELAY_CONFIG        — sets an explicit config file path to try first
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import NoReturn, Optional

import yaml

from relay.constants import DEFAULT_ENDPOINT_NAME
from relay.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".odoh-relay/config.yaml",
    os.path.expanduser("~/.odoh-relay/config.yaml"),
]

DEFAULT_TIMEOUT_S: float = 30.0
DEFAULT_CONNECT_TIMEOUT_S: float = 10.0


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """Listening address of the relay."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class RelaySettings:
    """Relay behaviour.

    endpoint_name:     Name reported in every Proxy-Status header.
    timeout_s:         Total upstream timeout.
    connect_timeout_s: Upstream connect timeout.
    """

    endpoint_name: str = DEFAULT_ENDPOINT_NAME
    timeout_s: float = DEFAULT_TIMEOUT_S
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S


@dataclass
class Config:
    """Root configuration object populated from .odoh-relay/config.yaml.

    All fields have safe defaults; the relay can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    relay: RelaySettings = field(default_factory=RelaySettings)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Args:
            raw:  Parsed YAML dict (must already be validated for version field).
            path: Path to the config file.

        Returns:
            Config with all fields populated from raw + defaults for missing fields.

        Raises:
            SystemExit(1): On an invalid port, an empty endpoint name or a
                           non-positive timeout.
        """
        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server") or {}
        port = server_raw.get("port", 8080)
        if not _is_port(port):
            _config_error(f"server.port in {path} must be an integer 1-65535, got {port!r}.")
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=port,
        )

        # ── Relay ─────────────────────────────────────────────────────────────
        relay_raw = raw.get("relay") or {}
        endpoint_name = str(relay_raw.get("endpoint_name", DEFAULT_ENDPOINT_NAME)).strip()
        if not endpoint_name:
            _config_error(f"relay.endpoint_name in {path} must not be empty.")

        timeouts: dict[str, float] = {}
        for key, default in (
            ("timeout_s", DEFAULT_TIMEOUT_S),
            ("connect_timeout_s", DEFAULT_CONNECT_TIMEOUT_S),
        ):
            value = relay_raw.get(key, default)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                _config_error(
                    f"relay.{key} in {path} must be a positive number, got {value!r}."
                )
            timeouts[key] = float(value)

        relay = RelaySettings(endpoint_name=endpoint_name, **timeouts)

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            relay=relay,
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def _is_port(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 65535


def _config_error(message: str) -> NoReturn:
    """Print a config error to stderr and exit non-zero."""
    print(f"CONFIG ERROR: {message}", file=sys.stderr)
    raise SystemExit(1)


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate relay configuration.

    Search order:
      1. ``config_path`` argument (if provided)
      2. ``ODOH_RELAY_CONFIG`` environment variable (if set)
      3. ``.odoh-relay/config.yaml`` (current working directory)
      4. ``~/.odoh-relay/config.yaml`` (home directory)

    If no file is found at any of these paths, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).

    Environment overrides are applied afterwards regardless of whether a
    config file was found.

    Returns:
        Config object with all values populated (file values merged onto defaults).

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid relay settings, or invalid ``ODOH_RELAY_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("ODOH_RELAY_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.info("No config file found, using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "The relay refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )

    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "The relay is configured to bind on 0.0.0.0 (all interfaces). "
            "Make sure this is intended; ODoH relays are usually fronted by a TLS terminator."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        endpoint_name=config.relay.endpoint_name,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Handles:
      ODOH_RELAY_PORT          — overrides config.server.port (integer 1-65535)
      ODOH_RELAY_ENDPOINT_NAME — overrides config.relay.endpoint_name (non-empty)

    Raises:
        SystemExit(1): If ODOH_RELAY_PORT is set but not a valid port.
    """
    env_port = os.environ.get("ODOH_RELAY_PORT")
    if env_port is not None:
        try:
            port = int(env_port)
        except ValueError:
            port = None
        if not _is_port(port):
            _config_error(
                f"ODOH_RELAY_PORT environment variable is not a valid port (1-65535): '{env_port}'"
            )
        config.server.port = port

    env_name = os.environ.get("ODOH_RELAY_ENDPOINT_NAME", "").strip()
    if env_name:
        config.relay.endpoint_name = env_name
