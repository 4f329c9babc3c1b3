"""Runtime settings loaded from the environment and ``.env`` files."""

from __future__ import annotations

import contextlib
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from cascade_bridge.paths import config_dir

ENV_PREFIX = "CASCADE_BRIDGE_"

DEFAULT_POLL_INTERVAL_S = 0.8
DEFAULT_EDIT_INTERVAL_S = 1.5
DEFAULT_RPC_TIMEOUT_S = 30.0


def env_file() -> Path:
    return config_dir() / ".env"


def _env(name: str) -> str | None:
    value = os.getenv(f"{ENV_PREFIX}{name}")
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _parse_float(value: str | None, default: float | None) -> float | None:
    if value is None:
        return default
    with contextlib.suppress(ValueError):
        return float(value)
    return default


@dataclass(frozen=True)
class BridgeSettings:
    discord_token: str | None = None
    allowed_user_id: str = ""
    backend_host: str = "127.0.0.1"
    backend_port: str | None = None
    backend_token: str | None = None
    http2: bool = True
    rpc_timeout_s: float = DEFAULT_RPC_TIMEOUT_S
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    edit_interval_s: float = DEFAULT_EDIT_INTERVAL_S
    # None keeps the polling loop unbounded.
    turn_timeout_s: float | None = None
    default_model: str | None = None
    github_username: str = ""
    github_token: str = ""
    log_level: str | None = None
    # Defaults to the platformdirs log directory.
    log_dir: str | None = None
    log_stderr: bool = True


def load_settings(*, load_env_files: bool = True) -> BridgeSettings:
    """Read ``CASCADE_BRIDGE_*`` variables into a settings snapshot.

    The user-level ``.env`` in the config dir is loaded first, then one in the
    working directory; neither overrides variables already set.
    """

    if load_env_files:
        load_dotenv(env_file(), override=False)
        load_dotenv(Path.cwd() / ".env", override=False)

    timeout = _parse_float(_env("TURN_TIMEOUT_S"), None)
    if timeout is not None and timeout <= 0:
        timeout = None

    return BridgeSettings(
        discord_token=_env("DISCORD_TOKEN"),
        allowed_user_id=_env("ALLOWED_USER_ID") or "",
        backend_host=_env("BACKEND_HOST") or "127.0.0.1",
        backend_port=_env("BACKEND_PORT"),
        backend_token=_env("BACKEND_TOKEN"),
        http2=_parse_bool(_env("HTTP2"), True),
        rpc_timeout_s=_parse_float(_env("RPC_TIMEOUT_S"), DEFAULT_RPC_TIMEOUT_S) or DEFAULT_RPC_TIMEOUT_S,
        poll_interval_s=_parse_float(_env("POLL_INTERVAL_S"), DEFAULT_POLL_INTERVAL_S) or DEFAULT_POLL_INTERVAL_S,
        edit_interval_s=_parse_float(_env("EDIT_INTERVAL_S"), DEFAULT_EDIT_INTERVAL_S) or DEFAULT_EDIT_INTERVAL_S,
        turn_timeout_s=timeout,
        default_model=_env("DEFAULT_MODEL"),
        github_username=_env("GITHUB_USERNAME") or "",
        github_token=_env("GITHUB_TOKEN") or "",
        log_level=_env("LOG_LEVEL"),
        log_dir=_env("LOG_DIR"),
        log_stderr=_parse_bool(_env("LOG_STDERR"), True),
    )
