"""Command-line entrypoint: ``cascade-bridge``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from cascade_bridge.backend import CascadeClient, EnvLocator
from cascade_bridge.bridge import Bridge
from cascade_bridge.errors import DiscoveryError
from cascade_bridge.gateway.discord import DiscordGateway
from cascade_bridge.log_utils import build_log_config, configure_logging, log_event
from cascade_bridge.settings import BridgeSettings, env_file, load_settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bridge Discord threads to a local cascade backend.")
    parser.add_argument("--log-level", help="Override CASCADE_BRIDGE_LOG_LEVEL (DEBUG, INFO, ...).")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Resolve the backend endpoint and exit without connecting to Discord.",
    )
    parser.add_argument(
        "--no-env-file",
        action="store_true",
        help="Do not load .env files; read the process environment only.",
    )
    return parser


async def run_bridge(settings: BridgeSettings, *, check_only: bool = False) -> int:
    client = CascadeClient(EnvLocator(settings), http2=settings.http2, timeout=settings.rpc_timeout_s)
    try:
        endpoint = await client.initialize()
    except DiscoveryError as exc:
        logger.error("Backend discovery failed: %s", exc)
        print(f"Backend discovery failed: {exc}", file=sys.stderr)
        return 2

    if check_only:
        print(f"Backend endpoint: {endpoint.base_url}")
        return 0

    if not settings.discord_token:
        print(f"CASCADE_BRIDGE_DISCORD_TOKEN is not set (checked the environment and {env_file()}).", file=sys.stderr)
        return 2

    bridge = Bridge(client, settings)
    gateway = DiscordGateway(settings.discord_token, bridge)
    log_event(logger, "bridge.starting", backend=endpoint.base_url)
    try:
        await gateway.start()
    finally:
        await gateway.close()
    return 0


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(load_env_files=not args.no_env_file)

    if args.log_level:
        settings = replace(settings, log_level=args.log_level)
    configure_logging(build_log_config(settings))

    return await run_bridge(settings, check_only=args.check)


def main_entry() -> int:
    try:
        return asyncio.run(main())
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main_entry())
