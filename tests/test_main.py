from unittest.mock import AsyncMock, patch

import pytest

from cascade_bridge import main as main_module
from cascade_bridge.main import build_parser, run_bridge
from cascade_bridge.settings import BridgeSettings


def test_parser_flags():
    args = build_parser().parse_args(["--check", "--log-level", "DEBUG", "--no-env-file"])
    assert args.check is True
    assert args.log_level == "DEBUG"
    assert args.no_env_file is True


@pytest.mark.asyncio
async def test_missing_backend_port_exits_with_error(capsys):
    assert await run_bridge(BridgeSettings(backend_token="csrf")) == 2
    assert "Backend discovery failed" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_check_prints_endpoint_without_discord(capsys):
    settings = BridgeSettings(backend_port="42100", backend_token="csrf")
    with patch.object(main_module, "DiscordGateway") as gateway:
        assert await run_bridge(settings, check_only=True) == 0
    gateway.assert_not_called()
    assert "http://127.0.0.1:42100" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_missing_discord_token_exits_with_error(capsys):
    settings = BridgeSettings(backend_port="42100", backend_token="csrf")
    assert await run_bridge(settings) == 2
    assert "CASCADE_BRIDGE_DISCORD_TOKEN" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_gateway_is_closed_after_start_returns():
    settings = BridgeSettings(backend_port="42100", backend_token="csrf", discord_token="token")
    with patch.object(main_module, "DiscordGateway") as gateway_cls:
        gateway = gateway_cls.return_value
        gateway.start = AsyncMock()
        gateway.close = AsyncMock()
        assert await run_bridge(settings) == 0

    assert gateway_cls.call_args.args[0] == "token"
    gateway.start.assert_awaited_once()
    gateway.close.assert_awaited_once()
