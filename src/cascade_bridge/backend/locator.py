"""Backend endpoint discovery seam.

Finding the language server's port and token by inspecting host processes is
platform specific and lives outside this package; the client only depends on
the ``BackendLocator`` protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from cascade_bridge.errors import DiscoveryError
from cascade_bridge.settings import BridgeSettings


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int
    auth_token: str

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class BackendLocator(Protocol):
    async def locate(self) -> Endpoint: ...


class StaticLocator:
    """Return a fixed endpoint (tests, or a backend started by hand)."""

    def __init__(self, endpoint: Endpoint) -> None:
        self._endpoint = endpoint

    async def locate(self) -> Endpoint:
        return self._endpoint


class EnvLocator:
    """Resolve the endpoint from ``CASCADE_BRIDGE_BACKEND_*`` settings."""

    def __init__(self, settings: BridgeSettings) -> None:
        self._settings = settings

    async def locate(self) -> Endpoint:
        port_text = self._settings.backend_port
        token = self._settings.backend_token
        if not port_text:
            raise DiscoveryError("Backend port is not configured (CASCADE_BRIDGE_BACKEND_PORT).")
        if not token:
            raise DiscoveryError("Backend auth token is not configured (CASCADE_BRIDGE_BACKEND_TOKEN).")
        try:
            port = int(port_text)
        except ValueError as exc:
            raise DiscoveryError(f"Invalid backend port: {port_text!r}") from exc
        if not 0 < port < 65536:
            raise DiscoveryError(f"Backend port out of range: {port}")
        return Endpoint(host=self._settings.backend_host, port=port, auth_token=token)
