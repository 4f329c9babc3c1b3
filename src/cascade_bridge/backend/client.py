"""HTTP client for the cascade backend's Connect-style JSON RPC."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

import httpx
from pydantic import ValidationError

from cascade_bridge.backend.locator import BackendLocator, Endpoint
from cascade_bridge.backend.steps import Step, StepSnapshot
from cascade_bridge.errors import DecodeError, NotInitializedError, ProtocolError, TransportError
from cascade_bridge.log_utils import log_event

SERVICE = "aida.v1.AidaService"
SESSION_LABEL = "discord-bridge-session"
AUTH_HEADER = "x-cursor-csrf-token"
PROTOCOL_VERSION_HEADER = "connect-protocol-version"
PROTOCOL_VERSION = "1"

_ERROR_BODY_MAX = 500
logger = logging.getLogger(__name__)


def new_request_id() -> str:
    return uuid.uuid4().hex[:13]


def request_metadata(request_id: str | None = None) -> dict[str, Any]:
    return {
        "requestId": request_id or new_request_id(),
        "sessionId": SESSION_LABEL,
        "requestType": 0,
        "action": "ACTION_CHAT",
    }


class CascadeClient:
    """Unary calls against the locally running backend.

    Each call opens its own connection and closes it once the single response
    has been read, so concurrent turns share nothing but the endpoint.
    """

    def __init__(
        self,
        locator: BackendLocator,
        *,
        http2: bool = True,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._locator = locator
        self._http2 = http2
        self._timeout = timeout
        self._transport = transport
        self._endpoint: Endpoint | None = None

    @property
    def endpoint(self) -> Endpoint:
        if self._endpoint is None:
            raise NotInitializedError("Cascade client is not initialized.")
        return self._endpoint

    async def initialize(self) -> Endpoint:
        """Resolve the endpoint once; ``DiscoveryError`` propagates to startup."""
        self._endpoint = await self._locator.locate()
        log_event(logger, "rpc.endpoint.discovered", host=self._endpoint.host, port=self._endpoint.port)
        return self._endpoint

    async def call(
        self,
        service: str,
        method: str,
        payload: dict[str, Any],
        *,
        expect_json: bool = False,
    ) -> Any:
        endpoint = self.endpoint
        url = f"{endpoint.base_url}/{service}/{method}"
        headers = {
            "content-type": "application/json",
            PROTOCOL_VERSION_HEADER: PROTOCOL_VERSION,
            AUTH_HEADER: endpoint.auth_token,
        }
        try:
            async with self._http_client() as client:
                response = await client.post(url, content=json.dumps(payload), headers=headers)
        except httpx.HTTPError as exc:
            log_event(logger, "rpc.call.failed", level=logging.WARNING, method=method, error=str(exc))
            raise TransportError(method, str(exc) or type(exc).__name__) from exc

        body = response.text
        if response.status_code != 200:
            log_event(
                logger,
                "rpc.call.rejected",
                level=logging.WARNING,
                method=method,
                status=response.status_code,
                body=_truncate(body),
            )
            raise ProtocolError(method, response.status_code, body)

        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            if expect_json:
                raise DecodeError(method, body) from exc
            logger.debug("Non-JSON response from %s; returning raw body", method)
            return body

    async def start_cascade(self) -> Any:
        payload = {"metadata": request_metadata()}
        return await self.call(SERVICE, "StartCascade", payload)

    async def send_user_message(self, cascade_id: str, items: list[dict[str, Any]], model: str) -> None:
        payload = {
            "cascadeId": cascade_id,
            "cascadeConfig": {
                "plannerConfig": {
                    "planModel": model,
                    "requestedModel": {"model": model},
                }
            },
            "turnConfig": {},
            "items": items,
        }
        await self.call(SERVICE, "SendUserCascadeMessage", payload)

    async def get_steps(self, cascade_id: str) -> list[Step]:
        payload = {"cascadeId": cascade_id, "metadata": request_metadata()}
        data = await self.call(SERVICE, "GetCascadeTrajectorySteps", payload, expect_json=True)
        if not isinstance(data, dict):
            return []
        try:
            return StepSnapshot.model_validate(data).steps
        except ValidationError as exc:
            raise DecodeError("GetCascadeTrajectorySteps", _truncate(json.dumps(data))) from exc

    async def accept_interaction(self, cascade_id: str) -> None:
        payload = {"cascadeId": cascade_id, "interaction": {"accept": {}}}
        await self.call(SERVICE, "HandleCascadeUserInteraction", payload)

    def _http_client(self) -> httpx.AsyncClient:
        # http1=False with http2=True speaks h2c with prior knowledge, which is
        # what the backend listens for on its plain-text port.
        return httpx.AsyncClient(
            http1=not self._http2,
            http2=self._http2,
            timeout=self._timeout,
            transport=self._transport,
        )


def _truncate(value: str) -> str:
    if len(value) <= _ERROR_BODY_MAX:
        return value
    return f"{value[:_ERROR_BODY_MAX]}..."
