"""Exception hierarchy for the bridge.

Turn-ending failures (``RpcError``, ``SendError``, ``PollError``,
``TurnTimeoutError``) are reported once to the user; ``SurfaceError`` from a
single edit is logged and absorbed by the polling loop.
"""

from __future__ import annotations


class BridgeError(RuntimeError):
    """Base exception for all bridge errors."""


class DiscoveryError(BridgeError):
    """The backend endpoint or auth token could not be resolved."""


class NotInitializedError(BridgeError):
    """An RPC was attempted before the backend endpoint was discovered."""


class RpcError(BridgeError):
    """Base class for failures of a single backend call."""

    def __init__(self, method: str, message: str) -> None:
        self.method = method
        super().__init__(f"{method}: {message}")


class TransportError(RpcError):
    """Connection-level failure talking to the backend."""


class ProtocolError(RpcError):
    """The backend answered with a non-200 status."""

    def __init__(self, method: str, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(method, f"HTTP {status}: {body}")


class DecodeError(RpcError):
    """A JSON response body was required but could not be parsed."""

    def __init__(self, method: str, body: str) -> None:
        self.body = body
        super().__init__(method, f"response is not valid JSON: {body[:200]}")


class SessionStartError(BridgeError):
    """The backend did not return a cascade id for a new session."""


class SendError(BridgeError):
    """A user turn could not be delivered into a session."""

    def __init__(self, cascade_id: str, reason: str) -> None:
        self.cascade_id = cascade_id
        super().__init__(f"Failed to send turn to cascade {cascade_id}: {reason}")


class PollError(BridgeError):
    """Fetching the step snapshot failed mid-turn."""

    def __init__(self, cascade_id: str, reason: str) -> None:
        self.cascade_id = cascade_id
        super().__init__(f"Failed to poll cascade {cascade_id}: {reason}")


class TurnTimeoutError(BridgeError):
    """A turn did not reach terminal status before its deadline."""

    def __init__(self, cascade_id: str, timeout_s: float) -> None:
        self.cascade_id = cascade_id
        self.timeout_s = timeout_s
        super().__init__(f"Cascade {cascade_id} did not finish within {timeout_s:g}s")


class SurfaceError(BridgeError):
    """The chat platform rejected a send or edit."""
