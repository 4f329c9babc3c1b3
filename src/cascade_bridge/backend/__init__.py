"""Backend RPC client, endpoint discovery seam, and step schemas."""

from cascade_bridge.backend.client import CascadeClient
from cascade_bridge.backend.locator import BackendLocator, Endpoint, EnvLocator, StaticLocator
from cascade_bridge.backend.steps import Step, latest_planner_step

__all__ = [
    "BackendLocator",
    "CascadeClient",
    "Endpoint",
    "EnvLocator",
    "StaticLocator",
    "Step",
    "latest_planner_step",
]
