"""Trajectory step schemas returned by ``GetCascadeTrajectorySteps``."""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, model_validator

PLANNER_RESPONSE_TYPE = "CORTEX_STEP_TYPE_PLANNER_RESPONSE"
STATUS_DONE = "CORTEX_STEP_STATUS_DONE"


class PlannerResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    response: str = ""

    @model_validator(mode="before")
    @classmethod
    def _coerce_missing(cls, value: Any) -> Any:
        if isinstance(value, dict) and value.get("response") is None:
            return {**value, "response": ""}
        return value


class Step(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = ""
    status: str = ""
    planner_response: PlannerResponse | None = Field(default=None, alias="plannerResponse")

    @property
    def is_planner_response(self) -> bool:
        return self.type == PLANNER_RESPONSE_TYPE

    @property
    def is_done(self) -> bool:
        return self.status == STATUS_DONE

    @property
    def response_text(self) -> str:
        if self.planner_response is None:
            return ""
        return self.planner_response.response


class StepSnapshot(BaseModel):
    """One full poll result; never a delta."""

    model_config = ConfigDict(extra="ignore")

    steps: List[Step] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce_null_steps(cls, value: Any) -> Any:
        if isinstance(value, dict) and value.get("steps") is None:
            return {**value, "steps": []}
        return value


def latest_planner_step(steps: List[Step], *, start: int = 0) -> Step | None:
    """Return the most recent planner-response step at or after ``start``.

    When the snapshot is shorter than ``start`` the backend replaced its
    history, so the whole snapshot is considered again.
    """

    window = steps[start:] if start <= len(steps) else steps
    for step in reversed(window):
        if step.is_planner_response:
            return step
    return None
