"""Step and run outcome records."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from .errors import ProvisionError


class StepState(StrEnum):
    PENDING = "pending"
    SKIPPED = "skipped"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RunState(StrEnum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StepRecord(BaseModel):
    """What happened to one step during a run."""

    name: str
    kind: str
    state: StepState = StepState.PENDING
    message: str = ""


class RunReport(BaseModel):
    """Outcome of a whole run."""

    model_config = {"arbitrary_types_allowed": True}

    plan: str
    state: RunState = RunState.IN_PROGRESS
    records: list[StepRecord] = Field(default_factory=list)
    error: ProvisionError | None = None

    @property
    def ok(self) -> bool:
        return self.state == RunState.COMPLETED

    def by_state(self, state: StepState) -> list[str]:
        """Names of steps that ended in the given state."""
        return [r.name for r in self.records if r.state == state]
