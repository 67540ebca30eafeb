"""Plan base model: the top-level provisioning target and step runner."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, Field

from .context import RunContext
from .errors import ProvisionError
from .report import RunReport, RunState
from .specop import Step
from .stages import Stage

logger = logging.getLogger(__name__)


class Plan(BaseModel):
    """An ordered list of stages; apps may subclass with extra fields."""

    model_config = {"arbitrary_types_allowed": True}

    name: str
    description: str = ""
    stages: list[Stage] = Field(default_factory=list)

    @property
    def steps(self) -> list[Step[Any]]:
        """All steps in execution order."""
        return [step for stage in self.stages for step in stage]

    def step(self, name: str) -> Step[Any]:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)

    def context(self, **kwargs) -> RunContext:
        return RunContext(target=self, **kwargs)

    def build(self, *, only: Iterable[str] | None = None, **kwargs) -> RunReport:
        """Run the plan. kwargs are passed to RunContext."""
        return self.run(self.context(**kwargs), only=only)

    def run(self, ctx: RunContext, *, only: Iterable[str] | None = None) -> RunReport:
        """Execute steps strictly in order, aborting on the first error.

        With ``only``, just the named steps run (still in plan order).
        """
        steps = self.steps
        if only is not None:
            wanted = set(only)
            unknown = wanted - {s.name for s in steps}
            if unknown:
                raise ValueError(f"Plan '{self.name}' has no step(s): {', '.join(sorted(unknown))}")
            steps = [s for s in steps if s.name in wanted]

        logger.info("Running plan '%s' (%d steps)", self.name, len(steps))
        try:
            for step in steps:
                step(ctx)
        except ProvisionError as exc:
            logger.error("Plan '%s' aborted: %s", self.name, exc)
            return self._report(ctx, RunState.ABORTED, error=exc)

        logger.info("Plan '%s' completed", self.name)
        return self._report(ctx, RunState.COMPLETED)

    def _report(self, ctx: RunContext, state: RunState, error: ProvisionError | None = None) -> RunReport:
        report = RunReport(plan=self.name, state=state, error=error)
        report.records = ctx.log
        return report

    def status(self, ctx: RunContext) -> dict[str, bool]:
        """Evaluate every step's predicate without acting."""
        return {step.name: step.check(ctx) for step in self.steps}
