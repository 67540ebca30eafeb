"""Step strategies: a named Specification plus its skip/apply/verify logic."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .context import RunContext
from .errors import ContractViolation, Interrupted, ProvisionError
from .report import StepRecord, StepState
from .spec import Specification

logger = logging.getLogger(__name__)


class Step[P](ABC):
    """Wraps a Specification with conditional execution logic."""

    skip_reason = "already satisfied"

    def __init__(self, name: str, spec: Specification[P], *, description: str = "") -> None:
        self.name = name
        self.spec = spec
        self.description = description

    @property
    def kind(self) -> str:
        return self.spec.kind

    @abstractmethod
    def check(self, ctx: RunContext[P]) -> bool:
        """The goal predicate for this step."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, kind={self.kind!r})"

    def __call__(self, ctx: RunContext[P]) -> StepState:
        record = StepRecord(name=self.name, kind=self.kind)
        ctx.log.append(record)
        try:
            if self.check(ctx):
                logger.debug("Skipping %s; %s", self.name, self.skip_reason)
                record.state = StepState.SKIPPED
                return record.state

            if ctx.dry_run:
                logger.info("[DRY RUN] Would apply %s", self.name)
                return record.state

            logger.info("Applying %s", self.name)
            record.state = StepState.RUNNING
            self.spec.apply(ctx)

            if not self.check(ctx):
                raise ContractViolation()
        except OSError as exc:
            record.state = StepState.FAILED
            record.message = str(exc)
            raise ProvisionError(str(exc), step=self.name) from exc
        except KeyboardInterrupt:
            record.state = StepState.FAILED
            record.message = "interrupted"
            raise Interrupted(step=self.name) from None
        except ProvisionError as exc:
            exc.step = exc.step or self.name
            record.state = StepState.FAILED
            record.message = exc.message
            raise

        record.state = StepState.SUCCEEDED
        return record.state


class Present[P](Step[P]):
    """Apply only if resource doesn't exist."""

    skip_reason = "already exists"

    def check(self, ctx: RunContext[P]) -> bool:
        return self.spec.exists(ctx)


class Ensure[P](Step[P]):
    """Apply if current state doesn't match."""

    skip_reason = "up to date"

    def check(self, ctx: RunContext[P]) -> bool:
        return self.spec.equals(ctx)
