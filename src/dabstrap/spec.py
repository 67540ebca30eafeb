"""Specification ABC and step-kind registration."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .context import RunContext

_spec_registry: dict[str, type[Specification]] = {}


def spec(name: str):
    """Register a Specification class as a plan step kind."""

    def decorator(cls):
        cls.kind = name
        _spec_registry[name] = cls
        return cls

    return decorator


class Specification[P](ABC):
    """Base class for all provisioning steps.

    ``apply`` must leave the system in a state where ``equals`` is true;
    the runner verifies this after every apply.
    """

    kind: str = "spec"

    @abstractmethod
    def equals(self, ctx: RunContext[P]) -> bool:
        """Current state matches desired state."""

    def exists(self, ctx: RunContext[P]) -> bool:
        """Resource exists (defaults to equals)."""
        return self.equals(ctx)

    @abstractmethod
    def apply(self, ctx: RunContext[P]) -> None:
        """Create or update resource."""
