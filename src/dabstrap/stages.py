"""Stage model: a named, ordered collection of steps."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, Field

from .specop import Step


class Stage(BaseModel):
    """A named, ordered collection of steps."""

    model_config = {"arbitrary_types_allowed": True}

    name: str
    description: str = ""
    steps: list[Step[Any]] = Field(default_factory=list)

    def __iter__(self) -> Iterator[Step[Any]]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)
