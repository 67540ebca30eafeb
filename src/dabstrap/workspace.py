"""Workspace: a typed collection of parsed stages and plans."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any, overload

from . import hcl
from .plans import Plan
from .spec import _spec_registry
from .specop import Ensure, Present, Step
from .stages import Stage

logger = logging.getLogger(__name__)

_STRATEGY_MAP: dict[str, type[Step]] = {
    "present": Present,
    "ensure": Ensure,
}

_STEP_KEYS = {"description", "strategy"}


def _decode_step(kind: str, name: str, attrs: dict[str, Any]) -> Step:
    """Decode a step block into a Step wrapping a registered Specification."""
    if kind not in _spec_registry:
        raise ValueError(f"Unknown step kind: '{kind}' (step '{name}')")
    attrs = hcl.interpolate(hcl.strip_meta(attrs))
    description = attrs.pop("description", "")
    strategy = attrs.pop("strategy", "ensure")
    if strategy not in _STRATEGY_MAP:
        raise ValueError(f"Unknown strategy '{strategy}' for step '{name}'")

    spec_cls = _spec_registry[kind]
    logger.debug("Decoding step '%s' -> %s", name, spec_cls.__name__)
    try:
        spec_instance = spec_cls(**attrs)
    except TypeError as exc:
        raise ValueError(f"Step '{name}': {exc}") from exc
    return _STRATEGY_MAP[strategy](name, spec_instance, description=description)


def _parse_steps(block_data: dict[str, Any]) -> list[Step]:
    """Parse ``step "<kind>" "<name>" { ... }`` blocks in declaration order.

    HCL2 structure for step blocks:
        {"step": [{"apt": {"base": {"packages": [...]}}}, ...]}
    """
    steps: list[Step] = []
    for step_block in block_data.get("step", []):
        for kind, named in hcl.strip_meta(step_block).items():
            for name, attrs in hcl.strip_meta(named).items():
                steps.append(_decode_step(kind, name, dict(attrs)))
    return steps


def _resolve_stage(
    name: str,
    pending: dict[str, dict[str, Any]],
    resolved: dict[str, Stage],
    resolving: set[str],
) -> Stage:
    """Recursively resolve a single stage, handling includes."""
    if name in resolved:
        return resolved[name]
    if name in resolving:
        raise ValueError(f"Circular include detected: '{name}'")
    if name not in pending:
        raise ValueError(f"Unknown stage: '{name}'")
    logger.debug("Resolving stage '%s'", name)
    resolving.add(name)

    data = pending[name]
    steps: list[Step] = []

    # Resolve includes first
    for include_name in data.get("include", []):
        logger.debug("Stage '%s' includes '%s'", name, include_name)
        included = _resolve_stage(include_name, pending, resolved, resolving)
        steps.extend(included.steps)

    steps.extend(_parse_steps(data))

    stage = Stage(name=name, description=data.get("description", ""), steps=steps)
    resolved[name] = stage
    resolving.discard(name)
    return stage


def _build_plan[P: Plan](
    name: str,
    data: dict[str, Any],
    stages: dict[str, Stage],
    *,
    plan_type: type[P] = Plan,  # type: ignore[assignment]
) -> P:
    """Build a single Plan instance from parsed data."""
    logger.debug("Building plan '%s' as %s", name, plan_type.__name__)
    plan_stages: list[Stage] = []
    for stage_name in data.get("use", []):
        if stage_name not in stages:
            raise ValueError(f"Plan '{name}' references unknown stage: '{stage_name}'")
        plan_stages.append(stages[stage_name])

    # Inline steps form an anonymous trailing stage
    inline = _parse_steps(data)
    if inline:
        plan_stages.append(Stage(name=f"{name}:inline", steps=inline))

    seen: set[str] = set()
    for stage in plan_stages:
        for step in stage:
            if step.name in seen:
                raise ValueError(f"Plan '{name}' has duplicate step: '{step.name}'")
            seen.add(step.name)

    plan_kwargs: dict[str, Any] = {"name": name, "stages": plan_stages}

    # Pass through non-structural fields
    skip_keys = {"use", "include", "step"}
    for key, value in hcl.strip_meta(data).items():
        if key not in skip_keys:
            plan_kwargs[key] = value

    return plan_type(**plan_kwargs)


class Workspace[P: Plan](Mapping[str, P]):
    """Accumulates parsed plan files and resolves plans on access."""

    def __init__(
        self,
        plan_type: type[P] = Plan,  # type: ignore[assignment]
        context: dict[str, Any] | None = None,
    ) -> None:
        self._plan_type = plan_type
        self._context = context
        self._pending_stages: dict[str, dict[str, Any]] = {}
        self._pending_plans: dict[str, dict[str, Any]] = {}

    def load(self, data: dict[str, Any]) -> None:
        """Extract stage and plan blocks from a parsed data dict.

        Raises ValueError if any stage or plan name is already loaded.
        """
        for stage_block in data.get("stage", []):
            for stage_name, stage_data in hcl.strip_meta(stage_block).items():
                if stage_name in self._pending_stages:
                    raise ValueError(f"Duplicate stage: '{stage_name}'")
                logger.debug("Found stage '%s'", stage_name)
                self._pending_stages[stage_name] = stage_data

        for plan_block in data.get("plan", []):
            for plan_name, plan_data in hcl.strip_meta(plan_block).items():
                if plan_name in self._pending_plans:
                    raise ValueError(f"Duplicate plan: '{plan_name}'")
                logger.debug("Found plan '%s'", plan_name)
                self._pending_plans[plan_name] = plan_data

    def scan(self, path: str | Path, *, recurse: bool = True) -> None:
        """Load a single .hcl file, or every .hcl file under a directory."""
        path = Path(path)
        if path.is_file():
            files = [path]
        elif path.is_dir():
            files = sorted(path.rglob("*.hcl") if recurse else path.glob("*.hcl"))
        else:
            raise ValueError(f"Plan path not found: {path}")
        for file in files:
            logger.debug("Loading %s", file)
            self.load(hcl.load(file, context=self._context))

    def _resolve(self) -> dict[str, P]:
        """Resolve all pending stages and build typed plan instances."""
        logger.debug(
            "Resolving %d stage(s) and %d plan(s)",
            len(self._pending_stages),
            len(self._pending_plans),
        )

        resolved_stages: dict[str, Stage] = {}
        for name in self._pending_stages:
            _resolve_stage(name, self._pending_stages, resolved_stages, set())

        plans: dict[str, P] = {}
        for plan_name, plan_data in self._pending_plans.items():
            plans[plan_name] = _build_plan(
                plan_name,
                plan_data,
                resolved_stages,
                plan_type=self._plan_type,
            )
        return plans

    def __getitem__(self, name: str) -> P:
        return self._resolve()[name]

    def __contains__(self, name: object) -> bool:
        return name in self._pending_plans

    def __iter__(self) -> Iterator[str]:
        return iter(self._pending_plans)

    def __len__(self) -> int:
        return len(self._pending_plans)

    @overload
    def get(self, name: str) -> P | None: ...
    @overload
    def get(self, name: str, default: P) -> P: ...
    @overload
    def get(self, name: str, default: None) -> P | None: ...
    def get(self, name: str, default: Any = None) -> P | None:
        return self._resolve().get(name, default)

    def filter(self, names: Iterable[str]) -> list[P]:
        """Return plans matching the given names, preserving input order."""
        resolved = self._resolve()
        return [p for n in names if (p := resolved.get(n)) is not None]

    @property
    def stages(self) -> list[str]:
        return list(self._pending_stages)

    def __repr__(self) -> str:
        type_name = self._plan_type.__name__
        stage_count = len(self._pending_stages)
        plan_count = len(self._pending_plans)
        return f"Workspace(plan_type={type_name}, stages={stage_count}, plans={plan_count})"
