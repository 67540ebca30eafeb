"""dabstrap command line."""

from __future__ import annotations

import functools
import logging
from pathlib import Path

import click

from .context import User, default_variables
from .errors import CommandFailed, ProvisionError, UserAborted
from .hcl import scan
from .plans import Plan
from .report import RunReport, StepState

BUNDLED_PLANS = Path(__file__).parent / "data"
CONFIRM_PROMPT = "Are you sure? This will take 1+ hours!"
OUTPUT_TAIL = 40

_STATE_COLORS = {
    StepState.SKIPPED: "blue",
    StepState.SUCCEEDED: "green",
    StepState.FAILED: "red",
    StepState.PENDING: "yellow",
}


def _configure_logging(verbose: bool, quiet: bool, log_file: Path | None) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)
    logging.basicConfig(
        level=logging.DEBUG if log_file is not None else level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
    handlers[0].setLevel(level)


def _parse_vars(values: tuple[str, ...]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'", param_hint="--var")
        overrides[key.strip()] = value
    return overrides


def _load_plan(plan_path: Path, name: str | None, variables: dict) -> Plan:
    try:
        ws = scan(plan_path, context=variables)
        if name is None:
            if len(ws) != 1:
                names = ", ".join(ws) or "none"
                raise click.UsageError(f"choose a plan with --name (found: {names})")
            name = next(iter(ws))
        if name not in ws:
            raise click.UsageError(f"unknown plan '{name}'")
        return ws[name]
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc


def plan_options(func):
    """Options shared by every command that loads a plan."""

    @click.option(
        "--plan",
        "plan_path",
        type=click.Path(exists=True, path_type=Path),
        default=BUNDLED_PLANS,
        show_default="bundled plans",
        help="Plan file or directory of .hcl files.",
    )
    @click.option("--name", default=None, help="Plan to use when several are defined.")
    @click.option("--var", "variables", multiple=True, metavar="KEY=VALUE", help="Override a plan variable.")
    @click.option(
        "--templates",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="Configuration template directory (default: ./dab).",
    )
    @click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
    @click.option("-q", "--quiet", is_flag=True, help="Only log warnings and errors.")
    @click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), default=None)
    @functools.wraps(func)
    def wrapper(plan_path, name, variables, templates, verbose, quiet, log_file, **kwargs):
        _configure_logging(verbose, quiet, log_file)
        user = User.current()
        overrides = _parse_vars(variables)
        if templates is not None:
            overrides["templates"] = str(templates.resolve())
        context = default_variables(user, **overrides)
        plan = _load_plan(plan_path, name, context)
        return func(plan=plan, user=user, **kwargs)

    return wrapper


def _print_report(report: RunReport) -> None:
    for record in report.records:
        color = _STATE_COLORS.get(record.state)
        click.echo(f"  {click.style(record.state.value.ljust(9), fg=color)} {record.name}")

    if report.ok:
        click.secho(f"Plan '{report.plan}' complete.", fg="green")
        return

    error = report.error
    click.secho(f"Error during: {error}. Exiting.", fg="red", err=True)
    if isinstance(error, CommandFailed):
        click.echo(f"  command: {' '.join(error.result.argv)}", err=True)
        click.echo(f"  exit code: {error.exit_code}", err=True)
        lines = error.output.splitlines()[-OUTPUT_TAIL:]
        for line in lines:
            click.echo(f"  | {line}", err=True)


def _confirm(yes: bool) -> None:
    if yes:
        return
    if not click.confirm(CONFIRM_PROMPT, default=False):
        raise UserAborted()


def _execute(plan: Plan, user: User, *, only=None, **kwargs) -> None:
    try:
        report = plan.build(only=only, user=user, **kwargs)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    _print_report(report)
    if not report.ok:
        raise SystemExit(1)


@click.group()
@click.version_option(package_name="dabstrap")
def main() -> None:
    """Provision the ODR-mmbTools DAB software stack."""


@main.command()
@plan_options
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.option("--dry-run", is_flag=True, help="Show what would run without changing anything.")
@click.option(
    "--strict/--lenient",
    default=True,
    help="Abort (default) or warn and continue when the template directory is missing.",
)
def install(plan: Plan, user: User, yes: bool, dry_run: bool, strict: bool) -> None:
    """Run every step of the plan, skipping those already satisfied."""
    if not dry_run:
        try:
            _confirm(yes)
        except UserAborted:
            click.secho("Installation cancelled.", fg="red", err=True)
            raise SystemExit(1) from None
    click.secho(f"Starting installation for {user.name}...", fg="green")
    _execute(plan, user, dry_run=dry_run, strict_templates=strict)


@main.command()
@plan_options
@click.argument("steps", nargs=-1, required=True)
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.option("--strict/--lenient", default=True)
def retry(plan: Plan, user: User, steps: tuple[str, ...], yes: bool, strict: bool) -> None:
    """Run only the named steps."""
    try:
        _confirm(yes)
    except UserAborted:
        click.secho("Retry cancelled.", fg="red", err=True)
        raise SystemExit(1) from None
    _execute(plan, user, only=steps, strict_templates=strict)


@main.command()
@plan_options
@click.option(
    "--strict/--lenient",
    default=True,
    help="Report (default) or ignore a missing template directory, as install would.",
)
def status(plan: Plan, user: User, strict: bool) -> None:
    """Report which steps are already satisfied."""
    ctx = plan.context(user=user, strict_templates=strict)
    try:
        results = plan.status(ctx)
    except ProvisionError as exc:
        raise click.ClickException(str(exc)) from exc
    for name, satisfied in results.items():
        label = click.style("satisfied", fg="green") if satisfied else click.style("pending  ", fg="yellow")
        click.echo(f"  {label} {name}")


@main.command()
@plan_options
def steps(plan: Plan, user: User) -> None:
    """List the plan's steps in execution order."""
    click.echo(f"{plan.name}: {plan.description}")
    for stage in plan.stages:
        click.secho(f"[{stage.name}]", bold=True)
        for step in stage:
            line = f"  {step.name} ({step.kind})"
            if step.description:
                line += f" - {step.description}"
            click.echo(line)
