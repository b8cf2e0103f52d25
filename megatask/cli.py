"""
Command line interface for megatask.

    megatask init --candidate <id>
    megatask phase1 [--mode bounded_parallel] [--validate]
    megatask phase2
    megatask validate --phase phase1
    megatask status
    megatask clear --width 11 --height 11
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from .config import Settings, load_settings, save_settings
from .core.exceptions import MegataskError
from .core.models import AggregateResult, ExecutionMode, ValidationReport
from .easy_use import Engine, clear_megaverse, run_phase1, run_phase2, validate_megaverse
from .utils.log import setup_logging

logger = logging.getLogger(__name__)

app = typer.Typer(help="Drive the megaverse API toward a target pattern.")

_state = {"config": None}


@app.callback()
def main(
    config: Optional[Path] = typer.Option(None, "--config", help="Path to configuration file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    _state["config"] = config
    setup_logging("debug" if verbose else "info")


def _fail(exc: MegataskError) -> None:
    typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _settings(require_candidate: bool = True, must_exist: bool = True) -> Settings:
    try:
        settings = load_settings(_state["config"], require_candidate=require_candidate,
                                 must_exist=must_exist)
    except MegataskError as exc:
        _fail(exc)
    setup_logging(settings.logging.level, settings.logging.format, settings.logging.file)
    return settings


def _report(result: AggregateResult, label: str) -> None:
    typer.echo(f"{label}: {result.succeeded}/{result.attempted} succeeded, {result.failed} failed")
    for error in result.errors:
        typer.echo(f"  {error}", err=True)
    if result.cancelled:
        typer.secho(f"{label} cancelled before completion", fg=typer.colors.YELLOW, err=True)
    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def init(
    candidate: str = typer.Option(..., "--candidate", help="Candidate ID"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override API base URL"),
):
    """Write the candidate ID (and optional base URL) to the config file."""
    settings = _settings(require_candidate=False, must_exist=False)
    settings.api.candidate_id = candidate
    if base_url:
        settings.api.base_url = base_url
    try:
        settings.validate()
    except MegataskError as exc:
        _fail(exc)
    path = save_settings(settings, _state["config"])
    typer.echo(f"Configuration saved to {path}")


def _report_validation(report: ValidationReport, phase: str) -> None:
    typer.echo(f"Validation for {phase}: {report.matched}/{report.expected} cells match, "
               f"{len(report.missing)} missing, {len(report.mismatched)} mismatched, "
               f"{len(report.unexpected)} unexpected")
    for problem in report.describe_problems():
        typer.echo(f"  {problem}", err=True)
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def phase1(
    mode: ExecutionMode = typer.Option(ExecutionMode.BOUNDED_PARALLEL, "--mode",
                                       help="Execution mode"),
    validate: bool = typer.Option(False, "--validate",
                                  help="Validate the megaverse after creation"),
):
    """Create the phase 1 Polyanet cross."""
    settings = _settings()
    try:
        result = run_phase1(settings, mode=mode)
    except MegataskError as exc:
        _fail(exc)
    _report(result, "Phase 1")
    if validate:
        try:
            report = validate_megaverse("phase1", settings)
        except MegataskError as exc:
            _fail(exc)
        _report_validation(report, "phase1")


@app.command()
def phase2(
    mode: ExecutionMode = typer.Option(ExecutionMode.BOUNDED_PARALLEL, "--mode",
                                       help="Execution mode"),
):
    """Render the phase 2 logo from the goal map."""
    try:
        result = run_phase2(_settings(), mode=mode)
    except MegataskError as exc:
        _fail(exc)
    _report(result, "Phase 2")


@app.command()
def status():
    """Show configuration and goal map dimensions."""
    settings = _settings()
    typer.echo(f"Candidate ID: {settings.api.candidate_id}")
    typer.echo(f"API Base URL: {settings.api.base_url}")

    async def _goal():
        async with Engine(settings) as engine:
            return await engine.api.get_goal_map(engine.new_token())

    try:
        goal = asyncio.run(_goal())
    except MegataskError as exc:
        typer.echo(f"Warning: unable to fetch goal map: {exc}", err=True)
        return
    if goal:
        typer.echo(f"Goal map dimensions: {len(goal[0])}x{len(goal)}")


@app.command()
def validate(
    phase: str = typer.Option("phase1", "--phase",
                              help="Target phase to validate (phase1 or phase2)"),
):
    """Compare the current megaverse with the phase 1 cross or the phase 2 goal."""
    try:
        report = validate_megaverse(phase, _settings())
    except MegataskError as exc:
        _fail(exc)
    _report_validation(report, phase.lower())


@app.command()
def clear(
    width: int = typer.Option(11, "--width", min=1),
    height: int = typer.Option(11, "--height", min=1),
):
    """Delete every object in the megaverse."""
    try:
        result = clear_megaverse(width, height, _settings())
    except MegataskError as exc:
        _fail(exc)
    typer.echo(f"Clear: {result.removed} removed, {result.checked} positions checked, "
               f"{result.unchanged} unchanged")
    for position, error in result.errors:
        typer.echo(f"  {position}: {error}", err=True)
    if result.errors or result.cancelled:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
