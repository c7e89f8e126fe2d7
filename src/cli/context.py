"""CLI context and dependency container."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from src.cli.deployment.shell_commands import ShellCommands
from src.cli.shared.console import CLIConsole, console
from src.infra.constants import DeploymentConstants, DeploymentPaths
from src.utils.paths import get_project_root


@dataclass(frozen=True)
class CLIContext:
    """Runtime dependencies for CLI commands."""

    console: CLIConsole
    project_root: Path
    commands: ShellCommands
    constants: DeploymentConstants
    paths: DeploymentPaths


def build_cli_context() -> CLIContext:
    """Build a fresh CLIContext."""
    project_root = get_project_root()
    constants = DeploymentConstants()
    paths = DeploymentPaths(project_root)

    return CLIContext(
        console=console,
        project_root=project_root,
        commands=ShellCommands(project_root),
        constants=constants,
        paths=paths,
    )


def get_cli_context(ctx: typer.Context | None) -> CLIContext:
    """Return the CLIContext the root callback stored on the Typer context.

    Falls back to a fresh instance when a command runs without the root
    callback (e.g. invoked directly in tests).
    """
    if ctx is not None and isinstance(ctx.obj, CLIContext):
        return ctx.obj
    return build_cli_context()
