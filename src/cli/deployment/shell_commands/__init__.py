"""Shell command abstractions for Azure deployment operations.

This package provides a clean, well-documented interface for shell commands used
during deployment. It is organized into specialized modules for each tool:

- docker: Docker engine, registry sessions and image operations
- az: Azure CLI account, deployment, registry and storage operations

Design Principles:
- Single Responsibility: Each module focuses on one tool
- Consistent Return Types: Functions return typed results, never raise on
  non-zero exit codes
- Separation of Concerns: Commands are decoupled from workflow logic

Usage:
    from src.cli.deployment.shell_commands import ShellCommands

    commands = ShellCommands(project_root=Path("."))
    if not commands.docker.info().success:
        print("Docker daemon is not running")
"""

from pathlib import Path

from .az import AzCommands
from .docker import DockerCommands
from .runner import CommandRunner
from .types import AzureAccount, CommandResult, TagListing


class ShellCommands:
    """Unified interface for all shell command operations.

    Attributes:
        docker: Docker-related commands
        az: Azure CLI commands

    Example:
        >>> commands = ShellCommands(Path("."))
        >>> if commands.az.account_show() is None:
        ...     print("Not logged in to Azure")
    """

    def __init__(self, project_root: Path) -> None:
        """Initialize the shell commands executor.

        Args:
            project_root: Path to the project root directory.
                         Commands will be executed from this directory by default.
        """
        self._project_root = Path(project_root)
        self._runner = CommandRunner(self._project_root)

        # Initialize specialized command modules
        self.docker = DockerCommands(self._runner)
        self.az = AzCommands(self._runner)

    @property
    def project_root(self) -> Path:
        """Get the project root path."""
        return self._project_root


__all__ = [
    "ShellCommands",
    "CommandResult",
    "AzureAccount",
    "TagListing",
    # Specialized command classes for direct usage
    "AzCommands",
    "DockerCommands",
    "CommandRunner",
]
