"""Base deployer class with shared functionality."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn


class BaseDeployer(ABC):
    """Abstract base class for all deployers."""

    def __init__(self, console: Console, project_root: Path):
        """Initialize the deployer.

        Args:
            console: Rich console for output
            project_root: Path to the project root directory
        """
        self.console = console
        self.project_root = project_root
        # Load .env so ${VAR} placeholders in parameters files resolve
        load_dotenv(self.project_root / ".env", override=False)

    @abstractmethod
    def deploy(self, **kwargs: Any) -> Any:
        """Deploy the environment.

        Args:
            **kwargs: Environment-specific deployment options
        """
        pass

    def create_progress(self, transient: bool = True) -> Progress:
        """Create a progress indicator.

        Args:
            transient: Whether the progress indicator should disappear after completion

        Returns:
            Progress instance
        """
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=transient,
        )

    def success(self, message: str) -> None:
        """Print a success message.

        Args:
            message: The message to print
        """
        self.console.print(f"[green]✅ {message}[/green]")

    def warning(self, message: str) -> None:
        """Print a warning message.

        Args:
            message: The message to print
        """
        self.console.print(f"[yellow]⚠️  {message}[/yellow]")

    def info(self, message: str) -> None:
        """Print an info message.

        Args:
            message: The message to print
        """
        self.console.print(f"[blue]ℹ {message}[/blue]")
