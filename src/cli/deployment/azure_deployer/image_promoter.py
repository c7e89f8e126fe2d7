"""Image promotion from public registries into Azure Container Registry.

The workflow for one run:
1. Preflight: container engine reachable, Azure CLI logged in, registry exists
2. Log in to the source registry, then to the destination registry
3. For each image, in declaration order:
   - Skip if the destination already has the tag (unless forced)
   - Otherwise pull → tag → push, then remove the destination-tagged local
     reference (the pulled source image stays as cache for later runs)
4. Print a per-image summary
5. Log out of the source registry, on every path

A failure while transferring one image is recorded and the next image is
still attempted. Preflight and login failures abort the run.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger
from rich.table import Table

from src.infra.errors import PreflightFailure, TransferFailure
from src.infra.images import DOCKER_HUB, ImageSpec, registry_login_server

if TYPE_CHECKING:
    from rich.console import Console

    from ..shell_commands import CommandResult, ShellCommands


class PromotionOutcome(Enum):
    """Final state of one image in a promotion run."""

    SKIPPED = "skipped"
    TRANSFERRED = "transferred"
    FAILED = "failed"


@dataclass
class PromotionResult:
    """Outcome for a single image.

    Attributes:
        image: The image this result describes
        outcome: Skipped, transferred or failed
        step: Step that failed ("check", "pull", "tag", "push"), if any
        message: Failure description, if any
    """

    image: ImageSpec
    outcome: PromotionOutcome
    step: str | None = None
    message: str = ""


@dataclass
class PromotionReport:
    """Results of one promotion run, in image declaration order."""

    results: list[PromotionResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """True if every image was skipped or transferred."""
        return all(r.outcome is not PromotionOutcome.FAILED for r in self.results)

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def count(self, outcome: PromotionOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    def outcome_of(self, name: str) -> PromotionOutcome | None:
        return next((r.outcome for r in self.results if r.image.name == name), None)


@dataclass(frozen=True)
class RegistryCredentials:
    """User name and password/token for a registry login."""

    username: str
    password: str = field(repr=False)


class ImagePromoter:
    """Copies a fixed list of public images into a private registry.

    Attributes:
        commands: Shell command executor
        console: Rich console for output
        registry_name: Destination Azure Container Registry name
        images: Images to promote, in order
        force: Transfer even when the destination already has the tag
    """

    def __init__(
        self,
        commands: ShellCommands,
        console: Console,
        registry_name: str,
        images: Sequence[ImageSpec],
        *,
        source_registry: str = DOCKER_HUB,
        source_credentials: RegistryCredentials | None = None,
        destination_credentials: RegistryCredentials | None = None,
        force: bool = False,
    ) -> None:
        """Initialize the promoter.

        Args:
            commands: Shell command executor
            console: Rich console for output
            registry_name: Destination registry name (e.g., "mysonaracr")
            images: Images to promote
            source_registry: Source registry host (default: docker.io)
            source_credentials: Source login; anonymous pulls when omitted
            destination_credentials: Explicit destination login; the Azure CLI
                identity (az acr login) is used when omitted
            force: Re-transfer images whose tag already exists
        """
        self.commands = commands
        self.console = console
        self.registry_name = registry_name
        self.images = list(images)
        self.source_registry = source_registry
        self.source_credentials = source_credentials
        self.destination_credentials = destination_credentials
        self.force = force

    @property
    def login_server(self) -> str:
        return registry_login_server(self.registry_name)

    # =========================================================================
    # Public Interface
    # =========================================================================

    def promote(self) -> PromotionReport:
        """Run the promotion workflow.

        Returns:
            PromotionReport with one result per image

        Raises:
            PreflightFailure: If the engine, Azure CLI, registry or a login
                              is unavailable (after logging out of the source)
        """
        report = PromotionReport()
        try:
            self._preflight()
            self._authenticate_source()
            self._authenticate_destination()

            for image in self.images:
                result = self._promote_image(image)
                report.results.append(result)
                logger.info(f"Image {image.name}: {result.outcome.value}")

            self.display_summary(report)
        finally:
            self._logout_source()
        return report

    def display_summary(self, report: PromotionReport) -> None:
        """Print a table with the outcome of every image."""
        table = Table(title="Image Promotion Summary")
        table.add_column("Image", style="cyan")
        table.add_column("Destination")
        table.add_column("Result")
        table.add_column("Details", style="dim")

        styles = {
            PromotionOutcome.SKIPPED: "yellow",
            PromotionOutcome.TRANSFERRED: "green",
            PromotionOutcome.FAILED: "red",
        }
        for result in report.results:
            style = styles[result.outcome]
            details = result.message
            if result.outcome is PromotionOutcome.SKIPPED:
                details = "tag already present"
            elif result.step:
                details = f"{result.step}: {result.message}"
            table.add_row(
                result.image.name,
                result.image.destination,
                f"[{style}]{result.outcome.value}[/{style}]",
                details,
            )

        self.console.print(table)
        self.console.print(
            f"[dim]{report.count(PromotionOutcome.TRANSFERRED)} transferred, "
            f"{report.count(PromotionOutcome.SKIPPED)} skipped, "
            f"{report.count(PromotionOutcome.FAILED)} failed[/dim]"
        )

    # =========================================================================
    # Preflight and Authentication
    # =========================================================================

    def _preflight(self) -> None:
        self.console.print("[bold cyan]🔍 Running preflight checks...[/bold cyan]")

        if not self.commands.docker.is_installed():
            raise PreflightFailure(
                "Docker CLI is not installed",
                details="Install Docker (or a compatible engine) and make sure it is on PATH.",
            )

        engine = self.commands.docker.info()
        if not engine.success:
            raise PreflightFailure(
                "Container engine is not reachable",
                details=engine.error_output or "Is the Docker daemon running?",
            )

        if self.commands.az.account_show() is None:
            raise PreflightFailure(
                "Not logged in to Azure",
                details="Run 'az login' first.",
            )

        registry = self.commands.az.acr_show(self.registry_name)
        if not registry.success:
            raise PreflightFailure(
                f"Registry '{self.registry_name}' is not accessible",
                details=registry.error_output
                or "Check the registry name and your role assignments.",
            )

        self.console.print("[dim]✓ Preflight checks passed[/dim]")

    def _authenticate_source(self) -> None:
        if self.source_credentials is None:
            self.console.print(
                f"[dim]No credentials for {self.source_registry}, pulling anonymously[/dim]"
            )
            return

        result = self.commands.docker.login(
            self.source_registry,
            self.source_credentials.username,
            self.source_credentials.password,
        )
        if not result.success:
            raise PreflightFailure(
                f"Login to {self.source_registry} failed",
                details=result.error_output,
            )
        self.console.print(f"[green]✓ Logged in to {self.source_registry}[/green]")

    def _authenticate_destination(self) -> None:
        if self.destination_credentials is not None:
            result = self.commands.docker.login(
                self.login_server,
                self.destination_credentials.username,
                self.destination_credentials.password,
            )
        else:
            result = self.commands.az.acr_login(self.registry_name)

        if not result.success:
            raise PreflightFailure(
                f"Login to {self.login_server} failed",
                details=result.error_output,
            )
        self.console.print(f"[green]✓ Logged in to {self.login_server}[/green]")

    def _logout_source(self) -> None:
        result = self.commands.docker.logout(self.source_registry)
        if result.success:
            self.console.print(f"[dim]Logged out of {self.source_registry}[/dim]")
        else:
            logger.warning(f"Logout from {self.source_registry} failed: {result.error_output}")

    # =========================================================================
    # Per-Image Transfer
    # =========================================================================

    def _promote_image(self, image: ImageSpec) -> PromotionResult:
        self.console.print(f"\n[bold cyan]📦 {image.name}[/bold cyan] [dim]{image.source}[/dim]")

        listing = self.commands.az.acr_list_tags(self.registry_name, image.repository)
        if not listing.success:
            return PromotionResult(
                image, PromotionOutcome.FAILED, step="check", message=listing.error
            )

        if image.tag in listing.tags and not self.force:
            self.console.print(
                f"[yellow]✓ {image.destination} already exists, skipping[/yellow]"
            )
            return PromotionResult(image, PromotionOutcome.SKIPPED)

        try:
            self._transfer(image)
        except TransferFailure as e:
            self.console.print(f"[red]❌ {e.step} failed: {e.message}[/red]")
            return PromotionResult(
                image, PromotionOutcome.FAILED, step=e.step, message=e.message
            )

        self.console.print(f"[green]✓ Pushed {image.destination}[/green]")
        return PromotionResult(image, PromotionOutcome.TRANSFERRED)

    def _transfer(self, image: ImageSpec) -> None:
        docker = self.commands.docker
        self._check_step("pull", docker.pull_image(image.source))
        self._check_step("tag", docker.tag_image(image.source, image.destination))
        try:
            self._check_step("push", docker.push_image(image.destination))
        finally:
            # Only the destination tag is removed; the source image is kept as cache
            removed = docker.remove_image(image.destination)
            if not removed.success:
                logger.warning(
                    f"Could not remove local tag {image.destination}: {removed.error_output}"
                )

    @staticmethod
    def _check_step(step: str, result: CommandResult) -> None:
        if not result.success:
            raise TransferFailure(
                step,
                result.error_output or f"exit code {result.returncode}",
            )
