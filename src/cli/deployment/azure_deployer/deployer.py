"""Azure deployer: compose, render, validate and submit.

The deployment workflow:
1. Check the Azure CLI is installed and logged in
2. Load the parameters file and compose the resource graph
3. Render the ARM template and parameters into the work directory
4. Create the resource group if it does not exist
5. Validate the deployment, then submit it
6. Retrieve and display the deployment outputs

The rendered parameters file holds secrets and is removed once the
deployment has been submitted.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel

from src.infra.azure import (
    DeploymentConfig,
    ResourceGraph,
    compose,
    load_deployment_config,
    parameter_values,
    render_parameters,
    render_template,
    write_deployment_files,
)
from src.infra.constants import DeploymentConstants, DeploymentPaths
from src.infra.errors import DeploymentError

from ..base import BaseDeployer
from ..shell_commands import AzureAccount, ShellCommands


class AzureDeployer(BaseDeployer):
    """Deployer for SonarQube on Azure Container Instances.

    Attributes:
        constants: Deployment configuration constants
        paths: Deployment path resolver
        commands: Shell command executor
    """

    def __init__(
        self,
        console: Console,
        project_root: Path,
        commands: ShellCommands | None = None,
    ):
        """Initialize the Azure deployer.

        Args:
            console: Rich console for output
            project_root: Path to the project root directory
            commands: Shell command executor (created if not provided)
        """
        super().__init__(console, project_root)
        self.constants = DeploymentConstants()
        self.paths = DeploymentPaths(project_root)
        self.commands = commands or ShellCommands(project_root)

    # =========================================================================
    # Composition
    # =========================================================================

    def build(
        self,
        parameters_file: Path,
        resource_group: str | None = None,
        subscription_id: str | None = None,
    ) -> tuple[DeploymentConfig, ResourceGraph]:
        """Load a parameters file and compose its resource graph.

        Args:
            parameters_file: Parameters file to load
            resource_group: Target resource group; with subscription_id it
                            seeds the suffix of globally unique names
            subscription_id: Subscription of the target resource group

        Raises:
            DeploymentError: If the parameters are invalid or inconsistent
        """
        config = load_deployment_config(parameters_file, self.paths.env_file)
        if resource_group and subscription_id:
            config = config.scoped_to(subscription_id, resource_group)
        graph = compose(config, self.constants)
        return config, graph

    def render(
        self,
        config: DeploymentConfig,
        graph: ResourceGraph,
        template_file: Path | None = None,
        output_parameters_file: Path | None = None,
    ) -> tuple[Path, Path]:
        """Write the ARM template and parameters file for a composed graph.

        Args:
            config: Configuration the graph was composed from
            graph: Validated resource graph
            template_file: Output template path (default: .deploy/main.json)
            output_parameters_file: Output parameters path
                                    (default: .deploy/main.parameters.json)

        Returns:
            Paths of the written template and parameters files
        """
        template = render_template(graph, self.constants)
        parameters = render_parameters(
            template, parameter_values(config, graph), self.constants
        )

        template_path = template_file or self.paths.template_file
        parameters_path = output_parameters_file or self.paths.parameters_file
        write_deployment_files(template, parameters, template_path, parameters_path)
        return template_path, parameters_path

    # =========================================================================
    # Prerequisites
    # =========================================================================

    def check_prerequisites(self) -> AzureAccount:
        """Ensure the Azure CLI is installed and logged in.

        Returns:
            The active Azure account

        Raises:
            DeploymentError: If a prerequisite is missing
        """
        if not self.commands.az.is_installed():
            raise DeploymentError(
                "Azure CLI is not installed",
                details="Install it from https://learn.microsoft.com/cli/azure/install-azure-cli",
            )

        self.console.print("[dim]Checking Azure CLI login status...[/dim]")
        account = self.commands.az.account_show()
        if account is None:
            raise DeploymentError(
                "Not logged in to Azure",
                details="Run 'az login' first.",
            )
        self.console.print(
            f"[dim]✓ Using subscription {account.subscription_name} "
            f"({account.subscription_id})[/dim]"
        )
        return account

    # =========================================================================
    # Public Interface
    # =========================================================================

    def deploy(  # type: ignore[override]
        self,
        resource_group: str,
        parameters_file: Path,
        location: str | None = None,
        deployment_name: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Deploy SonarQube into a resource group.

        Args:
            resource_group: Target resource group (created if missing)
            parameters_file: Parameters file for the deployment
            location: Region for a new resource group (default: config location)
            deployment_name: Deployment name (default: timestamped)
            **kwargs: Reserved for future options

        Returns:
            Deployment outputs as {name: value}

        Raises:
            DeploymentError: If any step fails
        """
        account = self.check_prerequisites()

        self.console.print("[bold cyan]🧩 Composing resource graph...[/bold cyan]")
        config, graph = self.build(
            parameters_file, resource_group, account.subscription_id
        )
        template_path, parameters_path = self.render(config, graph)
        self.console.print(
            f"[green]✓ {len(graph.declared)} resources composed, template written to {template_path}[/green]"
        )

        name = deployment_name or self._deployment_name()
        try:
            self._ensure_resource_group(resource_group, location or config.location)
            self._validate(resource_group, template_path, parameters_path)
            self._submit(resource_group, name, template_path, parameters_path)
        finally:
            parameters_path.unlink(missing_ok=True)

        outputs = self.commands.az.deployment_outputs(resource_group, name)
        if outputs is None:
            self.warning("Could not retrieve deployment outputs")
            return {}

        self.display_outputs(outputs)
        return outputs

    def display_outputs(self, outputs: dict[str, Any]) -> None:
        """Print deployment outputs and the default credential warning."""
        labels = {
            "sonarQubeUrl": "SonarQube URL",
            "publicIpAddress": "Public IP",
            "postgresServerFqdn": "PostgreSQL Server",
            "storageAccountName": "Storage Account",
            "registryLoginServer": "Registry",
            "identityId": "Managed Identity",
            "logAnalyticsWorkspaceId": "Log Analytics Workspace",
        }
        lines = [
            f"[bold]{label}:[/bold] {outputs[key]}"
            for key, label in labels.items()
            if outputs.get(key)
        ]
        self.console.print(Panel("\n".join(lines), title="Deployment Outputs", border_style="green"))

        self.info("Default SonarQube credentials: admin / admin")
        self.warning("Please change the default password after first login!")

    # =========================================================================
    # Steps
    # =========================================================================

    def _ensure_resource_group(self, resource_group: str, location: str) -> None:
        if self.commands.az.group_exists(resource_group):
            self.console.print(f"[dim]✓ Resource group already exists: {resource_group}[/dim]")
            return

        self.console.print(f"[cyan]Creating resource group: {resource_group} ({location})[/cyan]")
        result = self.commands.az.group_create(resource_group, location)
        if not result.success:
            raise DeploymentError(
                f"Failed to create resource group '{resource_group}'",
                details=result.error_output,
            )

    def _validate(self, resource_group: str, template_path: Path, parameters_path: Path) -> None:
        with self.create_progress() as progress:
            task = progress.add_task("Validating deployment...", total=1)
            result = self.commands.az.deployment_validate(
                resource_group, template_path, parameters_path
            )
            progress.update(task, completed=1)

        if not result.success:
            raise DeploymentError("Template validation failed", details=result.error_output)
        self.console.print("[green]✓ Template validation successful[/green]")

    def _submit(
        self, resource_group: str, name: str, template_path: Path, parameters_path: Path
    ) -> None:
        self.console.print(
            f"[bold cyan]🚀 Starting deployment {name} (this may take 10-15 minutes)...[/bold cyan]"
        )
        with self.create_progress() as progress:
            task = progress.add_task("Deploying resources...", total=1)
            result = self.commands.az.deployment_create(
                resource_group, name, template_path, parameters_path
            )
            progress.update(task, completed=1)

        if not result.success:
            raise DeploymentError(
                "Deployment failed",
                details=result.error_output
                + f"\n\nInspect it with: az deployment group show -g {resource_group} -n {name}",
            )
        self.success("Deployment completed successfully!")

    def _deployment_name(self) -> str:
        return f"{self.constants.DEPLOYMENT_NAME_PREFIX}-{datetime.now():%Y%m%d-%H%M%S}"
