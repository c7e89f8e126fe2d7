"""Upload sonar.properties to a deployed storage account's config share."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS, DeploymentConstants
from src.infra.errors import DeploymentError

if TYPE_CHECKING:
    from rich.console import Console

    from ..shell_commands import ShellCommands


class ConfigUploader:
    """Copies a local sonar.properties onto the ``conf`` file share.

    The container mounts the share at ``$SONARQUBE_HOME/conf``, so the file
    takes effect on the next container restart.
    """

    def __init__(
        self,
        commands: ShellCommands,
        console: Console,
        constants: DeploymentConstants = DEFAULT_CONSTANTS,
    ) -> None:
        self.commands = commands
        self.console = console
        self.constants = constants

    def upload(
        self,
        resource_group: str,
        storage_account: str,
        source: Path,
        container_group: str | None = None,
    ) -> None:
        """Upload ``source`` as sonar.properties.

        Args:
            resource_group: Resource group of the deployment
            storage_account: Storage account holding the file shares
            source: Local sonar.properties file
            container_group: Container group name, used in the restart hint

        Raises:
            DeploymentError: If the file is missing, the account key cannot
                             be read or the upload fails
        """
        if not source.is_file():
            raise DeploymentError(
                f"Configuration file not found: {source}",
                details="Create it from the sonar.properties example first.",
            )

        self.console.print(f"[dim]Retrieving access key for {storage_account}...[/dim]")
        key = self.commands.az.storage_account_key(resource_group, storage_account)
        if key is None:
            raise DeploymentError(
                f"Could not read the access key of storage account '{storage_account}'",
                details=f"Check that it exists in resource group '{resource_group}'.",
            )

        share = self.constants.CONF_SHARE
        target = self.constants.SONAR_PROPERTIES_FILE
        self.console.print(f"[cyan]Uploading {source.name} to {storage_account}/{share}/{target}[/cyan]")
        result = self.commands.az.storage_file_upload(
            storage_account, key, share, source, target
        )
        if not result.success:
            raise DeploymentError("Configuration upload failed", details=result.error_output)

        logger.info(f"Uploaded {source} to share {share} of {storage_account}")
        self.console.print("[green]✅ Configuration uploaded[/green]")
        self.console.print(
            "[yellow]Restart the container group to apply it:[/yellow]\n"
            f"  az container restart --resource-group {resource_group} "
            f"--name {container_group or '<container-group-name>'}"
        )
