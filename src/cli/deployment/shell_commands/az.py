"""Azure CLI command abstractions.

This module provides commands for the Azure CLI (``az``): account checks,
resource groups, ARM deployments, container registries and file shares.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .types import AzureAccount, CommandResult, TagListing

if TYPE_CHECKING:
    from .runner import CommandRunner

# Fragments of az error output meaning "the repository has never been pushed"
_REPOSITORY_NOT_FOUND_MARKERS = ("RepositoryNotFound", "NAME_UNKNOWN")


class AzCommands:
    """Azure CLI shell commands.

    Provides operations for:
    - Account status (az account show)
    - Resource groups (show, create)
    - ARM deployments (validate, create, show outputs)
    - Container registries (show, login, list tags)
    - Storage (account keys, file upload)
    """

    def __init__(self, runner: CommandRunner) -> None:
        """Initialize Azure CLI commands.

        Args:
            runner: Command runner for executing shell commands
        """
        self._runner = runner

    def is_installed(self) -> bool:
        """Check if the az CLI is on PATH."""
        return self._runner.is_installed("az")

    # =========================================================================
    # Account
    # =========================================================================

    def account_show(self) -> AzureAccount | None:
        """Get the active subscription, or None when not logged in.

        Example:
            >>> account = az.account_show()
            >>> if account is None:
            ...     print("Run 'az login' first")
        """
        result = self._runner.run(["az", "account", "show", "--output", "json"])
        if not result.success:
            return None
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError:
            return None
        return AzureAccount(
            subscription_id=data.get("id", ""),
            subscription_name=data.get("name", ""),
            user=(data.get("user") or {}).get("name", ""),
        )

    # =========================================================================
    # Resource Groups
    # =========================================================================

    def group_exists(self, name: str) -> bool:
        """Check if a resource group exists in the active subscription."""
        return self._runner.run(["az", "group", "show", "--name", name]).success

    def group_create(self, name: str, location: str) -> CommandResult:
        """Create a resource group."""
        return self._runner.run(
            ["az", "group", "create", "--name", name, "--location", location]
        )

    # =========================================================================
    # Deployments
    # =========================================================================

    def deployment_validate(
        self, resource_group: str, template_file: Path, parameters_file: Path
    ) -> CommandResult:
        """Validate a template against a resource group without deploying it."""
        return self._runner.run(
            [
                "az",
                "deployment",
                "group",
                "validate",
                "--resource-group",
                resource_group,
                "--template-file",
                str(template_file),
                "--parameters",
                f"@{parameters_file}",
            ]
        )

    def deployment_create(
        self,
        resource_group: str,
        name: str,
        template_file: Path,
        parameters_file: Path,
    ) -> CommandResult:
        """Submit a template deployment and wait for it to finish.

        Note:
            Provisioning PostgreSQL and the container group typically takes
            10-15 minutes.
        """
        return self._runner.run(
            [
                "az",
                "deployment",
                "group",
                "create",
                "--resource-group",
                resource_group,
                "--name",
                name,
                "--template-file",
                str(template_file),
                "--parameters",
                f"@{parameters_file}",
            ]
        )

    def deployment_outputs(self, resource_group: str, name: str) -> dict[str, Any] | None:
        """Get a deployment's outputs as ``{name: value}``, or None on failure."""
        result = self._runner.run(
            [
                "az",
                "deployment",
                "group",
                "show",
                "--resource-group",
                resource_group,
                "--name",
                name,
                "--query",
                "properties.outputs",
                "--output",
                "json",
            ]
        )
        if not result.success:
            return None
        try:
            raw = json.loads(result.stdout or "null") or {}
        except json.JSONDecodeError:
            return None
        return {key: item.get("value") for key, item in raw.items()}

    # =========================================================================
    # Container Registries
    # =========================================================================

    def acr_show(self, registry_name: str) -> CommandResult:
        """Show a registry; fails if it does not exist or is not accessible."""
        return self._runner.run(
            ["az", "acr", "show", "--name", registry_name, "--output", "json"]
        )

    def acr_login(self, registry_name: str) -> CommandResult:
        """Log the local docker engine in to a registry with the az identity."""
        return self._runner.run(["az", "acr", "login", "--name", registry_name])

    def acr_list_tags(self, registry_name: str, repository: str) -> TagListing:
        """List the tags of a repository.

        A repository that does not exist yet yields an empty, successful listing.

        Args:
            registry_name: Registry name (not the login server)
            repository: Repository name (e.g., "sonarqube")

        Returns:
            TagListing with the tags present
        """
        result = self._runner.run(
            [
                "az",
                "acr",
                "repository",
                "show-tags",
                "--name",
                registry_name,
                "--repository",
                repository,
                "--output",
                "json",
            ]
        )
        if not result.success:
            error = result.error_output
            if any(marker in error for marker in _REPOSITORY_NOT_FOUND_MARKERS):
                return TagListing(success=True)
            return TagListing(success=False, error=error)

        try:
            tags = json.loads(result.stdout or "[]") or []
        except json.JSONDecodeError as e:
            return TagListing(success=False, error=f"Unparsable tag listing: {e}")
        return TagListing(success=True, tags=frozenset(str(tag) for tag in tags))

    # =========================================================================
    # Storage
    # =========================================================================

    def storage_account_key(self, resource_group: str, account_name: str) -> str | None:
        """Get the first access key of a storage account, or None."""
        result = self._runner.run(
            [
                "az",
                "storage",
                "account",
                "keys",
                "list",
                "--resource-group",
                resource_group,
                "--account-name",
                account_name,
                "--query",
                "[0].value",
                "--output",
                "tsv",
            ]
        )
        key = result.stdout.strip() if result.success else ""
        return key or None

    def storage_file_upload(
        self,
        account_name: str,
        account_key: str,
        share_name: str,
        source: Path,
        path: str,
    ) -> CommandResult:
        """Upload a local file to an Azure file share."""
        return self._runner.run(
            [
                "az",
                "storage",
                "file",
                "upload",
                "--account-name",
                account_name,
                "--account-key",
                account_key,
                "--share-name",
                share_name,
                "--source",
                str(source),
                "--path",
                path,
            ]
        )
