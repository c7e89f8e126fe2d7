"""Unit tests for the Azure deployer."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from src.cli.deployment.azure_deployer import AzureDeployer
from src.cli.deployment.shell_commands import AzureAccount, CommandResult
from src.infra.azure import ResourceNames, load_deployment_config
from src.infra.errors import ConfigurationConflict, DeploymentError


class MockProgress:
    """Mock Rich Progress class for testing."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        pass

    def __enter__(self) -> MockProgress:
        return self

    def __exit__(self, *args: Any) -> None:
        pass

    def add_task(self, *args: Any, **kwargs: Any) -> int:
        return 0

    def update(self, *args: Any, **kwargs: Any) -> None:
        pass


@pytest.fixture
def parameters_file(tmp_path: Path) -> Path:
    path = tmp_path / "parameters" / "main.parameters.json"
    path.parent.mkdir()
    path.write_text(
        json.dumps(
            {
                "parameters": {
                    "location": {"value": "westeurope"},
                    "uniqueSuffix": {"value": "t1"},
                    "postgresAdminPassword": {"value": "S3cret!Passw0rd"},
                }
            }
        )
    )
    return path


@pytest.fixture
def deployer(
    mock_commands: MagicMock, mock_console: MagicMock, tmp_path: Path
) -> Iterator[AzureDeployer]:
    """Create an AzureDeployer with mocked commands and progress."""
    mock_commands.az.account_show.return_value = AzureAccount("sub-id", "Dev", "me")
    mock_commands.az.group_exists.return_value = True
    mock_commands.az.deployment_validate.return_value = CommandResult(success=True)
    mock_commands.az.deployment_create.return_value = CommandResult(success=True)
    mock_commands.az.deployment_outputs.return_value = {
        "sonarQubeUrl": "http://sonarqube-t1.westeurope.azurecontainer.io",
        "publicIpAddress": "20.1.2.3",
    }
    with patch.object(AzureDeployer, "create_progress", return_value=MockProgress()):
        yield AzureDeployer(mock_console, tmp_path, commands=mock_commands)


class TestPrerequisites:
    """Tests for Azure CLI checks."""

    def test_az_not_installed(self, deployer: AzureDeployer, mock_commands: MagicMock) -> None:
        """Test that a missing az CLI fails the prerequisite check."""
        mock_commands.az.is_installed.return_value = False

        with pytest.raises(DeploymentError) as excinfo:
            deployer.check_prerequisites()

        assert "not installed" in excinfo.value.message

    def test_not_logged_in(self, deployer: AzureDeployer, mock_commands: MagicMock) -> None:
        """Test that an Azure CLI without a login fails with an 'az login' hint."""
        mock_commands.az.account_show.return_value = None

        with pytest.raises(DeploymentError) as excinfo:
            deployer.check_prerequisites()

        assert excinfo.value.details == "Run 'az login' first."


class TestRender:
    """Tests for writing the deployment files."""

    def test_render_writes_default_work_dir(
        self, deployer: AzureDeployer, parameters_file: Path, tmp_path: Path
    ) -> None:
        """Test that render writes into .deploy/ by default."""
        config, graph = deployer.build(parameters_file)
        template_path, parameters_path = deployer.render(config, graph)

        assert template_path == tmp_path / ".deploy" / "main.json"
        assert parameters_path == tmp_path / ".deploy" / "main.parameters.json"
        template = json.loads(template_path.read_text())
        assert template["parameters"] == {"postgresAdminPassword": {"type": "securestring"}}

    def test_build_rejects_conflicting_toggles(
        self, deployer: AzureDeployer, tmp_path: Path
    ) -> None:
        """Test that build fails fast on conflicting registry toggles."""
        path = tmp_path / "conflict.yaml"
        path.write_text(
            "postgresAdminPassword: pw\ncreateRegistry: true\nregistryName: mysonaracr\n"
        )

        with pytest.raises(ConfigurationConflict):
            deployer.build(path)


class TestDeploy:
    """Tests for the deployment workflow."""

    def test_successful_deploy(
        self, deployer: AzureDeployer, mock_commands: MagicMock, parameters_file: Path
    ) -> None:
        """Test the full deployment flow against an existing resource group."""
        outputs = deployer.deploy(
            resource_group="rg-sonar",
            parameters_file=parameters_file,
            deployment_name="sonarqube-deployment-test",
        )

        assert outputs["publicIpAddress"] == "20.1.2.3"
        mock_commands.az.group_create.assert_not_called()
        mock_commands.az.deployment_validate.assert_called_once()
        args = mock_commands.az.deployment_create.call_args.args
        assert args[0] == "rg-sonar"
        assert args[1] == "sonarqube-deployment-test"
        mock_commands.az.deployment_outputs.assert_called_once_with(
            "rg-sonar", "sonarqube-deployment-test"
        )

    def test_parameters_file_removed_after_submission(
        self, deployer: AzureDeployer, parameters_file: Path
    ) -> None:
        """Test that the secret parameters file is deleted after a successful submit."""
        deployer.deploy(resource_group="rg-sonar", parameters_file=parameters_file)

        assert deployer.paths.template_file.exists()
        assert not deployer.paths.parameters_file.exists()

    def test_parameters_file_removed_after_failure(
        self, deployer: AzureDeployer, mock_commands: MagicMock, parameters_file: Path
    ) -> None:
        """Test that the secret parameters file is deleted when the submit fails."""
        mock_commands.az.deployment_create.return_value = CommandResult(
            success=False, stderr="InvalidTemplateDeployment"
        )

        with pytest.raises(DeploymentError) as excinfo:
            deployer.deploy(resource_group="rg-sonar", parameters_file=parameters_file)

        assert "InvalidTemplateDeployment" in (excinfo.value.details or "")
        assert not deployer.paths.parameters_file.exists()

    def test_creates_missing_resource_group_in_config_location(
        self, deployer: AzureDeployer, mock_commands: MagicMock, parameters_file: Path
    ) -> None:
        """Test that a missing resource group is created in the configured location."""
        mock_commands.az.group_exists.return_value = False
        mock_commands.az.group_create.return_value = CommandResult(success=True)

        deployer.deploy(resource_group="rg-sonar", parameters_file=parameters_file)

        mock_commands.az.group_create.assert_called_once_with("rg-sonar", "westeurope")

    def test_location_override(
        self, deployer: AzureDeployer, mock_commands: MagicMock, parameters_file: Path
    ) -> None:
        """Test that --location overrides the configured location for a new group."""
        mock_commands.az.group_exists.return_value = False
        mock_commands.az.group_create.return_value = CommandResult(success=True)

        deployer.deploy(
            resource_group="rg-sonar", parameters_file=parameters_file, location="eastus2"
        )

        mock_commands.az.group_create.assert_called_once_with("rg-sonar", "eastus2")

    def test_validation_failure_stops_before_create(
        self, deployer: AzureDeployer, mock_commands: MagicMock, parameters_file: Path
    ) -> None:
        """Test that a failed validation never submits the deployment."""
        mock_commands.az.deployment_validate.return_value = CommandResult(
            success=False, stderr="QuotaExceeded"
        )

        with pytest.raises(DeploymentError) as excinfo:
            deployer.deploy(resource_group="rg-sonar", parameters_file=parameters_file)

        assert excinfo.value.message == "Template validation failed"
        mock_commands.az.deployment_create.assert_not_called()

    def test_missing_outputs_warns(
        self, deployer: AzureDeployer, mock_commands: MagicMock, parameters_file: Path
    ) -> None:
        """Test that unreadable outputs return an empty mapping."""
        mock_commands.az.deployment_outputs.return_value = None

        outputs = deployer.deploy(resource_group="rg-sonar", parameters_file=parameters_file)

        assert outputs == {}

    def test_default_deployment_name_is_timestamped(self, deployer: AzureDeployer) -> None:
        """Test that default deployment names carry a timestamp."""
        name = deployer._deployment_name()

        assert name.startswith("sonarqube-deployment-")
        assert len(name) == len("sonarqube-deployment-") + len("20240101-120000")

    def test_names_scoped_to_subscription_and_resource_group(
        self, deployer: AzureDeployer, tmp_path: Path
    ) -> None:
        """Test that derived names are seeded by the target resource group."""
        path = tmp_path / "no-suffix.json"
        path.write_text(json.dumps({"postgresAdminPassword": "S3cret!Passw0rd"}))

        deployer.deploy(resource_group="rg-sonar", parameters_file=path)

        expected = ResourceNames.from_config(
            load_deployment_config(path).scoped_to("sub-id", "rg-sonar")
        )
        template = deployer.paths.template_file.read_text()
        assert expected.storage_account in template
        assert expected.postgres_server in template
