from unittest.mock import MagicMock

import pytest
from pydantic import SecretStr

from src.cli.deployment.shell_commands import CommandResult
from src.infra.azure import DeploymentConfig


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(success=True, stdout=stdout)


def failed(stderr: str = "boom", returncode: int = 1) -> CommandResult:
    return CommandResult(success=False, stderr=stderr, returncode=returncode)


@pytest.fixture
def base_config() -> DeploymentConfig:
    """Public-registry configuration with every optional feature off."""
    return DeploymentConfig(
        location="eastus",
        name_prefix="sonarqube",
        unique_suffix="abc123",
        postgres_admin_password=SecretStr("S3cret!Passw0rd"),
        upload_config=False,
    )


@pytest.fixture
def private_config(base_config: DeploymentConfig) -> DeploymentConfig:
    """Configuration that creates and uses its own registry."""
    return base_config.model_copy(
        update={
            "use_private_registry": True,
            "create_registry": True,
            "registry_name": "mysonaracr",
        }
    )


@pytest.fixture
def mock_commands() -> MagicMock:
    """Shell commands where every call succeeds unless a test says otherwise."""
    commands = MagicMock()
    commands.docker.is_installed.return_value = True
    commands.docker.info.return_value = ok("24.0.7")
    commands.docker.login.return_value = ok()
    commands.docker.logout.return_value = ok()
    commands.docker.pull_image.return_value = ok()
    commands.docker.tag_image.return_value = ok()
    commands.docker.push_image.return_value = ok()
    commands.docker.remove_image.return_value = ok()
    commands.az.is_installed.return_value = True
    commands.az.acr_show.return_value = ok("{}")
    commands.az.acr_login.return_value = ok()
    return commands


@pytest.fixture
def mock_console() -> MagicMock:
    """Create a mock Rich console."""
    return MagicMock()
