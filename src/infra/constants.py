"""Deployment constants and configuration.

This module centralizes all magic strings, paths, and configuration values
used throughout the deployment process.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class DeploymentConstants:
    """Constants for Azure deployment of SonarQube.

    This class provides a centralized location for all deployment-related
    constants, making them easy to find, update, and test.

    All attributes are class-level and immutable.
    """

    # ARM API versions
    STORAGE_API_VERSION: str = "2023-01-01"
    POSTGRES_API_VERSION: str = "2022-12-01"
    REGISTRY_API_VERSION: str = "2023-07-01"
    IDENTITY_API_VERSION: str = "2023-01-31"
    ROLE_ASSIGNMENT_API_VERSION: str = "2022-04-01"
    WORKSPACE_API_VERSION: str = "2022-10-01"
    CONTAINER_GROUP_API_VERSION: str = "2023-05-01"
    DEPLOYMENT_SCRIPT_API_VERSION: str = "2023-08-01"

    # Template schemas
    TEMPLATE_SCHEMA: str = (
        "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#"
    )
    PARAMETERS_SCHEMA: str = (
        "https://schema.management.azure.com/schemas/2019-04-01/"
        "deploymentParameters.json#"
    )

    # Built-in AcrPull role definition
    ACR_PULL_ROLE_ID: str = "7f951dfd-4ca1-4a6d-9e8f-ffbd0a0d3b2c"

    # File shares mounted into the SonarQube container
    FILE_SHARES: tuple[str, ...] = ("data", "extensions", "logs", "conf")
    FILE_SHARE_QUOTA_GB: int = 100
    CONF_SHARE: str = "conf"
    SONAR_PROPERTIES_FILE: str = "sonar.properties"
    SONARQUBE_HOME: str = "/opt/sonarqube"

    # Container ports
    SONARQUBE_PORT: int = 9000
    PROXY_PORT: int = 80
    POSTGRES_PORT: int = 5432

    # Deployment script runtime
    AZ_CLI_VERSION: str = "2.52.0"

    # Submission
    DEFAULT_PARAMETERS_FILE: str = "parameters/main.parameters.json"
    DEPLOYMENT_NAME_PREFIX: str = "sonarqube-deployment"
    WORK_DIR: str = ".deploy"


class DeploymentPaths:
    """Path resolver for deployment-related directories and files.

    This class constructs and provides access to all paths needed during
    deployment, derived from the project root.
    """

    def __init__(self, project_root: Path) -> None:
        """Initialize deployment paths.

        Args:
            project_root: Path to the project root directory
        """
        self._project_root = project_root
        self._constants = DEFAULT_CONSTANTS

        self.work_dir = project_root / self._constants.WORK_DIR

    @property
    def project_root(self) -> Path:
        """Get path to project root."""
        return self._project_root

    @property
    def default_parameters_file(self) -> Path:
        """Get path to the default parameters file."""
        return self._project_root / self._constants.DEFAULT_PARAMETERS_FILE

    @property
    def sonar_properties(self) -> Path:
        """Get path to sonar.properties."""
        return self._project_root / self._constants.SONAR_PROPERTIES_FILE

    @property
    def env_file(self) -> Path:
        """Get path to .env file."""
        return self._project_root / ".env"

    @property
    def template_file(self) -> Path:
        """Get path to the rendered ARM template."""
        return self.work_dir / "main.json"

    @property
    def parameters_file(self) -> Path:
        """Get path to the rendered ARM parameters file."""
        return self.work_dir / "main.parameters.json"


DEFAULT_CONSTANTS = DeploymentConstants()
