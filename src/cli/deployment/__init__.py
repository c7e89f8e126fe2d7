"""Deployment module for SonarQube on Azure.

This package provides:
- AzureDeployer: ARM template composition and submission
- ImagePromoter: Public image promotion into a private registry
- ConfigUploader: sonar.properties upload to the config share

The package is organized into subpackages for modularity:
- shell_commands: Abstractions for shell command execution
- azure_deployer: Components for Azure deployment
"""

from src.infra.errors import DeploymentError

from .azure_deployer import AzureDeployer, ConfigUploader, ImagePromoter

__all__ = ["AzureDeployer", "ConfigUploader", "ImagePromoter", "DeploymentError"]
