"""CLI command modules.

Command Groups:
- azure: Render, check and submit the SonarQube deployment; upload config
- images: Promote public images into Azure Container Registry
"""

from .azure import azure_app
from .images import images_app

__all__ = [
    "azure_app",
    "images_app",
]
