"""Azure deployment components.

- AzureDeployer: composes, renders and submits the ARM deployment
- ImagePromoter: copies public images into Azure Container Registry
- ConfigUploader: places sonar.properties on the config file share
"""

from .config_upload import ConfigUploader
from .deployer import AzureDeployer
from .image_promoter import (
    ImagePromoter,
    PromotionOutcome,
    PromotionReport,
    PromotionResult,
    RegistryCredentials,
)

__all__ = [
    "AzureDeployer",
    "ConfigUploader",
    "ImagePromoter",
    "PromotionOutcome",
    "PromotionReport",
    "PromotionResult",
    "RegistryCredentials",
]
