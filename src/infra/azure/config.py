"""Deployment configuration model and parameters-file loading.

Parameters files may be ARM parameter documents::

    {"parameters": {"usePrivateRegistry": {"value": true}, ...}}

or flat YAML/JSON mappings using either camelCase or snake_case keys.
``${VAR}`` placeholders are substituted from the environment (and from a
``.env`` file, if present) before parsing, so secrets never need to be
committed to the parameters file.
"""

from __future__ import annotations

import hashlib
import json
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import yaml  # type: ignore[import-untyped]
from dotenv import load_dotenv
from loguru import logger
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from src.infra.errors import DeploymentError
from src.utils.env import substitute_env_vars

# Keys of ARM parameter documents that are metadata, not parameters
_ARM_METADATA_KEYS = frozenset({"$schema", "contentVersion"})

# Parameters-file key pointing at a sonar.properties file to embed
SONAR_PROPERTIES_FILE_KEY = "sonarPropertiesFile"


class ProxyKind(str, Enum):
    """Reverse proxy running next to SonarQube in the container group."""

    NGINX = "nginx"
    CADDY = "caddy"


class RestartPolicy(str, Enum):
    """Container group restart policy (``Never`` is useful for debugging)."""

    ALWAYS = "Always"
    NEVER = "Never"
    ON_FAILURE = "OnFailure"


class DeploymentConfig(BaseModel):
    """Operator-supplied parameters for one deployment run.

    Secret fields are opaque: composition passes them through as template
    parameters without inspecting them.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )

    # Location and naming
    location: str = "eastus"
    name_prefix: str = Field(default="sonarqube", pattern=r"^[a-z][a-z0-9-]{2,19}$")
    unique_suffix: str = Field(default="", pattern=r"^[a-z0-9]{0,13}$")
    # "<subscription>/<resource group>" the derived names are unique within
    deployment_scope: str = ""
    dns_name_label: str | None = None
    tags: dict[str, str] = Field(default_factory=dict)

    # Feature toggles
    use_private_registry: bool = False
    create_registry: bool = False
    enable_centralized_logging: bool = False
    upload_config: bool = True

    # Registry
    registry_name: str | None = None
    registry_sku: Literal["Basic", "Standard", "Premium"] = "Basic"
    public_registry: str = "docker.io"

    # Containers
    proxy: ProxyKind = ProxyKind.NGINX
    restart_policy: RestartPolicy = RestartPolicy.ALWAYS
    sonarqube_image_version: str = "community"
    proxy_image_version: str | None = None
    sonarqube_cpu: float = Field(default=2.0, gt=0)
    sonarqube_memory_gb: float = Field(default=4.0, ge=3.0)
    proxy_cpu: float = Field(default=0.5, gt=0)
    proxy_memory_gb: float = Field(default=0.5, gt=0)

    # PostgreSQL flexible server
    postgres_admin_login: str = "sonaradmin"
    postgres_admin_password: SecretStr
    postgres_version: str = "15"
    postgres_sku_name: str = "Standard_B1ms"
    postgres_sku_tier: Literal["Burstable", "GeneralPurpose", "MemoryOptimized"] = (
        "Burstable"
    )
    postgres_storage_gb: int = Field(default=32, ge=32)
    database_name: str = "sonarqube"

    # Storage and logging
    storage_sku: str = "Standard_LRS"
    log_retention_days: int = Field(default=30, ge=30, le=730)

    # Contents of sonar.properties uploaded to the conf share
    sonar_properties: SecretStr | None = None

    @field_validator("registry_name")
    @classmethod
    def _check_registry_name(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        if not value.isalnum() or not 5 <= len(value) <= 50:
            raise ValueError("registry name must be 5-50 alphanumeric characters")
        return value

    @model_validator(mode="after")
    def _check_container_sizing(self) -> DeploymentConfig:
        # Container instances cap a Linux container group at 4 vCPU / 16 GB
        if self.sonarqube_cpu + self.proxy_cpu > 4:
            raise ValueError("total container CPU must not exceed 4 cores")
        if self.sonarqube_memory_gb + self.proxy_memory_gb > 16:
            raise ValueError("total container memory must not exceed 16 GB")
        return self

    def scoped_to(self, subscription_id: str, resource_group: str) -> DeploymentConfig:
        """Return a copy whose derived names are seeded by the target resource group.

        Storage account, PostgreSQL server and DNS label names are global, so
        two resource groups deploying the same parameters file must not
        derive the same suffix.
        """
        scope = f"{subscription_id}/{resource_group}".lower()
        return self.model_copy(update={"deployment_scope": scope})

    @property
    def resolved_suffix(self) -> str:
        """Suffix used in globally unique resource names."""
        if self.unique_suffix:
            return self.unique_suffix
        seed = f"{self.deployment_scope}:{self.name_prefix}:{self.location}".encode()
        return hashlib.sha256(seed).hexdigest()[:13]

    @property
    def flags(self) -> dict[str, bool]:
        """Feature toggles that gate resources in the graph."""
        return {
            "use_private_registry": self.use_private_registry,
            "create_registry": self.create_registry,
            "enable_centralized_logging": self.enable_centralized_logging,
            "upload_config": self.upload_config and self.has_sonar_properties,
        }

    @property
    def has_sonar_properties(self) -> bool:
        return (
            self.sonar_properties is not None
            and self.sonar_properties.get_secret_value() != ""
        )


def parse_parameters(raw: dict[str, Any]) -> dict[str, Any]:
    """Flatten an ARM parameters document into plain key/value pairs.

    Flat mappings are returned unchanged (minus ARM metadata keys).
    """
    source = raw.get("parameters", raw)
    if not isinstance(source, dict):
        raise DeploymentError("Invalid parameters file: 'parameters' must be a mapping")

    values: dict[str, Any] = {}
    for key, value in source.items():
        if key in _ARM_METADATA_KEYS:
            continue
        if isinstance(value, dict) and "value" in value:
            values[key] = value["value"]
        elif isinstance(value, dict) and "reference" in value:
            raise DeploymentError(
                f"Parameter '{key}' uses a Key Vault reference",
                details="Key Vault references are not supported; supply the value "
                "through an environment variable placeholder instead, e.g. "
                '"${POSTGRES_ADMIN_PASSWORD}".',
            )
        else:
            values[key] = value
    return values


def load_deployment_config(
    parameters_file: Path, env_file: Path | None = None
) -> DeploymentConfig:
    """Load and validate a parameters file.

    Args:
        parameters_file: ARM parameters JSON, or a flat JSON/YAML mapping
        env_file: Optional .env file loaded before substitution
                  (defaults to a .env next to the parameters file)

    Returns:
        Validated DeploymentConfig

    Raises:
        DeploymentError: If the file is missing, unparsable or invalid
    """
    if not parameters_file.exists():
        raise DeploymentError(f"Parameters file not found: {parameters_file}")

    load_dotenv(env_file or parameters_file.parent / ".env", override=False)

    try:
        content = substitute_env_vars(parameters_file.read_text(encoding="utf-8"))
    except ValueError as e:
        raise DeploymentError("Failed to resolve parameters file", details=str(e)) from e

    try:
        if parameters_file.suffix.lower() == ".json":
            raw = json.loads(content)
        else:
            raw = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise DeploymentError(
            f"Error parsing parameters file: {parameters_file}", details=str(e)
        ) from e

    if not isinstance(raw, dict):
        raise DeploymentError(f"Parameters file is empty or not a mapping: {parameters_file}")

    values = parse_parameters(raw)
    logger.info(f"Loaded {len(values)} parameters from {parameters_file}")
    logger.debug(f"Parameter keys: {sorted(values)}")  # keys only

    properties_file = values.pop(SONAR_PROPERTIES_FILE_KEY, None)
    if properties_file:
        path = Path(properties_file)
        if not path.is_absolute():
            path = parameters_file.parent / path
        if not path.exists():
            raise DeploymentError(f"sonar.properties file not found: {path}")
        values["sonarProperties"] = path.read_text(encoding="utf-8")

    try:
        return DeploymentConfig.model_validate(values)
    except ValidationError as e:
        raise DeploymentError("Invalid deployment parameters", details=str(e)) from e
