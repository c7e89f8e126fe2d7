"""Deployment composer: DeploymentConfig -> validated ResourceGraph.

The composer is a pure function. It never calls Azure; it decides which
resources exist for the given feature toggles, wires their cross-references
and validates the result before anything is submitted.

Resources and the toggles that gate them:

    storage account + file shares      always
    PostgreSQL server/database/rule    always
    container group                    always
    Log Analytics workspace            enable_centralized_logging
    user-assigned identity             use_private_registry
    AcrPull role assignment            use_private_registry
    container registry (new)           use_private_registry and create_registry
    container registry (existing)      use_private_registry and not create_registry
    sonar.properties upload script     upload_config (with content)
"""

from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import SecretStr

from src.infra.constants import DEFAULT_CONSTANTS, DeploymentConstants
from src.infra.errors import ConfigurationConflict
from src.infra.images import (
    SONARQUBE_REPOSITORY,
    proxy_version,
    public_reference,
)

from .config import DeploymentConfig, ProxyKind
from .resources import (
    Concat,
    Condition,
    OutputDescriptor,
    Parameter,
    Ref,
    ResourceDescriptor,
    ResourceGraph,
    list_keys,
    reference,
    resource_id,
)
from .validation import validate_graph

# Feature flags, in the order variants are enumerated
FLAG_NAMES: tuple[str, ...] = (
    "use_private_registry",
    "create_registry",
    "enable_centralized_logging",
    "upload_config",
)

PRIVATE_REGISTRY = Condition.when(use_private_registry=True)
NEW_REGISTRY = Condition.when(use_private_registry=True, create_registry=True)
EXISTING_REGISTRY = Condition.when(use_private_registry=True, create_registry=False)
CENTRALIZED_LOGGING = Condition.when(enable_centralized_logging=True)
CONFIG_UPLOAD = Condition.when(upload_config=True)

# Secure template parameters
POSTGRES_PASSWORD_PARAM = Parameter("postgresAdminPassword")
SONAR_PROPERTIES_PARAM = Parameter("sonarPropertiesContent")

# Symbolic names
STORAGE = "storage"
POSTGRES = "postgres"
POSTGRES_DATABASE = "postgresDatabase"
POSTGRES_FIREWALL = "postgresFirewall"
WORKSPACE = "workspace"
REGISTRY = "registry"
EXISTING_REGISTRY_REF = "existingRegistry"
IDENTITY = "identity"
ACR_PULL = "acrPullRoleAssignment"
CONFIG_UPLOAD_SCRIPT = "configUpload"
CONTAINER_GROUP = "containerGroup"


def share_symbol(share: str) -> str:
    return f"share{share.capitalize()}"


@dataclass(frozen=True)
class ResourceNames:
    """Azure resource names derived from the name prefix and unique suffix."""

    storage_account: str
    postgres_server: str
    container_group: str
    dns_name_label: str
    identity: str
    workspace: str
    config_upload: str
    registry: str | None

    @classmethod
    def from_config(cls, config: DeploymentConfig) -> ResourceNames:
        prefix = config.name_prefix
        suffix = config.resolved_suffix
        # Storage account names: 3-24 lowercase alphanumerics, globally unique
        compact = prefix.replace("-", "")
        storage = f"{compact[: 24 - len(suffix)]}{suffix}"[:24]
        return cls(
            storage_account=storage,
            postgres_server=f"{prefix}-pg-{suffix}",
            container_group=f"{prefix}-aci-{suffix}",
            dns_name_label=config.dns_name_label or f"{prefix}-{suffix}",
            identity=f"{prefix}-id-{suffix}",
            workspace=f"{prefix}-logs-{suffix}",
            config_upload=f"{prefix}-config-upload",
            registry=config.registry_name,
        )


def check_configuration(config: DeploymentConfig) -> None:
    """Reject mutually inconsistent toggles before composing anything.

    Raises:
        ConfigurationConflict: If the registry toggles contradict each other
    """
    if config.create_registry and not config.use_private_registry:
        raise ConfigurationConflict(
            "createRegistry is enabled but usePrivateRegistry is disabled",
            details="The registry would be created but never used.\n"
            "Either set usePrivateRegistry=true or createRegistry=false.",
        )
    if config.use_private_registry and not config.registry_name:
        raise ConfigurationConflict(
            "usePrivateRegistry is enabled but no registryName was supplied",
            details="Set registryName to the registry to create or reference.",
        )


def compose(
    config: DeploymentConfig, constants: DeploymentConstants = DEFAULT_CONSTANTS
) -> ResourceGraph:
    """Compose the resource graph for ``config``.

    Args:
        config: Resolved deployment configuration
        constants: API versions and fixed names

    Returns:
        Validated resource graph

    Raises:
        ConfigurationConflict: If the toggles are inconsistent
        CompositionInvariantViolation: If a reference can dangle
    """
    check_configuration(config)

    names = ResourceNames.from_config(config)
    graph = ResourceGraph(config.flags)
    builder = _GraphBuilder(config, names, constants, graph)

    builder.add_storage()
    builder.add_postgres()
    if config.enable_centralized_logging:
        builder.add_workspace()
    if config.use_private_registry:
        builder.add_registry()
        builder.add_identity()
        builder.add_role_assignment()
    if graph.flags["upload_config"]:
        builder.add_config_upload()
    builder.add_container_group()
    builder.add_outputs()

    logger.info(
        f"Composed {len(graph)} resources for "
        f"{', '.join(f'{k}={v}' for k, v in graph.flags.items())}"
    )
    return validate_graph(graph)


def check_all_variants(
    config: DeploymentConfig, constants: DeploymentConstants = DEFAULT_CONSTANTS
) -> dict[tuple[tuple[str, bool], ...], ResourceGraph]:
    """Compose and validate every combination of the feature toggles.

    Combinations that are configuration conflicts are skipped. A registry
    name and config content are filled in where a variant needs them, so
    each variant exercises its full branch.

    Returns:
        Mapping of (flag, value) tuples to the validated graph
    """
    graphs: dict[tuple[tuple[str, bool], ...], ResourceGraph] = {}
    for values in itertools.product((False, True), repeat=len(FLAG_NAMES)):
        flags = dict(zip(FLAG_NAMES, values, strict=True))
        if flags["create_registry"] and not flags["use_private_registry"]:
            continue

        update: dict[str, Any] = dict(flags)
        if flags["use_private_registry"] and not config.registry_name:
            update["registry_name"] = f"{config.name_prefix.replace('-', '')}acr"
        if flags["upload_config"] and not config.has_sonar_properties:
            update["sonar_properties"] = SecretStr("# placeholder\n")

        variant = config.model_copy(update=update)
        graphs[tuple(flags.items())] = compose(variant, constants)
    return graphs


def parameter_values(config: DeploymentConfig, graph: ResourceGraph) -> dict[str, SecretStr]:
    """Secure parameter values for the parameters used by ``graph``."""
    values = {POSTGRES_PASSWORD_PARAM.name: config.postgres_admin_password}
    if graph.flags["upload_config"] and config.sonar_properties is not None:
        values[SONAR_PROPERTIES_PARAM.name] = config.sonar_properties
    return values


class _GraphBuilder:
    """Adds descriptors to a graph for one configuration."""

    def __init__(
        self,
        config: DeploymentConfig,
        names: ResourceNames,
        constants: DeploymentConstants,
        graph: ResourceGraph,
    ) -> None:
        self.config = config
        self.names = names
        self.constants = constants
        self.graph = graph

    # =========================================================================
    # Always present
    # =========================================================================

    def add_storage(self) -> None:
        c = self.constants
        self.graph.add(
            ResourceDescriptor(
                symbol=STORAGE,
                type="Microsoft.Storage/storageAccounts",
                api_version=c.STORAGE_API_VERSION,
                name=self.names.storage_account,
                location=self.config.location,
                kind="StorageV2",
                sku={"name": self.config.storage_sku},
                tags=dict(self.config.tags),
                properties={
                    "minimumTlsVersion": "TLS1_2",
                    "supportsHttpsTrafficOnly": True,
                    "allowBlobPublicAccess": False,
                },
            )
        )
        for share in c.FILE_SHARES:
            self.graph.add(
                ResourceDescriptor(
                    symbol=share_symbol(share),
                    type="Microsoft.Storage/storageAccounts/fileServices/shares",
                    api_version=c.STORAGE_API_VERSION,
                    name=f"{self.names.storage_account}/default/{share}",
                    properties={"shareQuota": c.FILE_SHARE_QUOTA_GB},
                    depends_on=(resource_id(STORAGE),),
                )
            )

    def add_postgres(self) -> None:
        c = self.constants
        cfg = self.config
        server = self.names.postgres_server
        self.graph.add(
            ResourceDescriptor(
                symbol=POSTGRES,
                type="Microsoft.DBforPostgreSQL/flexibleServers",
                api_version=c.POSTGRES_API_VERSION,
                name=server,
                location=cfg.location,
                sku={"name": cfg.postgres_sku_name, "tier": cfg.postgres_sku_tier},
                tags=dict(cfg.tags),
                properties={
                    "version": cfg.postgres_version,
                    "administratorLogin": cfg.postgres_admin_login,
                    "administratorLoginPassword": POSTGRES_PASSWORD_PARAM,
                    "storage": {"storageSizeGB": cfg.postgres_storage_gb},
                    "backup": {"backupRetentionDays": 7, "geoRedundantBackup": "Disabled"},
                    "highAvailability": {"mode": "Disabled"},
                },
            )
        )
        self.graph.add(
            ResourceDescriptor(
                symbol=POSTGRES_DATABASE,
                type="Microsoft.DBforPostgreSQL/flexibleServers/databases",
                api_version=c.POSTGRES_API_VERSION,
                name=f"{server}/{cfg.database_name}",
                properties={"charset": "UTF8", "collation": "en_US.utf8"},
                depends_on=(resource_id(POSTGRES),),
            )
        )
        # Container group egress IPs are not stable, so allow Azure services
        self.graph.add(
            ResourceDescriptor(
                symbol=POSTGRES_FIREWALL,
                type="Microsoft.DBforPostgreSQL/flexibleServers/firewallRules",
                api_version=c.POSTGRES_API_VERSION,
                name=f"{server}/AllowAllAzureServicesAndResourcesWithinAzureIps",
                properties={"startIpAddress": "0.0.0.0", "endIpAddress": "0.0.0.0"},
                depends_on=(resource_id(POSTGRES), resource_id(POSTGRES_DATABASE)),
            )
        )

    # =========================================================================
    # Conditional
    # =========================================================================

    def add_workspace(self) -> None:
        self.graph.add(
            ResourceDescriptor(
                symbol=WORKSPACE,
                type="Microsoft.OperationalInsights/workspaces",
                api_version=self.constants.WORKSPACE_API_VERSION,
                name=self.names.workspace,
                location=self.config.location,
                condition=CENTRALIZED_LOGGING,
                tags=dict(self.config.tags),
                properties={
                    "sku": {"name": "PerGB2018"},
                    "retentionInDays": self.config.log_retention_days,
                },
            )
        )

    def add_registry(self) -> None:
        registry_name = self.names.registry
        assert registry_name is not None  # guaranteed by check_configuration

        if self.config.create_registry:
            self.graph.add(
                ResourceDescriptor(
                    symbol=REGISTRY,
                    type="Microsoft.ContainerRegistry/registries",
                    api_version=self.constants.REGISTRY_API_VERSION,
                    name=registry_name,
                    location=self.config.location,
                    condition=NEW_REGISTRY,
                    sku={"name": self.config.registry_sku},
                    tags=dict(self.config.tags),
                    properties={"adminUserEnabled": False},
                )
            )
        else:
            self.graph.add(
                ResourceDescriptor(
                    symbol=EXISTING_REGISTRY_REF,
                    type="Microsoft.ContainerRegistry/registries",
                    api_version=self.constants.REGISTRY_API_VERSION,
                    name=registry_name,
                    condition=EXISTING_REGISTRY,
                    existing=True,
                )
            )

    def add_identity(self) -> None:
        self.graph.add(
            ResourceDescriptor(
                symbol=IDENTITY,
                type="Microsoft.ManagedIdentity/userAssignedIdentities",
                api_version=self.constants.IDENTITY_API_VERSION,
                name=self.names.identity,
                location=self.config.location,
                condition=PRIVATE_REGISTRY,
                tags=dict(self.config.tags),
            )
        )

    def add_role_assignment(self) -> None:
        registry_symbol, when = self._registry_branch()
        # Deterministic GUID so redeployments update rather than duplicate
        seed = f"{self.names.registry}:{self.names.identity}:{self.constants.ACR_PULL_ROLE_ID}"
        self.graph.add(
            ResourceDescriptor(
                symbol=ACR_PULL,
                type="Microsoft.Authorization/roleAssignments",
                api_version=self.constants.ROLE_ASSIGNMENT_API_VERSION,
                name=str(uuid.uuid5(uuid.NAMESPACE_URL, seed)),
                condition=PRIVATE_REGISTRY,
                scope=resource_id(registry_symbol, when=when),
                properties={
                    "roleDefinitionId": (
                        "[subscriptionResourceId('Microsoft.Authorization/roleDefinitions', "
                        f"'{self.constants.ACR_PULL_ROLE_ID}')]"
                    ),
                    "principalId": reference(IDENTITY, "principalId"),
                    "principalType": "ServicePrincipal",
                },
                depends_on=(resource_id(IDENTITY),),
            )
        )

    def add_config_upload(self) -> None:
        c = self.constants
        script = (
            f'printf "%s" "$CONFIG_CONTENT" > {c.SONAR_PROPERTIES_FILE} && '
            f"az storage file upload --share-name {c.CONF_SHARE} "
            f"--source {c.SONAR_PROPERTIES_FILE} --path {c.SONAR_PROPERTIES_FILE}"
        )
        self.graph.add(
            ResourceDescriptor(
                symbol=CONFIG_UPLOAD_SCRIPT,
                type="Microsoft.Resources/deploymentScripts",
                api_version=c.DEPLOYMENT_SCRIPT_API_VERSION,
                name=self.names.config_upload,
                location=self.config.location,
                kind="AzureCLI",
                condition=CONFIG_UPLOAD,
                properties={
                    "azCliVersion": c.AZ_CLI_VERSION,
                    "retentionInterval": "PT1H",
                    "timeout": "PT10M",
                    "cleanupPreference": "OnSuccess",
                    "environmentVariables": [
                        {"name": "AZURE_STORAGE_ACCOUNT", "value": self.names.storage_account},
                        {
                            "name": "AZURE_STORAGE_KEY",
                            "secureValue": list_keys(STORAGE, "keys", "0", "value"),
                        },
                        {"name": "CONFIG_CONTENT", "secureValue": SONAR_PROPERTIES_PARAM},
                    ],
                    "scriptContent": script,
                },
                depends_on=(resource_id(share_symbol(c.CONF_SHARE)),),
            )
        )

    # =========================================================================
    # Container group
    # =========================================================================

    def add_container_group(self) -> None:
        c = self.constants
        cfg = self.config
        login_server = self._login_server_ref()

        app_image = self._image(SONARQUBE_REPOSITORY, cfg.sonarqube_image_version, login_server)
        proxy_repository = cfg.proxy.value
        proxy_image = self._image(
            proxy_repository,
            proxy_version(proxy_repository, cfg.proxy_image_version),
            login_server,
        )

        jdbc_url = Concat.of(
            "jdbc:postgresql://",
            reference(POSTGRES, "fullyQualifiedDomainName"),
            f":{c.POSTGRES_PORT}/{cfg.database_name}?sslmode=require",
        )
        storage_key = list_keys(STORAGE, "keys", "0", "value")

        properties: dict[str, Any] = {
            "osType": "Linux",
            "restartPolicy": cfg.restart_policy.value,
            "containers": [
                {
                    "name": "sonarqube",
                    "properties": {
                        "image": app_image,
                        "resources": {
                            "requests": {
                                "cpu": cfg.sonarqube_cpu,
                                "memoryInGB": cfg.sonarqube_memory_gb,
                            }
                        },
                        "ports": [{"port": c.SONARQUBE_PORT, "protocol": "TCP"}],
                        "environmentVariables": [
                            {"name": "SONAR_JDBC_URL", "value": jdbc_url},
                            {"name": "SONAR_JDBC_USERNAME", "value": cfg.postgres_admin_login},
                            {"name": "SONAR_JDBC_PASSWORD", "secureValue": POSTGRES_PASSWORD_PARAM},
                            # Elasticsearch cannot use mmap on Azure Files
                            {
                                "name": "SONAR_SEARCH_JAVAADDITIONALOPTS",
                                "value": "-Dnode.store.allow_mmap=false",
                            },
                        ],
                        "volumeMounts": [
                            {"name": share, "mountPath": f"{c.SONARQUBE_HOME}/{share}"}
                            for share in c.FILE_SHARES
                        ],
                    },
                },
                {
                    "name": "proxy",
                    "properties": {
                        "image": proxy_image,
                        "command": proxy_command(cfg.proxy, c.SONARQUBE_PORT, c.PROXY_PORT),
                        "resources": {
                            "requests": {
                                "cpu": cfg.proxy_cpu,
                                "memoryInGB": cfg.proxy_memory_gb,
                            }
                        },
                        "ports": [{"port": c.PROXY_PORT, "protocol": "TCP"}],
                    },
                },
            ],
            "ipAddress": {
                "type": "Public",
                "dnsNameLabel": self.names.dns_name_label,
                "ports": [{"port": c.PROXY_PORT, "protocol": "TCP"}],
            },
            "volumes": [
                {
                    "name": share,
                    "azureFile": {
                        "shareName": share,
                        "storageAccountName": self.names.storage_account,
                        "storageAccountKey": storage_key,
                    },
                }
                for share in c.FILE_SHARES
            ],
        }

        depends_on: list[Ref] = [resource_id(share_symbol(s)) for s in c.FILE_SHARES]
        depends_on.append(resource_id(POSTGRES_DATABASE))
        depends_on.append(resource_id(POSTGRES_FIREWALL))

        identity: dict[Any, Any] | None = None
        if cfg.use_private_registry:
            identity_id = resource_id(IDENTITY, when=PRIVATE_REGISTRY)
            identity = {
                "type": "UserAssigned",
                "userAssignedIdentities": {identity_id: {}},
            }
            properties["imageRegistryCredentials"] = [
                {"server": login_server, "identity": identity_id}
            ]
            # AcrPull must be granted before the first image pull
            depends_on.append(resource_id(ACR_PULL, when=PRIVATE_REGISTRY))

        if cfg.enable_centralized_logging:
            properties["diagnostics"] = {
                "logAnalytics": {
                    "workspaceId": reference(WORKSPACE, "customerId", when=CENTRALIZED_LOGGING),
                    "workspaceKey": list_keys(
                        WORKSPACE, "primarySharedKey", when=CENTRALIZED_LOGGING
                    ),
                    "logType": "ContainerInsights",
                }
            }

        if self.graph.flags["upload_config"]:
            depends_on.append(resource_id(CONFIG_UPLOAD_SCRIPT, when=CONFIG_UPLOAD))

        self.graph.add(
            ResourceDescriptor(
                symbol=CONTAINER_GROUP,
                type="Microsoft.ContainerInstance/containerGroups",
                api_version=c.CONTAINER_GROUP_API_VERSION,
                name=self.names.container_group,
                location=cfg.location,
                identity=identity,
                tags=dict(cfg.tags),
                properties=properties,
                depends_on=tuple(depends_on),
            )
        )

    # =========================================================================
    # Outputs
    # =========================================================================

    def add_outputs(self) -> None:
        graph = self.graph
        graph.add_output(
            OutputDescriptor(
                "sonarQubeUrl",
                Concat.of("http://", reference(CONTAINER_GROUP, "ipAddress", "fqdn")),
            )
        )
        graph.add_output(
            OutputDescriptor("publicIpAddress", reference(CONTAINER_GROUP, "ipAddress", "ip"))
        )
        graph.add_output(
            OutputDescriptor(
                "postgresServerFqdn", reference(POSTGRES, "fullyQualifiedDomainName")
            )
        )
        graph.add_output(OutputDescriptor("storageAccountName", self.names.storage_account))

        if self.config.use_private_registry:
            graph.add_output(
                OutputDescriptor(
                    "registryLoginServer", self._login_server_ref(), PRIVATE_REGISTRY
                )
            )
            graph.add_output(
                OutputDescriptor("identityId", resource_id(IDENTITY), PRIVATE_REGISTRY)
            )
        if self.config.enable_centralized_logging:
            graph.add_output(
                OutputDescriptor(
                    "logAnalyticsWorkspaceId",
                    reference(WORKSPACE, "customerId"),
                    CENTRALIZED_LOGGING,
                )
            )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _registry_branch(self) -> tuple[str, Condition]:
        if self.config.create_registry:
            return REGISTRY, NEW_REGISTRY
        return EXISTING_REGISTRY_REF, EXISTING_REGISTRY

    def _login_server_ref(self) -> Ref | None:
        if not self.config.use_private_registry:
            return None
        registry_symbol, when = self._registry_branch()
        return reference(registry_symbol, "loginServer", when=when)

    def _image(self, repository: str, tag: str, login_server: Ref | None) -> str | Concat:
        if login_server is None:
            return public_reference(self.config.public_registry, repository, tag)
        return Concat.of(login_server, f"/{repository}:{tag}")


def proxy_command(proxy: ProxyKind, upstream_port: int, listen_port: int) -> list[str]:
    """Command that runs ``proxy`` as a reverse proxy in front of SonarQube."""
    if proxy is ProxyKind.CADDY:
        return [
            "caddy",
            "reverse-proxy",
            "--from",
            f":{listen_port}",
            "--to",
            f"localhost:{upstream_port}",
        ]

    nginx_conf = (
        "server { "
        f"listen {listen_port}; "
        "client_max_body_size 64m; "
        "location / { "
        f"proxy_pass http://localhost:{upstream_port}; "
        "proxy_set_header Host $host; "
        "proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for; "
        "proxy_set_header X-Forwarded-Proto $scheme; "
        "} }"
    )
    return [
        "/bin/sh",
        "-c",
        f"echo '{nginx_conf}' > /etc/nginx/conf.d/default.conf && "
        "exec nginx -g 'daemon off;'",
    ]


__all__ = [
    "FLAG_NAMES",
    "ResourceNames",
    "check_configuration",
    "check_all_variants",
    "compose",
    "parameter_values",
    "proxy_command",
]
