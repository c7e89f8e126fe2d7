"""Unit tests for the deployment composer."""

from __future__ import annotations

import pytest
from pydantic import SecretStr

from src.infra.azure import (
    FLAG_NAMES,
    DeploymentConfig,
    ProxyKind,
    ResourceGraph,
    check_all_variants,
    compose,
    parameter_values,
    render_template,
)
from src.infra.azure.composer import (
    ACR_PULL,
    CONFIG_UPLOAD_SCRIPT,
    CONTAINER_GROUP,
    EXISTING_REGISTRY_REF,
    IDENTITY,
    REGISTRY,
    WORKSPACE,
    ResourceNames,
    proxy_command,
)
from src.infra.azure.resources import Concat, Ref
from src.infra.errors import ConfigurationConflict, DeploymentError

REGISTRY_TYPE = "Microsoft.ContainerRegistry/registries"
IDENTITY_TYPE = "Microsoft.ManagedIdentity/userAssignedIdentities"


def _containers(graph: ResourceGraph) -> dict[str, dict]:
    group = graph[CONTAINER_GROUP]
    return {c["name"]: c["properties"] for c in group.properties["containers"]}


def _refs_to(graph: ResourceGraph, target: str) -> list[Ref]:
    return [
        ref
        for descriptor in graph
        for ref in descriptor.references()
        if ref.target == target
    ]


class TestPublicRegistry:
    """Graphs composed without a private registry."""

    def test_no_registry_or_identity(self, base_config: DeploymentConfig) -> None:
        """Test that a public-registry graph has no registry or identity."""
        graph = compose(base_config)

        assert graph.of_type(REGISTRY_TYPE) == []
        assert graph.of_type(IDENTITY_TYPE) == []
        assert ACR_PULL not in graph

    def test_images_are_public_references(self, base_config: DeploymentConfig) -> None:
        """Test that images use docker.io public references."""
        graph = compose(base_config)
        containers = _containers(graph)

        assert containers["sonarqube"]["image"] == "docker.io/library/sonarqube:community"
        assert containers["proxy"]["image"] == "docker.io/library/nginx:alpine"

    def test_no_registry_credentials(self, base_config: DeploymentConfig) -> None:
        """Test that the container group has no registry credentials."""
        group = compose(base_config)[CONTAINER_GROUP]

        assert "imageRegistryCredentials" not in group.properties
        assert group.identity is None

    def test_caddy_proxy(self, base_config: DeploymentConfig) -> None:
        """Test that the caddy proxy image is used when selected."""
        config = base_config.model_copy(update={"proxy": ProxyKind.CADDY})
        proxy = _containers(compose(config))["proxy"]

        assert proxy["image"] == "docker.io/library/caddy:2-alpine"
        assert proxy["command"][:2] == ["caddy", "reverse-proxy"]

    def test_restart_policy_passed_through(self, base_config: DeploymentConfig) -> None:
        """Test that the restart policy reaches the container group."""
        config = DeploymentConfig.model_validate(
            {**base_config.model_dump(), "restart_policy": "Never"}
        )
        group = compose(config)[CONTAINER_GROUP]

        assert group.properties["restartPolicy"] == "Never"


class TestPrivateRegistry:
    """Graphs composed with a private registry."""

    def test_create_registry_declares_exactly_one(self, private_config: DeploymentConfig) -> None:
        """Test that creating a registry declares exactly one registry."""
        graph = compose(private_config)

        registries = graph.of_type(REGISTRY_TYPE)
        identities = graph.of_type(IDENTITY_TYPE)
        assert [r.symbol for r in registries] == [REGISTRY]
        assert len(identities) == 1
        assert not registries[0].existing

    def test_container_group_pulls_with_identity(self, private_config: DeploymentConfig) -> None:
        """Test that registry credentials use the managed identity."""
        graph = compose(private_config)
        group = graph[CONTAINER_GROUP]

        credentials = group.properties["imageRegistryCredentials"]
        assert len(credentials) == 1
        assert "password" not in credentials[0]
        assert "username" not in credentials[0]
        assert credentials[0]["identity"].target == IDENTITY
        assert group.identity is not None
        assert group.identity["type"] == "UserAssigned"

    def test_images_use_registry_login_server(self, private_config: DeploymentConfig) -> None:
        """Test that images come from the registry login server."""
        image = _containers(compose(private_config))["sonarqube"]["image"]

        assert isinstance(image, Concat)
        assert image.parts[0].target == REGISTRY
        assert image.parts[1] == "/sonarqube:community"

    def test_container_group_waits_for_role_assignment(
        self, private_config: DeploymentConfig
    ) -> None:
        """Test that the container group depends on the AcrPull assignment."""
        graph = compose(private_config)

        assert ACR_PULL in graph[CONTAINER_GROUP].dependencies()
        assert graph[ACR_PULL].scope is not None
        assert graph[ACR_PULL].scope.target == REGISTRY

    def test_existing_registry_is_referenced_not_declared(
        self, private_config: DeploymentConfig
    ) -> None:
        """Test that an existing registry is referenced but never declared."""
        config = private_config.model_copy(update={"create_registry": False})
        graph = compose(config)

        assert REGISTRY not in graph
        assert graph[EXISTING_REGISTRY_REF].existing
        assert graph.of_type(IDENTITY_TYPE)
        assert all(not d.existing for d in graph.declared)
        rendered_types = [r["type"] for r in render_template(graph)["resources"]]
        assert REGISTRY_TYPE not in rendered_types

    def test_registry_login_server_output(self, private_config: DeploymentConfig) -> None:
        """Test that private graphs output the registry login server."""
        graph = compose(private_config)

        assert graph.output("registryLoginServer") is not None
        assert graph.output("identityId") is not None

    def test_public_graph_has_no_registry_output(self, base_config: DeploymentConfig) -> None:
        """Test that public graphs have no registry output."""
        graph = compose(base_config)

        assert graph.output("registryLoginServer") is None
        assert graph.output("sonarQubeUrl") is not None


class TestConfigurationConflicts:
    """Inconsistent toggles are rejected before composition."""

    def test_create_without_use_is_rejected(self, base_config: DeploymentConfig) -> None:
        """Test that createRegistry without usePrivateRegistry is a conflict."""
        config = base_config.model_copy(
            update={"create_registry": True, "registry_name": "mysonaracr"}
        )

        with pytest.raises(ConfigurationConflict) as excinfo:
            compose(config)

        assert "usePrivateRegistry" in excinfo.value.message

    def test_private_registry_requires_name(self, base_config: DeploymentConfig) -> None:
        """Test that usePrivateRegistry requires a registry name."""
        config = base_config.model_copy(update={"use_private_registry": True})

        with pytest.raises(ConfigurationConflict):
            compose(config)

    def test_conflict_is_a_deployment_error(self) -> None:
        """ConfigurationConflict is handled like any DeploymentError."""
        assert issubclass(ConfigurationConflict, DeploymentError)


class TestOptionalFeatures:
    """Logging workspace and configuration upload wiring."""

    def test_logging_workspace_wired_into_diagnostics(
        self, base_config: DeploymentConfig
    ) -> None:
        """Test that the workspace id and key reach container diagnostics."""
        config = base_config.model_copy(update={"enable_centralized_logging": True})
        graph = compose(config)

        assert WORKSPACE in graph
        diagnostics = graph[CONTAINER_GROUP].properties["diagnostics"]["logAnalytics"]
        assert diagnostics["workspaceId"].target == WORKSPACE
        assert diagnostics["workspaceKey"].target == WORKSPACE

    def test_logging_disabled_has_no_workspace(self, base_config: DeploymentConfig) -> None:
        """Test that no workspace is declared when logging is off."""
        graph = compose(base_config)

        assert WORKSPACE not in graph
        assert "diagnostics" not in graph[CONTAINER_GROUP].properties
        assert _refs_to(graph, WORKSPACE) == []

    def test_config_upload_runs_before_container_group(
        self, base_config: DeploymentConfig
    ) -> None:
        """Test that the container group waits for the config upload."""
        config = base_config.model_copy(
            update={"upload_config": True, "sonar_properties": SecretStr("sonar.a=b\n")}
        )
        graph = compose(config)

        assert CONFIG_UPLOAD_SCRIPT in graph
        assert CONFIG_UPLOAD_SCRIPT in graph[CONTAINER_GROUP].dependencies()
        ordered = [d.symbol for d in graph.ordered()]
        assert ordered.index(CONFIG_UPLOAD_SCRIPT) < ordered.index(CONTAINER_GROUP)

    def test_config_upload_skipped_without_content(self, base_config: DeploymentConfig) -> None:
        """Test that no upload script is declared without sonar.properties."""
        config = base_config.model_copy(update={"upload_config": True})
        graph = compose(config)

        assert CONFIG_UPLOAD_SCRIPT not in graph
        assert graph.flags["upload_config"] is False

    def test_config_content_is_a_secure_parameter(self, base_config: DeploymentConfig) -> None:
        """Test that sonar.properties content is passed as a secure parameter."""
        config = base_config.model_copy(
            update={"upload_config": True, "sonar_properties": SecretStr("sonar.a=b\n")}
        )
        graph = compose(config)
        template = render_template(graph)

        assert template["parameters"]["sonarPropertiesContent"] == {"type": "securestring"}
        assert "sonar.a=b" not in str(template)
        assert set(parameter_values(config, graph)) == {
            "postgresAdminPassword",
            "sonarPropertiesContent",
        }


class TestAllVariants:
    """Every toggle combination composes without dangling references."""

    def test_every_consistent_variant_composes(self, base_config: DeploymentConfig) -> None:
        """Test that every non-conflicting toggle combination composes."""
        variants = check_all_variants(base_config)

        # create_registry without use_private_registry is skipped: 16 - 4
        assert len(variants) == 12
        for key, graph in variants.items():
            flags = dict(key)
            assert tuple(flags) == FLAG_NAMES
            assert (IDENTITY in graph) == flags["use_private_registry"]
            assert (WORKSPACE in graph) == flags["enable_centralized_logging"]
            assert (CONFIG_UPLOAD_SCRIPT in graph) == flags["upload_config"]

    def test_variants_render(self, base_config: DeploymentConfig) -> None:
        """Test that every variant renders to a template with resources."""
        for graph in check_all_variants(base_config).values():
            template = render_template(graph)
            assert template["resources"]


class TestResourceNames:
    """Derived resource names."""

    def test_storage_account_name_is_valid(self, base_config: DeploymentConfig) -> None:
        """Test that the storage account name meets Azure naming rules."""
        names = ResourceNames.from_config(base_config)

        assert names.storage_account == "sonarqubeabc123"
        assert names.storage_account.isalnum()
        assert 3 <= len(names.storage_account) <= 24

    def test_suffix_is_stable_when_not_supplied(self, base_config: DeploymentConfig) -> None:
        """Test that derived names are stable between runs."""
        config = base_config.model_copy(update={"unique_suffix": ""})

        first = ResourceNames.from_config(config)
        second = ResourceNames.from_config(config)

        assert first == second
        assert len(first.storage_account) <= 24

    def test_names_differ_between_resource_groups(self, base_config: DeploymentConfig) -> None:
        """Globally unique names must not collide across resource groups."""
        config = base_config.model_copy(update={"unique_suffix": ""})

        first = ResourceNames.from_config(config.scoped_to("sub-1", "rg-sonar-a"))
        second = ResourceNames.from_config(config.scoped_to("sub-1", "rg-sonar-b"))

        assert first.storage_account != second.storage_account
        assert first.postgres_server != second.postgres_server
        assert first.dns_name_label != second.dns_name_label
        assert len(first.storage_account) <= 24


class TestProxyCommand:
    """Reverse proxy command lines."""

    def test_nginx_forwards_to_sonarqube(self) -> None:
        """Test that the nginx command proxies to SonarQube."""
        command = proxy_command(ProxyKind.NGINX, 9000, 80)

        assert command[0] == "/bin/sh"
        assert "proxy_pass http://localhost:9000" in command[2]
        assert "listen 80" in command[2]

    def test_caddy_forwards_to_sonarqube(self) -> None:
        """Test that the caddy command proxies to SonarQube."""
        command = proxy_command(ProxyKind.CADDY, 9000, 80)

        assert command == [
            "caddy",
            "reverse-proxy",
            "--from",
            ":80",
            "--to",
            "localhost:9000",
        ]
