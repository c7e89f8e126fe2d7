"""Container images deployed in the SonarQube container group.

The same naming rules are used by the composer (which image references the
container group pulls) and by the promotion workflow (which images are
copied into the private registry), so both always agree on repository names
and tags.
"""

from __future__ import annotations

from dataclasses import dataclass

DOCKER_HUB = "docker.io"

SONARQUBE_REPOSITORY = "sonarqube"

# Default tags per proxy repository
DEFAULT_PROXY_VERSIONS: dict[str, str] = {
    "nginx": "alpine",
    "caddy": "2-alpine",
}


@dataclass(frozen=True)
class ImageSpec:
    """One image to promote from a public registry to a private one.

    Attributes:
        name: Logical name ("app" or "proxy")
        repository: Repository name in the destination registry
        tag: Version tag, identical in source and destination
        source: Full source reference (e.g., "docker.io/library/nginx:alpine")
        destination: Full destination reference
                     (e.g., "myregistry.azurecr.io/nginx:alpine")
    """

    name: str
    repository: str
    tag: str
    source: str
    destination: str


def public_reference(registry: str, repository: str, tag: str) -> str:
    """Return the public-host form of an image reference.

    Docker Hub official images live under the ``library/`` namespace.

    Example:
        >>> public_reference("docker.io", "nginx", "alpine")
        'docker.io/library/nginx:alpine'
    """
    if registry == DOCKER_HUB and "/" not in repository:
        return f"{registry}/library/{repository}:{tag}"
    return f"{registry}/{repository}:{tag}"


def private_reference(login_server: str, repository: str, tag: str) -> str:
    return f"{login_server}/{repository}:{tag}"


def registry_login_server(registry_name: str) -> str:
    """Login server of an Azure Container Registry."""
    return f"{registry_name.lower()}.azurecr.io"


def proxy_version(proxy: str, version: str | None) -> str:
    return version or DEFAULT_PROXY_VERSIONS.get(proxy, "latest")


def build_image_specs(
    *,
    destination: str,
    sonarqube_version: str = "community",
    proxy: str = "nginx",
    proxy_image_version: str | None = None,
    source_registry: str = DOCKER_HUB,
) -> list[ImageSpec]:
    """Build the fixed, ordered list of images to promote.

    Args:
        destination: Destination registry login server
        sonarqube_version: SonarQube image tag
        proxy: Proxy repository ("nginx" or "caddy")
        proxy_image_version: Proxy tag (defaults per proxy)
        source_registry: Public registry host

    Returns:
        ImageSpecs for the application image followed by the proxy image
    """
    proxy_tag = proxy_version(proxy, proxy_image_version)
    return [
        ImageSpec(
            name="app",
            repository=SONARQUBE_REPOSITORY,
            tag=sonarqube_version,
            source=public_reference(source_registry, SONARQUBE_REPOSITORY, sonarqube_version),
            destination=private_reference(destination, SONARQUBE_REPOSITORY, sonarqube_version),
        ),
        ImageSpec(
            name="proxy",
            repository=proxy,
            tag=proxy_tag,
            source=public_reference(source_registry, proxy, proxy_tag),
            destination=private_reference(destination, proxy, proxy_tag),
        ),
    ]
