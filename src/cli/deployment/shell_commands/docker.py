"""Docker command abstractions.

This module provides commands for Docker image operations used when
promoting images between registries: engine checks, registry login and
logout, pull, tag, push and local tag removal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


class DockerCommands:
    """Docker-related shell commands.

    Provides operations for:
    - Engine availability (docker info)
    - Registry sessions (login, logout)
    - Image management (pull, tag, push, remove)
    """

    def __init__(self, runner: CommandRunner) -> None:
        """Initialize Docker commands.

        Args:
            runner: Command runner for executing shell commands
        """
        self._runner = runner

    # =========================================================================
    # Engine
    # =========================================================================

    def is_installed(self) -> bool:
        """Check if the docker CLI is on PATH."""
        return self._runner.is_installed("docker")

    def info(self) -> CommandResult:
        """Query the container engine; fails if the daemon is unreachable."""
        return self._runner.run(["docker", "info", "--format", "{{.ServerVersion}}"])

    # =========================================================================
    # Registry Sessions
    # =========================================================================

    def login(self, registry: str, username: str, password: str) -> CommandResult:
        """Log in to a registry, passing the password on stdin.

        Args:
            registry: Registry host (e.g., "docker.io")
            username: Registry user name
            password: Password or access token

        Returns:
            CommandResult with login status
        """
        return self._runner.run(
            ["docker", "login", registry, "--username", username, "--password-stdin"],
            input=password,
        )

    def logout(self, registry: str) -> CommandResult:
        """Log out of a registry (best effort, safe when not logged in)."""
        return self._runner.run(["docker", "logout", registry])

    # =========================================================================
    # Image Management
    # =========================================================================

    def pull_image(self, image_tag: str) -> CommandResult:
        """Pull an image by its exact reference."""
        return self._runner.run(["docker", "pull", image_tag])

    def tag_image(self, source_tag: str, target_tag: str) -> CommandResult:
        """Tag a Docker image with a new tag.

        Args:
            source_tag: Existing image tag (e.g., "docker.io/library/nginx:alpine")
            target_tag: New tag to apply (e.g., "myacr.azurecr.io/nginx:alpine")

        Returns:
            CommandResult with tagging status
        """
        return self._runner.run(["docker", "tag", source_tag, target_tag])

    def push_image(self, image_tag: str) -> CommandResult:
        """Push a Docker image to a remote registry.

        Args:
            image_tag: Full image tag including registry
                      (e.g., "myacr.azurecr.io/sonarqube:community")

        Returns:
            CommandResult with push status
        """
        return self._runner.run(["docker", "push", image_tag])

    def remove_image(self, image_tag: str) -> CommandResult:
        """Remove a local tag; the image data stays while other tags reference it."""
        return self._runner.run(["docker", "image", "rm", image_tag])
