"""Data types for shell command results.

This module contains all dataclasses and type definitions used across
the shell command modules.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "CommandResult",
    "AzureAccount",
    "TagListing",
]


@dataclass
class CommandResult:
    """Result of a command execution."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0

    @property
    def error_output(self) -> str:
        """Best available description of a failure."""
        return (self.stderr or self.stdout).strip()


@dataclass
class AzureAccount:
    """The Azure CLI's active subscription.

    Attributes:
        subscription_id: Subscription GUID
        subscription_name: Display name of the subscription
        user: Signed-in user or service principal
    """

    subscription_id: str
    subscription_name: str
    user: str


@dataclass
class TagListing:
    """Tags of one repository in a registry.

    Attributes:
        success: Whether the registry could be queried
        tags: Tags present (empty when the repository does not exist yet)
        error: Failure description when success is False
    """

    success: bool
    tags: frozenset[str] = frozenset()
    error: str = ""
