"""Error taxonomy for composition, submission and image promotion.

All errors carry a short ``message`` and optional ``details`` with recovery
hints, so the CLI can render them consistently.
"""

from __future__ import annotations


class DeploymentError(Exception):
    """Raised when a deployment operation fails."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigurationConflict(DeploymentError):
    """Mutually inconsistent options detected before any external call."""


class CompositionInvariantViolation(DeploymentError):
    """A resource reference points to a conditionally absent resource."""


class PreflightFailure(DeploymentError):
    """A required external dependency is unreachable or rejected credentials."""


class TransferFailure(DeploymentError):
    """A single image's pull, tag or push step failed.

    Attributes:
        step: Name of the failed step (e.g., "pull", "push")
    """

    def __init__(self, step: str, message: str, details: str | None = None):
        self.step = step
        super().__init__(message, details)
