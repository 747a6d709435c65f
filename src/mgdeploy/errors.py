#!/usr/bin/env python3
"""
Deployment configuration errors.

Every error names the configuration key or resource that failed to resolve.
All of them are fail-fast: the build or launch action aborts before any
process starts.
"""

from __future__ import annotations

from typing import Optional


class DeploymentConfigError(ValueError):
    """Base class for bootstrap resolution failures."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"{key}: {message}")


class MissingConfigurationError(DeploymentConfigError):
    """A required key has neither an override nor a default."""

    def __init__(self, key: str, message: Optional[str] = None) -> None:
        super().__init__(key, message or "no override and no default value")


class InvalidValueError(DeploymentConfigError):
    pass


class MissingSecretError(DeploymentConfigError):
    """A credential path does not resolve to an existing artifact."""

    def __init__(self, key: str, path: str, message: Optional[str] = None) -> None:
        self.path = path
        super().__init__(key, message or f"secret not found at {path}")


class ArchitectureDetectionError(DeploymentConfigError):
    def __init__(self, message: str) -> None:
        super().__init__("ARCH", message)


class VersionUnresolvedError(DeploymentConfigError):
    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(
            "VERSION",
            message or "no version override and no version in image metadata",
        )


class CredentialConflictError(DeploymentConfigError):
    """A plaintext credential was supplied where only a file reference is permitted."""


class IdentityPlaceholderMisuseError(DeploymentConfigError):
    def __init__(self, profile: str) -> None:
        self.profile = profile
        super().__init__(
            "INSTANCE_ID",
            f"placeholder identity is only allowed in the local profile (profile: {profile})",
        )
