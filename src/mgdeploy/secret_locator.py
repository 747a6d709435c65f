#!/usr/bin/env python3
"""
Secret Locator.

Resolves paths for the CA certificate, private key, leaf certificate and the
cache password file. Resolution is pure: contents are never read, only the
existence of the artifact is checked.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Mapping, Optional

from .config_constants import (
    CONTAINER_SECRET_FILES,
    CONTAINER_SECRETS_ROOT,
    DEV_SECRET_FILES,
    DEV_SECRETS_MOUNT_POINT,
    PROFILE_LOCAL,
)
from .errors import MissingConfigurationError, MissingSecretError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecretMount:
    """Read-only bind of a host secrets directory into the container."""

    host_dir: Path
    container_dir: str = DEV_SECRETS_MOUNT_POINT
    read_only: bool = True

    def to_host(self, path: str, key: str = "SECRET_MOUNT") -> Path:
        """
        Translate a container-side path under the mount to its host location.

        Raises:
            MissingSecretError: If the path is outside the secrets mount, after
                `..` normalization and symlink resolution on the host
        """
        container_root = PurePosixPath(self.container_dir)
        candidate = PurePosixPath(posixpath.normpath(path))
        try:
            relative = candidate.relative_to(container_root)
        except ValueError:
            raise MissingSecretError(
                key, path, f"{path} is outside the secrets mount {self.container_dir}"
            ) from None

        host_path = self.host_dir / relative
        if not host_path.resolve().is_relative_to(self.host_dir.resolve()):
            raise MissingSecretError(
                key, path, f"{path} resolves outside the secrets mount {self.container_dir}"
            )
        return host_path

    def validate(self) -> None:
        """
        Fail fast unless the host directory exists and holds trust material.

        Raises:
            MissingSecretError: If the directory is missing or empty
        """
        if not self.host_dir.is_dir():
            raise MissingSecretError(
                "SECRET_MOUNT", str(self.host_dir),
                f"secrets directory not found: {self.host_dir}",
            )
        if not any(self.host_dir.iterdir()):
            raise MissingSecretError(
                "SECRET_MOUNT", str(self.host_dir),
                f"secrets directory is empty: {self.host_dir}",
            )

    def as_volume_arg(self) -> str:
        suffix = ":ro" if self.read_only else ""
        return f"{self.host_dir}:{self.container_dir}{suffix}"


@dataclass(frozen=True)
class SecretLayout:
    """Canonical filenames under a secrets root."""

    root: str
    filenames: Mapping[str, str]

    def canonical_path(self, key: str) -> str:
        filename = self.filenames.get(key)
        if not filename:
            raise MissingConfigurationError(key, "no canonical secret filename")
        return str(PurePosixPath(self.root) / filename)


CONTAINER_LAYOUT = SecretLayout(CONTAINER_SECRETS_ROOT, CONTAINER_SECRET_FILES)


def layout_for(profile: str, mount: Optional[SecretMount] = None) -> SecretLayout:
    """
    Pick the secrets layout for a launch.

    Direct runs with a host mount use the development filenames under the
    mount point. Everything else uses the in-container secrets root.
    """
    if mount is not None and profile == PROFILE_LOCAL:
        return SecretLayout(mount.container_dir, DEV_SECRET_FILES)
    if mount is not None:
        return SecretLayout(mount.container_dir, CONTAINER_SECRET_FILES)
    return CONTAINER_LAYOUT


class SecretLocator:
    """
    Resolve effective secret paths.

    With verify=False the existence check is deferred to the service process
    (image builds, where secrets only appear in the running container).
    """

    def __init__(
        self,
        layout: SecretLayout = CONTAINER_LAYOUT,
        mount: Optional[SecretMount] = None,
        verify: bool = True,
    ) -> None:
        self.layout = layout
        self.mount = mount
        self.verify = verify

    def locate(self, key: str, override: Optional[str] = None) -> str:
        """
        Return the effective path for a secret key.

        Raises:
            MissingSecretError: If verification is on and the artifact is missing
        """
        path = override if override else self.layout.canonical_path(key)
        source = "override" if override else "canonical"
        logger.debug(f"  {key}: {path} ({source})")

        if self.verify:
            host_path = self.mount.to_host(path, key) if self.mount else Path(path)
            if not host_path.exists():
                raise MissingSecretError(key, path)

        return path
