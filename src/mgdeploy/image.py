#!/usr/bin/env python3
"""
Image Selector.

The image reference is always repository/application_name:architecture_version.
There is no implicit "latest": an unresolved version is a hard error, since a
floating tag defeats reproducible deployment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .config_constants import ENV_IMAGE
from .env_file import load_env_file
from .errors import (
    ArchitectureDetectionError,
    InvalidValueError,
    MissingConfigurationError,
    VersionUnresolvedError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageMetadata:
    """Values sourced from image_info.txt."""

    repository: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None
    architecture: Optional[str] = None


@dataclass(frozen=True)
class ImageReference:
    repository: str
    application_name: str
    architecture: str
    version: str
    # Set when the operator supplied a full image reference.
    override: Optional[str] = None

    def __str__(self) -> str:
        if self.override:
            return self.override
        return compose_image_reference(
            self.repository, self.application_name, self.architecture, self.version
        )


def load_image_metadata(path: Path) -> ImageMetadata:
    """
    Parse the shell-sourced image metadata file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    values: Dict[str, str] = load_env_file(path)
    logger.debug(f"Image metadata from {path}: {values}")
    return ImageMetadata(
        repository=values.get('REPO') or None,
        name=values.get('NAME') or None,
        version=values.get('VERSION') or None,
        architecture=values.get('ARCH') or None,
    )


def detect_architecture() -> str:
    """
    Query the kernel for the machine architecture (uname -m).

    Raises:
        ArchitectureDetectionError: If the platform query fails or is empty
    """
    try:
        machine = os.uname().machine
    except (AttributeError, OSError) as e:
        raise ArchitectureDetectionError(f"platform query failed: {e}") from e

    if not machine:
        raise ArchitectureDetectionError("platform query returned an empty architecture")
    return machine


def resolve_version(override: Optional[str], metadata_version: Optional[str]) -> str:
    """
    Raises:
        VersionUnresolvedError: No override and no metadata version
    """
    if override:
        return override
    if metadata_version:
        return metadata_version
    raise VersionUnresolvedError()


def compose_image_reference(repository: str, application_name: str, architecture: str, version: str) -> str:
    """
    Examples:
        >>> compose_image_reference('repo', 'app', 'x86_64', '1.29.3')
        'repo/app:x86_64_1.29.3'
    """
    for key, value in (('REPO', repository), ('NAME', application_name), ('ARCH', architecture)):
        if not value:
            raise MissingConfigurationError(key, "image reference component is empty")
    if not version:
        raise VersionUnresolvedError()
    return f"{repository}/{application_name}:{architecture}_{version}"


def select_image(
    metadata: Optional[ImageMetadata] = None,
    repository: Optional[str] = None,
    application_name: Optional[str] = None,
    architecture: Optional[str] = None,
    version: Optional[str] = None,
    image_override: Optional[str] = None,
) -> ImageReference:
    """
    Compute the concrete image reference.

    Explicit arguments win over the metadata file. The architecture is
    detected only when neither supplies it.
    """
    metadata = metadata or ImageMetadata()

    if image_override:
        tag = image_override.rsplit('/', 1)[-1]
        if ':' not in tag or tag.endswith(':'):
            raise InvalidValueError(ENV_IMAGE, f"image override must carry an explicit tag: {image_override}")
        print(f"[INFO] Image override: {image_override}", flush=True)
        return ImageReference(
            repository=repository or metadata.repository or "",
            application_name=application_name or metadata.name or "",
            architecture=architecture or metadata.architecture or "",
            version=version or metadata.version or "",
            override=image_override,
        )

    repo = repository or metadata.repository or ""
    name = application_name or metadata.name or ""
    arch = architecture or metadata.architecture or detect_architecture()
    resolved_version = resolve_version(version, metadata.version)

    image = compose_image_reference(repo, name, arch, resolved_version)
    print(f"[INFO] Image docker : {image}", flush=True)
    return ImageReference(repo, name, arch, resolved_version)
