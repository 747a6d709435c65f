#!/usr/bin/env python3
"""
Identity Resolver.

Source precedence:
1. explicit override
2. persisted identity file (first non-empty line)
3. the placeholder reserved for single-node local development

The resolver always reports which mode produced the value, so a placeholder
can be caught before it reaches the cluster.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config_constants import (
    IDENTITY_MODE_PLACEHOLDER,
    IDENTITY_MODE_RESOLVED,
    KEY_INSTANCE_ID,
    PLACEHOLDER_INSTANCE_ID,
    PROFILE_LOCAL,
)
from .errors import IdentityPlaceholderMisuseError, InvalidValueError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstanceIdentity:
    value: str
    mode: str
    source: str

    @property
    def is_placeholder(self) -> bool:
        return self.mode == IDENTITY_MODE_PLACEHOLDER

    def ensure_usable(self, profile: str) -> None:
        """
        Raises:
            IdentityPlaceholderMisuseError: Placeholder outside the local profile
        """
        if self.is_placeholder and profile != PROFILE_LOCAL:
            raise IdentityPlaceholderMisuseError(profile)


def _mode_for(value: str) -> str:
    return IDENTITY_MODE_PLACEHOLDER if value == PLACEHOLDER_INSTANCE_ID else IDENTITY_MODE_RESOLVED


def read_identity_file(path: Path) -> Optional[str]:
    """Return the first non-empty line of an identity file, or None if absent/empty."""
    if not path.is_file():
        return None
    for line in path.read_text(encoding='utf-8').splitlines():
        value = line.strip()
        if value and not value.startswith('#'):
            return value
    return None


def resolve_identity(
    override: Optional[str] = None,
    identity_file: Optional[Path] = None,
) -> InstanceIdentity:
    if override:
        identity = InstanceIdentity(override.strip(), _mode_for(override.strip()), "override")
    else:
        persisted = read_identity_file(identity_file) if identity_file else None
        if persisted:
            identity = InstanceIdentity(persisted, _mode_for(persisted), str(identity_file))
        else:
            identity = InstanceIdentity(PLACEHOLDER_INSTANCE_ID, IDENTITY_MODE_PLACEHOLDER, "placeholder")

    if identity.is_placeholder:
        logger.warning(f"Instance identity is the local-only placeholder ({identity.value})")
    else:
        logger.debug(f"  INSTANCE_ID: {identity.value} (from {identity.source})")
    return identity


def write_identity_file(path: Path, value: Optional[str] = None, force: bool = False) -> str:
    """
    Persist an instance identity, generating a uuid4 when no value is given.

    Raises:
        FileExistsError: If an identity is already persisted and force is False
        InvalidValueError: If the value is the placeholder
    """
    existing = read_identity_file(path)
    if existing and not force:
        raise FileExistsError(
            f"Instance identity already persisted at {path} ({existing}). Use --force to replace it."
        )

    identity = value or str(uuid.uuid4())
    if identity == PLACEHOLDER_INSTANCE_ID:
        raise InvalidValueError(KEY_INSTANCE_ID, "refusing to persist the placeholder identity")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{identity}\n", encoding='utf-8')
    print(f"[INFO] Persisted instance identity to {path}", flush=True)
    return identity
