#!/usr/bin/env python3
"""
Deployment variants.

One parameterized table replaces the four near-duplicate recipes: a direct
container run, and three image builds that differ only in their defaults and
in their VOLUME/ownership policy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Tuple

from .config_constants import (
    ARCHIVE_DIR,
    DEFAULT_ALT_APPLICATION_NAME,
    DEFAULT_APPLICATION_NAME,
    KEY_CAFILE,
    KEY_CERTFILE,
    KEY_FICHIERS_URL,
    KEY_KEYFILE,
    KEY_LOG_LEVEL_SPEC,
    KEY_MONGO_HOST,
    KEY_MQ_HOST,
    KEY_REDIS_PASSWORD_FILE,
    KEY_REDIS_URL,
    PROFILE_CLUSTER,
    PROFILE_LOCAL,
    SERVICE_GID,
    SERVICE_UID,
)

VariantKind = Literal["direct-run", "build-only", "build-with-volume", "build-with-alt-endpoint"]

DIRECT_RUN = "direct-run"
BUILD_ONLY = "build-only"
BUILD_WITH_VOLUME = "build-with-volume"
BUILD_WITH_ALT_ENDPOINT = "build-with-alt-endpoint"

_TRUST_KEYS = (KEY_CAFILE, KEY_KEYFILE, KEY_CERTFILE)
_BROKER_KEYS = (KEY_MQ_HOST, KEY_MONGO_HOST, KEY_REDIS_URL, KEY_REDIS_PASSWORD_FILE)


@dataclass(frozen=True)
class DeploymentVariant:
    """A deployment action shape, chosen once per build or run invocation."""

    kind: VariantKind
    default_profile: str
    application_name: str
    # Keys written as ENV defaults in the image. Empty for direct-run, where
    # nothing is baked and the whole configuration is passed at run time.
    baked_keys: Tuple[str, ...] = ()
    archive_dir: Optional[str] = None
    declare_volume: bool = False
    uid: int = SERVICE_UID
    gid: int = SERVICE_GID
    alt_endpoint: bool = False

    @property
    def is_build(self) -> bool:
        return self.kind != DIRECT_RUN

    @property
    def requires_secret_mount(self) -> bool:
        return self.kind == DIRECT_RUN

    @property
    def volumes(self) -> Tuple[str, ...]:
        if self.declare_volume and self.archive_dir:
            return (self.archive_dir,)
        return ()


VARIANTS: Dict[str, DeploymentVariant] = {
    DIRECT_RUN: DeploymentVariant(
        kind=DIRECT_RUN,
        default_profile=PROFILE_LOCAL,
        application_name=DEFAULT_APPLICATION_NAME,
    ),
    BUILD_ONLY: DeploymentVariant(
        kind=BUILD_ONLY,
        default_profile=PROFILE_CLUSTER,
        application_name=DEFAULT_APPLICATION_NAME,
        baked_keys=_TRUST_KEYS + _BROKER_KEYS + (KEY_LOG_LEVEL_SPEC,),
        archive_dir=ARCHIVE_DIR,
    ),
    BUILD_WITH_VOLUME: DeploymentVariant(
        kind=BUILD_WITH_VOLUME,
        default_profile=PROFILE_CLUSTER,
        application_name=DEFAULT_APPLICATION_NAME,
        baked_keys=_TRUST_KEYS + _BROKER_KEYS + (KEY_LOG_LEVEL_SPEC,),
        archive_dir=ARCHIVE_DIR,
        declare_volume=True,
    ),
    BUILD_WITH_ALT_ENDPOINT: DeploymentVariant(
        kind=BUILD_WITH_ALT_ENDPOINT,
        default_profile=PROFILE_CLUSTER,
        application_name=DEFAULT_ALT_APPLICATION_NAME,
        baked_keys=_TRUST_KEYS + (KEY_FICHIERS_URL, KEY_LOG_LEVEL_SPEC),
        archive_dir=ARCHIVE_DIR,
        declare_volume=True,
        alt_endpoint=True,
    ),
}


def get_variant(name: str) -> DeploymentVariant:
    """Look up a variant by its kind name."""
    try:
        return VARIANTS[name]
    except KeyError:
        raise ValueError(
            f"Unknown deployment variant '{name}'. Expected one of: {', '.join(VARIANTS)}"
        ) from None
