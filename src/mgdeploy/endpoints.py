#!/usr/bin/env python3
"""
Endpoint Resolver.

Broker, database and cache coordinates come from overrides, or from the
profile defaults: symbolic service names in the cluster, the developer host
DNS name locally. The cache URL keeps its scheme and fragment verbatim, since
downstream trust decisions depend on them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from .config_constants import (
    CLUSTER_MONGO_HOST,
    CLUSTER_MQ_HOST,
    CLUSTER_REDIS_HOST,
    DEFAULT_DEV_HOST,
    DEFAULT_FICHIERS_URL,
    KEY_FICHIERS_URL,
    KEY_REDIS_PASSWORD,
    KEY_REDIS_PASSWORD_FILE,
    KEY_REDIS_URL,
    PROFILE_LOCAL,
    REDIS_INSECURE_FRAGMENT,
    REDIS_PORT,
    REDIS_SCHEMES,
    build_redis_url,
)
from .errors import CredentialConflictError, InvalidValueError
from .secret_locator import SecretLocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEndpoint:
    url: str
    scheme: str
    principal: str
    host: str
    port: int
    insecure: bool

    @property
    def encrypted(self) -> bool:
        return self.scheme == 'rediss'


@dataclass(frozen=True)
class Endpoints:
    mq_host: str
    mongo_host: str
    cache: CacheEndpoint

    @property
    def redis_url(self) -> str:
        return self.cache.url


@dataclass(frozen=True)
class RedisCredential:
    """A password file reference, plus a literal in the local profile only."""

    password_file: str
    password: Optional[str] = None


def parse_cache_url(url: str) -> CacheEndpoint:
    """
    Parse a cache URL without normalizing it.

    Raises:
        InvalidValueError: If the scheme is not redis/rediss or the principal is missing
    """
    parts = urlsplit(url)
    if parts.scheme not in REDIS_SCHEMES:
        raise InvalidValueError(
            KEY_REDIS_URL,
            f"scheme must be one of {', '.join(REDIS_SCHEMES)} (got '{parts.scheme}' in {url})",
        )
    if not parts.username:
        raise InvalidValueError(KEY_REDIS_URL, f"missing credential principal in {url}")
    if not parts.hostname:
        raise InvalidValueError(KEY_REDIS_URL, f"missing host in {url}")
    if parts.password:
        raise CredentialConflictError(
            KEY_REDIS_URL, "password embedded in cache URL; use REDIS_PASSWORD_FILE"
        )

    try:
        port = parts.port or REDIS_PORT
    except ValueError as e:
        raise InvalidValueError(KEY_REDIS_URL, f"invalid port in {url}") from e

    return CacheEndpoint(
        url=url,
        scheme=parts.scheme,
        principal=parts.username,
        host=parts.hostname,
        port=port,
        insecure=parts.fragment == REDIS_INSECURE_FRAGMENT,
    )


def resolve_endpoints(
    profile: str,
    mq_host: Optional[str] = None,
    mongo_host: Optional[str] = None,
    redis_url: Optional[str] = None,
    dev_host: Optional[str] = None,
) -> Endpoints:
    """Return effective broker/database/cache coordinates for a profile."""
    if profile == PROFILE_LOCAL:
        host = dev_host or DEFAULT_DEV_HOST
        defaults = (host, host, build_redis_url(host))
    else:
        defaults = (CLUSTER_MQ_HOST, CLUSTER_MONGO_HOST, build_redis_url(CLUSTER_REDIS_HOST))

    endpoints = Endpoints(
        mq_host=mq_host or defaults[0],
        mongo_host=mongo_host or defaults[1],
        cache=parse_cache_url(redis_url or defaults[2]),
    )
    logger.debug(f"  MQ_HOST: {endpoints.mq_host}")
    logger.debug(f"  MONGO_HOST: {endpoints.mongo_host}")
    logger.debug(f"  REDIS_URL: {endpoints.redis_url}")
    return endpoints


def resolve_redis_credential(
    profile: str,
    locator: SecretLocator,
    password_file: Optional[str] = None,
    password: Optional[str] = None,
) -> RedisCredential:
    """
    Resolve the cache credential.

    Only the local profile accepts a literal password. Anywhere else a
    literal, alone or next to a file reference, is a hard error. When both are
    configured locally the file reference wins.

    Raises:
        CredentialConflictError: Literal password outside the local profile
        MissingSecretError: Password file missing (verifying locator only)
    """
    if password and profile != PROFILE_LOCAL:
        if password_file:
            raise CredentialConflictError(
                KEY_REDIS_PASSWORD,
                "both REDIS_PASSWORD_FILE and a literal password were supplied; "
                f"literal credentials are not permitted in the {profile} profile",
            )
        raise CredentialConflictError(
            KEY_REDIS_PASSWORD,
            f"literal credentials are not permitted in the {profile} profile; "
            "use REDIS_PASSWORD_FILE",
        )

    if password and password_file:
        logger.warning(
            "Both REDIS_PASSWORD_FILE and a literal password supplied; using the file"
        )
        return RedisCredential(password_file=locator.locate(KEY_REDIS_PASSWORD_FILE, password_file))

    if password:
        # The canonical path is kept so the key is never empty; it is not verified.
        logger.warning("Using literal cache password (local profile)")
        return RedisCredential(
            password_file=locator.layout.canonical_path(KEY_REDIS_PASSWORD_FILE),
            password=password,
        )

    return RedisCredential(password_file=locator.locate(KEY_REDIS_PASSWORD_FILE, password_file))


def resolve_fichiers_url(override: Optional[str] = None) -> str:
    """
    Resolve the file-storage endpoint used by the alternate-endpoint profile.

    Raises:
        InvalidValueError: If the URL is not https
    """
    url = override or DEFAULT_FICHIERS_URL
    parts = urlsplit(url)
    if parts.scheme != 'https' or not parts.hostname:
        raise InvalidValueError(KEY_FICHIERS_URL, f"expected an https URL (got {url})")
    return url
