#!/usr/bin/env python3
"""
RuntimeConfiguration: the typed environment of one service process.

The operator environment is read exactly once, at the CLI boundary, by
collect_overrides(). Everything downstream receives the resolved
RuntimeConfiguration explicitly and never consults os.environ.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from .config_constants import (
    KEY_CA_OVERRIDE,
    KEY_CAFILE,
    KEY_CERTFILE,
    KEY_FICHIERS_URL,
    KEY_INSTANCE_ID,
    KEY_KEYFILE,
    KEY_LOG_LEVEL_SPEC,
    KEY_MONGO_HOST,
    KEY_MQ_HOST,
    KEY_REDIS_PASSWORD,
    KEY_REDIS_PASSWORD_FILE,
    KEY_REDIS_URL,
    LEGACY_ENV_NAMES,
    LOG_LEVEL_DEFAULTS,
    LOG_LEVELS,
    OVERRIDE_ENV_NAMES,
    RUNTIME_KEYS,
)
from .endpoints import resolve_endpoints, resolve_fichiers_url, resolve_redis_credential
from .errors import InvalidValueError, MissingConfigurationError
from .identity import InstanceIdentity, resolve_identity
from .secret_locator import SecretLocator
from .variants import DeploymentVariant

logger = logging.getLogger(__name__)

REDACTED = '***REDACTED***'


@dataclass(frozen=True)
class Overrides:
    """Explicit override values, keyed by RuntimeConfiguration key."""

    values: Mapping[str, str] = field(default_factory=dict)
    identity_file: Optional[Path] = None
    dev_host: Optional[str] = None

    def get(self, key: str) -> Optional[str]:
        value = self.values.get(key)
        return value if value else None


def collect_overrides(
    environ: Mapping[str, str],
    config: Optional[dict] = None,
) -> Dict[str, str]:
    """
    Gather overrides from TOML config and the operator environment.

    The environment wins over the TOML [runtime] section. For each key the
    normalized name is checked before its legacy alias.
    """
    values: Dict[str, str] = {}
    runtime_section = (config or {}).get('runtime', {})
    for key in OVERRIDE_ENV_NAMES:
        toml_value = runtime_section.get(key)
        if toml_value not in (None, ""):
            values[key] = str(toml_value)

    for key, names in OVERRIDE_ENV_NAMES.items():
        for name in names:
            value = environ.get(name)
            if value:
                values[key] = value
                logger.debug(f"  override {key} from ${name}")
                break
    return values


def validate_log_level_spec(spec: str) -> str:
    """
    Validate a per-target verbosity string such as "warn,millegrilles=debug".

    Raises:
        InvalidValueError: If a directive names an unknown level
    """
    directives = [part.strip() for part in spec.split(',') if part.strip()]
    if not directives:
        raise InvalidValueError(KEY_LOG_LEVEL_SPEC, "empty log level specification")
    for directive in directives:
        level = directive.rsplit('=', 1)[-1].strip().lower()
        target = directive.rsplit('=', 1)[0].strip() if '=' in directive else None
        if level not in LOG_LEVELS or (target is not None and not target):
            raise InvalidValueError(
                KEY_LOG_LEVEL_SPEC,
                f"invalid directive '{directive}' (levels: {', '.join(LOG_LEVELS)})",
            )
    return spec


@dataclass(frozen=True)
class RuntimeConfiguration:
    CAFILE: str
    KEYFILE: str
    CERTFILE: str
    MQ_HOST: str
    MONGO_HOST: str
    REDIS_URL: str
    REDIS_PASSWORD_FILE: str
    INSTANCE_ID: str
    LOG_LEVEL_SPEC: str
    NOEUD_ID: str
    CA_OVERRIDE: str
    FICHIERS_URL: Optional[str] = None
    profile: str = ""
    identity_mode: str = ""
    identity_source: str = ""
    # Literal cache password, local profile only; never baked, never printed.
    redis_password: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        for key in RUNTIME_KEYS:
            if not getattr(self, key):
                raise MissingConfigurationError(key)

    @property
    def identity(self) -> InstanceIdentity:
        return InstanceIdentity(self.INSTANCE_ID, self.identity_mode, self.identity_source)

    def as_mapping(self) -> Dict[str, str]:
        """The enumerated keys (plus FICHIERS_URL when set)."""
        mapping = {key: getattr(self, key) for key in RUNTIME_KEYS}
        if self.FICHIERS_URL:
            mapping[KEY_FICHIERS_URL] = self.FICHIERS_URL
        return mapping

    def to_environment(self, include_legacy: bool = True) -> Dict[str, str]:
        """
        Container environment: every key, plus the legacy names read by the
        service binary, all derived from the same resolved values.
        """
        env = self.as_mapping()
        if self.redis_password:
            env[KEY_REDIS_PASSWORD] = self.redis_password
        if include_legacy:
            for key, legacy in LEGACY_ENV_NAMES.items():
                if key in env:
                    env[legacy] = env[key]
        return env

    def to_context(self) -> Dict[str, object]:
        """Printable context; literal credentials are redacted."""
        context: Dict[str, object] = dict(self.as_mapping())
        if self.redis_password:
            context[KEY_REDIS_PASSWORD] = REDACTED
        context['profile'] = self.profile
        context['identity_mode'] = self.identity_mode
        context['identity_source'] = self.identity_source
        return context


def resolve_runtime_configuration(
    profile: str,
    variant: DeploymentVariant,
    locator: SecretLocator,
    overrides: Optional[Overrides] = None,
) -> RuntimeConfiguration:
    """
    Construct the RuntimeConfiguration once from the Secret, Endpoint and
    Identity resolvers.

    Raises:
        DeploymentConfigError: Any key that fails to resolve
    """
    overrides = overrides or Overrides()
    logger.debug(f"Resolving runtime configuration (profile={profile}, variant={variant.kind})")

    cafile = locator.locate(KEY_CAFILE, overrides.get(KEY_CAFILE))
    keyfile = locator.locate(KEY_KEYFILE, overrides.get(KEY_KEYFILE))
    certfile = locator.locate(KEY_CERTFILE, overrides.get(KEY_CERTFILE))
    ca_override = overrides.get(KEY_CA_OVERRIDE)
    ca_override = locator.locate(KEY_CA_OVERRIDE, ca_override) if ca_override else cafile

    endpoints = resolve_endpoints(
        profile,
        mq_host=overrides.get(KEY_MQ_HOST),
        mongo_host=overrides.get(KEY_MONGO_HOST),
        redis_url=overrides.get(KEY_REDIS_URL),
        dev_host=overrides.dev_host,
    )
    credential = resolve_redis_credential(
        profile,
        locator,
        password_file=overrides.get(KEY_REDIS_PASSWORD_FILE),
        password=overrides.get(KEY_REDIS_PASSWORD),
    )

    identity = resolve_identity(overrides.get(KEY_INSTANCE_ID), overrides.identity_file)

    log_level = overrides.get(KEY_LOG_LEVEL_SPEC) or LOG_LEVEL_DEFAULTS.get(profile)
    if not log_level:
        raise MissingConfigurationError(KEY_LOG_LEVEL_SPEC)
    validate_log_level_spec(log_level)

    fichiers_url = resolve_fichiers_url(overrides.get(KEY_FICHIERS_URL)) if variant.alt_endpoint else None

    return RuntimeConfiguration(
        CAFILE=cafile,
        KEYFILE=keyfile,
        CERTFILE=certfile,
        MQ_HOST=endpoints.mq_host,
        MONGO_HOST=endpoints.mongo_host,
        REDIS_URL=endpoints.redis_url,
        REDIS_PASSWORD_FILE=credential.password_file,
        INSTANCE_ID=identity.value,
        LOG_LEVEL_SPEC=log_level,
        NOEUD_ID=identity.value,
        CA_OVERRIDE=ca_override,
        FICHIERS_URL=fichiers_url,
        profile=profile,
        identity_mode=identity.mode,
        identity_source=identity.source,
        redis_password=credential.password,
    )