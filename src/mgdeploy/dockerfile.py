#!/usr/bin/env python3
"""Dockerfile rendering for the build variants."""

from __future__ import annotations

import logging
from typing import Dict

from jinja2 import StrictUndefined, Template, TemplateError

from .config_constants import (
    APP_FOLDER,
    BASE_IMAGE,
    DOCKERFILE_MARKER,
    LEGACY_ENV_NAMES,
    TRUST_ROOT_PACKAGE,
)
from .errors import InvalidValueError
from .runtime_config import RuntimeConfiguration
from .variants import DeploymentVariant

logger = logging.getLogger(__name__)

# Layers: trust roots only, then the prebuilt binary with its ENV defaults,
# then archive ownership, then the non-root runtime identity.
TPL_SERVICE_DOCKERFILE = """{{ marker }} ({{ variant }}); regenerated on every build
FROM {{ base_image }}

### Trust roots ###
RUN apt-get update \\
    && apt-get install -y --no-install-recommends {{ trust_root_package }} \\
    && rm -rf /var/lib/apt/lists/*

### Service binary and environment defaults ###
ENV APP_FOLDER={{ app_folder }}{% for key, value in environment.items() %} \\
    {{ key }}="{{ value }}"{% endfor %}

WORKDIR $APP_FOLDER

COPY {{ binary_source }} .
{% if archive_dir %}
### Archive ownership ###
RUN mkdir -p {{ archive_dir }} \\
    && chown -R {{ uid }}:{{ gid }} {{ archive_dir }}
{% endif %}{% for volume in volumes %}
VOLUME {{ volume }}
{% endfor %}
USER {{ uid }}:{{ gid }}

CMD ["./{{ application_name }}"]
"""


def quote_env_value(key: str, value: str) -> str:
    """
    Escape a value for a double-quoted Dockerfile ENV assignment.

    Backslash, double quote and `$` are escaped so the value is baked
    literally, without Docker variable substitution.

    Raises:
        InvalidValueError: If the value spans more than one line
    """
    if '\n' in value or '\r' in value:
        raise InvalidValueError(key, "line breaks cannot be baked into an image ENV default")
    return value.replace('\\', '\\\\').replace('"', '\\"').replace('$', '\\$')


def build_image_environment(variant: DeploymentVariant, config: RuntimeConfiguration) -> Dict[str, str]:
    """ENV defaults baked into the image (normalized names plus legacy aliases)."""
    environment = config.as_mapping()
    baked: Dict[str, str] = {}
    for key in variant.baked_keys:
        if key in environment:
            baked[key] = environment[key]
    for key in variant.baked_keys:
        legacy = LEGACY_ENV_NAMES.get(key)
        if legacy and key in environment:
            baked[legacy] = environment[key]
    return baked


def render_dockerfile(
    variant: DeploymentVariant,
    config: RuntimeConfiguration,
    binary_source: str,
    application_name: str,
) -> str:
    """
    Render the Dockerfile for a build variant.

    Raises:
        ValueError: If the variant is not a build variant
        InvalidValueError: If a baked value cannot be quoted
        TemplateError: If rendering fails
    """
    if not variant.is_build:
        raise ValueError(f"Variant '{variant.kind}' does not build an image")

    environment = {
        key: quote_env_value(key, value)
        for key, value in build_image_environment(variant, config).items()
    }
    context = {
        'marker': DOCKERFILE_MARKER,
        'variant': variant.kind,
        'base_image': BASE_IMAGE,
        'trust_root_package': TRUST_ROOT_PACKAGE,
        'app_folder': APP_FOLDER,
        'environment': environment,
        'binary_source': binary_source,
        'archive_dir': variant.archive_dir,
        'volumes': variant.volumes,
        'uid': variant.uid,
        'gid': variant.gid,
        'application_name': application_name,
    }
    logger.debug(f"Rendering Dockerfile for {variant.kind}: {sorted(context['environment'])}")

    try:
        return Template(TPL_SERVICE_DOCKERFILE, undefined=StrictUndefined).render(**context)
    except TemplateError as e:
        logger.error(f"Failed to render Dockerfile: {e}")
        raise TemplateError(f"Failed to render Dockerfile for {variant.kind}: {e}") from e
