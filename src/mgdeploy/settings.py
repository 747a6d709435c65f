#!/usr/bin/env python3
"""
TOML settings for mgdeploy.

mgdeploy.defaults.toml (committed) and mgdeploy.toml (local overrides) are
read from the working directory and deep-merged key by key, overrides last.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from .config_constants import CONFIG_DEFAULTS, CONFIG_OVERRIDES, CONFIG_SECTIONS

logger = logging.getLogger(__name__)

KNOWN_SECTIONS = set(CONFIG_SECTIONS) | {'runtime'}


def parse_toml(path: Path) -> dict:
    """
    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the TOML is malformed
    """
    if not path.exists():
        raise FileNotFoundError(f"TOML file not found: {path}")

    with open(path, 'rb') as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(
                f"[ERROR] Failed to parse TOML from {path}\n"
                f"[ERROR] TOML syntax error: {e}"
            ) from e


def deep_merge_configs(base: dict, override: dict) -> dict:
    """Key-level deep merge; scalars and lists from override replace base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge_configs(result[key], value)
        else:
            if key in result:
                logger.debug(f"  Override: {key} = {value} (was: {result[key]})")
            result[key] = value
    return result


def load_settings(working_dir: Path) -> dict:
    """Load and merge the defaults and override files; missing files are skipped."""
    merged: dict = {}
    for filename in (CONFIG_DEFAULTS, CONFIG_OVERRIDES):
        path = working_dir / filename
        if not path.exists():
            continue
        logger.debug(f"Loading settings: {path}")
        merged = deep_merge_configs(merged, parse_toml(path))

    unknown = set(merged) - KNOWN_SECTIONS
    if unknown:
        raise ValueError(
            f"[ERROR] Unknown section(s) in {CONFIG_DEFAULTS}/{CONFIG_OVERRIDES}: {', '.join(sorted(unknown))}"
        )
    return merged


def get_setting(settings: dict, dotted_path: str, default: Any = None) -> Any:
    """Return settings['a']['b'] for 'a.b', or default."""
    cursor: Any = settings
    for key in dotted_path.split('.'):
        if not isinstance(cursor, dict) or key not in cursor:
            return default
        cursor = cursor[key]
    if cursor in (None, ""):
        return default
    return cursor


def _drop_none(data: dict) -> dict:
    return {
        key: _drop_none(value) if isinstance(value, dict) else value
        for key, value in data.items()
        if value is not None
    }


def write_rendered_toml(output_path: Path, data: dict) -> None:
    """Write a resolved context to disk using tomli_w."""
    import tomli_w

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'wb') as f:
        tomli_w.dump(_drop_none(data), f)
