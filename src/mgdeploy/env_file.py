#!/usr/bin/env python3
"""Parsing for shell-sourced KEY=VALUE files (image_info.txt and friends)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)


def _strip_inline_comment(line: str) -> str:
    in_quotes = False
    quote_char = None
    for i, char in enumerate(line):
        if char in ('"', "'") and (i == 0 or line[i - 1] != '\\'):
            if not in_quotes:
                in_quotes = True
                quote_char = char
            elif char == quote_char:
                in_quotes = False
                quote_char = None
        elif char == '#' and not in_quotes:
            return line[:i].strip()
    return line


def parse_env_text(text: str, source: str = "<string>") -> Dict[str, str]:
    """
    Parse KEY=VALUE lines as a POSIX shell would source them.

    Blank lines, comments and `export` prefixes are ignored; matching quotes
    around values are removed.
    """
    values: Dict[str, str] = {}
    for line_num, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue

        line = _strip_inline_comment(line)
        if line.startswith('export '):
            line = line[len('export '):].strip()

        if '=' not in line:
            logger.warning(f"Skipping invalid line {line_num} in {source}: '{line}'")
            continue

        key, val = line.split('=', 1)
        key = key.strip()
        val = val.strip()

        if len(val) >= 2 and val[0] == val[-1] and val[0] in ('"', "'"):
            val = val[1:-1]

        values[key] = val
    return values


def load_env_file(path: Path | str) -> Dict[str, str]:
    """
    Load a KEY=VALUE file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    env_path = Path(path)
    if not env_path.is_file():
        raise FileNotFoundError(f"Environment file not found: {env_path}")

    with open(env_path, 'r', encoding='utf-8') as f:
        return parse_env_text(f.read(), str(env_path))
