#!/usr/bin/env python3
"""
Configuration constants for SenseursPassifs deployment.

CRITICAL: This is the SINGLE SOURCE OF TRUTH for configuration key names,
canonical secret paths and default values. All modules MUST import from this
file instead of using hardcoded strings.

Naming Convention:
- KEY_* = RuntimeConfiguration key (normalized, as exported to the container)
- ENV_* = operator-side environment variable read by the CLI only
- *_DEFAULTS = per-profile default tables
"""

from __future__ import annotations

# ============================================================================
# RuntimeConfiguration keys (CANONICAL - DO NOT HARDCODE)
# ============================================================================

KEY_CAFILE = 'CAFILE'
KEY_KEYFILE = 'KEYFILE'
KEY_CERTFILE = 'CERTFILE'
KEY_MQ_HOST = 'MQ_HOST'
KEY_MONGO_HOST = 'MONGO_HOST'
KEY_REDIS_URL = 'REDIS_URL'
KEY_REDIS_PASSWORD_FILE = 'REDIS_PASSWORD_FILE'
KEY_INSTANCE_ID = 'INSTANCE_ID'
KEY_LOG_LEVEL_SPEC = 'LOG_LEVEL_SPEC'
KEY_NOEUD_ID = 'NOEUD_ID'
KEY_CA_OVERRIDE = 'CA_OVERRIDE'

# Alternate-endpoint profile only
KEY_FICHIERS_URL = 'FICHIERS_URL'

# Literal cache password (local profile only, never baked)
KEY_REDIS_PASSWORD = 'REDIS_PASSWORD'

RUNTIME_KEYS = (
    KEY_CAFILE,
    KEY_KEYFILE,
    KEY_CERTFILE,
    KEY_MQ_HOST,
    KEY_MONGO_HOST,
    KEY_REDIS_URL,
    KEY_REDIS_PASSWORD_FILE,
    KEY_INSTANCE_ID,
    KEY_LOG_LEVEL_SPEC,
    KEY_NOEUD_ID,
    KEY_CA_OVERRIDE,
)

SECRET_KEYS = (KEY_CAFILE, KEY_KEYFILE, KEY_CERTFILE, KEY_REDIS_PASSWORD_FILE)

# Names the service binary reads, mapped from the normalized key.
LEGACY_ENV_NAMES = {
    KEY_MQ_HOST: 'MG_MQ_HOST',
    KEY_MONGO_HOST: 'MG_MONGO_HOST',
    KEY_REDIS_URL: 'MG_REDIS_URL',
    KEY_REDIS_PASSWORD_FILE: 'MG_REDIS_PASSWORD_FILE',
    KEY_NOEUD_ID: 'MG_NOEUD_ID',
    KEY_CA_OVERRIDE: 'MG_MAITREDESCLES_CA',
    KEY_LOG_LEVEL_SPEC: 'RUST_LOG',
    KEY_FICHIERS_URL: 'MG_FICHIERS_URL',
    KEY_REDIS_PASSWORD: 'MG_REDIS_PASSWORD',
}

# Operator-side names accepted for each override, first match wins.
OVERRIDE_ENV_NAMES = {
    KEY_CAFILE: ('CAFILE',),
    KEY_KEYFILE: ('KEYFILE',),
    KEY_CERTFILE: ('CERTFILE',),
    KEY_MQ_HOST: ('MQ_HOST', 'MG_MQ_HOST'),
    KEY_MONGO_HOST: ('MONGO_HOST', 'MG_MONGO_HOST'),
    KEY_REDIS_URL: ('REDIS_URL', 'MG_REDIS_URL'),
    KEY_REDIS_PASSWORD_FILE: ('REDIS_PASSWORD_FILE', 'MG_REDIS_PASSWORD_FILE'),
    KEY_REDIS_PASSWORD: ('REDIS_PASSWORD', 'MG_REDIS_PASSWORD'),
    KEY_INSTANCE_ID: ('INSTANCE_ID', 'MG_INSTANCE_ID', 'MG_NOEUD_ID'),
    KEY_LOG_LEVEL_SPEC: ('LOG_LEVEL_SPEC', 'RUST_LOG'),
    KEY_CA_OVERRIDE: ('CA_OVERRIDE', 'MG_MAITREDESCLES_CA'),
    KEY_FICHIERS_URL: ('FICHIERS_URL', 'MG_FICHIERS_URL'),
}

# ============================================================================
# Operator-side settings (CLI boundary only)
# ============================================================================

ENV_DEV_HOST = 'MG_DEV_HOST'
ENV_CERT_FOLDER = 'MG_CERT_FOLDER'
ENV_IMAGE = 'MG_IMAGE'
ENV_IMAGE_VERSION = 'MG_IMAGE_VERSION'
ENV_IMAGE_ARCH = 'MG_IMAGE_ARCH'
ENV_INSTANCE_ID_FILE = 'MG_INSTANCE_ID_FILE'
ENV_LOG_LEVEL = 'MGDEPLOY_LOG_LEVEL'

# ============================================================================
# Profiles
# ============================================================================

PROFILE_CLUSTER = 'cluster'
PROFILE_LOCAL = 'local'

PROFILE_ALIASES = {
    'cluster': PROFILE_CLUSTER,
    'prod': PROFILE_CLUSTER,
    'local': PROFILE_LOCAL,
    'dev': PROFILE_LOCAL,
    'development': PROFILE_LOCAL,
}

# ============================================================================
# Secrets roots
# ============================================================================

CONTAINER_SECRETS_ROOT = '/run/secrets'
CONTAINER_SECRET_FILES = {
    KEY_CAFILE: 'millegrille.cert.pem',
    KEY_KEYFILE: 'key.pem',
    KEY_CERTFILE: 'cert.pem',
    KEY_REDIS_PASSWORD_FILE: 'passwd.redis.txt',
}

# Host development certificates are mounted at this fixed container path.
DEV_SECRETS_MOUNT_POINT = '/certs'
DEV_SECRET_FILES = {
    KEY_CAFILE: 'pki.millegrille',
    KEY_KEYFILE: 'pki.maitrecles.key',
    KEY_CERTFILE: 'pki.maitrecles.cert',
    KEY_REDIS_PASSWORD_FILE: 'passwd.redis.txt',
}
DEFAULT_DEV_CERT_FOLDER = '~/mgdev/certs'

# ============================================================================
# Endpoint defaults
# ============================================================================

CLUSTER_MQ_HOST = 'mq'
CLUSTER_MONGO_HOST = 'mongo'
CLUSTER_REDIS_HOST = 'redis'
REDIS_PRINCIPAL = 'client'
REDIS_PORT = 6379
DEFAULT_DEV_HOST = 'localhost'
DEFAULT_FICHIERS_URL = 'https://fichiers:443'

REDIS_SCHEMES = ('redis', 'rediss')
REDIS_INSECURE_FRAGMENT = 'insecure'


def build_redis_url(host: str) -> str:
    """
    Build the default cache URL for a host.

    Examples:
        >>> build_redis_url('redis')
        'rediss://client@redis:6379#insecure'
    """
    return f"rediss://{REDIS_PRINCIPAL}@{host}:{REDIS_PORT}#{REDIS_INSECURE_FRAGMENT}"


# ============================================================================
# Identity
# ============================================================================

PLACEHOLDER_INSTANCE_ID = '00000000-0000-0000-0000-000000000000'
DEFAULT_INSTANCE_ID_FILE = '~/.config/millegrilles/instance_id'
IDENTITY_MODE_RESOLVED = 'resolved'
IDENTITY_MODE_PLACEHOLDER = 'placeholder'

# ============================================================================
# Logging
# ============================================================================

LOG_LEVEL_DEFAULTS = {
    PROFILE_CLUSTER: 'warn',
    PROFILE_LOCAL: 'info',
}
LOG_LEVELS = ('off', 'error', 'warn', 'info', 'debug', 'trace')

# ============================================================================
# Image / build
# ============================================================================

IMAGE_INFO_FILENAME = 'image_info.txt'
DEFAULT_APPLICATION_NAME = 'millegrilles_senseurspassifs'
DEFAULT_ALT_APPLICATION_NAME = 'millegrilles_fichiers'
APP_FOLDER = '/usr/src/app'
BASE_IMAGE = 'ubuntu'
TRUST_ROOT_PACKAGE = 'ca-certificates'
ARCHIVE_DIR = '/var/opt/millegrilles/archives'
SERVICE_UID = 983
SERVICE_GID = 980
RELEASE_BINARY_DIR = 'target/release'
DOCKERFILE_NAME = 'Dockerfile.mgdeploy'
DOCKERFILE_MARKER = '# Generated by mgdeploy'

# ============================================================================
# TOML configuration filenames
# ============================================================================

CONFIG_DEFAULTS = 'mgdeploy.defaults.toml'
CONFIG_OVERRIDES = 'mgdeploy.toml'
CONFIG_SECTIONS = ('image', 'endpoints', 'secrets', 'identity', 'launch', 'build')


def normalize_profile(name: str) -> str:
    """
    Map a profile name or alias to its canonical name.

    Raises:
        ValueError: If the name is not a known profile
    """
    normalized = PROFILE_ALIASES.get(str(name).strip().lower())
    if normalized is None:
        raise ValueError(
            f"Unknown profile '{name}'. Expected one of: {', '.join(sorted(PROFILE_ALIASES))}"
        )
    return normalized
