#!/usr/bin/env python3
"""
mgdeploy engine.

Pipeline for one deployment action:
1. Load TOML settings (defaults + overrides)
2. Pick the DeploymentVariant and profile
3. Read operator overrides once from the environment
4. Resolve secrets, endpoints and identity into a RuntimeConfiguration
5. Select the image reference
6. Plan and start exactly one process (docker run or docker build)

Any resolution failure aborts before step 6.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Mapping, Optional

from .config_constants import (
    DEFAULT_DEV_CERT_FOLDER,
    DEFAULT_INSTANCE_ID_FILE,
    DOCKERFILE_NAME,
    ENV_CERT_FOLDER,
    ENV_DEV_HOST,
    ENV_IMAGE,
    ENV_IMAGE_ARCH,
    ENV_IMAGE_VERSION,
    ENV_INSTANCE_ID_FILE,
    IMAGE_INFO_FILENAME,
    KEY_INSTANCE_ID,
    normalize_profile,
)
from .errors import DeploymentConfigError
from .identity import write_identity_file
from .image import ImageMetadata, ImageReference, load_image_metadata, select_image
from .launcher import compile_binary, execute_plan, plan_build, plan_direct_run, write_dockerfile
from .runtime_config import Overrides, RuntimeConfiguration, collect_overrides, resolve_runtime_configuration
from .secret_locator import SecretLocator, SecretMount, layout_for
from .settings import get_setting, load_settings, write_rendered_toml
from .variants import DIRECT_RUN, DeploymentVariant, get_variant

# Global logger instance (configured after parsing arguments)
logger = logging.getLogger(__name__)


def check_runtime_dependencies() -> None:
    """
    Validate that required runtime dependencies are installed.
    """
    if os.getenv('SKIP_DEPENDENCY_CHECK') == '1':
        return

    print("[INFO] Validating runtime dependencies...", flush=True)
    missing_deps = []

    try:
        result = subprocess.run(
            ['docker', '--version'],
            capture_output=True,
            text=True,
            timeout=5
        )
        if result and result.returncode != 0:
            missing_deps.append(('docker', 'Docker Engine', 'https://docs.docker.com/engine/install/'))
    except (FileNotFoundError, subprocess.TimeoutExpired):
        missing_deps.append(('docker', 'Docker Engine', 'https://docs.docker.com/engine/install/'))

    try:
        import jinja2  # noqa: F401 - Import check only
    except ImportError:
        missing_deps.append(('jinja2', 'Jinja2 template engine', 'pip install jinja2'))

    try:
        import tomli_w  # noqa: F401 - Import check only
    except ImportError:
        missing_deps.append(('tomli_w', 'TOML writer library', 'pip install tomli_w'))

    if missing_deps:
        print("[ERROR] Missing required dependencies:", flush=True)
        for cmd, name, install_info in missing_deps:
            print(f"  ❌ {name} ({cmd})", flush=True)
            print(f"     Install: {install_info}", flush=True)
        print("\n[ERROR] Cannot continue without required dependencies", flush=True)
        sys.exit(1)


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure logging module with specified level.
    """
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR
    }

    level = level_map.get(log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='[%(levelname)s] %(message)s',
        force=True
    )
    logger.setLevel(level)
    logger.debug(f"Logging configured: {log_level.upper()}")


def resolve_secret_mount(
    variant: DeploymentVariant,
    settings: dict,
    environ: Mapping[str, str],
    cert_folder: Optional[Path] = None,
) -> Optional[SecretMount]:
    """The single secrets directory of a direct run (None for builds)."""
    if not variant.requires_secret_mount:
        return None
    folder = (
        cert_folder
        or environ.get(ENV_CERT_FOLDER)
        or get_setting(settings, 'secrets.cert_folder')
        or DEFAULT_DEV_CERT_FOLDER
    )
    container_dir = get_setting(settings, 'secrets.mount_point')
    mount_path = Path(folder).expanduser()
    if container_dir:
        return SecretMount(host_dir=mount_path, container_dir=container_dir)
    return SecretMount(host_dir=mount_path)


def resolve_identity_file(
    settings: dict,
    environ: Mapping[str, str],
    identity_file: Optional[Path] = None,
) -> Path:
    value = (
        identity_file
        or environ.get(ENV_INSTANCE_ID_FILE)
        or get_setting(settings, 'identity.file')
        or DEFAULT_INSTANCE_ID_FILE
    )
    return Path(value).expanduser()


def resolve_image(
    variant: DeploymentVariant,
    working_dir: Path,
    settings: dict,
    environ: Mapping[str, str],
    repository: Optional[str] = None,
    application_name: Optional[str] = None,
    architecture: Optional[str] = None,
    version: Optional[str] = None,
    image_override: Optional[str] = None,
) -> ImageReference:
    """Image Selector inputs: CLI > environment > TOML > image_info.txt > variant default."""
    metadata_file = working_dir / get_setting(settings, 'image.metadata_file', IMAGE_INFO_FILENAME)
    metadata = load_image_metadata(metadata_file) if metadata_file.exists() else ImageMetadata()
    if not metadata_file.exists():
        logger.debug(f"No image metadata at {metadata_file}")

    name = application_name or get_setting(settings, 'image.name')
    if not name:
        name = variant.application_name if variant.alt_endpoint else (metadata.name or variant.application_name)

    return select_image(
        metadata,
        repository=repository or get_setting(settings, 'image.repository'),
        application_name=name,
        architecture=architecture or environ.get(ENV_IMAGE_ARCH) or get_setting(settings, 'image.architecture'),
        version=version or environ.get(ENV_IMAGE_VERSION) or get_setting(settings, 'image.version'),
        image_override=image_override or environ.get(ENV_IMAGE) or get_setting(settings, 'image.override'),
    )


def build_context(
    variant: DeploymentVariant,
    config: RuntimeConfiguration,
    image: ImageReference,
    mount: Optional[SecretMount],
) -> dict:
    """Resolved deployment context for --print-context / --render-toml."""
    return {
        'launch': {
            'variant': variant.kind,
            'profile': config.profile,
        },
        'image': {
            'reference': str(image),
            'repository': image.repository,
            'application_name': image.application_name,
            'architecture': image.architecture,
            'version': image.version,
        },
        'secrets': {
            'host_dir': str(mount.host_dir) if mount else None,
            'container_dir': mount.container_dir if mount else None,
            'read_only': mount.read_only if mount else None,
        },
        'runtime': config.to_context(),
    }


def main_execution(
    working_dir: Path,
    variant_name: Optional[str] = None,
    profile: Optional[str] = None,
    action: Optional[str] = None,
    dry_run: bool = False,
    print_context: bool = False,
    render_toml: Optional[Path] = None,
    cert_folder: Optional[Path] = None,
    identity_file: Optional[Path] = None,
    repository: Optional[str] = None,
    application_name: Optional[str] = None,
    architecture: Optional[str] = None,
    version: Optional[str] = None,
    image_override: Optional[str] = None,
    compile_first: bool = False,
    use_cache: bool = True,
    interactive: bool = True,
    force: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> dict:
    """
    Main execution pipeline for mgdeploy.

    action is one of: run, build, render-dockerfile, init-identity. When
    omitted it follows the variant (run for direct-run, build otherwise).
    """
    result: dict = {
        'status': 'success',
        'dry_run': dry_run,
    }
    environ = os.environ if environ is None else environ

    try:
        settings = load_settings(working_dir)

        variant = get_variant(variant_name or get_setting(settings, 'launch.variant', DIRECT_RUN))
        profile_name = normalize_profile(
            profile or get_setting(settings, 'launch.profile', variant.default_profile)
        )
        action = action or ('run' if variant.kind == DIRECT_RUN else 'build')
        if action == 'run' and variant.is_build:
            raise ValueError(f"Variant '{variant.kind}' builds an image; use --build")
        if action in ('build', 'render-dockerfile') and not variant.is_build:
            raise ValueError(f"Variant '{variant.kind}' does not build an image; use --run")

        result['variant'] = variant.kind
        result['profile'] = profile_name
        result['action'] = action
        print(f"[INFO] Variant: {variant.kind} (profile: {profile_name}, action: {action})", flush=True)

        id_file = resolve_identity_file(settings, environ, identity_file)

        if action == 'init-identity':
            overrides = collect_overrides(environ, settings)
            result['instance_id'] = write_identity_file(id_file, overrides.get(KEY_INSTANCE_ID), force=force)
            return result

        if not dry_run and action in ('run', 'build'):
            check_runtime_dependencies()

        overrides = Overrides(
            values=collect_overrides(environ, settings),
            identity_file=id_file,
            dev_host=environ.get(ENV_DEV_HOST) or get_setting(settings, 'endpoints.dev_host'),
        )

        mount = resolve_secret_mount(variant, settings, environ, cert_folder)
        locator = SecretLocator(
            layout_for(profile_name, mount),
            mount,
            verify=variant.requires_secret_mount,
        )
        if mount is not None:
            mount.validate()

        print("[INFO] Resolving runtime configuration...", flush=True)
        config = resolve_runtime_configuration(profile_name, variant, locator, overrides)

        print("[INFO] Selecting image...", flush=True)
        image = resolve_image(
            variant,
            working_dir,
            settings,
            environ,
            repository=repository,
            application_name=application_name,
            architecture=architecture,
            version=version,
            image_override=image_override,
        )
        result['image'] = str(image)

        context = build_context(variant, config, image, mount)
        result['context'] = context

        if print_context:
            print("\n[DEBUG] Resolved Context:")
            print(json.dumps(context, indent=2, default=str))

        if render_toml:
            write_rendered_toml(render_toml, context)
            print(f"[INFO] Rendered context to {render_toml}", flush=True)

        if variant.is_build:
            context_dir = Path(get_setting(settings, 'build.context_dir', str(working_dir)))
            if not context_dir.is_absolute():
                context_dir = working_dir / context_dir
            app = image.application_name or variant.application_name

            if compile_first:
                print("[INFO] Compiling service binary...", flush=True)
                compile_binary(app, context_dir, dry_run=dry_run)

            plan = plan_build(
                variant,
                config,
                image,
                context_dir,
                application_name=app,
                dockerfile_name=get_setting(settings, 'build.dockerfile', DOCKERFILE_NAME),
                use_cache=use_cache and get_setting(settings, 'build.use_cache', True),
                require_binary=action == 'build' and not dry_run,
            )
            result['dockerfile'] = str(plan.dockerfile_path)
            result['dockerfile_content'] = plan.dockerfile
            if action == 'render-dockerfile':
                if dry_run:
                    print(plan.dockerfile, flush=True)
                else:
                    write_dockerfile(plan, force=force)
                return result
        else:
            plan = plan_direct_run(
                variant,
                config,
                image,
                mount,
                interactive=interactive and get_setting(settings, 'launch.interactive', True),
            )

        result['command'] = plan.argv
        execution = execute_plan(plan, dry_run=dry_run, force=force)
        result['returncode'] = execution.get('returncode')
        if execution['status'] != 'success':
            result['status'] = execution['status']
            result['message'] = execution['message']

    except DeploymentConfigError as e:
        result['status'] = 'error'
        result['key'] = e.key
        result['message'] = str(e)
        print(f"[ERROR] {e}", flush=True)
    except (FileNotFoundError, FileExistsError, ValueError, subprocess.CalledProcessError) as e:
        result['status'] = 'error'
        result['message'] = str(e)
        print(f"[ERROR] {e}", flush=True)
    except Exception as e:
        result['status'] = 'error'
        result['message'] = str(e)
        print(f"[ERROR] Execution failed: {e}", flush=True)
        import traceback
        traceback.print_exc()

    return result
