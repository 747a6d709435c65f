#!/usr/bin/env python3
"""
Process Launcher.

Composes exactly one external process invocation from a DeploymentVariant,
the resolved RuntimeConfiguration, the SecretMount and the ImageReference:
either a direct `docker run` or a `docker build` of a rendered Dockerfile.
Every check runs before the process starts; a partial launch is never made.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .config_constants import (
    DOCKERFILE_MARKER,
    DOCKERFILE_NAME,
    KEY_CA_OVERRIDE,
    KEY_FICHIERS_URL,
    KEY_REDIS_PASSWORD_FILE,
    RELEASE_BINARY_DIR,
    SECRET_KEYS,
)
from .dockerfile import render_dockerfile
from .errors import MissingConfigurationError, MissingSecretError
from .image import ImageReference
from .runtime_config import RuntimeConfiguration
from .secret_locator import SecretLocator, SecretMount, layout_for
from .variants import DeploymentVariant

logger = logging.getLogger(__name__)


@dataclass
class LaunchPlan:
    """A fully parameterized process invocation, ready to execute."""

    variant: DeploymentVariant
    image: ImageReference
    argv: List[str]
    # Process environment for the docker CLI; container values travel here.
    env: Dict[str, str] = field(default_factory=dict)
    mount: Optional[SecretMount] = None
    dockerfile_path: Optional[Path] = None
    dockerfile: Optional[str] = None
    cwd: Optional[Path] = None

    @property
    def command_line(self) -> str:
        return ' '.join(self.argv)


def validate_launch(
    variant: DeploymentVariant,
    config: RuntimeConfiguration,
    mount: Optional[SecretMount] = None,
    binary_path: Optional[Path] = None,
) -> None:
    """
    Run every fail-fast check for a launch.

    Raises:
        MissingSecretError: Secret mount or credential artifact missing
        IdentityPlaceholderMisuseError: Placeholder identity outside the local profile
        MissingConfigurationError: Alternate endpoint or service binary missing
    """
    if variant.requires_secret_mount:
        if mount is None:
            raise MissingSecretError("SECRET_MOUNT", "", "direct run requires a secrets directory")
        mount.validate()

        locator = SecretLocator(layout_for(config.profile, mount), mount, verify=True)
        for key in SECRET_KEYS + (KEY_CA_OVERRIDE,):
            if key == KEY_REDIS_PASSWORD_FILE and config.redis_password:
                continue
            locator.locate(key, getattr(config, key))

        config.identity.ensure_usable(config.profile)

    if variant.alt_endpoint and not config.FICHIERS_URL:
        raise MissingConfigurationError(KEY_FICHIERS_URL)

    if variant.is_build and binary_path is not None and not binary_path.is_file():
        raise MissingConfigurationError("BINARY", f"prebuilt service binary not found: {binary_path}")


def build_process_env(config: RuntimeConfiguration, base_env: Optional[dict] = None) -> Dict[str, str]:
    """Environment for the docker CLI: the base env plus the container values."""
    env = dict(base_env if base_env is not None else os.environ)
    env.update(config.to_environment())
    return env


def plan_direct_run(
    variant: DeploymentVariant,
    config: RuntimeConfiguration,
    image: ImageReference,
    mount: SecretMount,
    base_env: Optional[dict] = None,
    interactive: bool = True,
) -> LaunchPlan:
    """
    docker run with host networking, one read-only secret mount, and the
    full RuntimeConfiguration passed by name (values are never baked).
    """
    validate_launch(variant, config, mount)

    argv = ['docker', 'run', '--rm']
    if interactive:
        argv.append('-it')
    argv += ['--network', 'host', '-v', mount.as_volume_arg()]
    for name in config.to_environment():
        argv += ['-e', name]
    argv.append(str(image))

    return LaunchPlan(
        variant=variant,
        image=image,
        argv=argv,
        env=build_process_env(config, base_env),
        mount=mount,
    )


def plan_build(
    variant: DeploymentVariant,
    config: RuntimeConfiguration,
    image: ImageReference,
    context_dir: Path,
    application_name: Optional[str] = None,
    dockerfile_name: str = DOCKERFILE_NAME,
    use_cache: bool = True,
    require_binary: bool = True,
) -> LaunchPlan:
    """Render the variant's Dockerfile into the build context and plan docker build."""
    app = application_name or image.application_name or variant.application_name
    binary_source = f"{RELEASE_BINARY_DIR}/{app}"
    binary_path = context_dir / binary_source

    validate_launch(variant, config, binary_path=binary_path if require_binary else None)

    dockerfile = render_dockerfile(variant, config, binary_source, app)
    dockerfile_path = context_dir / dockerfile_name

    argv = ['docker', 'build', '-t', str(image), '-f', str(dockerfile_path)]
    if not use_cache:
        argv.append('--no-cache')
    argv.append(str(context_dir))

    return LaunchPlan(
        variant=variant,
        image=image,
        argv=argv,
        dockerfile_path=dockerfile_path,
        dockerfile=dockerfile,
        cwd=context_dir,
    )


def compile_commands(application_name: str) -> List[List[str]]:
    """Commands that produce the prebuilt release binary."""
    return [
        ['git', 'submodule', 'update', '--recursive'],
        ['cargo', 'b', '--release', '--package', application_name, '--bin', application_name],
    ]


def compile_binary(application_name: str, context_dir: Path, dry_run: bool = False) -> None:
    """
    Build the release binary in the build context.

    Raises:
        subprocess.CalledProcessError: If a step fails
    """
    for cmd in compile_commands(application_name):
        print(f"[INFO] Running: {' '.join(cmd)}", flush=True)
        if dry_run:
            continue
        subprocess.run(cmd, cwd=context_dir, check=True)


def _execute_streaming(plan: LaunchPlan, result: dict) -> dict:
    proc = subprocess.Popen(
        plan.argv,
        cwd=plan.cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        bufsize=1,
        env=plan.env or None,
    )

    stdout_lines = []
    try:
        for line in proc.stdout:
            print(f"  [BUILD] {line.rstrip()}", flush=True)
            stdout_lines.append(line)
        proc.wait()
    except KeyboardInterrupt:
        print("\n[WARN] User interrupted docker build", flush=True)
        result['status'] = 'interrupted'
        result['message'] = 'User interrupted execution'
        try:
            proc.terminate()
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
        return result

    result['stdout'] = ''.join(stdout_lines)
    result['returncode'] = proc.returncode
    if proc.returncode != 0:
        result['status'] = 'error'
        result['message'] = f"docker build failed with exit code {proc.returncode}"
        print(f"[ERROR] docker build failed (exit {proc.returncode})", flush=True)
        return result

    print(f"[SUCCESS] Built {plan.image}", flush=True)
    return result


def _execute_foreground(plan: LaunchPlan, result: dict) -> dict:
    # The terminal wait is the only blocking point; Ctrl-C reaches the
    # foreground container through the shared terminal.
    try:
        completed = subprocess.run(plan.argv, env=plan.env or None)
    except KeyboardInterrupt:
        print("\n[WARN] User interrupted container", flush=True)
        result['status'] = 'interrupted'
        result['message'] = 'User interrupted execution'
        return result

    result['returncode'] = completed.returncode
    print(f"[INFO] Container exited with code {completed.returncode} (removed)", flush=True)
    return result


def write_dockerfile(plan: LaunchPlan, force: bool = False) -> Path:
    """
    Write the plan's rendered Dockerfile into the build context.

    A file mgdeploy generated earlier is replaced; any other file at that
    path is kept unless force is set.

    Raises:
        FileExistsError: If the target exists and was not generated by mgdeploy
    """
    path = plan.dockerfile_path
    if path.exists() and not force:
        with open(path, 'r', encoding='utf-8') as f:
            first_line = f.readline()
        if not first_line.startswith(DOCKERFILE_MARKER):
            raise FileExistsError(
                f"{path} exists and was not generated by mgdeploy. "
                "Set build.dockerfile to another name or use --force to replace it."
            )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(plan.dockerfile, encoding='utf-8')
    print(f"[INFO] Rendered {path}", flush=True)
    return path


def execute_plan(plan: LaunchPlan, dry_run: bool = False, force: bool = False) -> dict:
    """
    Start the single external process described by the plan.

    Build plans write their Dockerfile first. A dry run writes nothing and
    prints the rendered Dockerfile instead.

    Raises:
        FileExistsError: If the Dockerfile target is not mgdeploy's (see write_dockerfile)
    """
    result = {
        'status': 'success',
        'message': '',
        'returncode': None,
        'command': plan.argv,
    }

    if dry_run:
        if plan.dockerfile is not None:
            print(f"[INFO] Dry-run mode: {plan.dockerfile_path} not written; rendered content:", flush=True)
            print(plan.dockerfile, flush=True)
        print(f"[INFO] Command: {plan.command_line}", flush=True)
        print("[INFO] Dry-run mode: Skipping docker execution", flush=True)
        return result

    if plan.dockerfile is not None and plan.dockerfile_path is not None:
        write_dockerfile(plan, force=force)

    print(f"[INFO] Command: {plan.command_line}", flush=True)

    try:
        if plan.variant.is_build:
            return _execute_streaming(plan, result)
        return _execute_foreground(plan, result)
    except FileNotFoundError as e:
        result['status'] = 'error'
        result['message'] = f"docker CLI not found: {e}"
        print(f"[ERROR] {result['message']}", flush=True)
        return result
