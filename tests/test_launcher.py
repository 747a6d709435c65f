#!/usr/bin/env python3
"""
Process launcher tests (docker run / docker build planning and execution).
"""

from pathlib import Path
from unittest.mock import Mock, patch
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from mgdeploy.config_constants import PROFILE_CLUSTER, PROFILE_LOCAL  # noqa: E402
from mgdeploy.errors import (  # noqa: E402
    IdentityPlaceholderMisuseError,
    MissingConfigurationError,
    MissingSecretError,
)
from mgdeploy.image import ImageReference  # noqa: E402
from mgdeploy.launcher import (  # noqa: E402
    compile_binary,
    execute_plan,
    plan_build,
    plan_direct_run,
    write_dockerfile,
)
from mgdeploy.runtime_config import Overrides, resolve_runtime_configuration  # noqa: E402
from mgdeploy.secret_locator import SecretLocator, SecretMount, layout_for  # noqa: E402
from mgdeploy.variants import get_variant  # noqa: E402

IMAGE = ImageReference("repo", "app", "x86_64", "1.29.3")


def _cert_folder(root: Path) -> Path:
    folder = root / "certs"
    folder.mkdir()
    for name in ("pki.millegrille", "pki.maitrecles.key", "pki.maitrecles.cert", "passwd.redis.txt"):
        (folder / name).write_text("x", encoding="utf-8")
    return folder


def _direct_run_config(mount: SecretMount, profile: str = PROFILE_LOCAL, **values):
    variant = get_variant("direct-run")
    locator = SecretLocator(layout_for(profile, mount), mount)
    return variant, resolve_runtime_configuration(profile, variant, locator, Overrides(values=values))


class TestPlanDirectRun:
    def test_argv_shape(self, tmp_path):
        mount = SecretMount(host_dir=_cert_folder(tmp_path))
        variant, config = _direct_run_config(mount, MQ_HOST="mg-dev4.example.com")

        plan = plan_direct_run(variant, config, IMAGE, mount, base_env={})

        assert plan.argv[:4] == ["docker", "run", "--rm", "-it"]
        assert plan.argv[4:6] == ["--network", "host"]
        assert plan.argv[6:8] == ["-v", f"{mount.host_dir}:/certs:ro"]
        assert plan.argv[-1] == "repo/app:x86_64_1.29.3"
        assert "MQ_HOST" in plan.argv
        assert "mg-dev4.example.com" not in plan.argv
        assert plan.env["MQ_HOST"] == "mg-dev4.example.com"
        assert plan.env["MG_MQ_HOST"] == "mg-dev4.example.com"

    def test_non_interactive(self, tmp_path):
        mount = SecretMount(host_dir=_cert_folder(tmp_path))
        variant, config = _direct_run_config(mount)

        plan = plan_direct_run(variant, config, IMAGE, mount, base_env={}, interactive=False)

        assert "-it" not in plan.argv

    def test_placeholder_identity_rejected_in_cluster(self, tmp_path):
        folder = tmp_path / "certs"
        folder.mkdir()
        for name in ("millegrille.cert.pem", "key.pem", "cert.pem", "passwd.redis.txt"):
            (folder / name).write_text("x", encoding="utf-8")
        mount = SecretMount(host_dir=folder)
        variant, config = _direct_run_config(mount, profile=PROFILE_CLUSTER)

        with pytest.raises(IdentityPlaceholderMisuseError):
            plan_direct_run(variant, config, IMAGE, mount, base_env={})

    def test_secret_removed_after_resolution_is_caught(self, tmp_path):
        folder = _cert_folder(tmp_path)
        mount = SecretMount(host_dir=folder)
        variant, config = _direct_run_config(mount)
        (folder / "pki.maitrecles.key").unlink()

        with pytest.raises(MissingSecretError) as exc_info:
            plan_direct_run(variant, config, IMAGE, mount, base_env={})

        assert exc_info.value.key == "KEYFILE"


class TestPlanBuild:
    def _config(self, variant_name):
        variant = get_variant(variant_name)
        return variant, resolve_runtime_configuration(PROFILE_CLUSTER, variant, SecretLocator(verify=False))

    def test_build_argv(self, tmp_path):
        variant, config = self._config("build-with-volume")
        binary = tmp_path / "target" / "release" / "app"
        binary.parent.mkdir(parents=True)
        binary.write_text("", encoding="utf-8")

        plan = plan_build(variant, config, IMAGE, tmp_path, application_name="app", use_cache=False)

        assert plan.argv == [
            "docker", "build", "-t", "repo/app:x86_64_1.29.3",
            "-f", str(tmp_path / "Dockerfile.mgdeploy"), "--no-cache", str(tmp_path),
        ]
        assert "VOLUME /var/opt/millegrilles/archives" in plan.dockerfile

    def test_missing_binary_raises(self, tmp_path):
        variant, config = self._config("build-only")

        with pytest.raises(MissingConfigurationError) as exc_info:
            plan_build(variant, config, IMAGE, tmp_path, application_name="app")

        assert exc_info.value.key == "BINARY"

    def test_binary_check_can_be_deferred(self, tmp_path):
        variant, config = self._config("build-only")

        plan = plan_build(variant, config, IMAGE, tmp_path, application_name="app", require_binary=False)

        assert plan.dockerfile_path == tmp_path / "Dockerfile.mgdeploy"


class TestExecutePlan:
    def _build_plan(self, tmp_path):
        variant = get_variant("build-only")
        config = resolve_runtime_configuration(PROFILE_CLUSTER, variant, SecretLocator(verify=False))
        return plan_build(variant, config, IMAGE, tmp_path, application_name="app", require_binary=False)

    def test_dry_run_writes_nothing_and_skips_docker(self, tmp_path):
        project_dockerfile = tmp_path / "Dockerfile"
        project_dockerfile.write_text("FROM ubuntu\nCMD ./millegrilles_senseurspassifs\n", encoding="utf-8")
        plan = self._build_plan(tmp_path)
        plan.dockerfile_path = project_dockerfile

        with patch("subprocess.Popen") as mock_popen:
            result = execute_plan(plan, dry_run=True)

        mock_popen.assert_not_called()
        assert result["status"] == "success"
        assert project_dockerfile.read_text(encoding="utf-8") == "FROM ubuntu\nCMD ./millegrilles_senseurspassifs\n"
        assert not (tmp_path / "Dockerfile.mgdeploy").exists()

    def test_foreign_dockerfile_not_overwritten(self, tmp_path):
        project_dockerfile = tmp_path / "Dockerfile"
        project_dockerfile.write_text("FROM ubuntu\n", encoding="utf-8")
        plan = self._build_plan(tmp_path)
        plan.dockerfile_path = project_dockerfile

        with patch("subprocess.Popen") as mock_popen:
            with pytest.raises(FileExistsError, match="not generated by mgdeploy"):
                execute_plan(plan)

        mock_popen.assert_not_called()
        assert project_dockerfile.read_text(encoding="utf-8") == "FROM ubuntu\n"

    def test_foreign_dockerfile_replaced_with_force(self, tmp_path):
        project_dockerfile = tmp_path / "Dockerfile"
        project_dockerfile.write_text("FROM ubuntu\n", encoding="utf-8")
        plan = self._build_plan(tmp_path)
        plan.dockerfile_path = project_dockerfile

        write_dockerfile(plan, force=True)

        assert project_dockerfile.read_text(encoding="utf-8") == plan.dockerfile

    def test_generated_dockerfile_is_refreshed(self, tmp_path):
        plan = self._build_plan(tmp_path)
        write_dockerfile(plan)
        plan.dockerfile_path.write_text(plan.dockerfile + "# stale\n", encoding="utf-8")

        write_dockerfile(plan)

        assert plan.dockerfile_path.read_text(encoding="utf-8") == plan.dockerfile
        assert plan.dockerfile.startswith("# Generated by mgdeploy (build-only)")

    def test_build_failure_reported(self, tmp_path):
        plan = self._build_plan(tmp_path)
        proc = Mock()
        proc.stdout = iter(["step 1\n"])
        proc.returncode = 1

        with patch("subprocess.Popen", return_value=proc):
            result = execute_plan(plan)

        assert result["status"] == "error"
        assert result["returncode"] == 1

    def test_run_returns_container_exit_code(self, tmp_path):
        mount = SecretMount(host_dir=_cert_folder(tmp_path))
        variant, config = _direct_run_config(mount)
        plan = plan_direct_run(variant, config, IMAGE, mount, base_env={})

        with patch("subprocess.run", return_value=Mock(returncode=0)) as mock_run:
            result = execute_plan(plan)

        assert mock_run.call_args[0][0] == plan.argv
        assert result["returncode"] == 0
        assert result["status"] == "success"

    def test_missing_docker_cli(self, tmp_path):
        mount = SecretMount(host_dir=_cert_folder(tmp_path))
        variant, config = _direct_run_config(mount)
        plan = plan_direct_run(variant, config, IMAGE, mount, base_env={})

        with patch("subprocess.run", side_effect=FileNotFoundError("docker")):
            result = execute_plan(plan)

        assert result["status"] == "error"
        assert "docker CLI not found" in result["message"]


class TestCompileBinary:
    def test_dry_run_skips_commands(self, tmp_path):
        with patch("subprocess.run") as mock_run:
            compile_binary("app", tmp_path, dry_run=True)

        mock_run.assert_not_called()

    def test_runs_cargo_release_build(self, tmp_path):
        with patch("subprocess.run") as mock_run:
            compile_binary("app", tmp_path)

        commands = [call[0][0] for call in mock_run.call_args_list]
        assert commands[-1] == ["cargo", "b", "--release", "--package", "app", "--bin", "app"]
