#!/usr/bin/env python3
"""
Secret locator and secret mount tests.
"""

from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from mgdeploy.config_constants import PROFILE_CLUSTER, PROFILE_LOCAL  # noqa: E402
from mgdeploy.errors import MissingConfigurationError, MissingSecretError  # noqa: E402
from mgdeploy.secret_locator import (  # noqa: E402
    CONTAINER_LAYOUT,
    SecretLocator,
    SecretMount,
    layout_for,
)


def _populate(folder: Path) -> Path:
    folder.mkdir(parents=True, exist_ok=True)
    for name in ("pki.millegrille", "pki.maitrecles.key", "pki.maitrecles.cert", "passwd.redis.txt"):
        (folder / name).write_text("x", encoding="utf-8")
    return folder


class TestSecretLocator:
    def test_canonical_container_paths(self):
        locator = SecretLocator(verify=False)

        assert locator.locate("CAFILE") == "/run/secrets/millegrille.cert.pem"
        assert locator.locate("KEYFILE") == "/run/secrets/key.pem"
        assert locator.locate("CERTFILE") == "/run/secrets/cert.pem"
        assert locator.locate("REDIS_PASSWORD_FILE") == "/run/secrets/passwd.redis.txt"

    def test_override_returned_unchanged(self, tmp_path):
        secret = tmp_path / "custom.pem"
        secret.write_text("x", encoding="utf-8")
        locator = SecretLocator()

        assert locator.locate("CAFILE", str(secret)) == str(secret)

    def test_missing_artifact_raises(self, tmp_path):
        locator = SecretLocator()

        with pytest.raises(MissingSecretError) as exc_info:
            locator.locate("KEYFILE", str(tmp_path / "absent.key"))

        assert exc_info.value.key == "KEYFILE"
        assert exc_info.value.path == str(tmp_path / "absent.key")

    def test_unknown_key_has_no_canonical_path(self):
        with pytest.raises(MissingConfigurationError, match="NOT_A_SECRET"):
            SecretLocator(verify=False).locate("NOT_A_SECRET")

    def test_verification_goes_through_mount(self, tmp_path):
        mount = SecretMount(host_dir=_populate(tmp_path / "certs"))
        locator = SecretLocator(layout_for(PROFILE_LOCAL, mount), mount)

        assert locator.locate("CAFILE") == "/certs/pki.millegrille"
        assert locator.locate("KEYFILE") == "/certs/pki.maitrecles.key"

    def test_verification_reports_container_path(self, tmp_path):
        folder = tmp_path / "certs"
        folder.mkdir()
        (folder / "pki.millegrille").write_text("x", encoding="utf-8")
        mount = SecretMount(host_dir=folder)
        locator = SecretLocator(layout_for(PROFILE_LOCAL, mount), mount)

        with pytest.raises(MissingSecretError) as exc_info:
            locator.locate("CERTFILE")

        assert exc_info.value.path == "/certs/pki.maitrecles.cert"


    def test_existing_override_outside_mount_rejected(self, tmp_path):
        custom = tmp_path / "custom" / "ca.pem"
        custom.parent.mkdir()
        custom.write_text("x", encoding="utf-8")
        mount = SecretMount(host_dir=_populate(tmp_path / "certs"))
        locator = SecretLocator(layout_for(PROFILE_LOCAL, mount), mount)

        with pytest.raises(MissingSecretError) as exc_info:
            locator.locate("CAFILE", str(custom))

        assert exc_info.value.key == "CAFILE"

    def test_override_under_mount_accepted(self, tmp_path):
        folder = _populate(tmp_path / "certs")
        (folder / "extra-ca.pem").write_text("x", encoding="utf-8")
        mount = SecretMount(host_dir=folder)
        locator = SecretLocator(layout_for(PROFILE_LOCAL, mount), mount)

        assert locator.locate("CA_OVERRIDE", "/certs/extra-ca.pem") == "/certs/extra-ca.pem"


class TestLayoutFor:
    def test_no_mount_uses_container_layout(self):
        assert layout_for(PROFILE_CLUSTER) is CONTAINER_LAYOUT
        assert layout_for(PROFILE_LOCAL) is CONTAINER_LAYOUT

    def test_cluster_profile_with_mount_keeps_container_filenames(self, tmp_path):
        layout = layout_for(PROFILE_CLUSTER, SecretMount(host_dir=tmp_path))

        assert layout.canonical_path("CAFILE") == "/certs/millegrille.cert.pem"


class TestSecretMount:
    def test_to_host_translates_paths_under_mount(self, tmp_path):
        mount = SecretMount(host_dir=tmp_path)

        assert mount.to_host("/certs/pki.millegrille") == tmp_path / "pki.millegrille"
        assert mount.to_host("/certs/sub/../pki.millegrille") == tmp_path / "pki.millegrille"

    def test_to_host_rejects_paths_outside_mount(self, tmp_path):
        mount = SecretMount(host_dir=tmp_path)

        with pytest.raises(MissingSecretError, match="outside the secrets mount") as exc_info:
            mount.to_host("/etc/ssl/ca.pem", "CAFILE")

        assert exc_info.value.key == "CAFILE"
        assert exc_info.value.path == "/etc/ssl/ca.pem"

    def test_to_host_rejects_parent_traversal(self, tmp_path):
        mount = SecretMount(host_dir=tmp_path / "certs")

        with pytest.raises(MissingSecretError, match="outside the secrets mount"):
            mount.to_host("/certs/../etc/passwd")

    def test_to_host_rejects_symlink_leaving_mount(self, tmp_path):
        outside = tmp_path / "outside.pem"
        outside.write_text("x", encoding="utf-8")
        folder = tmp_path / "certs"
        folder.mkdir()
        (folder / "pki.millegrille").symlink_to(outside)
        mount = SecretMount(host_dir=folder)

        with pytest.raises(MissingSecretError, match="resolves outside"):
            mount.to_host("/certs/pki.millegrille")

    def test_volume_arg_is_read_only(self, tmp_path):
        mount = SecretMount(host_dir=tmp_path)

        assert mount.as_volume_arg() == f"{tmp_path}:/certs:ro"

    def test_validate_missing_directory(self, tmp_path):
        mount = SecretMount(host_dir=tmp_path / "nope")

        with pytest.raises(MissingSecretError, match="not found"):
            mount.validate()

    def test_validate_empty_directory(self, tmp_path):
        mount = SecretMount(host_dir=tmp_path)

        with pytest.raises(MissingSecretError, match="empty"):
            mount.validate()

    def test_validate_populated_directory(self, tmp_path):
        SecretMount(host_dir=_populate(tmp_path / "certs")).validate()
