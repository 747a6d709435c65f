#!/usr/bin/env python3
"""
TOML settings and env-file parsing tests.
"""

from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from mgdeploy.env_file import load_env_file, parse_env_text  # noqa: E402
from mgdeploy.settings import deep_merge_configs, get_setting, load_settings  # noqa: E402


class TestLoadSettings:
    def test_no_files_gives_empty_settings(self, tmp_path):
        assert load_settings(tmp_path) == {}

    def test_overrides_merge_key_by_key(self, tmp_path):
        (tmp_path / "mgdeploy.defaults.toml").write_text(
            '[image]\nrepository = "docker.maceroc.com"\nversion = "1.0"\n', encoding="utf-8"
        )
        (tmp_path / "mgdeploy.toml").write_text('[image]\nversion = "1.29.3"\n', encoding="utf-8")

        settings = load_settings(tmp_path)

        assert settings["image"] == {"repository": "docker.maceroc.com", "version": "1.29.3"}

    def test_malformed_toml_raises(self, tmp_path):
        (tmp_path / "mgdeploy.toml").write_text("[image\n", encoding="utf-8")

        with pytest.raises(ValueError, match="TOML syntax error"):
            load_settings(tmp_path)


class TestGetSetting:
    def test_dotted_lookup(self):
        assert get_setting({"launch": {"variant": "build-only"}}, "launch.variant") == "build-only"

    def test_missing_and_empty_use_default(self):
        settings = {"image": {"version": ""}}

        assert get_setting(settings, "image.version", "x") == "x"
        assert get_setting(settings, "image.repository", "y") == "y"
        assert get_setting(settings, "build.dockerfile") is None

    def test_false_is_kept(self):
        assert get_setting({"build": {"use_cache": False}}, "build.use_cache", True) is False


def test_deep_merge_does_not_mutate_base():
    base = {"a": {"b": 1}}
    merged = deep_merge_configs(base, {"a": {"c": 2}})

    assert merged == {"a": {"b": 1, "c": 2}}
    assert base == {"a": {"b": 1}}


class TestEnvFile:
    def test_shell_syntax(self):
        values = parse_env_text(
            '# image\nexport REPO=docker.maceroc.com\nNAME="app"  # comment\nVERSION=\'1.2\'\n\nbogus line\n'
        )

        assert values == {"REPO": "docker.maceroc.com", "NAME": "app", "VERSION": "1.2"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_env_file(tmp_path / "image_info.txt")
