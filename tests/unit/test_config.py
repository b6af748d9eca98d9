"""Tests for BuildConfig (TOML file) and BootforgeSettings (environment)."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from bootforge.config import BootforgeSettings
from bootforge.errors import InvalidConfigurationError
from bootforge.models.config import BuildConfig


class TestBuildConfig:
    def test_defaults(self):
        config = BuildConfig()
        assert config.jobs == 1
        assert config.retry_count == 3
        assert config.stages == 2
        assert config.keep_going is False
        assert config.build_flags == ()

    def test_load_kebab_case_keys(self, tmp_path: Path):
        path = tmp_path / "bootforge.toml"
        path.write_text(
            "jobs = 4\n"
            'cache-dir = "cache"\n'
            'snapshot-mirror = "https://mirror.example.org/stage0"\n'
            "retry-count = 5\n"
            "stages = 1\n"
            'build-flags = ["-O2"]\n'
            "step-timeout = 120.0\n",
            encoding="utf-8",
        )
        config = BuildConfig.load(path)
        assert config.jobs == 4
        assert config.cache_dir == tmp_path / "cache"
        assert config.snapshot_mirror == "https://mirror.example.org/stage0"
        assert config.retry_count == 5
        assert config.stages == 1
        assert config.build_flags == ("-O2",)
        assert config.step_timeout == 120.0

    def test_relative_paths_resolve_against_file(self, tmp_path: Path):
        (tmp_path / "proj").mkdir()
        path = tmp_path / "proj" / "bootforge.toml"
        path.write_text('manifest = "snap/stage0.toml"\nsource-dir = "compiler"\n', encoding="utf-8")
        config = BuildConfig.load(path)
        assert config.manifest == tmp_path / "proj" / "snap" / "stage0.toml"
        assert config.source_dir == tmp_path / "proj" / "compiler"

    def test_unknown_key_is_rejected(self, tmp_path: Path):
        path = tmp_path / "bootforge.toml"
        path.write_text("jobs = 2\nturbo = true\n", encoding="utf-8")
        with pytest.raises(InvalidConfigurationError, match="turbo"):
            BuildConfig.load(path)

    @pytest.mark.parametrize("body", ["jobs = 0\n", "stages = 3\n", "retry-count = 0\n", 'jobs = "many"\n'])
    def test_out_of_range_values(self, tmp_path: Path, body: str):
        path = tmp_path / "bootforge.toml"
        path.write_text(body, encoding="utf-8")
        with pytest.raises(InvalidConfigurationError):
            BuildConfig.load(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(InvalidConfigurationError, match="not found"):
            BuildConfig.load(tmp_path / "absent.toml")

    def test_merged_applies_only_given_overrides(self):
        base = BuildConfig(jobs=2, retry_count=7)
        merged = base.merged(jobs=8, retry_count=None, keep_going=True)
        assert merged.jobs == 8
        assert merged.retry_count == 7
        assert merged.keep_going is True
        assert base.jobs == 2

    def test_relative_config_path_yields_absolute_paths(self, tmp_path: Path, monkeypatch):
        tmp_path = tmp_path.resolve()
        (tmp_path / "bootforge.toml").write_text('cache-dir = "cache"\n', encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        config = BuildConfig.load(Path("bootforge.toml"))
        assert config.cache_dir == tmp_path / "cache"
        assert config.cache_dir.is_absolute()
        assert config.manifest == tmp_path / "stage0.toml"

    def test_merged_anchors_relative_paths(self, tmp_path: Path, monkeypatch):
        tmp_path = tmp_path.resolve()
        monkeypatch.chdir(tmp_path)
        merged = BuildConfig().merged(cache_dir=Path("cache"), source_dir=Path("src"))
        assert merged.cache_dir == tmp_path / "cache"
        assert merged.source_dir == tmp_path / "src"

    def test_merged_revalidates(self):
        with pytest.raises(InvalidConfigurationError):
            BuildConfig().merged(jobs=0)

    def test_fingerprint_inputs_ignore_scheduling_options(self):
        a = BuildConfig(jobs=1, retry_count=1, cache_dir=Path("/a"))
        b = BuildConfig(jobs=16, retry_count=9, cache_dir=Path("/b"))
        assert a.fingerprint_inputs() == b.fingerprint_inputs()
        assert BuildConfig(build_flags=("-g",)).fingerprint_inputs() != a.fingerprint_inputs()


class TestBootforgeSettings:
    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("BOOTFORGE_CACHE_DIR", str(tmp_path / "c"))
        monkeypatch.setenv("BOOTFORGE_LOG_LEVEL", "debug")
        monkeypatch.setenv("BOOTFORGE_PROXY", "http://proxy.internal:3128")
        settings = BootforgeSettings(_env_file=None)
        assert settings.cache_dir == tmp_path / "c"
        assert settings.proxy == "http://proxy.internal:3128"
        assert settings.log_level_number == logging.DEBUG

    def test_unknown_log_level_falls_back(self):
        settings = BootforgeSettings(_env_file=None, log_level="chatty")
        assert settings.log_level_number == logging.WARNING
