"""Tests for the Config system."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gameshelf.config import Config, SourceConfig, get_config, reset_config


@pytest.fixture(autouse=True)
def _clean_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(tmp_path)


class TestConfig:
    def test_default_values(self, config: Config) -> None:
        assert config.confidence_threshold == 0.6
        assert config.broken_threshold == 2
        assert config.locator_scheme == "gameshelf-asset"
        assert config.mandatory_timeout < config.master_timeout
        assert config.background_scan_interval == 3600

    def test_all_sources_disabled_by_default(self, config: Config) -> None:
        sources = config.sources
        assert set(sources) == {"steam", "epic", "gog", "xbox", "ubisoft", "rockstar", "manual"}
        assert all(not s.enabled for s in sources.values())

    def test_set_and_get(self, config: Config) -> None:
        with config.batch_update():
            config.set("metadata.steamgriddb_api_key", "abc")
        assert config.get("metadata.steamgriddb_api_key") == "abc"

    def test_get_missing_key_returns_default(self, config: Config) -> None:
        assert config.get("no.such.key", 42) == 42

    def test_set_source(self, config: Config) -> None:
        config.set_source("steam", True, "/games/steam")
        assert config.sources["steam"] == SourceConfig(enabled=True, path="/games/steam")

    def test_batch_update_writes_once(self, config: Config, tmp_path: Path) -> None:
        with config.batch_update():
            config.set("cache.broken_threshold", 5)
            assert not (tmp_path / "config.json").exists()
            config.set("cache.scheme", "shelf")
        saved = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
        assert saved["cache"]["broken_threshold"] == 5
        assert saved["cache"]["scheme"] == "shelf"

    def test_nested_batch_update_defers_to_outer(self, config: Config, tmp_path: Path) -> None:
        with config.batch_update():
            config.set_source("steam", True, "/games/steam")
            assert not (tmp_path / "config.json").exists()
            config.set("cache.broken_threshold", 4)
            assert not (tmp_path / "config.json").exists()
        saved = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
        assert saved["sources"]["steam"]["path"] == "/games/steam"
        assert saved["cache"]["broken_threshold"] == 4

    def test_persistence_merges_with_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text(
            json.dumps({"metadata": {"confidence_threshold": 0.8}}), encoding="utf-8"
        )
        config = Config(tmp_path)
        assert config.confidence_threshold == 0.8
        assert config.provider_timeout == 20.0

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "config.json").write_text("{not json", encoding="utf-8")
        config = Config(tmp_path)
        assert config.confidence_threshold == 0.6

    def test_image_cache_dir_defaults_under_data_dir(self, config: Config, tmp_path: Path) -> None:
        assert config.image_cache_dir == tmp_path / "cache" / "images"

    def test_proxy_url(self, config: Config) -> None:
        assert config.proxy_url == ""
        with config.batch_update():
            config.set("metadata.proxy_host", "127.0.0.1")
            config.set("metadata.proxy_port", "8080")
        assert config.proxy_url == "http://127.0.0.1:8080"

    def test_get_config_is_singleton(self) -> None:
        assert get_config() is get_config()
