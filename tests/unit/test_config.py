"""Unit tests for settings, the YAML loader and the seed catalog."""

from __future__ import annotations

import pytest

from src.config.loader import load_config
from src.config.seed_dictionaries import (
    build_seed_catalog,
    default_anchor_names,
    get_seed_dictionary,
)
from src.config.settings import Settings
from src.utils.errors import ConfigurationError


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


# ======================================================================
# Settings
# ======================================================================


class TestSettings:
    def test_task_options_from_resilience_fields(self) -> None:
        options = _settings(
            resilience_timeout_seconds=5.0,
            resilience_max_retries=4,
            resilience_base_delay_seconds=0.5,
            resilience_max_jitter_seconds=0.0,
        ).task_options()

        assert options.timeout_seconds == 5.0
        assert options.max_attempts == 5
        assert options.backoff_floor(3) == 1.0

    def test_credentials_require_url_login_and_password(self) -> None:
        assert not _settings().has_provider_credentials()
        assert not _settings(dfs_proxy_url="https://proxy.test", dfs_login="u").has_provider_credentials()
        assert _settings(
            dfs_proxy_url="https://proxy.test", dfs_login="u", dfs_password="p"
        ).has_provider_credentials()

    def test_environment_overrides_default(self, monkeypatch) -> None:
        monkeypatch.setenv("GROWTH_TARGET_VALID", "1234")
        assert _settings().growth_target_valid == 1234


# ======================================================================
# load_config
# ======================================================================


class TestLoadConfig:
    def test_missing_file_yields_env_sections(self, tmp_path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=_settings(app_port=9000))

        assert config["app"]["port"] == 9000
        assert config["provider"]["credentials_configured"] is False
        assert config["rate_gate"] == {"max_concurrent": 2, "requests_per_minute": 10}

    def test_yaml_sections_merged_with_env(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "app:\n  name: demandCorpus\n  port: 1\n"
            "seed_dictionaries:\n  shaving:\n    brands: [ustraa]\n"
        )
        config = load_config(str(path), settings=_settings(app_port=8080))

        assert config["app"]["name"] == "demandCorpus"
        assert config["app"]["port"] == 8080
        assert config["seed_dictionaries"]["shaving"]["brands"] == ["ustraa"]

    def test_empty_file(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert "app" in load_config(str(path), settings=_settings())

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("app: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path), settings=_settings())

    def test_non_mapping_top_level(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path), settings=_settings())


# ======================================================================
# Seed catalog
# ======================================================================


class TestSeedCatalog:
    def test_extensions_appended_and_normalized(self) -> None:
        catalog = build_seed_catalog({"shaving": {"brands": ["Dot & Key", "gillette"]}})
        brands = catalog["shaving"].brands

        assert brands[-1] == "dot key"
        assert brands.count("gillette") == 1

    def test_new_category_from_extensions(self) -> None:
        catalog = build_seed_catalog({"pens": {"head_terms": ["Fountain Pen"], "brands": ["lamy"]}})
        pens = catalog["pens"]

        assert pens.head_terms == ("fountain pen",)
        assert pens.brands == ("lamy",)
        assert pens.problem_phrases == ()

    def test_unknown_category_is_empty(self) -> None:
        seeds = get_seed_dictionary("unknown-category")
        assert seeds.head_terms == ()
        assert default_anchor_names("unknown-category") == []

    def test_default_anchor_names(self) -> None:
        assert default_anchor_names("shaving", count=3) == ["Shaving", "Shave", "Razor"]
