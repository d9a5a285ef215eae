"""
Unit tests for apimirror configuration.
"""

import pytest
import yaml

from src.apimirror.mirror.models import IMPORT_ORDER, MirrorSettings, ResourceKind
from src.apimirror.utils.config import DEFAULT_MIRROR_CONFIG, Config


class TestConfig:
    """Test cases for Config."""

    @pytest.fixture
    def config_file(self, tmp_path):
        return tmp_path / ".apimirror" / "config.yaml"

    @pytest.fixture
    def config(self, config_file, monkeypatch):
        for name in (
            "APIMIRROR_API_TIMEOUT_SECONDS",
            "APIMIRROR_MAX_WORKERS",
            "APIMIRROR_EXPORT_INCLUDE_SECRETS",
            "APIMIRROR_ACCESS_TOKEN",
        ):
            monkeypatch.delenv(name, raising=False)
        return Config(config_file)

    def test_defaults_without_file(self, config):
        mirror_config = config.get_mirror_config()

        assert mirror_config == DEFAULT_MIRROR_CONFIG
        assert config.get_mirror_settings() == MirrorSettings()

    def test_file_values_are_merged_over_defaults(self, config, config_file):
        config_file.parent.mkdir(parents=True)
        config_file.write_text(
            yaml.safe_dump({"api": {"timeout_seconds": 5}, "performance": {"max_workers": 4}})
        )

        settings = config.get_mirror_settings()

        assert settings.timeout_seconds == 5
        assert settings.max_workers == 4
        assert settings.max_retries == DEFAULT_MIRROR_CONFIG["api"]["max_retries"]

    def test_environment_overrides_file(self, config, config_file, monkeypatch):
        config_file.parent.mkdir(parents=True)
        config_file.write_text(yaml.safe_dump({"api": {"timeout_seconds": 5}}))
        monkeypatch.setenv("APIMIRROR_API_TIMEOUT_SECONDS", "12.5")
        monkeypatch.setenv("APIMIRROR_MAX_WORKERS", "8")
        monkeypatch.setenv("APIMIRROR_EXPORT_INCLUDE_SECRETS", "true")

        settings = config.get_mirror_settings()

        assert settings.timeout_seconds == 12.5
        assert settings.max_workers == 8
        assert settings.include_secrets is True

    def test_invalid_environment_value_falls_back(self, config, monkeypatch):
        monkeypatch.setenv("APIMIRROR_MAX_WORKERS", "many")

        assert config.get_mirror_settings().max_workers == 1

    def test_overrides_win_and_none_is_ignored(self, config):
        settings = config.get_mirror_settings(max_workers=3, include_secrets=None)

        assert settings.max_workers == 3
        assert settings.include_secrets is False

    def test_invalid_settings_raise(self, config):
        with pytest.raises(ValueError):
            config.get_mirror_settings(max_workers=0)

    def test_set_persists_dot_notation(self, config, config_file):
        config.set("api.max_retries", 5)

        assert yaml.safe_load(config_file.read_text()) == {"api": {"max_retries": 5}}
        assert Config(config_file).get("api.max_retries") == 5

    def test_get_missing_key_returns_default(self, config):
        assert config.get("export.nope", "fallback") == "fallback"

    def test_invalid_yaml_is_ignored(self, config, config_file):
        config_file.parent.mkdir(parents=True)
        config_file.write_text("api: [unclosed")

        assert config.get_mirror_config() == DEFAULT_MIRROR_CONFIG

    def test_resource_kinds(self, config, config_file):
        assert config.get_resource_kinds("export") == IMPORT_ORDER

        config.set("import.resource_kinds", "apis,named-values")

        assert config.get_resource_kinds("import") == [ResourceKind.NAMED_VALUES, ResourceKind.APIS]

    def test_link_kinds(self, config):
        config.set("import.link_from_kind", "products")
        config.set("import.link_to_kind", "apis")

        settings = config.get_mirror_settings()

        assert settings.link_from_kind == ResourceKind.PRODUCTS
        assert settings.link_to_kind == ResourceKind.APIS

    def test_access_token(self, config, monkeypatch):
        assert config.get_access_token() is None
        monkeypatch.setenv("APIMIRROR_ACCESS_TOKEN", "from-env")

        assert config.get_access_token() == "from-env"
        assert config.get_access_token("explicit") == "explicit"
