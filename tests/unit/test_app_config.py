"""Unit tests for the app_config module."""
import os
import re
from unittest.mock import patch

import pytest
import yaml

from lokalise_manager import codecs
from lokalise_manager.app_config import (
    DEFAULT_IMPORT_OPTS,
    KNOWN_KEYS,
    Settings,
    build_settings,
    deep_merge,
    default_options,
    defaults_from_config,
    load_defaults,
    validate_settings,
)
from lokalise_manager.errors import ConfigurationError, ErrorKind


class TestDeepMerge:
    """Test cases for deep_merge."""

    def test_nested_mappings_are_merged(self):
        assert deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}}) == {"a": {"x": 1, "y": 3}}

    def test_scalar_replaces_mapping(self):
        assert deep_merge({"a": {"x": 1}}, {"a": 5}) == {"a": 5}

    def test_mapping_replaces_scalar(self):
        assert deep_merge({"a": 5}, {"a": {"x": 1}}) == {"a": {"x": 1}}

    def test_inputs_are_not_modified(self):
        base = {"a": {"x": 1}}
        other = {"a": {"y": 2}, "b": [1]}
        merged = deep_merge(base, other)

        merged["a"]["z"] = 3
        merged["b"].append(2)

        assert base == {"a": {"x": 1}}
        assert other == {"a": {"y": 2}, "b": [1]}


class TestBuildSettings:
    """Test cases for build_settings."""

    def test_string_ext_pattern_is_case_insensitive(self):
        settings = build_settings({'file_ext_regexp': r'\.json\Z'})

        assert isinstance(settings.file_ext_regexp, re.Pattern)
        assert settings.file_ext_regexp.search('.JSON')

    def test_invalid_ext_pattern_is_rejected(self):
        with pytest.raises(ConfigurationError, match="Invalid file_ext_regexp"):
            build_settings({'file_ext_regexp': '(unclosed'})

    def test_defaults_are_used_without_overrides(self):
        settings = build_settings()

        assert settings.api_token is None
        assert settings.branch == ''
        assert settings.locales_path == os.path.join(os.getcwd(), 'locales')
        assert settings.import_opts == DEFAULT_IMPORT_OPTS
        assert settings.export_opts == {}
        assert settings.raise_on_export_fail is True
        assert settings.silent_mode is False
        assert settings.max_retries_export == 5
        assert settings.max_retries_import == 5
        assert settings.max_concurrent_uploads == 6
        assert settings.translations_loader is codecs.load_yaml_translations

    def test_override_wins_over_default(self):
        settings = build_settings({"api_token": "fake", "max_retries_export": 2})

        assert settings.api_token == "fake"
        assert settings.max_retries_export == 2
        assert settings.max_retries_import == 5

    def test_every_field_resolves_to_override_or_default(self):
        overrides = {"project_id": "123", "silent_mode": True, "branch": "develop"}
        settings = build_settings(overrides)
        builtin = default_options()

        for key in KNOWN_KEYS:
            expected = overrides.get(key, builtin[key])
            if key == "locales_path":
                continue
            assert getattr(settings, key) == expected, key

    def test_process_defaults_sit_between_builtins_and_overrides(self):
        settings = build_settings({"branch": "main"}, {"branch": "develop", "project_id": "42"})

        assert settings.branch == "main"
        assert settings.project_id == "42"

    def test_import_opts_are_deep_merged(self):
        settings = build_settings({"import_opts": {"indentation": "4sp", "format": "json"}})

        assert settings.import_opts == {
            "format": "json",
            "placeholder_format": "icu",
            "yaml_include_root": True,
            "original_filenames": True,
            "directory_prefix": "",
            "indentation": "4sp",
        }

    def test_unknown_keys_are_all_listed(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_settings({"wtf_key": "nope", "api_token": "fake", "another_one": 123})

        message = str(exc_info.value)
        assert message.startswith("Unknown config keys:")
        assert "wtf_key" in message
        assert "another_one" in message
        assert "api_token" not in message
        assert exc_info.value.kind is ErrorKind.CONFIGURATION

    def test_none_export_opts_become_empty(self):
        assert build_settings({"export_opts": None}).export_opts == {}

    def test_settings_are_independent_from_defaults(self):
        first = build_settings()
        first.import_opts["format"] = "json"

        assert build_settings().import_opts["format"] == "ruby_yaml"
        assert default_options()["import_opts"]["format"] == "ruby_yaml"

    def test_settings_can_be_updated_after_build(self):
        settings = build_settings({"api_token": "fake", "project_id": "123"})
        settings.project_id = "345"

        assert settings.project_id == "345"
        assert settings.api_token == "fake"

    def test_custom_hooks_are_kept(self):
        loader = lambda raw: {"en": {}}  # noqa: E731
        settings = build_settings({"translations_loader": loader})

        assert settings.translations_loader is loader


class TestValidateSettings:
    """Test cases for validate_settings."""

    def test_valid_settings(self):
        assert validate_settings(Settings(api_token="fake", project_id="123")) == []

    def test_all_errors_are_accumulated(self):
        errors = validate_settings(Settings(api_token="", project_id=None))

        assert errors == ['Project ID is not set!', 'Lokalise API token is not set!']

    def test_blank_values_are_rejected(self):
        errors = validate_settings(Settings(api_token="   ", project_id="123"))

        assert errors == ['Lokalise API token is not set!']


class TestLoadDefaults:
    """Test cases for loading defaults from the YAML file and environment."""

    def test_load_from_yaml_file(self, tmp_path):
        config_file = tmp_path / "lokalise_manager.yaml"
        config_file.write_text(yaml.dump({
            "project_id": "123.abc",
            "branch": "develop",
            "file_ext_regexp": r"\.json\Z",
            "import_opts": {"format": "json"},
            "logging": {"log_level": "DEBUG"},
        }), encoding="utf-8")

        with patch.dict(os.environ, {}, clear=True):
            defaults = load_defaults(str(config_file))

        assert defaults["project_id"] == "123.abc"
        assert defaults["branch"] == "develop"
        assert defaults["import_opts"]["format"] == "json"
        assert defaults["import_opts"]["indentation"] == "2sp"
        assert "logging" not in defaults
        assert isinstance(defaults["file_ext_regexp"], re.Pattern)
        assert defaults["file_ext_regexp"].search(".JSON")

        settings = build_settings({"api_token": "fake"}, defaults)
        assert settings.branch == "develop"

    def test_defaults_record_is_read_only(self, tmp_path):
        with patch.dict(os.environ, {}, clear=True):
            defaults = load_defaults(str(tmp_path / "missing.yaml"))

        with pytest.raises(TypeError):
            defaults["api_token"] = "nope"

    def test_missing_file_uses_builtin_defaults(self, tmp_path):
        with patch.dict(os.environ, {}, clear=True):
            defaults = load_defaults(str(tmp_path / "missing.yaml"))

        assert defaults["max_retries_export"] == 5
        assert defaults["api_token"] is None

    def test_invalid_yaml_uses_builtin_defaults(self, tmp_path, capsys):
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("project_id: [unclosed", encoding="utf-8")

        with patch.dict(os.environ, {}, clear=True):
            defaults = load_defaults(str(config_file))

        assert defaults["project_id"] is None
        assert "Invalid YAML" in capsys.readouterr().err

    def test_environment_overrides_file(self, tmp_path):
        config_file = tmp_path / "lokalise_manager.yaml"
        config_file.write_text(yaml.dump({"project_id": "from-file"}), encoding="utf-8")

        with patch.dict(os.environ, {"LOKALISE_PROJECT_ID": "from-env", "LOKALISE_API_TOKEN": "secret"},
                        clear=True):
            defaults = load_defaults(str(config_file))

        assert defaults["project_id"] == "from-env"
        assert defaults["api_token"] == "secret"

    def test_config_file_from_environment_variable(self, tmp_path):
        config_file = tmp_path / "custom.yaml"
        config_file.write_text(yaml.dump({"branch": "feature"}), encoding="utf-8")

        with patch.dict(os.environ, {"LOKALISE_MANAGER_CONFIG": str(config_file)}, clear=True):
            defaults = load_defaults()

        assert defaults["branch"] == "feature"

    def test_schema_violations_are_reported_together(self):
        with pytest.raises(ConfigurationError) as exc_info:
            defaults_from_config({"max_retries_export": "five", "unknown_option": True})

        message = str(exc_info.value)
        assert "max_retries_export" in message
        assert "unknown_option" in message

    def test_invalid_regexp_is_a_configuration_error(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError, match="file_ext_regexp"):
                defaults_from_config({"file_ext_regexp": "(unclosed"})
