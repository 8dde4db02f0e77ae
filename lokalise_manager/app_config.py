"""Configuration resolution for the export and import tasks."""
import os
import re
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Union

import jsonschema
import yaml
from dotenv import load_dotenv

from lokalise_manager import codecs
from lokalise_manager.errors import ConfigurationError

DEFAULT_CONFIG_FILE_NAME = 'lokalise_manager.yaml'
CONFIG_FILE_ENV_VAR = 'LOKALISE_MANAGER_CONFIG'

DEFAULT_FILE_EXT_REGEXP = re.compile(r'\.ya?ml\Z', re.IGNORECASE)

DEFAULT_IMPORT_OPTS = {
    'format': 'ruby_yaml',
    'placeholder_format': 'icu',
    'yaml_include_root': True,
    'original_filenames': True,
    'directory_prefix': '',
    'indentation': '2sp',
}

# Environment variables win over the YAML file.
ENV_OVERRIDES = {
    'LOKALISE_API_TOKEN': 'api_token',
    'LOKALISE_PROJECT_ID': 'project_id',
    'LOKALISE_BRANCH': 'branch',
}

# Hooks are code and can only be supplied programmatically, so the YAML file
# is limited to plain values.
CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "api_token": {"type": ["string", "null"]},
        "project_id": {"type": ["string", "null"]},
        "branch": {"type": "string"},
        "locales_path": {"type": "string"},
        "file_ext_regexp": {"type": "string"},
        "import_opts": {"type": "object"},
        "export_opts": {"type": ["object", "null"]},
        "import_safe_mode": {"type": "boolean"},
        "import_async": {"type": "boolean"},
        "silent_mode": {"type": "boolean"},
        "raise_on_export_fail": {"type": "boolean"},
        "use_oauth2_token": {"type": "boolean"},
        "additional_client_opts": {"type": "object"},
        "max_retries_export": {"type": "integer"},
        "max_retries_import": {"type": "integer"},
        "max_concurrent_uploads": {"type": "integer", "minimum": 1},
        "backoff_base": {"type": "number", "minimum": 0},
        "backoff_cap": {"type": "number", "minimum": 0},
        "backoff_jitter": {"type": "number", "minimum": 0},
        "logging": {
            "type": "object",
            "properties": {
                "log_level": {"type": "string"},
                "log_file_path": {"type": ["string", "null"]},
                "log_to_console": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}


def _default_locales_path() -> str:
    return os.path.join(os.getcwd(), 'locales')


@dataclass
class Settings:
    """Resolved options of a single export or import task."""
    # Credentials and target project
    api_token: Optional[str] = None
    project_id: Optional[str] = None
    branch: str = ''
    use_oauth2_token: bool = False
    additional_client_opts: Dict[str, Any] = field(default_factory=dict)

    # Local files
    locales_path: Union[str, Path] = field(default_factory=_default_locales_path)
    file_ext_regexp: Union[Pattern, str] = DEFAULT_FILE_EXT_REGEXP

    # Per-operation options sent to the API
    import_opts: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_IMPORT_OPTS))
    export_opts: Dict[str, Any] = field(default_factory=dict)

    # Behaviour flags
    import_safe_mode: bool = False
    import_async: bool = False
    silent_mode: bool = False
    raise_on_export_fail: bool = True

    # Limits
    max_retries_export: int = 5
    max_retries_import: int = 5
    max_concurrent_uploads: int = 6
    backoff_base: float = 1.0
    backoff_cap: float = 32.0
    backoff_jitter: float = 1.0

    # Hooks
    skip_file_export: Callable[[Path], bool] = codecs.never_skip
    translations_loader: Callable[[bytes], Any] = codecs.load_yaml_translations
    translations_converter: Callable[[Any], Union[str, bytes]] = codecs.dump_yaml_translations
    lang_iso_inferer: Callable[[bytes, Path], Optional[str]] = codecs.infer_lang_iso
    export_preprocessor: Callable[[bytes, Path], Union[str, bytes]] = codecs.passthrough_content
    export_filename_generator: Callable[[Path, Path], str] = codecs.relative_filename


KNOWN_KEYS = tuple(f.name for f in fields(Settings))


def default_options() -> Mapping[str, Any]:
    """Return a read-only mapping of every recognized key and its built-in default."""
    defaults = Settings()
    return MappingProxyType({name: getattr(defaults, name) for name in KNOWN_KEYS})


def _copy_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _copy_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_copy_value(item) for item in value]
    return value


def deep_merge(base: Mapping[str, Any], other: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge `other` on top of `base` without modifying either of them.

    Nested mappings present on both sides are merged recursively; any other
    value from `other` replaces the one from `base`.
    """
    result = {key: _copy_value(value) for key, value in base.items()}
    for key, value in other.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = deep_merge(current, value)
        else:
            result[key] = _copy_value(value)
    return result


def _unknown_keys(*sources: Mapping[str, Any]) -> List[str]:
    unknown: List[str] = []
    for source in sources:
        for key in source:
            if key not in KNOWN_KEYS and key not in unknown:
                unknown.append(key)
    return unknown


def compile_ext_regexp(pattern: Union[Pattern, str]) -> Pattern:
    """Compile a string pattern case-insensitively; compiled patterns are kept as given."""
    if not isinstance(pattern, str):
        return pattern
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise ConfigurationError(f"Invalid file_ext_regexp: {e}") from e


def build_settings(overrides: Optional[Mapping[str, Any]] = None,
                   defaults: Optional[Mapping[str, Any]] = None) -> Settings:
    """
    Resolve the settings of a task.

    Args:
        overrides: Task-specific options; they take precedence.
        defaults: Process-wide defaults, e.g. the result of `load_defaults()`.
            Built-in defaults are used for any key it does not provide.

    Returns:
        Settings: A fresh settings object owned by the caller.

    Raises:
        ConfigurationError: If any key is not a recognized option
            or `file_ext_regexp` is not a valid pattern.
    """
    overrides = overrides or {}
    defaults = defaults or {}

    unknown = _unknown_keys(defaults, overrides)
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {', '.join(str(key) for key in unknown)}")

    resolved = deep_merge(deep_merge(default_options(), defaults), overrides)

    # An explicit None means "nothing special" for the option bags.
    if resolved['export_opts'] is None:
        resolved['export_opts'] = {}
    if resolved['additional_client_opts'] is None:
        resolved['additional_client_opts'] = {}
    if resolved['import_opts'] is None:
        resolved['import_opts'] = dict(DEFAULT_IMPORT_OPTS)
    resolved['file_ext_regexp'] = compile_ext_regexp(resolved['file_ext_regexp'])

    return Settings(**resolved)


def validate_settings(settings: Settings) -> List[str]:
    """Validate settings and return the list of every problem found."""
    errors = []
    if settings.project_id is None or not str(settings.project_id).strip():
        errors.append('Project ID is not set!')
    if settings.api_token is None or not str(settings.api_token).strip():
        errors.append('Lokalise API token is not set!')
    return errors


def _load_dotenv_files(project_root: str) -> None:
    """Load the .env file from the project root, if any."""
    dotenv_path = os.path.join(project_root, '.env')
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path)


def _resolve_config_path(config_file: Optional[str]) -> str:
    if config_file is None:
        config_file = os.environ.get(CONFIG_FILE_ENV_VAR,
                                     os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE_NAME))
    return os.path.abspath(config_file)


def _load_yaml_config(config_file: str) -> Dict[str, Any]:
    """Load the YAML configuration file, falling back to an empty config on any problem."""
    config: Dict[str, Any] = {}
    if not os.path.exists(config_file):
        return config

    if not os.access(config_file, os.R_OK):
        print(f"Error: Configuration file '{config_file}' exists but is not readable. Check file permissions.",
              file=sys.stderr)
        return config

    try:
        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)
    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except OSError as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def load_config_file(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the raw configuration document.

    Reads `.env` from the working directory first so that the config file
    location itself can be set there. The file is `config_file` if given,
    else $LOKALISE_MANAGER_CONFIG, else ./lokalise_manager.yaml.
    """
    _load_dotenv_files(os.getcwd())
    return _load_yaml_config(_resolve_config_path(config_file))


def defaults_from_config(config: Mapping[str, Any]) -> Mapping[str, Any]:
    """
    Turn a raw configuration document into a defaults record for `build_settings`.

    Raises:
        ConfigurationError: If the document does not match CONFIG_SCHEMA.
    """
    validator = jsonschema.Draft7Validator(CONFIG_SCHEMA)
    problems = sorted(validator.iter_errors(dict(config)), key=lambda e: [str(p) for p in e.path])
    if problems:
        details = '; '.join(
            f"{'.'.join(str(p) for p in error.path) or '<root>'}: {error.message}" for error in problems
        )
        raise ConfigurationError(f"Invalid configuration: {details}")

    options = {key: value for key, value in config.items() if key != 'logging'}
    for env_var, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            options[key] = value

    if 'file_ext_regexp' in options:
        options['file_ext_regexp'] = compile_ext_regexp(options['file_ext_regexp'])

    return MappingProxyType(deep_merge(default_options(), options))


def load_defaults(config_file: Optional[str] = None) -> Mapping[str, Any]:
    """
    Load process-wide defaults from .env, the YAML config file and the environment.

    Returns:
        Mapping[str, Any]: A read-only defaults record.
    """
    return defaults_from_config(load_config_file(config_file))
