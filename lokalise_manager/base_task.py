"""Plumbing shared by the exporter and the importer."""
import os
import re
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from lokalise_manager.api_client import ApiClientFactory
from lokalise_manager.app_config import Settings, build_settings, validate_settings
from lokalise_manager.backoff import BackoffExecutor
from lokalise_manager.errors import ConfigurationError


def response_field(response: Any, name: str, default: Any = None) -> Any:
    """Read a field from an API response that may be a model object or a plain mapping."""
    if isinstance(response, Mapping):
        return response.get(name, default)
    return getattr(response, name, default)


class BaseTask:
    """
    Base class for the export and import tasks.

    Args:
        custom_opts: Task-specific options; they win over `defaults`.
        defaults: Process-wide defaults, usually from `app_config.load_defaults()`.
    """

    def __init__(self, custom_opts: Optional[Mapping[str, Any]] = None,
                 defaults: Optional[Mapping[str, Any]] = None):
        self.config: Settings = build_settings(custom_opts, defaults)
        self._client_factory = ApiClientFactory()

    @property
    def api_client(self) -> Any:
        return self._client_factory.get_client(self.config)

    def reset_api_client(self) -> None:
        self._client_factory.reset()

    @property
    def project_id_with_branch(self) -> str:
        """Project ID, suffixed with `:<branch>` when a branch is configured."""
        branch = str(self.config.branch or '').strip()
        if not branch:
            return str(self.config.project_id)
        return f"{self.config.project_id}:{self.config.branch}"

    def check_options_errors(self) -> None:
        errors = validate_settings(self.config)
        if errors:
            raise ConfigurationError(' '.join(errors))

    def proper_ext(self, raw_path: Union[str, Path]) -> bool:
        """Check whether the path's extension matches `file_ext_regexp`."""
        extension = os.path.splitext(str(raw_path))[1]
        return re.search(self.config.file_ext_regexp, extension) is not None

    def backoff_executor(self) -> BackoffExecutor:
        return BackoffExecutor(
            base=self.config.backoff_base,
            cap=self.config.backoff_cap,
            jitter=self.config.backoff_jitter,
        )

    def with_exp_backoff(self, operation: Callable[[], Any], max_retries: int) -> Any:
        return self.backoff_executor().run(operation, max_retries)
