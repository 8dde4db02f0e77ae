"""Factory for the Lokalise API client shared by the tasks."""
import logging
import threading
from typing import Any, Optional

import lokalise

from lokalise_manager.app_config import Settings

logger = logging.getLogger(__name__)


class ApiClientFactory:
    """
    Builds the Lokalise client lazily and keeps it for the lifetime of a task.

    Once built, the client is shared read-only by every concurrent upload.
    `reset()` must not be called while uploads are in flight.
    """

    def __init__(self):
        self._client: Optional[Any] = None
        self._lock = threading.Lock()

    def get_client(self, settings: Settings) -> Any:
        if self._client is not None:
            return self._client
        with self._lock:
            if self._client is None:
                self._client = self._create_client(settings)
        return self._client

    def reset(self) -> None:
        """Drop the memoized client so the next call builds a new one."""
        with self._lock:
            if self._client is not None:
                self._client.reset_client()
            self._client = None

    @staticmethod
    def _create_client(settings: Settings) -> Any:
        client_opts = {'enable_compression': True}
        client_opts.update(settings.additional_client_opts or {})

        if settings.use_oauth2_token:
            logger.debug("Initializing Lokalise OAuth2 client")
            return lokalise.OAuthClient(settings.api_token, **client_opts)

        logger.debug("Initializing Lokalise API client")
        return lokalise.Client(settings.api_token, **client_opts)
