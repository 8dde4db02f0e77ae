"""Download translation bundles from Lokalise and unpack them into the project."""
import io
import logging
import os
import zipfile
from contextlib import ExitStack
from typing import Any, BinaryIO, Callable, Optional
from urllib.parse import urlparse

import jsonschema
import requests

from lokalise_manager.base_task import BaseTask, response_field
from lokalise_manager.errors import (
    BundleError,
    DownloadError,
    EntryError,
    ImportProcessError,
    ImportTimeoutError,
    LokaliseManagerError,
    MalformedResponseError,
)

logger = logging.getLogger(__name__)

# (connect, read) timeouts in seconds for fetching the bundle.
BUNDLE_FETCH_TIMEOUT = (10, 60)

BUNDLE_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {"bundle_url": {"type": "string", "minLength": 1}},
    "required": ["bundle_url"],
}

ASYNC_PROCESS_SCHEMA = {
    "type": "object",
    "properties": {"process_id": {"type": ["string", "integer"]}},
    "required": ["process_id"],
}


def _validate_response(response: Any, schema: dict, fields: tuple) -> None:
    """Raise MalformedResponseError if the response lacks the expected fields."""
    document = {name: response_field(response, name) for name in fields}
    document = {name: value for name, value in document.items() if value is not None}
    try:
        jsonschema.validate(instance=document, schema=schema)
    except jsonschema.ValidationError as e:
        raise MalformedResponseError(f"Unexpected response from Lokalise: {e.message}") from e


class Importer(BaseTask):
    """Imports translation files from Lokalise into `locales_path`."""

    def import_files(self) -> bool:
        """
        Download the translation bundle and write its files to disk.

        Returns:
            bool: True once the import completed, False if the user declined
            to import into a non-empty directory.
        """
        self.check_options_errors()

        if not self.proceed_when_safe_mode():
            if not self.config.silent_mode:
                print('Task cancelled!')
            logger.info("Import cancelled by the user.")
            return False

        bundle_location = self.download_bundle()
        self.open_and_process_zip(bundle_location)

        if not self.config.silent_mode:
            print('Task complete!')
        return True

    def proceed_when_safe_mode(self) -> bool:
        """
        In safe mode, ask for confirmation before writing into a non-empty directory.
        """
        path = str(self.config.locales_path)
        if not self.config.import_safe_mode:
            return True
        if not os.path.isdir(path) or not os.listdir(path):
            return True

        prompt = ''
        if not self.config.silent_mode:
            print(f"The target directory {path} is not empty!")
            prompt = 'Enter Y to continue: '
        try:
            answer = input(prompt)
        except EOFError:
            answer = ''
        return answer.strip().upper() == 'Y'

    def download_bundle(self) -> str:
        """Return the URL (or local path) of the bundle to unpack."""
        if not self.config.import_async:
            return response_field(self.download_files(), 'bundle_url')

        process = self.download_files_async()
        details = response_field(process, 'details') or {}
        download_url = details.get('download_url')
        if not download_url:
            raise ImportProcessError("Asynchronous download process finished without a download URL")
        return download_url

    def download_files(self) -> Any:
        def request():
            response = self.api_client.download_files(self.project_id_with_branch, self.config.import_opts)
            _validate_response(response, BUNDLE_RESPONSE_SCHEMA, ('bundle_url',))
            return response

        return self._remote_call('download_files', request)

    def download_files_async(self) -> Any:
        """Start an asynchronous download and wait for it to finish."""
        def request():
            response = self.api_client.download_files_async(self.project_id_with_branch, self.config.import_opts)
            _validate_response(response, ASYNC_PROCESS_SCHEMA, ('process_id',))
            return response

        process = self._remote_call('download_files_async', request)
        return self.wait_for_async_download(response_field(process, 'process_id'))

    def wait_for_async_download(self, process_id: Any) -> Any:
        """
        Poll the queued process until it finishes.

        The process is checked up to `max_retries_import + 1` times, waiting
        with the same exponential backoff used for retries between checks.

        Raises:
            ImportProcessError: If the process failed.
            ImportTimeoutError: If the process did not finish in time.
        """
        backoff = self.backoff_executor()
        attempts = max(self.config.max_retries_import, 0) + 1

        for attempt in range(attempts):
            process = self.reload_process(process_id)
            status = response_field(process, 'status')
            logger.debug("Download process %s status: %s", process_id, status)

            if status == 'failed':
                raise ImportProcessError(f"Asynchronous download process {process_id} failed")
            if status == 'finished':
                return process

            if attempt < attempts - 1:
                backoff.sleep(attempt)

        raise ImportTimeoutError(
            f"Asynchronous download process {process_id} timed out after {attempts} tries"
        )

    def reload_process(self, process_id: Any) -> Any:
        return self._remote_call(
            'queued_process',
            lambda: self.api_client.queued_process(self.project_id_with_branch, process_id),
        )

    def _remote_call(self, operation: str, request: Callable[[], Any]) -> Any:
        """
        Run a remote call with backoff.

        Errors that are not already a LokaliseManagerError are wrapped in a
        DownloadError naming `operation`; their category is kept.
        """
        try:
            return self.with_exp_backoff(request, self.config.max_retries_import)
        except LokaliseManagerError:
            raise
        except Exception as e:
            raise DownloadError(operation, e) from e

    def open_and_process_zip(self, location: str) -> None:
        """Open the bundle and write every matching entry to disk."""
        with ExitStack() as stack:
            try:
                stream = stack.enter_context(self.open_file_or_remote(location))
                archive = stack.enter_context(zipfile.ZipFile(stream))
            except (OSError, zipfile.BadZipFile, requests.RequestException) as e:
                raise BundleError(location, e) from e

            for entry in archive.infolist():
                if entry.is_dir() or not self.proper_ext(entry.filename):
                    continue
                self.process_entry(archive, entry)

        logger.info("Processed translation bundle '%s'.", location)

    def process_entry(self, archive: zipfile.ZipFile, entry: zipfile.ZipInfo) -> None:
        try:
            data = self.config.translations_loader(archive.read(entry))
            dest = self.safe_dest_path(entry.filename)
            if dest is None:
                logger.warning("Skipping '%s': it points outside of '%s'.", entry.filename,
                               self.config.locales_path)
                return

            content = self.config.translations_converter(data)
            if isinstance(content, bytes):
                content = content.decode('utf-8')

            os.makedirs(os.path.dirname(dest), exist_ok=True)
            with open(dest, 'w', encoding='utf-8') as file:
                file.write(content)
        except Exception as e:
            raise EntryError(entry.filename, e) from e

        logger.debug("Wrote '%s'.", dest)

    def safe_dest_path(self, entry_name: str) -> Optional[str]:
        """
        Return the destination path of an entry, or None if it would land
        outside of `locales_path`.
        """
        base = os.path.realpath(str(self.config.locales_path))
        normalized = entry_name.replace('\\', '/')
        dest = os.path.realpath(os.path.join(base, normalized))
        if dest == base or not dest.startswith(base + os.sep):
            return None
        return dest

    @staticmethod
    def open_file_or_remote(location: str) -> BinaryIO:
        """Open a local path, or download the bundle when given an http(s) URL."""
        scheme = urlparse(location).scheme
        if scheme.startswith('http'):
            response = requests.get(location, timeout=BUNDLE_FETCH_TIMEOUT)
            try:
                response.raise_for_status()
                return io.BytesIO(response.content)
            finally:
                response.close()
        return open(location, 'rb')
