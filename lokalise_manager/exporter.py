"""Upload local translation files to Lokalise."""
import asyncio
import base64
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Union

from tqdm import tqdm

from lokalise_manager.base_task import BaseTask
from lokalise_manager.errors import ErrorKind, UploadError, classify_error

logger = logging.getLogger(__name__)


class FileCandidate(NamedTuple):
    full_path: Path
    relative_path: Path


@dataclass(frozen=True)
class UploadSuccess:
    path: Path
    process: Any
    success: bool = field(default=True, init=False)


@dataclass(frozen=True)
class UploadFailure:
    path: Path
    error: BaseException
    success: bool = field(default=False, init=False)

    @property
    def kind(self) -> ErrorKind:
        return classify_error(self.error)


UploadOutcome = Union[UploadSuccess, UploadFailure]


class Exporter(BaseTask):
    """
    Uploads every eligible file under `locales_path` to the Lokalise project.

    Files are uploaded in batches of `max_concurrent_uploads` to stay within the
    API rate limit: batches run one after another, files inside a batch run
    concurrently.
    """

    def export(self) -> List[UploadOutcome]:
        """
        Export translation files and wait for every upload to finish.

        Returns:
            List[UploadOutcome]: One outcome per uploaded file, in file order.

        Raises:
            ConfigurationError: If the project ID or API token is missing.
            UploadError: If `raise_on_export_fail` is set and a file failed.
        """
        return asyncio.run(self.export_async())

    async def export_async(self) -> List[UploadOutcome]:
        self.check_options_errors()

        files = self.all_files()
        logger.info("Found %d translation file(s) to export from '%s'.", len(files), self.config.locales_path)

        outcomes: List[UploadOutcome] = []
        with tqdm(total=len(files), desc="Uploading", unit="file", disable=self.config.silent_mode) as progress:
            for batch in self.file_batches(files):
                batch_outcomes = await self._upload_batch(batch)
                progress.update(len(batch))

                if self.config.raise_on_export_fail:
                    self._raise_on_fail(batch_outcomes)

                outcomes.extend(batch_outcomes)

        failed = sum(1 for outcome in outcomes if not outcome.success)
        logger.info("Export finished: %d uploaded, %d failed.", len(outcomes) - failed, failed)

        if not self.config.silent_mode:
            print('Task complete!')

        return outcomes

    def all_files(self) -> List[FileCandidate]:
        """Collect the files to upload, sorted by path."""
        loc_path = Path(self.config.locales_path)
        if not loc_path.is_dir():
            logger.warning("Locales directory '%s' does not exist. Nothing to export.", loc_path)
            return []

        candidates = []
        for full_path in sorted(loc_path.rglob('*')):
            if not self.file_matches_criteria(full_path):
                continue
            candidates.append(FileCandidate(full_path, full_path.relative_to(loc_path)))
        return candidates

    def file_matches_criteria(self, full_path: Path) -> bool:
        return (
            full_path.is_file()
            and self.proper_ext(full_path)
            and not self.config.skip_file_export(full_path)
        )

    def file_batches(self, files: Optional[List[FileCandidate]] = None) -> List[List[FileCandidate]]:
        """Split the candidates into groups of at most `max_concurrent_uploads` files."""
        if files is None:
            files = self.all_files()
        size = max(int(self.config.max_concurrent_uploads), 1)
        return [files[i:i + size] for i in range(0, len(files), size)]

    async def _upload_batch(self, batch: List[FileCandidate]) -> List[UploadOutcome]:
        # One worker thread per file, so a retry sleep only blocks the file being retried.
        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="lokalise-upload") as pool:
            tasks = [loop.run_in_executor(pool, self.do_upload, candidate) for candidate in batch]
            return list(await asyncio.gather(*tasks))

    def do_upload(self, candidate: FileCandidate) -> UploadOutcome:
        """Upload a single file; any error is captured in the returned outcome."""
        try:
            params = self.upload_params(candidate.full_path, candidate.relative_path)
            process = self.with_exp_backoff(
                lambda: self.api_client.upload_file(self.project_id_with_branch, params),
                self.config.max_retries_export,
            )
        except Exception as exc:
            logger.error("Failed to upload '%s': %s - %s", candidate.full_path, exc.__class__.__name__, exc)
            return UploadFailure(path=candidate.full_path, error=exc)

        logger.debug("Uploaded '%s'.", candidate.full_path)
        return UploadSuccess(path=candidate.full_path, process=process)

    def upload_params(self, full_path: Path, relative_path: Path) -> Dict[str, Any]:
        """
        Build the upload request parameters for a file.

        `export_opts` are merged last, so they can override the generated values.
        """
        with open(full_path, 'rb') as file:
            content = file.read()

        data = self.config.export_preprocessor(content, full_path)
        if isinstance(data, str):
            data = data.encode('utf-8')

        params = {
            'data': base64.b64encode(data).decode('ascii'),
            'filename': self.config.export_filename_generator(full_path, relative_path),
            'lang_iso': self.config.lang_iso_inferer(content, full_path),
        }
        params.update(self.config.export_opts or {})
        return params

    @staticmethod
    def _raise_on_fail(outcomes: List[UploadOutcome]) -> None:
        for outcome in outcomes:
            if not outcome.success:
                raise UploadError(outcome.path, outcome.error) from outcome.error
