"""Error taxonomy shared by the export and import tasks."""
import json
import zipfile
from enum import Enum
from typing import Optional

import requests
from lokalise import errors as lokalise_errors


class ErrorKind(Enum):
    """Category of a failure, used to decide whether it is worth retrying."""
    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    LOCAL_IO = "local_io"


class LokaliseManagerError(Exception):
    """Base class for every error raised by lokalise_manager."""
    kind = ErrorKind.PERMANENT

    def __init__(self, message: str = '', kind: Optional[ErrorKind] = None,
                 original: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.original = original
        if kind is not None:
            self.kind = kind


class ConfigurationError(LokaliseManagerError):
    """Missing credentials, missing project ID or unknown config keys."""
    kind = ErrorKind.CONFIGURATION


class MalformedResponseError(LokaliseManagerError):
    """The remote service answered with something other than the expected structure."""
    kind = ErrorKind.TRANSIENT


class RetriesExhaustedError(LokaliseManagerError):
    """A transient failure kept happening after every allowed retry."""
    kind = ErrorKind.TRANSIENT

    def __init__(self, original: BaseException, retries: int, attempts: int):
        message = f"Gave up after {retries} retries ({attempts} attempts): {original}"
        super().__init__(message, original=original)
        self.retries = retries
        self.attempts = attempts


class UploadError(LokaliseManagerError):
    """Raised by the exporter in fail-fast mode for the first failed file."""

    def __init__(self, path, original: BaseException):
        message = f"Error while trying to upload {path}: {original}"
        super().__init__(message, kind=classify_error(original), original=original)
        self.path = path


class ImportProcessError(LokaliseManagerError):
    """The asynchronous download process reported a failure."""


class ImportTimeoutError(LokaliseManagerError):
    """The asynchronous download process did not finish in time."""
    kind = ErrorKind.TRANSIENT


class DownloadError(LokaliseManagerError):
    """A remote call made while importing failed."""

    def __init__(self, operation: str, original: BaseException):
        message = f"Error while calling {operation}: {original}"
        super().__init__(message, kind=classify_error(original), original=original)
        self.operation = operation


class BundleError(LokaliseManagerError):
    """The downloaded bundle could not be opened or read as an archive."""

    def __init__(self, location: str, original: BaseException):
        message = f"Error when trying to open bundle {location}: {original}"
        super().__init__(message, kind=classify_error(original), original=original)
        self.location = location


class EntryError(LokaliseManagerError):
    """A single archive entry could not be converted or written."""

    def __init__(self, entry_name: str, original: BaseException):
        message = f"Error when trying to process {entry_name}: {original}"
        super().__init__(message, kind=classify_error(original), original=original)
        self.entry_name = entry_name


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Map any exception onto an ErrorKind.

    Rate limiting and malformed responses are transient; everything coming from
    the remote side is otherwise permanent; local file and archive problems are
    local I/O errors.
    """
    if isinstance(exc, LokaliseManagerError):
        return exc.kind
    if isinstance(exc, (lokalise_errors.TooManyRequests, json.JSONDecodeError)):
        return ErrorKind.TRANSIENT
    # requests exceptions subclass OSError, so they have to be checked first
    if isinstance(exc, (requests.RequestException, lokalise_errors.ClientError)):
        return ErrorKind.PERMANENT
    if isinstance(exc, (OSError, zipfile.BadZipFile)):
        return ErrorKind.LOCAL_IO
    return ErrorKind.PERMANENT


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc) is ErrorKind.TRANSIENT
