import io
import os
import zipfile
from unittest.mock import MagicMock, patch

import pytest
from lokalise import errors as lokalise_errors


class FakeTooManyRequests(lokalise_errors.TooManyRequests):
    """Rate limit error that does not need an HTTP response to be built."""

    def __init__(self, message="Too many requests"):
        Exception.__init__(self, message)
        self.message = message
        self.code = 429

    def __str__(self):
        return self.message


class FakeNotFound(lokalise_errors.NotFound):
    """Not-found error that does not need an HTTP response to be built."""

    def __init__(self, message="Project not found"):
        Exception.__init__(self, message)
        self.message = message
        self.code = 404

    def __str__(self):
        return self.message


@pytest.fixture
def rate_limit_error():
    return FakeTooManyRequests


@pytest.fixture
def not_found_error():
    return FakeNotFound


@pytest.fixture
def locales_dir(tmp_path):
    """An empty locales directory nested two levels below tmp_path."""
    path = tmp_path / "project" / "config" / "locales"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def write_translation(locales_dir):
    """Factory writing a file relative to the locales directory."""
    def _write(relative_path, content="en:\n  key: value\n"):
        full_path = locales_dir / relative_path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content, encoding="utf-8")
        return full_path
    return _write


@pytest.fixture
def task_opts(locales_dir):
    """Options producing a valid, quiet task with deterministic backoff delays."""
    return {
        "api_token": "fake_token",
        "project_id": "672198945b7d72fc048021.15940510",
        "locales_path": str(locales_dir),
        "silent_mode": True,
        "backoff_jitter": 0,
    }


@pytest.fixture
def fake_client():
    """Replaces the Lokalise client class so no network request can be made."""
    client = MagicMock(name="lokalise_client")
    with patch("lokalise_manager.api_client.lokalise.Client", return_value=client):
        yield client


@pytest.fixture
def no_sleep():
    with patch("lokalise_manager.backoff.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def make_bundle(tmp_path):
    """Factory building a zip bundle on disk from a {entry name: content} mapping."""
    def _make(entries, name="bundle.zip"):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            for entry_name, content in entries.items():
                archive.writestr(entry_name, content)
        bundle_path = os.path.join(str(tmp_path), name)
        with open(bundle_path, "wb") as f:
            f.write(buffer.getvalue())
        return bundle_path
    return _make
