"""
Default behaviour hooks used when the caller does not supply their own.

Translation files are expected to be Rails-style YAML with the language code
as the root key:

    en:
      welcome: Welcome
      user:
        greeting: "Hello %{name}"
"""
from pathlib import Path
from typing import Any, Optional, Union

import yaml


def never_skip(full_path: Path) -> bool:
    return False


def load_yaml_translations(raw_data: Union[bytes, str]) -> Any:
    """Parse the content of a bundle entry into a language-keyed mapping."""
    return yaml.safe_load(raw_data)


def dump_yaml_translations(data: Any) -> str:
    """
    Serialize translations back to YAML.

    PyYAML escapes backslashes in double-quoted scalars, which turns an
    escaped newline coming from Lokalise into a literal `\\n`; undo that.
    """
    dumped = yaml.safe_dump(data, allow_unicode=True, sort_keys=False)
    return dumped.replace('\\\\n', '\\n')


def infer_lang_iso(raw_content: Union[bytes, str], full_path: Path) -> Optional[str]:
    """Use the root key of the YAML document as the language code."""
    data = yaml.safe_load(raw_content)
    if not isinstance(data, dict) or not data:
        return None
    return str(next(iter(data)))


def passthrough_content(raw_content: bytes, full_path: Path) -> bytes:
    return raw_content


def relative_filename(full_path: Path, relative_path: Path) -> str:
    return Path(relative_path).as_posix()
