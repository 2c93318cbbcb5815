"""Reading and parsing the operator version."""

from __future__ import annotations

from typing import Callable, Optional

import semver

VERSION_FILE = "version.txt"


def get_string_from_file(file_name) -> str:
    """Return the first line of ``file_name`` without its line ending.

    Raises ``OSError`` when the file cannot be opened.
    """
    with open(file_name, encoding="utf-8") as handle:
        line = handle.readline()
    return line.removesuffix("\n").removesuffix("\r")


def _read_version_txt() -> str:
    return get_string_from_file(VERSION_FILE)


def get_version_from_string(version_string: str) -> semver.Version:
    """Parse a version string, allowing a leading ``v``.

    Raises ``ValueError`` when the string is not a semantic version.
    """
    return semver.Version.parse(version_string.removeprefix("v"))


def get_version(reader: Optional[Callable[[], str]] = None) -> semver.Version:
    """Return the version supplied by ``reader`` (``version.txt`` by default)."""
    source = reader if reader is not None else _read_version_txt
    return get_version_from_string(source())