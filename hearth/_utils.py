from __future__ import annotations

import typing as tp
from email.utils import formatdate
from pathlib import Path
from typing import AsyncIterator, Iterable

T = tp.TypeVar("T")


async def make_async_iterator(
    iterable: Iterable[bytes],
) -> AsyncIterator[bytes]:
    for item in iterable:
        yield item


def filter_mapping(mapping: tp.Mapping[str, T], keys_to_exclude: tp.Iterable[str]) -> tp.Dict[str, T]:
    """
    Filter out specified keys from a string-keyed mapping using case-insensitive comparison.

    Args:
        mapping: The input mapping with string keys to filter.
        keys_to_exclude: An iterable of string keys to exclude (case-insensitive).

    Returns:
        A new dictionary with the specified keys excluded.

    Example:
        ```python
        original = {'a': 1, 'B': 2, 'c': 3}
        filtered = filter_mapping(original, ['b'])
        # filtered will be {'a': 1, 'c': 3}
        ```
    """
    exclude_set = {k.lower() for k in keys_to_exclude}
    return {k: v for k, v in mapping.items() if k.lower() not in exclude_set}


def is_truthy(value: str) -> tp.Optional[bool]:
    value = value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return None


def ensure_cache_dir(base_path: Path | None = None) -> Path:
    _base_path = base_path if base_path is not None else Path(".cache/hearth")
    _gitignore_file = _base_path / ".gitignore"

    _base_path.mkdir(parents=True, exist_ok=True)

    if not _gitignore_file.is_file():
        with open(_gitignore_file, "w", encoding="utf-8") as f:
            f.write("# Automatically created by Hearth\n*")
    return _base_path


def generate_http_date() -> str:
    """
    Generate a Date header value for HTTP responses.
    Returns date in RFC 1123 format (required by HTTP/1.1).

    Example output: 'Sun, 26 Oct 2025 12:34:56 GMT'
    """
    return formatdate(timeval=None, localtime=False, usegmt=True)
