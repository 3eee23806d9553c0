from __future__ import annotations

from typing import Any, Iterator, List, Mapping, MutableMapping, Optional, Union

__all__ = ("Headers", "accepts_html")


class Headers(MutableMapping[str, str]):
    """
    Case-insensitive, multi-valued header mapping.

    Reading a header joins repeated values with ", ", writing appends a value.
    """

    def __init__(self, headers: Mapping[str, Union[str, List[str]]]) -> None:
        self._headers = {k.lower(): ([v] if isinstance(v, str) else v[:]) for k, v in headers.items()}

    def get_list(self, key: str) -> Optional[List[str]]:
        return self._headers.get(key.lower(), None)

    def __getitem__(self, key: str) -> str:
        return ", ".join(self._headers[key.lower()])

    def __setitem__(self, key: str, value: str) -> None:
        self._headers.setdefault(key.lower(), []).append(value)

    def __delitem__(self, key: str) -> None:
        del self._headers[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return repr(self._headers)

    def __str__(self) -> str:
        return str(self._headers)

    def __eq__(self, other_headers: Any) -> bool:
        return isinstance(other_headers, Headers) and self._headers == other_headers._headers  # type: ignore

    def multi_items(self) -> List[tuple[str, str]]:
        return [(key, value) for key, values in self._headers.items() for value in values]


def accepts_html(headers: Headers) -> bool:
    """
    Whether the `Accept` header names an HTML document.

    A missing `Accept` header is treated as not asking for HTML.
    """
    values = headers.get_list("accept")
    if not values:
        return False
    return any("text/html" in value.lower() for value in values)
