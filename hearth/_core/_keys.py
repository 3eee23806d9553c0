from __future__ import annotations

from urllib.parse import urljoin, urlsplit, urlunsplit

from hearth._core.models import Request

__all__ = ("normalize_url", "request_key", "resolve_url")


def normalize_url(url: str) -> str:
    """
    Normalize an absolute URL for use in a store key.

    Lowercases the scheme and host, drops the fragment, and turns an empty path into "/".
    """
    parts = urlsplit(url)
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def request_key(request: Request) -> str:
    """
    The identity a request is stored under: its method and normalized absolute URL.

    Example:
        >>> request_key(Request(method="get", url="https://Example.com/app.css#top"))
        'GET https://example.com/app.css'
    """
    return f"{request.method.upper()} {normalize_url(request.url)}"


def resolve_url(origin: str, path_or_url: str) -> str:
    return normalize_url(urljoin(origin if origin.endswith("/") else origin + "/", path_or_url))
