from __future__ import annotations

import html
import re
import typing as t
from urllib.parse import urlsplit

from hearth._classifier import Category
from hearth._config import EngineConfig
from hearth._core._headers import Headers
from hearth._core.models import Response, ResponseMetadata
from hearth._utils import make_async_iterator

__all__ = ("parse_document_identifier", "render_content_document_page", "render_generic_page", "synthesize_offline_response")

UNKNOWN_IDENTIFIER = "?"

_STYLE = """
        body { font-family: Arial, sans-serif; text-align: center; padding: 50px; }
        .button { padding: 10px 20px; margin: 10px; display: inline-block; }
"""

_GENERIC_PAGE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Offline</title>
    <style>{style}</style>
</head>
<body>
    <h1>You're Offline</h1>
    <p>This content is not available offline.</p>
    <p>Please check your internet connection and try again.</p>
    <a href="{home}" class="button">Return Home</a>
    <a href="" class="button" onclick="window.location.reload(); return false;">Retry</a>
</body>
</html>
"""

_CONTENT_DOCUMENT_PAGE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{title} - Offline</title>
    <style>{style}</style>
</head>
<body>
    <nav>
        <a href="{home}">Home</a>
        <a href="{listing}">{label}s</a>
    </nav>
    <main>
        <h1>{title}</h1>
        <p>{title} is not available offline.</p>
        <p>Please connect to the internet to view the full content.</p>
        <a href="{listing}" class="button">View Available {label}s</a>
    </main>
</body>
</html>
"""


def parse_document_identifier(url: str, config: EngineConfig) -> str:
    """
    Pull the document identifier out of a content-document URL.

    Uses the first capture group of the first matching pattern, falling back to the first
    number in the path, and to ``"?"`` when there is none.

    Example:
        >>> parse_document_identifier("https://example.com/units/unit-7.html", config)
        '7'
    """
    try:
        path = urlsplit(url).path
    except ValueError:
        path = url

    for pattern in config.content_document_patterns:
        match = re.search(pattern, path)
        if match is not None and match.groups() and match.group(1):
            return match.group(1)

    number = re.search(r"(\d+)", path)
    return number.group(1) if number else UNKNOWN_IDENTIFIER


def render_generic_page(config: EngineConfig) -> str:
    return _GENERIC_PAGE.format(style=_STYLE, home=html.escape(config.home_path))


def render_content_document_page(identifier: str, config: EngineConfig) -> str:
    label = html.escape(config.content_label)
    return _CONTENT_DOCUMENT_PAGE.format(
        style=_STYLE,
        title=f"{label} {html.escape(identifier)}",
        label=label,
        home=html.escape(config.home_path),
        listing=html.escape(config.listing_path),
    )


def synthesize_offline_response(
    category: Category,
    config: EngineConfig,
    identifier: t.Optional[str] = None,
) -> Response:
    """
    Build the page shown when neither a store nor the network can answer.

    Deterministic for a given category, configuration and identifier. Content documents
    get a page naming the missing document; everything else gets the generic page.
    """
    if category is Category.CONTENT_DOCUMENT:
        body = render_content_document_page(identifier or UNKNOWN_IDENTIFIER, config)
    else:
        body = render_generic_page(config)

    content = body.encode("utf-8")
    response = Response(
        status_code=200,
        headers=Headers(
            {
                "Content-Type": "text/html",
                "Cache-Control": "no-cache",
                "Content-Length": str(len(content)),
            }
        ),
        stream=make_async_iterator([content]),
        metadata=ResponseMetadata(
            hearth_category=category.value,
            hearth_from_cache=False,
            hearth_stored=False,
            hearth_synthesized=True,
        ),
    )
    setattr(response, "collected_body", content)
    return response
