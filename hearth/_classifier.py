from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import List, Pattern
from urllib.parse import urlsplit

from hearth._config import EngineConfig
from hearth._core._headers import accepts_html
from hearth._core.models import Request

__all__ = ("Category", "ClassifiedRequest", "Classifier", "classify")


class Category(str, enum.Enum):
    IGNORED = "ignored"
    STATIC_ASSET = "static-asset"
    CONTENT_DOCUMENT = "content-document"
    NAVIGATION_DOCUMENT = "navigation-document"
    ALLOWED_EXTERNAL = "allowed-external"
    DYNAMIC_OTHER = "dynamic-other"


@dataclass(frozen=True)
class ClassifiedRequest:
    url: str
    method: str
    category: Category
    is_navigation: bool


def _origin_of(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return ""
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def _path_of(url: str) -> str:
    try:
        return urlsplit(url).path or "/"
    except ValueError:
        return url


class Classifier:
    """
    Maps requests to categories for one configuration.

    Patterns are compiled once. `classify` never raises: URLs that cannot be parsed are
    treated as same-origin paths.
    """

    def __init__(self, config: EngineConfig) -> None:
        self.origin = _origin_of(config.origin)
        self.allowed_origins = [domain.lower() for domain in config.allowed_origins]
        self.static_asset_suffixes = tuple(suffix.lower() for suffix in config.static_asset_suffixes)
        self.static_path_markers = list(config.static_path_markers)
        self.content_document_patterns: List[Pattern[str]] = [
            re.compile(pattern) for pattern in config.content_document_patterns
        ]

    def is_allowed_external(self, url: str) -> bool:
        lowered = url.lower()
        return any(domain in lowered for domain in self.allowed_origins)

    def is_static_asset(self, path: str) -> bool:
        return path.lower().endswith(self.static_asset_suffixes) or any(
            marker in path for marker in self.static_path_markers
        )

    def is_content_document(self, path: str) -> bool:
        return any(pattern.search(path) for pattern in self.content_document_patterns)

    def classify(self, request: Request) -> ClassifiedRequest:
        method = request.method.upper()
        is_navigation = request.is_navigation or accepts_html(request.headers)
        request_origin = _origin_of(request.url)
        cross_origin = bool(request_origin) and request_origin != self.origin
        path = _path_of(request.url)

        if method != "GET":
            category = Category.IGNORED
        elif cross_origin and not self.is_allowed_external(request.url):
            category = Category.IGNORED
        elif self.is_static_asset(path):
            category = Category.STATIC_ASSET
        elif self.is_content_document(path):
            category = Category.CONTENT_DOCUMENT
        elif is_navigation:
            category = Category.NAVIGATION_DOCUMENT
        elif cross_origin:
            category = Category.ALLOWED_EXTERNAL
        else:
            category = Category.DYNAMIC_OTHER

        return ClassifiedRequest(
            url=request.url,
            method=method,
            category=category,
            is_navigation=is_navigation,
        )


def classify(request: Request, config: EngineConfig) -> ClassifiedRequest:
    """
    Classify a single request.

    Builds a fresh `Classifier`, compiling the config's patterns on every call. Code that
    classifies many requests should keep one `Classifier` per config, as the engine does.
    """
    return Classifier(config).classify(request)
