from __future__ import annotations

import enum
import types
import typing as t
from dataclasses import dataclass

from hearth._classifier import Category
from hearth._config import Tier

__all__ = ("DEFAULT_POLICY", "Fallback", "PolicyRule", "Strategy")


class Strategy(str, enum.Enum):
    CACHE_FIRST = "cache-first"
    STALE_WHILE_REVALIDATE = "stale-while-revalidate"
    NETWORK_FIRST = "network-first"
    PASS_THROUGH = "pass-through"


class Fallback(str, enum.Enum):
    """What to answer with once both the store and the network have failed."""

    GENERIC_PAGE = "generic-page"
    CONTENT_DOCUMENT_PAGE = "content-document-page"
    NOT_FOUND_DOCUMENT = "not-found-document"
    PROPAGATE = "propagate"


@dataclass(frozen=True)
class PolicyRule:
    strategy: Strategy
    tier: t.Optional[Tier]
    fallback: Fallback
    error_status_is_failure: bool = False
    """When True, a non-2xx network response is handled like a network failure."""


DEFAULT_POLICY: t.Mapping[Category, PolicyRule] = types.MappingProxyType(
    {
        Category.STATIC_ASSET: PolicyRule(
            strategy=Strategy.STALE_WHILE_REVALIDATE,
            tier=Tier.STATIC,
            fallback=Fallback.GENERIC_PAGE,
        ),
        Category.CONTENT_DOCUMENT: PolicyRule(
            strategy=Strategy.CACHE_FIRST,
            tier=Tier.DYNAMIC,
            fallback=Fallback.CONTENT_DOCUMENT_PAGE,
        ),
        Category.NAVIGATION_DOCUMENT: PolicyRule(
            strategy=Strategy.NETWORK_FIRST,
            tier=Tier.STATIC,
            fallback=Fallback.NOT_FOUND_DOCUMENT,
            error_status_is_failure=True,
        ),
        Category.ALLOWED_EXTERNAL: PolicyRule(
            strategy=Strategy.CACHE_FIRST,
            tier=Tier.DYNAMIC,
            fallback=Fallback.PROPAGATE,
        ),
        Category.DYNAMIC_OTHER: PolicyRule(
            strategy=Strategy.NETWORK_FIRST,
            tier=Tier.DYNAMIC,
            fallback=Fallback.GENERIC_PAGE,
        ),
        Category.IGNORED: PolicyRule(
            strategy=Strategy.PASS_THROUGH,
            tier=None,
            fallback=Fallback.PROPAGATE,
        ),
    }
)
