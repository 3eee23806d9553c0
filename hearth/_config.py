from __future__ import annotations

import enum
import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, List, Mapping, TypedDict, Union

try:
    import yaml
except ImportError:  # pragma: no cover
    yaml = None  # type: ignore

__all__ = (
    "EngineConfig",
    "Settings",
    "Tier",
    "get_default_settings",
    "load_config",
    "store_name",
)


class Tier(str, enum.Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"
    # reserved: named so activation keeps them, never opened by the engine
    IMAGE = "image"
    ANALYTICS_QUEUE = "analytics-queue"


def store_name(app_prefix: str, version: str, tier: Tier) -> str:
    """
    Build a versioned store name.

    Example:
        >>> store_name("app", "1", Tier.STATIC)
        'app-v1-static'
    """
    return f"{app_prefix}-v{version}-{tier.value}"


class Settings(TypedDict, total=False):
    # override default value with the environment variable HEARTH_CACHE_DIR
    cache_dir: str
    """
    Directory used by the file registry and, by default, the SQLite database.
    """

    # override default value with the environment variable HEARTH_DATABASE_PATH
    database_path: str
    """
    Path of the SQLite database file used by `AsyncSqliteRegistry`.
    """


def get_default_settings() -> Settings:
    """Get the default settings for Hearth."""

    CACHE_DIR = os.getenv("HEARTH_CACHE_DIR", ".cache/hearth")
    DATABASE_PATH = os.getenv("HEARTH_DATABASE_PATH", str(Path(CACHE_DIR) / "hearth_stores.db"))

    return {
        "cache_dir": CACHE_DIR,
        "database_path": DATABASE_PATH,
    }


@dataclass
class EngineConfig:
    """
    Host-supplied configuration for one deployment of the engine.

    Attributes:
    ----------
    origin : str
        The application's own origin, e.g. ``"https://example.com"``. Manifest paths are
        resolved against it and requests to any other origin count as cross-origin.

    version : str
        The version token burned into every store name of this deployment. Compared by
        exact string equality only.

    app_prefix : str
        First component of every store name: ``"<app_prefix>-v<version>-<tier>"``.

    static_assets : list[str]
        Paths that must all be fetched successfully during install and are written into
        the Static store. A single failure fails the whole install.

    external_resources : list[str]
        Absolute URLs pre-populated into the Dynamic store during install, best effort.

    content_document_patterns : list[str]
        Regular expressions matched (with ``re.search``) against the request path.
        The first capture group, when present, is the document identifier shown on the
        offline page.

    static_asset_suffixes : list[str]
        Path suffixes that mark a static asset.

    static_path_markers : list[str]
        Path fragments that mark a static asset wherever they appear in the path.

    allowed_origins : list[str]
        Domain substrings. A cross-origin URL containing any of them is handled by the
        engine, every other cross-origin request is ignored.

    home_path, listing_path : str
        Known-good pages linked from the offline pages.

    not_found_path : str | None
        A pre-cached page served for failed navigations. Should be in ``static_assets``.

    content_label : str
        Word placed in front of the document identifier, e.g. ``"Unit 7"``.

    skip_waiting : bool
        Activate right after a successful install, superseding the active version.
    """

    origin: str
    version: str
    app_prefix: str = "hearth"
    static_assets: List[str] = field(default_factory=list)
    external_resources: List[str] = field(default_factory=list)
    content_document_patterns: List[str] = field(default_factory=lambda: [r"/units/unit-(\d+)\.html$"])
    static_asset_suffixes: List[str] = field(
        default_factory=lambda: [".css", ".js", ".png", ".jpg", ".jpeg", ".svg", ".ico", ".woff2"]
    )
    static_path_markers: List[str] = field(default_factory=lambda: ["/assets/"])
    allowed_origins: List[str] = field(default_factory=list)
    home_path: str = "/"
    listing_path: str = "/units/"
    not_found_path: Union[str, None] = None
    content_label: str = "Unit"
    skip_waiting: bool = False

    def store_name(self, tier: Tier) -> str:
        return store_name(self.app_prefix, self.version, tier)

    def current_store_names(self) -> List[str]:
        return [self.store_name(tier) for tier in Tier]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**data)


def load_config(path: Union[str, Path]) -> EngineConfig:
    """
    Load an `EngineConfig` from a JSON or YAML manifest file.

    :param path: Path to a ``.json``, ``.yaml`` or ``.yml`` file
    :type path: Union[str, Path]
    :raises RuntimeError: When a YAML file is given without the `yaml` extension installed
    :return: The parsed configuration
    :rtype: EngineConfig
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")

    if path.suffix in (".yaml", ".yml"):
        if yaml is None:  # pragma: no cover
            raise RuntimeError(
                "A YAML manifest was given, but the required packages were not found. "
                "Check that you have `Hearth` installed with the `yaml` extension as shown.\n"
                "```pip install hearth[yaml]```"
            )
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)

    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top level of {path}")
    return EngineConfig.from_mapping(data)
