from hearth._core._headers import Headers as Headers, accepts_html as accepts_html
from hearth._core._keys import normalize_url as normalize_url, request_key as request_key, resolve_url as resolve_url
from hearth._core.models import (
    Entry as Entry,
    EntryMeta as EntryMeta,
    Request as Request,
    RequestMetadata as RequestMetadata,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
)

__all__ = (
    "Headers",
    "accepts_html",
    "normalize_url",
    "request_key",
    "resolve_url",
    "Entry",
    "EntryMeta",
    "Request",
    "RequestMetadata",
    "Response",
    "ResponseMetadata",
)
