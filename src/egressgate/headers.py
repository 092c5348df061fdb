"""Header sanitization for outbound requests.

Both transforms are pure: they return a new mapping and never mutate the
caller's headers.
"""

from typing import Mapping, Optional

# Connection-scoped headers; meaningless when replayed on a new connection.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

# Methods that carry no request body.
BODYLESS_METHODS = frozenset({"GET", "HEAD"})


def get_header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    """Look up a header value by case-insensitive name.

    Returns the first match in mapping order, or None if absent.
    """
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def strip_hop_by_hop(headers: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Remove hop-by-hop headers, matching names case-insensitively."""
    if not headers:
        return {}
    return {
        key: value
        for key, value in headers.items()
        if key.lower() not in HOP_BY_HOP_HEADERS
    }


def strip_content_type_for_bodyless(
    headers: Optional[Mapping[str, str]], method: str
) -> dict[str, str]:
    """Remove Content-Type for GET and HEAD requests.

    Some upstream APIs reject a bodyless request that declares a content type.
    For every other method the headers are returned unchanged (as a copy).
    """
    if not headers:
        return {}
    if method.upper() not in BODYLESS_METHODS:
        return dict(headers)
    return {
        key: value
        for key, value in headers.items()
        if key.lower() != "content-type"
    }
