"""Request body and query parameter encoding.

Caller-supplied bodies and params arrive as loosely typed JSON values. They are
first tagged with a kind, and encoding dispatches on that tag.
"""

from enum import Enum
from typing import Any, Mapping, Optional

import httpx

from egressgate.headers import get_header

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class BodyKind(str, Enum):
    ABSENT = "absent"
    TEXT = "text"
    MAPPING = "mapping"
    FORM_PAIRS = "form_pairs"
    BINARY = "binary"
    STRUCTURED = "structured"


class ParamsKind(str, Enum):
    ABSENT = "absent"
    MAPPING = "mapping"
    PAIRS = "pairs"
    QUERY_STRING = "query_string"


def _is_pair_list(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) > 0
        and all(
            isinstance(item, (list, tuple)) and len(item) == 2 and isinstance(item[0], str)
            for item in value
        )
    )


def classify_body(body: Any) -> BodyKind:
    """Tag a caller-supplied body."""
    if body is None or body == "" or body == b"":
        return BodyKind.ABSENT
    if isinstance(body, str):
        return BodyKind.TEXT
    if isinstance(body, (bytes, bytearray)):
        return BodyKind.BINARY
    if isinstance(body, Mapping):
        return BodyKind.MAPPING
    if _is_pair_list(body):
        return BodyKind.FORM_PAIRS
    return BodyKind.STRUCTURED


def classify_params(params: Any) -> ParamsKind:
    """Tag caller-supplied query parameters."""
    if params is None or params == "":
        return ParamsKind.ABSENT
    if isinstance(params, str):
        return ParamsKind.QUERY_STRING
    if isinstance(params, Mapping):
        return ParamsKind.MAPPING
    return ParamsKind.PAIRS


def is_form_encoded(headers: Optional[Mapping[str, str]]) -> bool:
    content_type = get_header(headers, "content-type") or ""
    return FORM_CONTENT_TYPE in content_type.lower()


def encode_body(body: Any, headers: Optional[Mapping[str, str]]) -> Any:
    """Serialize a request body according to the declared Content-Type.

    For ``application/x-www-form-urlencoded`` a string is assumed to be
    pre-encoded and passed through, key/value pairs and mappings are rendered
    as ``key=value&key2=value2`` in input order. Any other content type leaves
    the body untouched; the transport serializes structured data as JSON.

    Args:
        body: Caller-supplied body (text, mapping, pairs, bytes or JSON value)
        headers: Outbound headers used to find the declared content type

    Returns:
        The encoded body, or the original value when no encoding applies
    """
    kind = classify_body(body)
    if kind is BodyKind.ABSENT or not is_form_encoded(headers):
        return body

    if kind is BodyKind.MAPPING:
        return str(httpx.QueryParams(dict(body)))
    if kind is BodyKind.FORM_PAIRS:
        return str(httpx.QueryParams([(key, value) for key, value in body]))
    # TEXT is already encoded; BINARY and STRUCTURED have no form rendering.
    return body


def flatten_params(params: Any) -> Optional[dict[str, Any]]:
    """Reduce query parameters to a plain mapping.

    Mappings are attached as-is. Pair lists and query strings are flattened;
    when a key repeats, the last value wins.
    """
    kind = classify_params(params)
    if kind is ParamsKind.ABSENT:
        return None
    if kind is ParamsKind.MAPPING:
        return dict(params)
    if kind is ParamsKind.QUERY_STRING:
        return {key: value for key, value in httpx.QueryParams(params.lstrip("?")).multi_items()}
    return {key: value for key, value in params}
