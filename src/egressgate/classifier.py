"""Response body classification: decoded JSON or base64-encoded bytes."""

import base64
import json
import re
from typing import Any, Mapping, Optional, Union

from egressgate.models import ForwarderResponse, ForwarderResponseMeta
from egressgate.transport import UpstreamResponse

_JSON_CONTENT_TYPE = re.compile(r"application/json|\+json", re.IGNORECASE)


class MalformedJsonError(ValueError):
    """The upstream declared a JSON content type but sent something else."""


def reject_constant(name: str) -> Any:
    """Refuse the NaN and Infinity literals that strict JSON does not allow."""
    raise ValueError(f"Out of range float value '{name}' is not valid JSON")


def looks_like_json(content_type: Optional[str]) -> bool:
    return bool(content_type) and _JSON_CONTENT_TYPE.search(content_type) is not None


def _content_type(headers: Mapping[str, Union[str, list[str]]]) -> Optional[str]:
    for name, value in headers.items():
        if name.lower() == "content-type":
            return value[0] if isinstance(value, list) else value
    return None


def classify_response_body(
    raw: bytes, headers: Mapping[str, Union[str, list[str]]]
) -> dict[str, Any]:
    """Decide how the response body goes into the envelope.

    JSON content types (``application/json`` or any ``+json`` suffix) are
    decoded as UTF-8 JSON. Everything else, including an empty body, becomes
    base64 so the envelope stays text-safe.

    Returns:
        ``{"body_json": value}`` or
        ``{"body_base64": str, "body_encoding": "base64"}``

    Raises:
        MalformedJsonError: If a JSON content type carries undecodable bytes
    """
    if raw and looks_like_json(_content_type(headers)):
        try:
            return {"body_json": json.loads(raw.decode("utf-8"), parse_constant=reject_constant)}
        except ValueError as e:
            raise MalformedJsonError(f"Upstream declared JSON but sent invalid JSON: {e}")

    return {
        "body_base64": base64.b64encode(raw).decode("ascii"),
        "body_encoding": "base64",
    }


def build_envelope(upstream: UpstreamResponse) -> ForwarderResponse:
    """Wrap an upstream response in the forwarding envelope."""
    meta = ForwarderResponseMeta(
        status=upstream.status,
        status_text=upstream.status_text,
        headers=upstream.headers,
    )
    body = classify_response_body(upstream.content, upstream.headers)
    return ForwarderResponse(ok=True, meta=meta, **body)
