"""Composition of a validated payload into a transport-ready request."""

from dataclasses import dataclass
from typing import Any, Optional

from egressgate.config import GatewayConfig
from egressgate.encoding import encode_body, flatten_params
from egressgate.headers import strip_content_type_for_bodyless, strip_hop_by_hop
from egressgate.models import ForwardRequest
from egressgate.tls import TlsOptions, resolve_tls_options


@dataclass(frozen=True)
class OutboundRequestConfig:
    """Everything the transport needs for one upstream call.

    Owned by a single pipeline invocation and never reused.
    """

    method: str
    url: str
    headers: dict[str, str]
    body: Any
    params: Optional[dict[str, Any]]
    timeout_ms: int
    max_body_length: int
    max_response_bytes: int
    tls: TlsOptions

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


def resolve_timeout_ms(request: ForwardRequest, config: GatewayConfig) -> int:
    """Pick timeoutMs, then the legacy timeout field, then the configured default."""
    if request.timeout_ms is not None:
        return request.timeout_ms
    if request.timeout is not None:
        return request.timeout
    return config.upstream_timeout_ms


def resolve_max_body_length(request: ForwardRequest, config: GatewayConfig) -> int:
    """Use the caller's maxBodyLength when positive, else the configured limit."""
    if request.max_body_length is not None and request.max_body_length > 0:
        return request.max_body_length
    return config.max_response_bytes


def build_outbound_request(
    request: ForwardRequest, config: GatewayConfig
) -> OutboundRequestConfig:
    """Build the outbound request for a validated payload.

    Headers lose hop-by-hop entries (and Content-Type on GET/HEAD), the body
    is encoded for its declared content type and params are flattened. The
    size limit bounds the request body, and the response buffer too, though
    the latter never exceeds the configured maximum.

    Args:
        request: Validated forwarding payload
        config: Gateway configuration supplying defaults

    Returns:
        Immutable outbound request configuration
    """
    method = request.method
    headers = strip_content_type_for_bodyless(strip_hop_by_hop(request.headers), method)
    # Encode against the caller's headers: a GET may still declare a form body.
    body = encode_body(request.body, request.headers)
    max_body_length = resolve_max_body_length(request, config)

    return OutboundRequestConfig(
        method=method,
        url=request.url,
        headers=headers,
        body=body,
        params=flatten_params(request.params),
        timeout_ms=resolve_timeout_ms(request, config),
        max_body_length=max_body_length,
        max_response_bytes=min(max_body_length, config.max_response_bytes),
        tls=resolve_tls_options(request),
    )
