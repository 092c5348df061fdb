"""Forwarding pipeline: validate, gate, build, execute, classify.

Each step returns either its product or a ``Failure``; the orchestrator stops
at the first failure. A single invocation issues at most one outbound call
and never retries.
"""

import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from egressgate.builder import OutboundRequestConfig, build_outbound_request
from egressgate.classifier import MalformedJsonError, build_envelope
from egressgate.config import GatewayConfig
from egressgate.errors import Failure, FailureKind
from egressgate.models import ForwarderResponse, ForwardRequest
from egressgate.security import is_host_allowed
from egressgate.transport import HttpxTransport, Transport, TransportError, UpstreamResponse

logger = logging.getLogger("egressgate")

ForwardResult = Union[ForwarderResponse, Failure]


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "payload"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


class ForwardingPipeline:
    """Executes forwarding payloads against the configured policy.

    The configuration is read-only and the pipeline keeps no per-request
    state, so one instance serves any number of concurrent calls.
    """

    def __init__(self, config: GatewayConfig, transport: Optional[Transport] = None):
        self.config = config
        self.transport = transport or HttpxTransport()

    async def forward(self, payload: Any) -> ForwardResult:
        """Forward one request described by ``payload``.

        Args:
            payload: Raw decoded JSON payload, or an already validated
                ForwardRequest

        Returns:
            ForwarderResponse on successful execution (whatever the upstream
            status), otherwise a Failure. Never raises.
        """
        try:
            result = await self._run(payload)
        except Exception as e:
            logger.error(f"Unexpected error while forwarding: {type(e).__name__}: {e}")
            result = Failure(FailureKind.INTERNAL_ERROR, "Internal error while forwarding request")

        if isinstance(result, Failure):
            log = logger.warning if result.kind.is_client_error else logger.error
            log(f"Forward failed: {result.kind.value}: {result.detail}")
        return result

    async def _run(self, payload: Any) -> ForwardResult:
        request = self._validate(payload)
        if isinstance(request, Failure):
            return request

        failure = self._check_host(request)
        if failure is not None:
            return failure

        outbound = self._build(request)
        if isinstance(outbound, Failure):
            return outbound

        upstream = await self._execute(outbound)
        if isinstance(upstream, Failure):
            return upstream

        return self._classify(upstream)

    def _validate(self, payload: Any) -> Union[ForwardRequest, Failure]:
        if isinstance(payload, ForwardRequest):
            return payload
        try:
            return ForwardRequest.model_validate(payload)
        except ValidationError as e:
            return Failure(FailureKind.INVALID_PAYLOAD, _describe_validation_error(e))

    def _check_host(self, request: ForwardRequest) -> Optional[Failure]:
        if is_host_allowed(request.url, self.config.allowed_hosts):
            return None
        return Failure(
            FailureKind.HOST_NOT_ALLOWED,
            f"Host for URL {request.url} is not allowed.",
        )

    def _build(self, request: ForwardRequest) -> Union[OutboundRequestConfig, Failure]:
        try:
            outbound = build_outbound_request(request, self.config)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to build outbound request: {type(e).__name__}: {e}")
            return Failure(FailureKind.INTERNAL_ERROR, "Failed to build outbound request")

        if self.config.logs_metadata:
            logger.info(f"Forwarding {outbound.method} to: {request.url.split('?')[0]}")
            if self.config.logs_debug:
                logger.debug(f"Headers: {list(outbound.headers.keys())}")
                logger.debug(
                    f"Timeout: {outbound.timeout_ms}ms, "
                    f"max body: {outbound.max_body_length} bytes, "
                    f"max response: {outbound.max_response_bytes} bytes, "
                    f"{outbound.tls!r}"
                )
        return outbound

    async def _execute(
        self, outbound: OutboundRequestConfig
    ) -> Union[UpstreamResponse, Failure]:
        try:
            upstream = await self.transport.send(outbound)
        except TransportError as e:
            return Failure(FailureKind.UPSTREAM_UNREACHABLE, str(e))

        if self.config.logs_metadata:
            logger.info(f"Response: {upstream.status}, size: {len(upstream.content)} bytes")
        return upstream

    def _classify(self, upstream: UpstreamResponse) -> ForwardResult:
        try:
            return build_envelope(upstream)
        except MalformedJsonError as e:
            return Failure(FailureKind.UPSTREAM_MALFORMED_JSON, str(e))
