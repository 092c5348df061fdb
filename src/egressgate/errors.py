"""Failure taxonomy, error envelopes and exception handlers for egressgate."""

import logging
from dataclasses import dataclass
from enum import Enum

from fastapi import Request
from fastapi.responses import JSONResponse

from egressgate.models import ErrorResponse

logger = logging.getLogger("egressgate")


class FailureKind(str, Enum):
    """Why a forward did not produce an envelope.

    The value is the error code reported to callers.
    """

    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    HOST_NOT_ALLOWED = "HOST_NOT_ALLOWED"
    UPSTREAM_UNREACHABLE = "REQUEST_EXECUTION_FAILED"
    UPSTREAM_MALFORMED_JSON = "UPSTREAM_MALFORMED_JSON"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def status_code(self) -> int:
        return FAILURE_STATUS_MAP[self]

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


# Failure kind -> HTTP status returned to the caller
FAILURE_STATUS_MAP = {
    FailureKind.INVALID_PAYLOAD: 400,
    FailureKind.HOST_NOT_ALLOWED: 400,
    FailureKind.UPSTREAM_UNREACHABLE: 502,
    FailureKind.UPSTREAM_MALFORMED_JSON: 502,
    FailureKind.INTERNAL_ERROR: 500,
}

CLIENT_NOT_ALLOWED = "CLIENT_NOT_ALLOWED"


@dataclass(frozen=True)
class Failure:
    """Failed outcome of one pipeline invocation."""

    kind: FailureKind
    detail: str

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_payload(self) -> dict:
        return create_error_response(self.kind.value, self.detail)


class ClientNotAllowedError(Exception):
    """Raised when the inbound caller address is not allow-listed."""

    def __init__(self, client_ip: str):
        super().__init__(f"IP address {client_ip or 'unknown'} is not allowed.")
        self.client_ip = client_ip


def create_error_response(error: str, details: str) -> dict:
    """Create a standardized error response.

    Args:
        error: Error code (e.g., "HOST_NOT_ALLOWED")
        details: Human-readable error message

    Returns:
        Dictionary matching ErrorResponse schema
    """
    return ErrorResponse(error=error, details=details).model_dump()


def failure_response(failure: Failure) -> JSONResponse:
    """Render a pipeline failure as a JSON response."""
    return JSONResponse(status_code=failure.status_code, content=failure.to_payload())


async def client_not_allowed_handler(
    request: Request, exc: ClientNotAllowedError
) -> JSONResponse:
    """Reject callers outside the inbound allow-list with 403.

    Registered with FastAPI; the pipeline never runs for these requests.
    """
    logger.warning(f"Rejected caller: {exc}")
    return JSONResponse(
        status_code=403,
        content=create_error_response(CLIENT_NOT_ALLOWED, str(exc)),
    )
