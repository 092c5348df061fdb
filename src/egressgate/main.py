"""Main FastAPI application for egressgate."""

import json
import logging
import time
from typing import Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from egressgate.classifier import reject_constant
from egressgate.config import GatewayConfig
from egressgate.errors import (
    ClientNotAllowedError,
    Failure,
    FailureKind,
    client_not_allowed_handler,
    failure_response,
)
from egressgate.pipeline import ForwardingPipeline
from egressgate.security import is_client_allowed, resolve_client_ip
from egressgate.transport import Transport

# Configure minimal logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("egressgate")

router = APIRouter()


def get_config(request: Request) -> GatewayConfig:
    return request.app.state.config


def get_pipeline(request: Request) -> ForwardingPipeline:
    return request.app.state.pipeline


def require_allowed_client(
    request: Request, config: GatewayConfig = Depends(get_config)
) -> None:
    """Reject callers outside the inbound allow-list before anything else runs."""
    client_ip = resolve_client_ip(
        request.headers.get("x-forwarded-for"),
        request.client.host if request.client else None,
        trust_forwarded_for=config.trust_forwarded_for,
    )
    if not is_client_allowed(client_ip, config.allowed_clients):
        raise ClientNotAllowedError(client_ip)


@router.post("/forwarder/exec", dependencies=[Depends(require_allowed_client)])
async def execute(
    request: Request, pipeline: ForwardingPipeline = Depends(get_pipeline)
) -> JSONResponse:
    """Handle POST /forwarder/exec - the only supported endpoint.

    The JSON body describes one outbound request. The response is the
    forwarding envelope (HTTP 200, whatever the upstream status was) or a
    structured error whose HTTP status depends on the failure category.

    Args:
        request: Raw FastAPI Request object

    Returns:
        JSONResponse with the envelope or the error body
    """
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body.decode("utf-8"), parse_constant=reject_constant)
    except ValueError as e:
        return failure_response(Failure(FailureKind.INVALID_PAYLOAD, f"Invalid JSON: {e}"))

    result = await pipeline.forward(payload)
    if isinstance(result, Failure):
        return failure_response(result)

    return JSONResponse(status_code=200, content=result.to_payload())


@router.api_route("/forwarder/exec", methods=["GET", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"])
async def execute_method_not_allowed() -> JSONResponse:
    """Reject non-POST requests to /forwarder/exec with 405."""
    raise HTTPException(status_code=405, detail="Method not allowed")


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"])
async def catch_all(path: str) -> JSONResponse:
    """Reject every other route with 404 to keep the surface minimal."""
    raise HTTPException(status_code=404, detail="Not found")


def create_app(config: GatewayConfig, transport: Optional[Transport] = None) -> FastAPI:
    """Build the gateway application around an explicit configuration.

    Args:
        config: Configuration read once at process start
        transport: Upstream transport; httpx when omitted

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="egressgate",
        description="Outbound HTTP forwarding gateway",
        version="0.1.0",
        docs_url=None,  # Disable Swagger UI
        redoc_url=None,  # Disable ReDoc
    )
    app.state.config = config
    logger.setLevel(logging.DEBUG if config.logs_debug else logging.INFO)
    app.state.pipeline = ForwardingPipeline(config, transport)

    app.add_exception_handler(ClientNotAllowedError, client_not_allowed_handler)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if not config.logs_metadata:
            return await call_next(request)
        client = request.client.host if request.client else "unknown"
        logger.info(f"Incoming {request.method} {request.url.path} from {client}")
        start = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"Handled {request.method} {request.url.path} -> {response.status_code} in {elapsed_ms}ms"
        )
        return response

    app.include_router(router)
    return app


def load_config() -> GatewayConfig:
    """Load configuration at startup (fail fast on invalid config)."""
    try:
        config = GatewayConfig()
    except Exception as e:
        logger.error(f"Configuration error: {e}")
        raise
    logger.info("Gateway configuration loaded successfully")
    logger.info(f"Allowed hosts: {', '.join(config.allowed_hosts) or 'ANY (open mode)'}")
    logger.info(f"Allowed clients: {', '.join(config.allowed_clients) or 'ANY'}")
    logger.info(f"Default timeout: {config.upstream_timeout_ms}ms")
    logger.info(f"Max response size: {config.max_response_bytes} bytes")
    logger.info(f"Listening on: {config.host}:{config.port}")
    return config


app = create_app(load_config())


def run() -> None:
    """Console entry point: serve the module-level app with uvicorn."""
    config = app.state.config
    uvicorn.run(app, host=config.host, port=config.port)
