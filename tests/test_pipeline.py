"""Tests for the forwarding pipeline orchestration."""

import pytest

from egressgate.errors import Failure, FailureKind
from egressgate.models import ForwarderResponse, ForwardRequest
from egressgate.pipeline import ForwardingPipeline
from egressgate.transport import TransportError


@pytest.mark.asyncio
async def test_allowed_json_request_returns_envelope(gateway_config, make_transport, valid_payload):
    transport = make_transport(content=b'{"items":[]}')
    pipeline = ForwardingPipeline(gateway_config, transport)

    result = await pipeline.forward(valid_payload)

    assert isinstance(result, ForwarderResponse)
    payload = result.to_payload()
    assert payload["ok"] is True
    assert payload["meta"]["status"] == 200
    assert payload["bodyJson"] == {"items": []}
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_disallowed_host_never_reaches_transport(gateway_config, fake_transport):
    pipeline = ForwardingPipeline(gateway_config, fake_transport)

    result = await pipeline.forward({"url": "https://evil.com/x"})

    assert isinstance(result, Failure)
    assert result.kind is FailureKind.HOST_NOT_ALLOWED
    assert result.status_code == 400
    assert "evil.com" in result.detail
    assert fake_transport.calls == []


@pytest.mark.asyncio
async def test_open_mode_forwards_any_host(open_config, fake_transport):
    pipeline = ForwardingPipeline(open_config, fake_transport)

    result = await pipeline.forward({"url": "https://anywhere.test/"})

    assert isinstance(result, ForwarderResponse)
    assert len(fake_transport.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"url": "https://api.example.com", "timeoutMs": 50},
        {"url": "https://api.example.com", "timeoutMs": 120001},
        {"url": "https://api.example.com", "timeoutMs": "1000"},
        {"url": "https://api.example.com", "timeout": 10},
        {"url": "https://api.example.com", "maxBodyLength": 0},
        {"url": "https://api.example.com", "method": "TRACE"},
        {"url": "ftp://api.example.com/file"},
        {"url": "/relative/path"},
        {"method": "GET"},
        {"url": "https://api.example.com", "httpsAgent": {"rejectUnauthorized": False}},
        {"url": "https://api.example.com", "rejectUnauthorized": "no"},
        {
            "url": "https://api.example.com",
            "method": "POST",
            "headers": {"Content-Type": "application/x-www-form-urlencoded"},
            "body": {"nested": {"a": 1}},
        },
        ["not", "an", "object"],
        None,
    ],
)
async def test_invalid_payload_rejected_before_transport(gateway_config, fake_transport, payload):
    pipeline = ForwardingPipeline(gateway_config, fake_transport)

    result = await pipeline.forward(payload)

    assert isinstance(result, Failure)
    assert result.kind is FailureKind.INVALID_PAYLOAD
    assert result.status_code == 400
    assert fake_transport.calls == []


@pytest.mark.asyncio
async def test_validation_detail_names_the_field(gateway_config, fake_transport):
    pipeline = ForwardingPipeline(gateway_config, fake_transport)

    result = await pipeline.forward({"url": "https://api.example.com", "timeoutMs": 50})

    assert "timeoutMs" in result.detail


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401, 404, 429, 500, 503, 599])
async def test_upstream_error_status_is_forwarded(gateway_config, make_transport, valid_payload, status):
    """Test that upstream error statuses never trigger a failure."""
    transport = make_transport(status=status, content=b'{"error":"upstream"}', status_text="")
    pipeline = ForwardingPipeline(gateway_config, transport)

    result = await pipeline.forward(valid_payload)

    assert isinstance(result, ForwarderResponse)
    assert result.ok is True
    assert result.meta.status == status
    assert result.body_json == {"error": "upstream"}


@pytest.mark.asyncio
async def test_transport_error_maps_to_request_execution_failed(
    gateway_config, make_transport, valid_payload, transport_error
):
    pipeline = ForwardingPipeline(gateway_config, make_transport(error=transport_error))

    result = await pipeline.forward(valid_payload)

    assert isinstance(result, Failure)
    assert result.kind is FailureKind.UPSTREAM_UNREACHABLE
    assert result.status_code == 502
    assert result.to_payload() == {
        "ok": False,
        "error": "REQUEST_EXECUTION_FAILED",
        "details": "getaddrinfo ENOTFOUND api.example.com",
    }


@pytest.mark.asyncio
async def test_timeout_detail_preserved(gateway_config, make_transport, valid_payload):
    error = TransportError("timeout of 10000ms exceeded", timed_out=True)
    pipeline = ForwardingPipeline(gateway_config, make_transport(error=error))

    result = await pipeline.forward(valid_payload)

    assert result.kind is FailureKind.UPSTREAM_UNREACHABLE
    assert result.detail == "timeout of 10000ms exceeded"


@pytest.mark.asyncio
async def test_malformed_json_is_a_distinct_failure(gateway_config, make_transport, valid_payload):
    pipeline = ForwardingPipeline(gateway_config, make_transport(content=b"<html>oops</html>"))

    result = await pipeline.forward(valid_payload)

    assert isinstance(result, Failure)
    assert result.kind is FailureKind.UPSTREAM_MALFORMED_JSON
    assert result.to_payload()["error"] == "UPSTREAM_MALFORMED_JSON"
    assert result.status_code == 502


@pytest.mark.asyncio
async def test_nan_in_upstream_json_is_malformed(gateway_config, make_transport, valid_payload):
    pipeline = ForwardingPipeline(gateway_config, make_transport(content=b'{"x": NaN}'))

    result = await pipeline.forward(valid_payload)

    assert isinstance(result, Failure)
    assert result.kind is FailureKind.UPSTREAM_MALFORMED_JSON


@pytest.mark.asyncio
async def test_binary_response_base64_encoded(gateway_config, make_transport, valid_payload):
    transport = make_transport(headers={"Content-Type": "image/png"}, content=b"\x89PNG\r\n")
    pipeline = ForwardingPipeline(gateway_config, transport)

    result = await pipeline.forward(valid_payload)

    assert result.body_base64 == "iVBORw0K"
    assert result.body_encoding == "base64"


@pytest.mark.asyncio
async def test_unexpected_error_becomes_internal_error(gateway_config, make_transport, valid_payload):
    pipeline = ForwardingPipeline(gateway_config, make_transport(error=RuntimeError("boom")))

    result = await pipeline.forward(valid_payload)

    assert isinstance(result, Failure)
    assert result.kind is FailureKind.INTERNAL_ERROR
    assert result.status_code == 500
    assert "boom" not in result.detail


@pytest.mark.asyncio
async def test_get_request_never_sends_content_type(gateway_config, fake_transport):
    pipeline = ForwardingPipeline(gateway_config, fake_transport)

    await pipeline.forward(
        {
            "url": "https://api.example.com/items",
            "headers": {"Content-Type": "application/json", "Connection": "keep-alive"},
        }
    )

    assert fake_transport.calls[0].headers == {}


@pytest.mark.asyncio
async def test_post_request_keeps_content_type(gateway_config, fake_transport):
    pipeline = ForwardingPipeline(gateway_config, fake_transport)

    await pipeline.forward(
        {
            "url": "https://api.example.com/items",
            "method": "POST",
            "headers": {"Content-Type": "application/json"},
            "body": {"name": "x"},
        }
    )

    outbound = fake_transport.calls[0]
    assert outbound.headers == {"Content-Type": "application/json"}
    assert outbound.body == {"name": "x"}


@pytest.mark.asyncio
async def test_validated_request_accepted_directly(gateway_config, fake_transport):
    pipeline = ForwardingPipeline(gateway_config, fake_transport)
    request = ForwardRequest(url="https://api.example.com/items", method="DELETE")

    result = await pipeline.forward(request)

    assert isinstance(result, ForwarderResponse)
    assert fake_transport.calls[0].method == "DELETE"
