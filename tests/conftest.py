"""Pytest fixtures for egressgate tests."""

import pytest

from egressgate.config import GatewayConfig
from egressgate.transport import TransportError, UpstreamResponse


class FakeTransport:
    """In-memory transport that records every outbound request it receives."""

    def __init__(self, response=None, error=None):
        self.response = response or UpstreamResponse(
            status=200,
            status_text="OK",
            headers={"content-type": "application/json"},
            content=b"{}",
        )
        self.error = error
        self.calls = []

    async def send(self, outbound):
        self.calls.append(outbound)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def gateway_config(monkeypatch):
    """Provide configuration allow-listing example.com via environment variables."""
    monkeypatch.setenv("FORWARDER_ALLOWED_HOSTS", "example.com")
    monkeypatch.setenv("FORWARDER_UPSTREAM_TIMEOUT_MS", "10000")
    monkeypatch.setenv("FORWARDER_MAX_RESPONSE_BYTES", "4096")
    return GatewayConfig()


@pytest.fixture
def open_config(monkeypatch):
    """Provide configuration with an empty host allow-list (open mode)."""
    monkeypatch.delenv("FORWARDER_ALLOWED_HOSTS", raising=False)
    return GatewayConfig()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def make_transport():
    """Build a FakeTransport returning the given upstream response or error."""

    def _make(status=200, headers=None, content=b"{}", error=None, status_text="OK"):
        response = UpstreamResponse(
            status=status,
            status_text=status_text,
            headers={"content-type": "application/json"} if headers is None else headers,
            content=content,
        )
        return FakeTransport(response=response, error=error)

    return _make


@pytest.fixture
def transport_error():
    return TransportError("getaddrinfo ENOTFOUND api.example.com")


@pytest.fixture
def valid_payload():
    """Provide a valid forwarding payload as a dictionary."""
    return {
        "url": "https://api.example.com/items",
        "method": "GET",
        "headers": {"Accept": "application/json"},
    }
