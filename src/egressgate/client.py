"""Caller-side helper for services that reach upstreams through the gateway."""

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger("egressgate")


class ForwarderClientError(Exception):
    """The gateway answered with an error body or an unexpected status."""

    def __init__(self, status_code: int, error: str, details: str = ""):
        super().__init__(f"{error}: {details}" if details else error)
        self.status_code = status_code
        self.error = error
        self.details = details


class ForwarderClient:
    """Posts forwarding payloads to a gateway and unwraps the JSON body.

    Args:
        forwarder_url: Full URL of the gateway's ``/forwarder/exec`` endpoint
        auth_token: Value sent as the upstream ``Authorization`` header for
            calls made with ``needs_auth``
        timeout: Seconds to wait for the gateway itself
    """

    def __init__(self, forwarder_url: str, auth_token: Optional[str] = None, timeout: float = 60.0):
        self.forwarder_url = forwarder_url
        self.auth_token = auth_token
        self.timeout = timeout

    def build_payload(
        self, url: str, method: str = "GET", body: Any = None, needs_auth: bool = False
    ) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if needs_auth and self.auth_token is not None:
            headers["Authorization"] = self.auth_token

        payload: dict[str, Any] = {"url": url, "method": method, "headers": headers}
        if body is not None:
            payload["body"] = body
        return payload

    async def forward(
        self, url: str, method: str = "GET", body: Any = None, needs_auth: bool = False
    ) -> Any:
        """Forward one request and return the upstream's decoded JSON body.

        Returns:
            The envelope's ``bodyJson``, or None when the upstream body was
            not JSON

        Raises:
            ForwarderClientError: If the gateway rejected or failed the call
            httpx.RequestError: If the gateway itself could not be reached
        """
        payload = self.build_payload(url, method, body, needs_auth)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.forwarder_url, json=payload)

        try:
            data = response.json()
        except ValueError:
            data = None

        if not isinstance(data, dict) or not response.is_success or data.get("ok") is not True:
            error = data.get("error", "UNKNOWN") if isinstance(data, dict) else "UNKNOWN"
            details = data.get("details", "") if isinstance(data, dict) else response.text
            logger.error(f"Forwarder client error: {response.status_code} {error} {details}")
            raise ForwarderClientError(response.status_code, error, details)

        return data.get("bodyJson")
