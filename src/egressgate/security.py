"""Allow-list checks for outbound destinations and inbound callers."""

from typing import Sequence

import httpx


def is_host_allowed(target_url: str, allowed_hosts: Sequence[str]) -> bool:
    """Check whether the destination host of a URL is allow-listed.

    An empty allow-list is open mode: every host is allowed. Otherwise the
    hostname must equal an entry or be a subdomain of one, matched on a dot
    boundary (``evilexample.com`` does not match ``example.com``).

    Args:
        target_url: Absolute URL of the upstream request
        allowed_hosts: Lower-cased allow-listed hostnames

    Returns:
        True if the request may be sent; False otherwise, including when the
        URL cannot be parsed or carries no host.
    """
    try:
        host = httpx.URL(target_url).host.lower()
    except (httpx.InvalidURL, TypeError):
        return False
    if not host:
        return False

    if not allowed_hosts:
        return True

    return any(
        host == allowed or host.endswith(f".{allowed}")
        for allowed in allowed_hosts
    )


def resolve_client_ip(
    forwarded_for: str | None,
    peer_host: str | None,
    trust_forwarded_for: bool = True,
) -> str:
    """Determine the caller address used for the inbound allow-list.

    The first ``X-Forwarded-For`` entry wins when trusted; otherwise the
    socket peer is used. IPv4-mapped IPv6 addresses are reduced to IPv4.
    """
    candidate = ""
    if trust_forwarded_for and forwarded_for:
        candidate = forwarded_for.split(",")[0].strip()
    if not candidate:
        candidate = peer_host or ""
    if candidate.lower().startswith("::ffff:"):
        candidate = candidate[len("::ffff:"):]
    return candidate


def is_client_allowed(client_ip: str, allowed_clients: Sequence[str]) -> bool:
    """Check a caller address against the inbound allow-list (empty = allow all)."""
    if not allowed_clients:
        return True
    return bool(client_ip) and client_ip in allowed_clients
