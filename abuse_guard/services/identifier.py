"""Client identifier resolution.

Rate limit buckets are keyed by an opaque identifier rather than raw client
data: a salted SHA-256 over the client IP plus, when available, the
authenticated user id or the session token. Without the salt the identifier
cannot be mapped back to an IP or user.

Unknown clients share the ``0.0.0.0`` bucket instead of being rejected.
"""

from __future__ import annotations

import hashlib
import ipaddress
from dataclasses import dataclass
from typing import Mapping

UNKNOWN_IP = "0.0.0.0"

# Checked in order; the last entry of a comma-separated list is the hop
# closest to our own proxy.
CLIENT_IP_HEADERS: tuple[str, ...] = (
    "cf-connecting-ip",
    "x-forwarded-for",
    "x-forwarded",
    "x-cluster-client-ip",
    "forwarded-for",
    "forwarded",
)


@dataclass(frozen=True)
class ClientInfo:
    """Signals available for identifying a client."""

    ip: str | None = None
    user_id: str | int | None = None
    session_token: str | None = None


def is_public_ip(value: str) -> bool:
    """Return True for a syntactically valid, globally routable address."""

    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    return not (
        address.is_private
        or address.is_reserved
        or address.is_loopback
        or address.is_link_local
        or address.is_multicast
        or address.is_unspecified
    )


def extract_client_ip(
    headers: Mapping[str, str],
    remote_addr: str | None,
    *,
    trust_proxy_headers: bool = True,
) -> str:
    """Pick the client IP from proxy headers or the socket address.

    A proxy header only wins when its value is a public address, so spoofed
    private ranges fall through to the next candidate.

    Args:
        headers: Request headers (case-insensitive mapping or lower-cased keys).
        remote_addr: Peer address of the TCP connection.
        trust_proxy_headers: Whether forwarded-for style headers are consulted.

    Returns:
        The resolved IP, or ``0.0.0.0`` when nothing usable is available.
    """

    if trust_proxy_headers:
        for name in CLIENT_IP_HEADERS:
            raw = headers.get(name)
            if not raw:
                continue
            candidate = raw.split(",")[-1].strip()
            if candidate.lower().startswith("for="):
                candidate = candidate[4:].strip('"')
            if is_public_ip(candidate):
                return candidate

    return remote_addr or UNKNOWN_IP


class IdentifierResolver:
    """Derive stable, salted client identifiers.

    Example:
        >>> resolver = IdentifierResolver("s3cret")
        >>> len(resolver.resolve(ClientInfo(ip="203.0.113.7")))
        64
    """

    def __init__(self, salt: str) -> None:
        if not salt:
            raise ValueError("salt must be a non-empty string")
        self._salt = salt

    def resolve(self, client: ClientInfo | None = None) -> str:
        """Return the hex SHA-256 identifier for ``client``.

        The user id takes precedence over the session token; ``0`` and empty
        values count as absent.
        """

        client = client or ClientInfo()
        ip = client.ip or UNKNOWN_IP

        if client.user_id:
            raw = f"{ip}_{client.user_id}_{self._salt}"
        elif client.session_token:
            raw = f"{ip}_{client.session_token}_{self._salt}"
        else:
            raw = f"{ip}_{self._salt}"

        return hashlib.sha256(raw.encode()).hexdigest()


def hash_identifier(identifier: str) -> str:
    """Hash an identifier for logs and API responses."""

    return hashlib.sha256(identifier.encode()).hexdigest()
