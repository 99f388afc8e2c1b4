"""Normalization of local bind addresses.

A bind address is written as ``ip[:port]``; IPv6 addresses must be enclosed in
brackets. A missing port means "any local port" and is normalized to ``0``.
"""

from __future__ import annotations

import ipaddress
import re

from .errors import InvalidBindAddressError

_IPV6_PATTERN = re.compile(
    r"^\[(?P<ip>[0-9a-fA-F:.]+)\](?::(?P<port>[0-9]+))?$"
)
_IPV4_PATTERN = re.compile(
    r"^(?P<ip>[0-9]+\.[0-9]+\.[0-9]+\.[0-9]+)(?::(?P<port>[0-9]+))?$"
)

_MAX_PORT = 65535


def _checked_port(raw: str | None) -> int:
    port = int(raw) if raw is not None else 0
    if port > _MAX_PORT:
        raise InvalidBindAddressError(f"Invalid port: {port}")
    return port


def normalize_bind_to(value: str | None) -> str | None:
    """Return ``value`` in canonical ``ip:port`` / ``[ip]:port`` form.

    Args:
        value: Bind address, or None for "let the OS choose".

    Returns:
        The normalized address, or None when ``value`` is None.

    Raises:
        InvalidBindAddressError: If the address or port is malformed.
    """
    if value is None:
        return None

    match = _IPV6_PATTERN.match(value)
    if match:
        ip = match.group("ip")
        try:
            ipaddress.IPv6Address(ip)
        except ValueError as exc:
            raise InvalidBindAddressError(
                f"Invalid IPv6 address: {ip}"
            ) from exc
        return f"[{ip}]:{_checked_port(match.group('port'))}"

    match = _IPV4_PATTERN.match(value)
    if match:
        ip = match.group("ip")
        try:
            ipaddress.IPv4Address(ip)
        except ValueError as exc:
            raise InvalidBindAddressError(
                f"Invalid IPv4 address: {ip}"
            ) from exc
        return f"{ip}:{_checked_port(match.group('port'))}"

    raise InvalidBindAddressError(f"Invalid bind address: {value!r}")


def split_bind_to(value: str) -> tuple[str, int]:
    """Split a normalized bind address into a ``(host, port)`` pair."""
    host, _, port = value.rpartition(":")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)
