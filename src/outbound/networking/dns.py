"""DNS record types usable as a resolution family restriction."""

from __future__ import annotations

import socket
from enum import IntEnum


class DnsRecordType(IntEnum):
    """Address record types, valued by their DNS type codes."""

    A = 1
    AAAA = 28

    @property
    def address_family(self) -> socket.AddressFamily:
        """Return the socket address family matching this record type."""
        if self is DnsRecordType.A:
            return socket.AF_INET
        return socket.AF_INET6
