"""Binding of a ConnectionPolicy onto the requests transport.

The adapter translates policy fields into urllib3 pool settings: connect
retries, pool size from the concurrency limits, TCP_NODELAY and the local
bind address. The policy itself stays transport-agnostic.
"""

from __future__ import annotations

import logging
import socket
from typing import Any

import requests
from requests.adapters import DEFAULT_POOLBLOCK, DEFAULT_POOLSIZE, HTTPAdapter
from urllib3.util.retry import Retry

from .bindto import split_bind_to
from .config import ConnectionPolicy

logger = logging.getLogger(__name__)

SocketOption = tuple[int, int, int]


def socket_options_for(policy: ConnectionPolicy) -> list[SocketOption]:
    """Return urllib3 ``socket_options`` derived from the policy."""
    options = policy.to_socket_options()["socket"]
    nodelay = 1 if options["tcp_nodelay"] else 0
    return [(socket.IPPROTO_TCP, socket.TCP_NODELAY, nodelay)]


def source_address_for(policy: ConnectionPolicy) -> tuple[str, int] | None:
    """Return the ``(host, port)`` to bind to, or None when unbound."""
    bindto = policy.to_socket_options()["socket"].get("bindto")
    if bindto is None:
        return None
    return split_bind_to(bindto)


def retry_for(policy: ConnectionPolicy) -> Retry:
    """Retry connect failures only; ``max_attempts`` counts the first try."""
    retries = policy.max_attempts - 1
    return Retry(total=retries, connect=retries, read=False, redirect=False)


class PolicyHTTPAdapter(HTTPAdapter):
    """HTTPAdapter whose pools are configured from a ConnectionPolicy.

    Args:
        policy: Policy to apply.
        uri: Mount prefix this adapter serves. Its concurrency limit (or the
            policy default) sizes the connection pool.
        **kwargs: Forwarded to ``HTTPAdapter``; explicit values win over the
            policy-derived ones.
    """

    __attrs__ = HTTPAdapter.__attrs__ + ["_policy"]

    def __init__(
        self,
        policy: ConnectionPolicy,
        uri: str | None = None,
        **kwargs: Any,
    ) -> None:
        self._policy = policy
        if uri is not None:
            limit = policy.get_uri_concurrency_limit(uri, use_default=True)
        else:
            limit = policy.get_default_uri_concurrency_limit()
        kwargs.setdefault("pool_maxsize", limit or DEFAULT_POOLSIZE)
        kwargs.setdefault("max_retries", retry_for(policy))
        super().__init__(**kwargs)

    @property
    def policy(self) -> ConnectionPolicy:
        return self._policy

    def init_poolmanager(
        self,
        connections: int,
        maxsize: int,
        block: bool = DEFAULT_POOLBLOCK,
        **pool_kwargs: Any,
    ) -> None:
        pool_kwargs.setdefault(
            "socket_options", socket_options_for(self._policy)
        )
        source_address = source_address_for(self._policy)
        if source_address is not None:
            pool_kwargs.setdefault("source_address", source_address)
        super().init_poolmanager(
            connections, maxsize, block=block, **pool_kwargs
        )

    def send(
        self,
        request: requests.PreparedRequest,
        stream: bool = False,
        timeout: Any = None,
        verify: bool | str = True,
        cert: Any = None,
        proxies: Any = None,
    ) -> requests.Response:
        """Send ``request``, defaulting to the policy's connect timeout."""
        if timeout is None:
            timeout = (self._policy.connect_timeout / 1000, None)
        return super().send(
            request,
            stream=stream,
            timeout=timeout,
            verify=verify,
            cert=cert,
            proxies=proxies,
        )


def build_session(policy: ConnectionPolicy) -> requests.Session:
    """Create a session with policy adapters mounted.

    URIs with their own concurrency limit get a dedicated adapter; requests
    routes by longest mounted prefix, so they take precedence over the
    ``http://`` / ``https://`` defaults.
    """
    session = requests.Session()
    for scheme in ("http://", "https://"):
        session.mount(scheme, PolicyHTTPAdapter(policy))
        logger.debug("Mounted default policy adapter for %s", scheme)
    for uri in policy.uri_concurrency_limits:
        session.mount(uri, PolicyHTTPAdapter(policy, uri=uri))
        logger.debug(
            "Mounted policy adapter for %s (pool size %s)",
            uri,
            policy.get_uri_concurrency_limit(uri),
        )
    return session
