"""Connection policy consumed by outbound connectors."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

from .bindto import normalize_bind_to
from .dns import DnsRecordType
from .errors import InvalidArgumentError

_DNS_TYPE_NAMES: Mapping[str, DnsRecordType] = MappingProxyType(
    {
        "a": DnsRecordType.A,
        "ipv4": DnsRecordType.A,
        "aaaa": DnsRecordType.AAAA,
        "ipv6": DnsRecordType.AAAA,
    }
)

_MAPPING_KEYS = frozenset(
    {
        "bind_to",
        "connect_timeout",
        "max_attempts",
        "dns_type_restriction",
        "tcp_nodelay",
        "uri_concurrency_limits",
        "default_uri_concurrency_limit",
    }
)


def _default_limits() -> Mapping[str, int]:
    """Return immutable empty per-URI limits mapping."""

    return MappingProxyType({})


def _require_positive(value: Any, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(
            f"Invalid {label} ({value!r}), must be an int"
        )
    if value <= 0:
        raise InvalidArgumentError(
            f"Invalid {label} ({value}), must be greater than 0"
        )
    return value


def _coerce_record_type(value: Any) -> DnsRecordType | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(
            f"Invalid resolver type restriction ({value!r})"
        )
    try:
        return DnsRecordType(value)
    except ValueError:
        raise InvalidArgumentError(
            f"Invalid resolver type restriction ({value!r})"
        ) from None


def _checked_limits(value: Any) -> dict[str, int]:
    if not isinstance(value, Mapping):
        raise InvalidArgumentError(
            f"URI concurrency limits must be a mapping, not {value!r}"
        )
    limits = dict(value)
    for uri, limit in limits.items():
        if not isinstance(uri, str):
            raise InvalidArgumentError(f"Invalid URI ({uri!r}), must be a str")
        _require_positive(limit, "URI concurrency limit")
    return limits


@dataclass(frozen=True)
class ConnectionPolicy:
    """Settings for establishing an outbound connection.

    Instances are immutable; ``with_*`` methods return a new policy and
    leave the receiver untouched. All fields are validated on construction,
    so an invalid value fails at the call that supplied it.

    ``connect_timeout`` is expressed in milliseconds.
    """

    bind_to: str | None = None
    connect_timeout: int = 10000
    max_attempts: int = 2
    dns_type_restriction: DnsRecordType | None = None
    tcp_nodelay: bool = False
    uri_concurrency_limits: Mapping[str, int] = field(
        default_factory=_default_limits
    )
    default_uri_concurrency_limit: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "bind_to", normalize_bind_to(self.bind_to))
        _require_positive(self.connect_timeout, "connect timeout")
        _require_positive(self.max_attempts, "max attempts")
        object.__setattr__(
            self,
            "dns_type_restriction",
            _coerce_record_type(self.dns_type_restriction),
        )
        if not isinstance(self.tcp_nodelay, bool):
            raise InvalidArgumentError(
                f"Invalid tcp_nodelay ({self.tcp_nodelay!r}), must be a bool"
            )

        limits = _checked_limits(self.uri_concurrency_limits)
        if self.default_uri_concurrency_limit is not None:
            _require_positive(
                self.default_uri_concurrency_limit, "URI concurrency limit"
            )

        # Each instance owns a private read-only copy of the limits.
        object.__setattr__(
            self, "uri_concurrency_limits", MappingProxyType(limits)
        )

    def __reduce__(self) -> tuple[Any, ...]:
        # mappingproxy cannot be pickled; rebuild from a plain dict.
        return (
            type(self),
            (
                self.bind_to,
                self.connect_timeout,
                self.max_attempts,
                self.dns_type_restriction,
                self.tcp_nodelay,
                dict(self.uri_concurrency_limits),
                self.default_uri_concurrency_limit,
            ),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ConnectionPolicy:
        """Build a policy from plain configuration data.

        Args:
            data: Mapping using the field names of this class as keys. The
                DNS restriction may also be given as ``"A"``, ``"AAAA"``,
                ``"ipv4"`` or ``"ipv6"``.

        Raises:
            InvalidArgumentError: On unknown keys or invalid values.
        """
        unknown = set(data) - _MAPPING_KEYS
        if unknown:
            raise InvalidArgumentError(
                "Unknown connection policy keys: " + ", ".join(sorted(unknown))
            )

        policy = cls()
        if "bind_to" in data:
            policy = policy.with_bind_to(data["bind_to"])
        if "connect_timeout" in data:
            policy = policy.with_connect_timeout(data["connect_timeout"])
        if "max_attempts" in data:
            policy = policy.with_max_attempts(data["max_attempts"])
        if "dns_type_restriction" in data:
            restriction = data["dns_type_restriction"]
            if isinstance(restriction, str):
                try:
                    restriction = _DNS_TYPE_NAMES[restriction.lower()]
                except KeyError:
                    raise InvalidArgumentError(
                        f"Invalid resolver type restriction ({restriction!r})"
                    ) from None
            policy = policy.with_dns_type_restriction(restriction)
        if "tcp_nodelay" in data:
            if not isinstance(data["tcp_nodelay"], bool):
                raise InvalidArgumentError("tcp_nodelay must be a bool")
            policy = (
                policy.with_tcp_nodelay()
                if data["tcp_nodelay"]
                else policy.without_tcp_nodelay()
            )
        limits = _checked_limits(data.get("uri_concurrency_limits") or {})
        for uri, limit in limits.items():
            policy = policy.with_uri_concurrency_limit(uri, limit)
        if data.get("default_uri_concurrency_limit") is not None:
            policy = policy.with_default_uri_concurrency_limit(
                data["default_uri_concurrency_limit"]
            )
        return policy

    def with_bind_to(self, bind_to: str | None) -> ConnectionPolicy:
        """Return a policy binding to ``bind_to``, or unbound when None."""
        return replace(self, bind_to=normalize_bind_to(bind_to))

    def get_bind_to(self) -> str | None:
        return self.bind_to

    def with_connect_timeout(self, timeout: int) -> ConnectionPolicy:
        """Return a policy whose connect timeout is ``timeout`` ms."""
        return replace(
            self, connect_timeout=_require_positive(timeout, "connect timeout")
        )

    def get_connect_timeout(self) -> int:
        return self.connect_timeout

    def with_max_attempts(self, max_attempts: int) -> ConnectionPolicy:
        return replace(
            self, max_attempts=_require_positive(max_attempts, "max attempts")
        )

    def get_max_attempts(self) -> int:
        return self.max_attempts

    def with_dns_type_restriction(
        self, record_type: DnsRecordType | int | None
    ) -> ConnectionPolicy:
        """Restrict resolution to A or AAAA records; None lifts it."""
        return replace(
            self, dns_type_restriction=_coerce_record_type(record_type)
        )

    def get_dns_type_restriction(self) -> DnsRecordType | None:
        return self.dns_type_restriction

    def has_tcp_nodelay(self) -> bool:
        return self.tcp_nodelay

    def with_tcp_nodelay(self) -> ConnectionPolicy:
        return replace(self, tcp_nodelay=True)

    def without_tcp_nodelay(self) -> ConnectionPolicy:
        return replace(self, tcp_nodelay=False)

    def with_uri_concurrency_limit(
        self, uri: str, max_connections: int
    ) -> ConnectionPolicy:
        """Return a policy capping concurrent connections to ``uri``."""
        limits = dict(self.uri_concurrency_limits)
        limits[uri] = max_connections
        _checked_limits(limits)
        return replace(self, uri_concurrency_limits=limits)

    def get_uri_concurrency_limit(
        self, uri: str, use_default: bool = False
    ) -> int | None:
        """Return the limit registered for ``uri``.

        Lookup is by exact key. When ``uri`` has no limit of its own, the
        default limit is returned if ``use_default`` is set, else None.
        """
        limit = self.uri_concurrency_limits.get(uri)
        if limit is not None:
            return limit
        return self.default_uri_concurrency_limit if use_default else None

    def with_default_uri_concurrency_limit(
        self, max_connections: int
    ) -> ConnectionPolicy:
        return replace(
            self,
            default_uri_concurrency_limit=_require_positive(
                max_connections, "URI concurrency limit"
            ),
        )

    def get_default_uri_concurrency_limit(self) -> int | None:
        return self.default_uri_concurrency_limit

    def to_socket_options(self) -> dict[str, dict[str, Any]]:
        """Project the policy onto a ``{"socket": {...}}`` options mapping."""
        options: dict[str, Any] = {"tcp_nodelay": self.tcp_nodelay}
        if self.bind_to is not None:
            options["bindto"] = self.bind_to
        return {"socket": options}
