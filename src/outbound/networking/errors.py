"""Error types raised by the outbound networking configuration layer."""


class ConnectionPolicyError(Exception):
    """Base class for connection policy failures."""


class InvalidArgumentError(ConnectionPolicyError, ValueError):
    """A policy field was given a value outside its allowed range."""


class InvalidBindAddressError(ConnectionPolicyError, ValueError):
    """A bind address could not be parsed as ``ip[:port]``."""
