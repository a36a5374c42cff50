"""Custom exceptions for the QI price history service.

Kept in one module so the chain, pricing and API layers can share them
without importing each other.
"""


class QiHistoryError(Exception):
    """Base exception for all price history errors."""


class InvalidReference(QiHistoryError):
    """Raised when a block identifier is negative, malformed or unparseable."""


class InvalidRange(QiHistoryError):
    """Raised when a range token is not one of the supported ranges."""


class UpstreamUnavailable(QiHistoryError):
    """Raised when an RPC node or price feed call fails."""
