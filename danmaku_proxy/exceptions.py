"""Exceptions module for the danmaku-proxy service."""


class ProxyException(Exception):
    """Base exception class for all proxy-related exceptions."""


class UpstreamFetchError(ProxyException):
    """Exception raised when the conversion service cannot produce a document (network, timeout, bad status)."""


class StorageError(ProxyException):
    """Exception raised when a cache read, write or delete fails for a reason other than a missing entry."""


class CacheMissError(ProxyException):
    """Raised when a cache entry is absent. A routing signal, never shown to clients."""


class AuthError(ProxyException):
    """Exception raised when the cleanup secret does not match the configured value."""
