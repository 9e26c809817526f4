"""Exceptions shared by all connector components."""

from __future__ import annotations


class ConnectorError(Exception):
    """Base exception for connector errors."""

    pass


class ConfigError(ConnectorError, ValueError):
    """Raised when a component is constructed or called with invalid config."""

    pass


class VendorError(ConnectorError):
    """Raised when the wrapped vendor SDK or remote service fails."""

    pass


class ShapeMismatchError(ConnectorError, ValueError):
    """Raised when counts, dimensions or schemas do not line up."""

    pass


__all__ = ["ConnectorError", "ConfigError", "VendorError", "ShapeMismatchError"]
