"""
Custom exceptions for tickstream.

This module provides the exception classes raised by the streaming runtime
and its configuration layer.
"""


class TickstreamError(Exception):
    """Base exception for all tickstream errors."""

    pass


class ConfigurationError(TickstreamError):
    """Raised when startup configuration is invalid."""

    pass


class RecipeError(ConfigurationError):
    """Raised when a recipe table contains a malformed entry."""

    pass


class SinkClosedError(TickstreamError):
    """Raised when writing to a sink whose consumer has gone away."""

    pass


class SessionClosedError(TickstreamError):
    """Raised when a session is requested after shutdown has started."""

    pass
