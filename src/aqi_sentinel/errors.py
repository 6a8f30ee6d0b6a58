"""Exceptions raised by aqi-sentinel."""


class AqiSentinelError(Exception):
    """Base class for all aqi-sentinel errors."""

    pass


class ConfigError(AqiSentinelError):
    """Raised when a configuration value cannot be parsed."""

    pass


class FetchError(AqiSentinelError):
    """Raised when the upstream reading cannot be fetched or parsed."""

    pass


class RenderError(AqiSentinelError):
    """Raised when a reading's context is too malformed to format."""

    pass


class DispatchError(AqiSentinelError):
    """Raised when an alert could not be delivered."""

    pass
