"""
Exception types for the Govee touch panel.
"""


class GoveeTouchError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(GoveeTouchError):
    """Invalid configuration. Raised at startup, before any polling begins."""


class SensorReadError(GoveeTouchError):
    """The touch sensor could not be read for this tick."""


class DispatchError(GoveeTouchError):
    """A command could not be delivered to the Govee API."""
