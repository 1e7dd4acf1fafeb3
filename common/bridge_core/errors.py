"""
Exception hierarchy for the MQTT graph bridge.

Per-message errors (MapError) and per-item errors (RenderError) are
recoverable: the caller logs them and carries on with the stream.
ConfigurationError is raised while settings, mappers or publishers are
being built, before any message is processed.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigurationError(BridgeError, ValueError):
    """Invalid or incomplete configuration detected at build time."""


class MapError(BridgeError):
    """
    A single inbound message could not be turned into a change operation.

    Attributes:
        topic: MQTT topic the message arrived on (if known)
    """

    def __init__(self, message: str, topic: Optional[str] = None):
        super().__init__(message)
        self.topic = topic


class ParseError(MapError):
    """Payload is not a UTF-8 encoded JSON object."""


class MissingIdField(MapError):
    """Configured id field is absent, null or not a scalar."""

    def __init__(self, id_field: str, topic: Optional[str] = None, reason: str = "missing"):
        super().__init__(f"id field '{id_field}' is {reason}", topic)
        self.id_field = id_field
        self.reason = reason


class UnsupportedPropertyShape(MapError):
    """A top-level property holds a nested object or array."""

    def __init__(self, key: str, shape: str, topic: Optional[str] = None):
        super().__init__(f"property '{key}' has unsupported shape '{shape}'", topic)
        self.key = key
        self.shape = shape


class RenderError(BridgeError):
    """A template could not be rendered against a context."""


class UnresolvedVariable(RenderError):
    """A placeholder references a key that is not in the context."""

    def __init__(self, field: str):
        super().__init__(f"unresolved template variable '{field}'")
        self.field = field
