"""
Exception types shared across the package.

Conversion and distance functions raise these immediately. The parser,
tracker and pipeline catch them per report so one bad object never aborts
a whole evaluation cycle.
"""

from __future__ import annotations


class SentinelError(Exception):
    """Base class for every error raised by crosswalk_sentinel."""


class InvalidCoordinate(SentinelError, ValueError):
    """A coordinate is non-finite, non-numeric, or not exactly two values."""


class UnknownEntity(SentinelError, KeyError):
    """An explicit removal referenced an id that is not being tracked."""

    def __init__(self, kind: str, entity_id: int) -> None:
        super().__init__(f"No tracked {kind} with id {entity_id}")
        self.kind = kind
        self.entity_id = entity_id

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class MalformedReport(SentinelError, ValueError):
    """A sensor report object is missing required fields or has bad types."""


class ConfigurationError(SentinelError):
    """Settings are missing or invalid; the feature must not activate."""
