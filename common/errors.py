"""
Exception hierarchy for event partitioning, field fusion, and index publishing.

Callers can catch URPipelineError for any pipeline failure or the specialised
subclasses when a stage needs to react differently (e.g. retrying retirement
of an old index without redoing fusion).
"""

from typing import Optional

__all__ = [
    "URPipelineError",
    "ConfigurationError",
    "InvalidEventError",
    "CoercionError",
    "DateParseError",
    "NumberParseError",
    "PublishError",
    "RetirementError",
    "PlaceholderModelError",
    "IndexBackendError",
]


class URPipelineError(RuntimeError):
    """Base exception for training and publishing failures."""


class ConfigurationError(URPipelineError):
    """Raised when engine parameters are missing or inconsistent."""


class InvalidEventError(URPipelineError):
    """Raised when an event has an unexpected name or is missing an identity."""

    def __init__(self, message: str, *, event_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.event_name = event_name


class CoercionError(URPipelineError):
    """Raised when a property value cannot be coerced to the type its field requires."""

    def __init__(self, message: str, *, item_id: Optional[str] = None, field_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.item_id = item_id
        self.field_name = field_name


class DateParseError(CoercionError):
    """A declared date field holds a value that is not an RFC3339-like timestamp."""


class NumberParseError(CoercionError):
    """A backfill field holds a value that is not a number."""


class PublishError(URPipelineError):
    """Raised when building, filling, or swapping an index fails.

    ``stage`` names the publisher state that failed and ``index_name`` the
    index being built, so the failed run can be diagnosed without re-running.
    """

    def __init__(self, message: str, *, stage: str, index_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.index_name = index_name


class RetirementError(URPipelineError):
    """Deleting a superseded index failed; the alias already points at the new one."""

    def __init__(self, message: str, *, index_name: str) -> None:
        super().__init__(message)
        self.index_name = index_name


class PlaceholderModelError(URPipelineError):
    """Raised when a placeholder model, which holds no data, is asked to publish."""


class IndexBackendError(URPipelineError):
    """Raised by an index backend when a create, write, alias, or delete call is rejected."""
