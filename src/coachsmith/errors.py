"""Exception taxonomy for the coach pipeline.

Only identity, configuration, input and total synthesis failures reach the
HTTP boundary. Everything else is caught where it happens and turned into a
degraded value (empty query, empty rows).
"""

from typing import List, Optional


class CoachError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(CoachError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class Misconfigured(CoachError):
    status_code = 500


class BadRequest(CoachError):
    status_code = 400


class GenerationError(CoachError):
    """A model call failed for a reason other than the variant being unavailable."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model


class GenerationUnavailable(GenerationError):
    """Every variant in the fallback chain was unavailable."""

    def __init__(self, message: str, attempted: List[str], last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempted = list(attempted)
        self.last_error = last_error


class QueryExecutionError(Exception):
    """Raised by a query executor; always absorbed by the pipeline."""


class ScopingError(ValueError):
    """The statement could not be restricted to the requesting user."""
