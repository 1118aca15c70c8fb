from __future__ import annotations


class RecommendationError(Exception):
    """Base class for failures raised by the recommendation pipeline.

    ``attempted`` collects human-readable descriptions of the steps that were
    already tried, so the caller can explain the outcome to the user.
    """

    def __init__(self, message: str, *, attempted: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.attempted: list[str] = list(attempted or [])


class ValidationError(RecommendationError):
    """The query is missing or malformed."""


class UpstreamError(RecommendationError):
    """The recommendation, search or tag service answered with a failure."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str = "",
        status_code: int | None = None,
        attempted: list[str] | None = None,
    ) -> None:
        super().__init__(message, attempted=attempted)
        self.endpoint = endpoint
        self.status_code = status_code


class UpstreamTimeout(UpstreamError):
    """An outbound call did not complete within its timeout."""


class ParseError(RecommendationError):
    """The payload did not match any known envelope shape."""


class ResolutionFailure(RecommendationError):
    """A single interest could not be resolved to a signal id."""

    def __init__(self, interest_name: str, reason: str) -> None:
        super().__init__(f"Could not resolve interest {interest_name!r}: {reason}")
        self.interest_name = interest_name


class EmptyResult(RecommendationError):
    """The service answered successfully but returned no entities."""


class PipelineTimeout(RecommendationError):
    """The whole request exceeded its wall-clock budget."""
