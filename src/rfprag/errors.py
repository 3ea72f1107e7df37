"""Exception hierarchy for the RFPRAG pipeline."""

from __future__ import annotations


class RfpRagError(RuntimeError):
    """Base class for pipeline errors."""


class ValidationError(RfpRagError):
    """Raised when a question is empty or otherwise unusable."""


class GuardRejectionError(RfpRagError):
    """Raised when the prompt injection guard flags caller supplied text."""

    def __init__(self, reason: str, *, field: str = "question") -> None:
        super().__init__(reason)
        self.reason = reason
        self.field = field


class RetrievalUnavailable(RfpRagError):
    """Raised by a repository when a lookup cannot be served."""


class GenerationError(RfpRagError):
    """Raised when the external generator fails or returns nothing."""


class RateLimitedError(GenerationError):
    """Raised when the external generator reports a quota or HTTP 429."""


class RateLimitExceededError(RfpRagError):
    """Raised when the local rate limiter denies a request."""

    def __init__(self, message: str, *, reset_in_ms: int = 0) -> None:
        super().__init__(message)
        self.reset_in_ms = reset_in_ms


class RecordNotFoundError(RfpRagError):
    """Raised when a record id does not exist for the tenant."""


class ProjectNotWonError(RfpRagError):
    """Raised when training examples are requested from a project that was not won."""
