"""
Domain exceptions.

Typed exceptions for explicit error handling.
Oracle failures carry an explicit kind so retry decisions never depend
on message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


# ═══════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════


class DomainError(Exception):
    """
    Base exception for all domain errors.

    All domain-specific exceptions inherit from this.
    Allows catching all domain errors with single except clause.
    """

    pass


# ═══════════════════════════════════════════════════════════
# INFERENCE ORACLE EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class OracleErrorKind(str, Enum):
    """Classification of a failed oracle call."""

    # Transient infrastructure failures (retried with backoff)
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    CONNECTION = "connection"

    # Malformed model output (retried by the bad-JSON policy only)
    INVALID_JSON = "invalid_json"
    INVALID_SCHEMA = "invalid_schema"
    EMPTY_RESPONSE = "empty_response"

    # Terminal failures (never retried)
    BAD_REQUEST = "bad_request"
    AUTHENTICATION = "authentication"
    UNAVAILABLE = "unavailable"


TRANSIENT_KINDS = frozenset(
    {
        OracleErrorKind.RATE_LIMITED,
        OracleErrorKind.SERVER_ERROR,
        OracleErrorKind.TIMEOUT,
        OracleErrorKind.CONNECTION,
    }
)

MALFORMED_KINDS = frozenset(
    {
        OracleErrorKind.INVALID_JSON,
        OracleErrorKind.INVALID_SCHEMA,
        OracleErrorKind.EMPTY_RESPONSE,
    }
)


class OracleError(DomainError):
    """
    Inference oracle call failed.

    Base class for every failure of the vision model endpoint.
    Use the subclasses to raise; catch this one to handle all of them.

    Attributes:
        kind: What went wrong (drives retry classification)
        status_code: HTTP status when the failure came from a response

    Example:
        >>> raise OracleTransientError(OracleErrorKind.TIMEOUT, "Vision call timed out")
    """

    def __init__(
        self,
        kind: OracleErrorKind,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """True for rate limits, 5xx, timeouts and dropped connections."""
        return self.kind in TRANSIENT_KINDS

    @property
    def is_malformed_output(self) -> bool:
        """True when the model answered but the payload was unusable."""
        return self.kind in MALFORMED_KINDS

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.kind.value!r}, {str(self)!r})"


class OracleTransientError(OracleError):
    """
    Transient oracle failure.

    Raised when:
    - Rate limit hit (429)
    - Server error (5xx)
    - Request timed out
    - Connection reset or refused
    """

    pass


class OracleMalformedOutputError(OracleError):
    """
    Oracle answered with output that cannot be used.

    Raised when:
    - Response is not valid JSON
    - JSON lacks the required `items` array
    - Response has no content at all

    Attributes:
        raw_response: Raw model text (for debugging)
    """

    def __init__(
        self,
        kind: OracleErrorKind,
        message: str,
        raw_response: Optional[str] = None,
    ) -> None:
        super().__init__(kind, message)
        self.raw_response = raw_response


class OracleRequestError(OracleError):
    """
    Terminal oracle failure.

    Raised when:
    - Request rejected (4xx other than 429)
    - Invalid API key
    - Circuit breaker open
    """

    pass


# ═══════════════════════════════════════════════════════════
# ANALYSIS EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class AnalysisFailureReason(str, Enum):
    """User-facing failure category for a photo analysis."""

    SERVICE_UNAVAILABLE = "service_unavailable"
    COULD_NOT_PARSE = "could_not_parse"
    STORAGE_UNAVAILABLE = "storage_unavailable"


class AnalysisFailedError(DomainError):
    """
    Photo analysis could not produce a result.

    Raised by the analysis pipeline once the oracle path is exhausted,
    or when the inference record could not be stored (the result would
    carry an id that confirmation can never find).
    No partial or guessed result accompanies it; the caller must offer
    the user a retry action.

    Example:
        >>> raise AnalysisFailedError(
        ...     AnalysisFailureReason.COULD_NOT_PARSE,
        ...     "Model output could not be parsed",
        ... )
    """

    def __init__(
        self,
        reason: AnalysisFailureReason,
        message: str,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.cause = cause

    @property
    def user_can_retry(self) -> bool:
        """Analysis failures always present a retry action."""
        return True


class SaveBlockedError(DomainError):
    """
    Meal cannot be saved in its current state.

    Raised when:
    - Meal has no items
    - Every item is below the save confidence floor

    Never retried; the reason is shown to the user as-is.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class AnalysisNotFoundError(DomainError):
    """
    Analysis not found.

    Raised when:
    - Analysis ID doesn't exist
    - Analysis belongs to another user
    """

    pass


# ═══════════════════════════════════════════════════════════
# VALIDATION / CONFIGURATION EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ValidationError(DomainError):
    """
    Input validation failed.

    Raised when:
    - Invalid input format
    - Unknown fields in an external payload
    - Out of range values

    Example:
        >>> raise ValidationError("User ID cannot be empty")
    """

    pass


class ConfigurationError(DomainError):
    """Environment configuration is missing or malformed."""

    pass


# ═══════════════════════════════════════════════════════════
# INFRASTRUCTURE EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class InfrastructureError(DomainError):
    """
    Infrastructure layer error.

    Base class for database, cache, etc. errors.
    """

    pass


class RepositoryError(InfrastructureError):
    """
    Storage operation failed.

    Raised when:
    - Connection lost
    - Query failed
    - Document could not be mapped back to a model
    """

    pass
