"""Custom exception classes for TalentRank.

All exceptions follow the API error format:
{
    "error": {
        "code": "ERROR_CODE",
        "message": "Human-readable message",
        "details": {}  # optional
    }
}

Every error also carries an ErrorKind so callers (retry policy, batch
driver, queue worker) can branch on structure instead of message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Classification used by retry and reporting logic."""

    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    MALFORMED = "malformed"
    CONFIGURATION = "configuration"
    UPSTREAM = "upstream"
    INVALID = "invalid"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.RATE_LIMITED, ErrorKind.TRANSIENT)


class TalentRankError(Exception):
    """Base exception for TalentRank."""

    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
        kind: ErrorKind | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if kind is not None:
            self.kind = kind
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


class SourceAPIError(TalentRankError):
    """GitHub API returned an unexpected, non-retryable response."""

    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(
            code="GITHUB_API_ERROR",
            message=message,
            status_code=status_code,
            kind=ErrorKind.UPSTREAM,
        )


class SourceNotFoundError(TalentRankError):
    """GitHub user or repository not found."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str = "user") -> None:
        super().__init__(
            code="GITHUB_NOT_FOUND",
            message=f"GitHub {resource} not found",
            status_code=404,
            details={"resource": resource},
        )


class SourceRateLimitError(TalentRankError):
    """GitHub API rate limit exceeded (HTTP 403/429)."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, retry_after: int | None = None) -> None:
        details = {}
        if retry_after:
            details["retry_after_seconds"] = retry_after
        self.retry_after = retry_after
        super().__init__(
            code="GITHUB_RATE_LIMIT",
            message="GitHub API rate limit exceeded. Try again later.",
            status_code=429,
            details=details,
        )


class SourceTransientError(TalentRankError):
    """Network failure, timeout or 5xx from GitHub."""

    kind = ErrorKind.TRANSIENT

    def __init__(self, message: str = "GitHub API temporarily unavailable") -> None:
        super().__init__(
            code="GITHUB_TRANSIENT_ERROR",
            message=message,
            status_code=503,
        )


class AIServiceError(TalentRankError):
    """AI completion endpoint failed or returned a non-200 response."""

    def __init__(self, message: str = "AI service call failed", status: int | None = None) -> None:
        super().__init__(
            code="AI_SERVICE_ERROR",
            message=message,
            status_code=502,
            details={"upstream_status": status} if status else None,
        )


class ProfileNotFoundError(TalentRankError):
    """No stored developer profile for the given username."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, username: str) -> None:
        super().__init__(
            code="DEVELOPER_NOT_FOUND",
            message="Developer profile not found",
            status_code=404,
            details={"username": username},
        )


class ConfigurationError(TalentRankError):
    """Required configuration missing at startup. Not retryable."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, setting: str) -> None:
        super().__init__(
            code="CONFIGURATION_ERROR",
            message=f"Required setting {setting} is not configured",
            status_code=500,
            details={"setting": setting},
        )


class RetryExhaustedError(TalentRankError):
    """All retry attempts failed; wraps the last error."""

    def __init__(self, attempts: int, last_error: Exception) -> None:
        self.attempts = attempts
        self.last_error = last_error
        kind = last_error.kind if isinstance(last_error, TalentRankError) else ErrorKind.TRANSIENT
        super().__init__(
            code="RETRY_EXHAUSTED",
            message=f"Failed after {attempts} attempts: {last_error}",
            status_code=503,
            details={"attempts": attempts},
            kind=kind,
        )


class ValidationError(TalentRankError):
    """Input validation error."""

    kind = ErrorKind.INVALID

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=422,
            details=details,
        )
