"""
Exception hierarchy shared by the report pipeline, the API and the CLI.
"""

from __future__ import annotations


class QuizReportError(RuntimeError):
    """Base class for errors raised while building quiz reports."""


class NotFoundError(QuizReportError):
    """Raised when the requested response data does not exist."""


class ValidationError(QuizReportError):
    """Raised when a request is missing required parameters."""


class AuthError(QuizReportError):
    """
    Raised when a credential is missing, invalid, expired, or not authorised.

    ``status_code`` distinguishes an unusable credential (401) from a valid
    credential that is not on the allow-list (403).
    """

    def __init__(self, message: str, *, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


class InternalError(QuizReportError):
    """Raised when aggregation or rendering fails unexpectedly."""
