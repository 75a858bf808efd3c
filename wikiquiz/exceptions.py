"""Errors surfaced by the quiz service to its callers.

Only these reach the HTTP layer. Provider failures and validation
rejections are handled inside the generation loop and never leave it.
"""

from typing import Optional


class QuizServiceError(Exception):
    """Base class for caller-visible service errors."""

    pass


class InputError(QuizServiceError):
    """Request is unusable (e.g. missing article text)."""

    pass


class ExhaustionError(QuizServiceError):
    """No valid question could be produced for the article."""

    def __init__(self, message: str = "No valid questions generated"):
        super().__init__(message)


class StoreUnavailable(QuizServiceError):
    """The question store could not be reached or failed.

    Attributes:
        operation_name: Store operation that failed
        original_error: The underlying database exception
    """

    def __init__(
        self,
        operation_name: str,
        original_error: Exception,
        message: Optional[str] = None,
    ):
        self.operation_name = operation_name
        self.original_error = original_error
        self.message = message or f"Question store failed during {operation_name}"
        super().__init__(self.message)
