"""Error classification for LLM provider failures.

Provider failures never reach the caller; a failed call just means "no
candidate this round". The classification exists for the logs, so that a
revoked key or an exhausted quota stands out from routine rate limiting.
"""

import asyncio
import json
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import List, Tuple


class ErrorCategory(Enum):
    """Categories of provider errors."""

    BILLING_QUOTA = "billing_quota"  # Insufficient funds, quota exceeded
    AUTHENTICATION = "authentication"  # API key invalid or expired
    RATE_LIMIT = "rate_limit"  # Rate limit/throttling errors
    TIMEOUT = "timeout"  # Call exceeded the caller's deadline
    NETWORK_ERROR = "network_error"  # Connection errors
    SERVER_ERROR = "server_error"  # Provider server errors (5xx)
    CONTENT_BLOCKED = "content_blocked"  # Safety filter refused the prompt
    MALFORMED_RESPONSE = "malformed_response"  # Output was not the expected JSON
    INVALID_REQUEST = "invalid_request"  # Malformed request or invalid parameters
    UNKNOWN = "unknown"  # Unclassified errors


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    CRITICAL = "critical"  # Needs an operator (billing, credentials)
    HIGH = "high"  # Degrades generation (rate limits)
    MEDIUM = "medium"  # Worth a look if frequent
    LOW = "low"  # Expected noise


@dataclass(frozen=True)
class ClassifiedError:
    """A classified provider error with category and severity."""

    category: ErrorCategory
    severity: ErrorSeverity
    provider: str
    original_error: str
    message: str
    is_retryable: bool = False

    def __str__(self) -> str:
        return (
            f"[{self.severity.value.upper()}] {self.provider}: "
            f"{self.category.value} - {self.message}"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        data = asdict(self)
        data["category"] = self.category.value
        data["severity"] = self.severity.value
        return data


# (category, severity, retryable, patterns), checked in order
_RULES: List[Tuple[ErrorCategory, ErrorSeverity, bool, List[str]]] = [
    (
        ErrorCategory.BILLING_QUOTA,
        ErrorSeverity.CRITICAL,
        False,
        [
            r"insufficient.*funds",
            r"quota.*exceeded",
            r"exceeded.*quota",
            r"insufficient.*quota",
            r"billing",
            r"credit.*balance",
            r"payment.*required",
            r"\b402\b",
        ],
    ),
    (
        ErrorCategory.AUTHENTICATION,
        ErrorSeverity.CRITICAL,
        False,
        [
            r"invalid.*api.*key",
            r"api.*key.*(expired|invalid|not valid)",
            r"authentication",
            r"unauthori[sz]ed",
            r"permission.*denied",
            r"\b401\b",
            r"\b403\b",
        ],
    ),
    (
        ErrorCategory.RATE_LIMIT,
        ErrorSeverity.HIGH,
        True,
        [
            r"rate.*limit",
            r"too.*many.*requests",
            r"resource.*exhausted",
            r"throttl",
            r"\b429\b",
        ],
    ),
    (
        ErrorCategory.TIMEOUT,
        ErrorSeverity.LOW,
        True,
        [r"timed?.?out", r"deadline.*exceeded"],
    ),
    (
        ErrorCategory.NETWORK_ERROR,
        ErrorSeverity.LOW,
        True,
        [
            r"connection.*(error|refused|reset|aborted)",
            r"network.*error",
            r"dns",
        ],
    ),
    (
        ErrorCategory.SERVER_ERROR,
        ErrorSeverity.MEDIUM,
        True,
        [
            r"internal.*server.*error",
            r"service.*unavailable",
            r"overloaded",
            r"\b50[0-9]\b",
        ],
    ),
    (
        ErrorCategory.CONTENT_BLOCKED,
        ErrorSeverity.LOW,
        False,
        [r"safety", r"blocked", r"content.*filter"],
    ),
    (
        ErrorCategory.MALFORMED_RESPONSE,
        ErrorSeverity.LOW,
        True,
        [r"json", r"unparseable", r"no.*object", r"empty.*response"],
    ),
    (
        ErrorCategory.INVALID_REQUEST,
        ErrorSeverity.MEDIUM,
        False,
        [r"bad.*request", r"invalid", r"\b400\b", r"model.*not.*found"],
    ),
]


class ErrorClassifier:
    """Classifies errors raised by LLM provider SDKs."""

    @staticmethod
    def classify_error(error: BaseException, provider: str) -> ClassifiedError:
        """Classify a provider error.

        Args:
            error: The exception that was raised
            provider: Provider name (openai, google)

        Returns:
            ClassifiedError with category and severity
        """
        error_type = type(error).__name__

        if isinstance(error, asyncio.TimeoutError):
            return ClassifiedError(
                category=ErrorCategory.TIMEOUT,
                severity=ErrorSeverity.LOW,
                provider=provider,
                original_error=error_type,
                message=f"{provider} did not answer before the deadline.",
                is_retryable=True,
            )

        if isinstance(error, json.JSONDecodeError):
            return ClassifiedError(
                category=ErrorCategory.MALFORMED_RESPONSE,
                severity=ErrorSeverity.LOW,
                provider=provider,
                original_error=error_type,
                message=f"{provider} returned output that is not valid JSON.",
                is_retryable=True,
            )

        error_str = f"{error_type} {error}".lower()
        for category, severity, retryable, patterns in _RULES:
            if ErrorClassifier._match_patterns(error_str, patterns):
                return ClassifiedError(
                    category=category,
                    severity=severity,
                    provider=provider,
                    original_error=error_type,
                    message=f"{provider} {category.value.replace('_', ' ')}: "
                    f"{str(error)[:100]}",
                    is_retryable=retryable,
                )

        return ClassifiedError(
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.MEDIUM,
            provider=provider,
            original_error=error_type,
            message=f"Unclassified error from {provider}: {str(error)[:100]}",
            is_retryable=False,
        )

    @staticmethod
    def _match_patterns(text: str, patterns: List[str]) -> bool:
        """Check if text matches any of the given regex patterns."""
        for pattern in patterns:
            if re.search(pattern, text, re.IGNORECASE):
                return True
        return False

    @staticmethod
    def should_alert(classified_error: ClassifiedError) -> bool:
        """Whether the error needs an operator rather than just a retry."""
        return classified_error.severity == ErrorSeverity.CRITICAL
