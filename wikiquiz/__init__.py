"""Quiz question generation from article text."""

__version__ = "0.1.0"

from wikiquiz.exceptions import (  # noqa: E402
    ExhaustionError,
    InputError,
    QuizServiceError,
    StoreUnavailable,
)
from wikiquiz.hashing import hash_article, hash_question  # noqa: E402
from wikiquiz.models import AcceptedQuestion, Article, Candidate  # noqa: E402
from wikiquiz.slicing import ContextSlicer, pick_slice  # noqa: E402
from wikiquiz.validator import (  # noqa: E402
    QuestionValidator,
    ValidationConfig,
    ValidationResult,
)

__all__ = [
    "AcceptedQuestion",
    "Article",
    "Candidate",
    "ContextSlicer",
    "ExhaustionError",
    "InputError",
    "QuestionValidator",
    "QuizServiceError",
    "StoreUnavailable",
    "ValidationConfig",
    "ValidationResult",
    "hash_article",
    "hash_question",
    "pick_slice",
]
