"""Accept/reject decision for generated quiz questions.

Composes the quality filters in ``filters`` with basic shape checks.

Check order:
    structure -> meta reference -> answer leakage -> title similarity
    -> numeric distractors

Every check is an independent predicate, so the order only affects how
early a bad candidate is dropped, never the verdict. Structural checks run
first because the others index into ``answers``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

from .filters import (
    DEFAULT_NUMERIC_ABSOLUTE_GAP,
    DEFAULT_NUMERIC_RELATIVE_GAP,
    DEFAULT_TITLE_OVERLAP_RATIO,
    META_REFERENCE_FRAGMENTS,
    are_numeric_distractors_distinct,
    contains_meta_reference,
    is_answer_distinct_from_title,
    is_answer_leaked_in_question,
)
from .models import ANSWER_COUNT, Candidate

logger = logging.getLogger(__name__)

MIN_TITLE_OVERLAP_RATIO = 0.15
MAX_TITLE_OVERLAP_RATIO = 0.5


@dataclass
class ValidationConfig:
    """Tunable thresholds for the quality filters."""

    title_overlap_ratio: float = DEFAULT_TITLE_OVERLAP_RATIO
    """Share of title words an answer may repeat before it is rejected.

    Values between 0.15 and 0.5 have been used; lower is stricter about
    partial overlaps."""

    numeric_absolute_gap: float = DEFAULT_NUMERIC_ABSOLUTE_GAP
    """Absolute distance below which a numeric distractor may be too close."""

    numeric_relative_gap: float = DEFAULT_NUMERIC_RELATIVE_GAP
    """Relative distance below which it may be too close; rejected only if both are."""

    meta_reference_fragments: Dict[str, Sequence[str]] = field(
        default_factory=lambda: dict(META_REFERENCE_FRAGMENTS)
    )
    """Language-keyed phrases that refer to the article itself."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not 0.0 < self.title_overlap_ratio <= 1.0:
            raise ValueError("title_overlap_ratio must be in (0.0, 1.0]")
        if self.numeric_absolute_gap < 0:
            raise ValueError("numeric_absolute_gap must be non-negative")
        if self.numeric_relative_gap < 0:
            raise ValueError("numeric_relative_gap must be non-negative")
        if not (
            MIN_TITLE_OVERLAP_RATIO
            <= self.title_overlap_ratio
            <= MAX_TITLE_OVERLAP_RATIO
        ):
            logger.warning(
                f"title_overlap_ratio={self.title_overlap_ratio} is outside the "
                f"usual range {MIN_TITLE_OVERLAP_RATIO}-{MAX_TITLE_OVERLAP_RATIO}"
            )

    @classmethod
    def from_settings(cls, settings: Optional[Any] = None) -> "ValidationConfig":
        """Create config from application settings.

        Args:
            settings: Settings instance (the global one if not provided)

        Returns:
            ValidationConfig populated from settings
        """
        if settings is None:
            from .config import settings as app_settings

            settings = app_settings

        return cls(
            title_overlap_ratio=settings.title_overlap_ratio,
            numeric_absolute_gap=settings.numeric_absolute_gap,
            numeric_relative_gap=settings.numeric_relative_gap,
        )


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one candidate.

    Attributes:
        accepted: The verdict
        reason: Name of the first failed check (None when accepted)
    """

    accepted: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.accepted


_ACCEPTED = ValidationResult(accepted=True)


class QuestionValidator:
    """Decides whether a candidate is good enough to cache and serve."""

    def __init__(self, config: Optional[ValidationConfig] = None):
        """Initialize the validator.

        Args:
            config: Filter thresholds (defaults used if not provided)
        """
        self.config = config or ValidationConfig()

    def validate(self, candidate: Candidate, title: str) -> bool:
        """Return the accept/reject verdict for a candidate."""
        return self.check(candidate, title).accepted

    def check(self, candidate: Candidate, title: str) -> ValidationResult:
        """Validate a candidate and report which check failed.

        Args:
            candidate: Raw candidate from a generator
            title: Title of the source article

        Returns:
            ValidationResult with the verdict and failure reason
        """
        if not self._has_valid_shape(candidate):
            return ValidationResult(False, "structure")

        question = candidate.question
        answers = candidate.answers
        fragments = self.config.meta_reference_fragments

        if contains_meta_reference(question, fragments=fragments) or any(
            contains_meta_reference(answer, fragments=fragments) for answer in answers
        ):
            return ValidationResult(False, "meta_reference")

        if any(is_answer_leaked_in_question(answer, question) for answer in answers):
            return ValidationResult(False, "answer_leakage")

        if not all(
            is_answer_distinct_from_title(
                answer, title, threshold=self.config.title_overlap_ratio
            )
            for answer in answers
        ):
            return ValidationResult(False, "title_similarity")

        if not are_numeric_distractors_distinct(
            answers,
            candidate.correct_index,
            absolute_threshold=self.config.numeric_absolute_gap,
            relative_threshold=self.config.numeric_relative_gap,
        ):
            return ValidationResult(False, "numeric_distractors")

        return _ACCEPTED

    @staticmethod
    def _has_valid_shape(candidate: Candidate) -> bool:
        if not candidate.question or not candidate.question.strip():
            return False
        if len(candidate.answers) != ANSWER_COUNT:
            return False
        if not 0 <= candidate.correct_index < ANSWER_COUNT:
            return False
        return all(isinstance(a, str) and a.strip() for a in candidate.answers)
