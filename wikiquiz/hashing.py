"""Content hashing for cache keys and question deduplication."""

import hashlib
import re
import unicodedata
from typing import Sequence

# Anything that is neither a word character nor whitespace
_PUNCTUATION_PATTERN = re.compile(r"[^\w\s]")


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_article(text: str) -> str:
    """Compute the cache key for an article body.

    Args:
        text: Raw article text (not normalized)

    Returns:
        Hex digest of SHA-256 hash
    """
    return _sha256(text)


def normalize_question(question: str, answers: Sequence[str]) -> str:
    """Normalize question and answers into the string that gets hashed.

    Repeated LLM calls on the same fact differ in case and punctuation;
    those differences must not produce distinct rows.
    """
    combined = question + "||" + "|".join(answers)
    normalized = unicodedata.normalize("NFC", combined).casefold()
    return _PUNCTUATION_PATTERN.sub("", normalized).strip()


def hash_question(question: str, answers: Sequence[str], correct_index: int) -> str:
    """Compute the deduplication key for a question.

    ``correct_index`` is part of the signature so callers pass the whole
    question tuple, but it does not enter the digest: the same question and
    options with a different marked answer is still the same row.

    Args:
        question: Question text
        answers: Answer options in display order
        correct_index: Index of the correct answer

    Returns:
        Hex digest of SHA-256 hash of the normalized content
    """
    return _sha256(normalize_question(question, answers))
