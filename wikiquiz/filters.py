"""Quality filters for generated quiz questions.

Each filter is a pure predicate over answer and question strings. They are
composed by ``QuestionValidator``; they are also usable on their own, e.g.
when re-checking stored questions after a threshold change.

Filters:
    Title similarity: answer must not repeat the article title
    Answer leakage: answer must not appear verbatim in the question
    Numeric distractors: wrong numeric answers must be far from the right one
    Meta reference: no "according to the article" phrasing
"""

import math
from typing import Dict, Iterable, Mapping, Optional, Sequence

from .text_utils import extract_number, split_words

DEFAULT_TITLE_OVERLAP_RATIO = 0.5
DEFAULT_NUMERIC_ABSOLUTE_GAP = 10.0
DEFAULT_NUMERIC_RELATIVE_GAP = 0.10

# Shorter titles and answers carry too little signal to judge
MIN_TITLE_LENGTH = 3
MIN_TITLE_WORD_LENGTH = 3
MIN_LEAK_ANSWER_LENGTH = 3

# Phrases that point at the source text instead of stating a fact.
# Czech entries are listed with and without diacritics since models drop them.
META_REFERENCE_FRAGMENTS: Dict[str, tuple] = {
    "cs": (
        "v tomto článku",
        "v tomto clanku",
        "v článku",
        "v clanku",
        "podle článku",
        "podle clanku",
        "podle textu",
        "text uvádí",
        "text uvadi",
        "článek uvádí",
        "clanek uvadi",
        "jak text",
        "jak článek",
        "jak clanek",
        "v textu",
    ),
    "en": (
        "in this article",
        "in the article",
        "according to the article",
        "according to the text",
        "the article states",
        "the article says",
        "the article mentions",
        "the text states",
        "the text says",
        "the text mentions",
        "mentioned in the text",
        "the text above",
    ),
}


def is_answer_distinct_from_title(
    answer: str,
    title: str,
    threshold: float = DEFAULT_TITLE_OVERLAP_RATIO,
) -> bool:
    """Check that an answer is not a restatement of the article title.

    Title words shorter than three characters are ignored. An answer is
    rejected when it equals the title, or when the number of title words it
    repeats reaches ``ceil(title_word_count * threshold)``.

    Thresholds observed in use range from 0.15 to 0.5. Lower values reject
    answers on smaller overlaps, trading recall for precision.

    Args:
        answer: Candidate answer
        title: Article title (may be empty)
        threshold: Overlap ratio at which the answer is rejected

    Returns:
        True if the answer is acceptable, False if it is too close to the title
    """
    if not title or len(title.strip()) < MIN_TITLE_LENGTH:
        return True

    normalized_answer = answer.casefold().strip()
    normalized_title = title.casefold().strip()

    if normalized_answer == normalized_title:
        return False

    title_words = [
        word
        for word in split_words(normalized_title)
        if len(word) >= MIN_TITLE_WORD_LENGTH
    ]
    if not title_words:
        return True

    answer_words = split_words(normalized_answer)
    overlap = 0
    for title_word in title_words:
        for answer_word in answer_words:
            if answer_word == title_word:
                overlap += 1

    return overlap < math.ceil(len(title_words) * threshold)


def is_answer_leaked_in_question(answer: str, question: str) -> bool:
    """Check whether an answer appears verbatim inside the question.

    Answers shorter than three characters are exempt; short tokens such as
    "AI" or "5" match too many unrelated questions.

    Args:
        answer: Candidate answer
        question: Question text

    Returns:
        True if the answer leaks into the question
    """
    normalized_answer = answer.casefold().strip()
    if len(normalized_answer) < MIN_LEAK_ANSWER_LENGTH:
        return False
    return normalized_answer in question.casefold()


def are_numeric_distractors_distinct(
    answers: Sequence[str],
    correct_index: int,
    absolute_threshold: float = DEFAULT_NUMERIC_ABSOLUTE_GAP,
    relative_threshold: float = DEFAULT_NUMERIC_RELATIVE_GAP,
) -> bool:
    """Check that wrong numeric answers are not too close to the right one.

    Only applies when the correct answer is numeric. A numeric distractor is
    too close when it is within ``absolute_threshold`` of the correct value
    and also within ``relative_threshold`` of it (the relative base is never
    below 1). Clearing either gap is enough. Non-numeric distractors are
    skipped.

    Example: with the defaults, 1850 and 2001 are accepted as distractors
    for 1914 (64 and 87 apart), while 1915 and 1905 are rejected.

    Args:
        answers: Answer options in display order
        correct_index: Index of the correct answer
        absolute_threshold: Minimum absolute difference
        relative_threshold: Minimum relative difference

    Returns:
        True if the answer set is acceptable
    """
    numbers = [extract_number(answer) for answer in answers]
    correct = numbers[correct_index]
    if correct is None:
        return True

    base = max(1.0, abs(correct))
    for index, fake in enumerate(numbers):
        if index == correct_index or fake is None:
            continue

        diff = abs(fake - correct)
        if diff < absolute_threshold and diff / base < relative_threshold:
            return False

    return True


def contains_meta_reference(
    text: str,
    languages: Optional[Iterable[str]] = None,
    fragments: Optional[Mapping[str, Sequence[str]]] = None,
) -> bool:
    """Check whether text refers to the article itself.

    Args:
        text: Question or answer text
        languages: Language codes whose fragments to test (None = all)
        fragments: Language-keyed fragment table (defaults to
            ``META_REFERENCE_FRAGMENTS``)

    Returns:
        True if any fragment occurs in the text (case-insensitive)
    """
    if not text:
        return False

    table = META_REFERENCE_FRAGMENTS if fragments is None else fragments
    codes = list(table.keys()) if languages is None else list(languages)
    lowered = text.casefold()

    for code in codes:
        for fragment in table.get(code, ()):
            if fragment.casefold() in lowered:
                return True
    return False
