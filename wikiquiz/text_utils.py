"""Shared text utility functions for the quiz service.

Provides the text processing helpers used by the quality filters and by
the provider response adapters.
"""

import re
from typing import List, Optional

# Optional sign, integer part, optional fractional part with "." or ","
_NUMBER_PATTERN = re.compile(r"-?\d+(?:[.,]\d+)?")

_JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


def extract_number(text: str) -> Optional[float]:
    """Extract the first numeral from a free-text answer.

    Comma and dot are both accepted as the decimal separator, so
    "3,14" and "3.14" parse to the same value. Only the group directly
    attached to the first digits is read: "1 234,5" yields 1.

    Args:
        text: Answer text

    Returns:
        The parsed number, or None if the text contains no numeral
    """
    if not text:
        return None

    match = _NUMBER_PATTERN.search(text)
    if match is None:
        return None
    return float(match.group(0).replace(",", "."))


def split_words(text: str) -> List[str]:
    """Split text into whitespace-separated tokens."""
    return text.split()


def strip_markdown_code_blocks(text: str) -> str:
    """Strip markdown code blocks from text.

    LLMs often wrap JSON responses in markdown code blocks like:
    ```json
    {...}
    ```

    This function extracts the content from such blocks.

    Args:
        text: Raw text that may contain markdown code blocks

    Returns:
        Text with markdown code blocks stripped, or original text if no blocks found
    """
    if not text:
        return text

    # Pattern matches ```json or ``` at start, content, then ``` at end
    pattern = r"^```(?:json)?\s*\n?(.*?)\n?```$"
    match = re.match(pattern, text.strip(), re.DOTALL | re.IGNORECASE)
    if match:
        return match.group(1).strip()

    return text


def extract_json_object(text: str) -> Optional[str]:
    """Extract the outermost JSON object from model output.

    Handles fenced blocks as well as prose before or after the object
    ("Here is the question: {...}").

    Args:
        text: Raw model output

    Returns:
        The substring from the first "{" to the last "}", or None if the
        text contains no object
    """
    if not text:
        return None

    cleaned = strip_markdown_code_blocks(text.strip())
    cleaned = re.sub(r"```(?:json)?", "", cleaned, flags=re.IGNORECASE).strip()

    match = _JSON_OBJECT_PATTERN.search(cleaned)
    if match is None:
        return None
    return match.group(0)
