"""Context slicing for LLM prompts.

Long articles are cut to a bounded window before prompting. The window is
random so that repeated generation for the same article sees different
parts of it and does not keep producing the same question.
"""

import random
from typing import Optional

DEFAULT_MIN_LEN_FOR_SLICING = 3500
MIN_SLICE_LENGTH = 3000
SLICE_LENGTH_SPREAD = 600
FULL_TEXT_PROBABILITY = 0.5


class ContextSlicer:
    """Selects the part of an article that goes into a prompt.

    Randomness comes from an injectable ``random.Random`` so tests can pin
    the outcome with a seed.
    """

    def __init__(
        self,
        min_len_for_slicing: int = DEFAULT_MIN_LEN_FOR_SLICING,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the slicer.

        Args:
            min_len_for_slicing: Texts shorter than this are never sliced
            rng: Random source (a fresh unseeded one if not provided)

        Raises:
            ValueError: If min_len_for_slicing is not positive
        """
        if min_len_for_slicing < 1:
            raise ValueError(
                f"min_len_for_slicing must be positive, got {min_len_for_slicing}"
            )
        self.min_len_for_slicing = min_len_for_slicing
        self._rng = rng or random.Random()

    def pick_slice(self, text: str) -> str:
        """Return the full text or a random window of 3000-3599 characters."""
        length = len(text)
        if length < self.min_len_for_slicing:
            return text

        if self._rng.random() < FULL_TEXT_PROBABILITY:
            return text

        slice_length = MIN_SLICE_LENGTH + self._rng.randrange(SLICE_LENGTH_SPREAD)
        max_start = max(0, length - slice_length)
        start = self._rng.randint(0, max_start)
        return text[start : start + slice_length]


def pick_slice(
    text: str,
    min_len_for_slicing: int = DEFAULT_MIN_LEN_FOR_SLICING,
    rng: Optional[random.Random] = None,
) -> str:
    """Convenience wrapper around ``ContextSlicer.pick_slice``."""
    return ContextSlicer(min_len_for_slicing=min_len_for_slicing, rng=rng).pick_slice(
        text
    )
