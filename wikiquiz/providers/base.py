"""Base class for LLM providers."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from ..error_classifier import ClassifiedError, ErrorClassifier
from ..models import Candidate
from ..text_utils import extract_json_object

logger = logging.getLogger(__name__)

# Markers some prompts use to flag the correct option instead of an index
CORRECT_ANSWER_MARKERS = ("(ano)", "(yes)", "(correct)")


class LLMProviderError(Exception):
    """Exception raised by LLM providers with classification.

    Attributes:
        classified_error: The classified error with category and severity
        original_exception: The original exception that was raised
    """

    def __init__(
        self,
        classified_error: ClassifiedError,
        original_exception: BaseException,
    ):
        """Initialize LLM provider error.

        Args:
            classified_error: The classified error
            original_exception: The original exception
        """
        self.classified_error = classified_error
        self.original_exception = original_exception
        super().__init__(str(classified_error))


class BaseLLMProvider(ABC):
    """Abstract base class for LLM provider integrations.

    A provider does one thing: send a prompt pair and hand back the raw
    response. Turning that response into candidates is the job of
    ``parse_provider_candidates``, so envelope format changes stay local to
    the adapter. Retries and fallbacks belong to the caller.
    """

    provider_tag: str = ""

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 300,
    ):
        """
        Initialize the LLM provider.

        Args:
            api_key: API key for the provider
            model: Model identifier to use
            temperature: Sampling temperature
            max_tokens: Maximum number of tokens to generate

        Raises:
            ValueError: If the API key is missing
        """
        if not api_key:
            raise ValueError(f"{self.get_provider_name()} provider requires an API key")
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @abstractmethod
    async def generate_completion_async(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: Optional[int] = None,
    ) -> Any:
        """
        Send one prompt pair to the model.

        Args:
            system_prompt: Instructions (format, language, rules)
            user_prompt: The article slice
            max_tokens: Output budget for this call (provider default if None)

        Returns:
            The raw provider response

        Raises:
            LLMProviderError: If the API call fails
        """

    @abstractmethod
    def parse_provider_candidates(self, raw: Any) -> List[Candidate]:
        """
        Convert a raw response into every candidate it holds.

        A single-question response gives one candidate; a batch envelope
        (``{"questions": [...]}``) gives one per question-shaped entry.

        Args:
            raw: Whatever ``generate_completion_async`` returned

        Returns:
            Candidates in response order (empty if nothing usable)
        """

    def parse_provider_response(self, raw: Any) -> Optional[Candidate]:
        """
        Convert a raw response into a single candidate.

        Args:
            raw: Whatever ``generate_completion_async`` returned

        Returns:
            The first candidate, or None if the response holds no usable question
        """
        candidates = self.parse_provider_candidates(raw)
        return candidates[0] if candidates else None

    def get_provider_name(self) -> str:
        """
        Get the name of this provider.

        Returns:
            Provider name (e.g., "openai", "google")
        """
        return self.__class__.__name__.replace("Provider", "").lower()

    async def cleanup(self) -> None:
        """Release client resources. Default is a no-op."""

    def _handle_api_error(self, error: BaseException) -> LLMProviderError:
        """Classify and wrap an API error.

        Args:
            error: The exception that was raised

        Returns:
            LLMProviderError with classified error
        """
        classified = ErrorClassifier.classify_error(
            error=error,
            provider=self.get_provider_name(),
        )
        return LLMProviderError(
            classified_error=classified,
            original_exception=error,
        )

    def _candidates_from_text(self, text: Optional[str]) -> List[Candidate]:
        """Parse model text (possibly fenced or wrapped in prose) into candidates."""
        json_text = extract_json_object(text or "")
        if json_text is None:
            logger.debug(f"{self.get_provider_name()}: no JSON object in output")
            return []

        try:
            payload = json.loads(json_text)
        except json.JSONDecodeError as e:
            logger.debug(
                f"{self.get_provider_name()}: unparseable JSON ({e}): {json_text[:200]}"
            )
            return []

        return candidates_from_payload(payload, self.provider_tag)


def candidates_from_payload(payload: Any, provider_tag: str) -> List[Candidate]:
    """Build every candidate a decoded JSON payload holds.

    Batch envelopes (``{"questions": [...]}`` or ``{"sets": [...]}``) and
    bare lists yield one candidate per question-shaped entry, skipping the
    rest. Anything else is read as a single question.

    Args:
        payload: Decoded JSON
        provider_tag: Provenance tag for the candidates

    Returns:
        Candidates in payload order
    """
    entries: List[Any] = [payload]
    if isinstance(payload, list):
        entries = payload
    elif isinstance(payload, dict):
        for key in ("questions", "sets"):
            batch = payload.get(key)
            if isinstance(batch, list):
                entries = batch
                break

    candidates = []
    for entry in entries:
        candidate = candidate_from_payload(entry, provider_tag)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def candidate_from_payload(payload: Any, provider_tag: str) -> Optional[Candidate]:
    """Build a candidate from one decoded question object.

    Accepts ``correctIndex`` or ``correct_index``. Without an index, a
    correct answer flagged with a marker such as "(ano)" is used and the
    marker is stripped.

    Args:
        payload: Decoded question object
        provider_tag: Provenance tag for the candidate

    Returns:
        Candidate, or None if the payload is not question-shaped
    """
    if not isinstance(payload, dict):
        return None

    question = payload.get("question")
    answers = payload.get("answers")
    if not isinstance(question, str) or not isinstance(answers, list):
        return None

    answers = [str(answer) for answer in answers]
    correct_index = payload.get("correctIndex", payload.get("correct_index"))

    if correct_index is None:
        correct_index, answers = _resolve_marked_answer(answers)
    else:
        try:
            correct_index = int(correct_index)
        except (TypeError, ValueError):
            return None

    return Candidate(
        question=question.strip(),
        answers=answers,
        correct_index=correct_index,
        provider_tag=provider_tag,
    )


def _resolve_marked_answer(answers: List[str]) -> Tuple[int, List[str]]:
    correct_index = -1
    cleaned: List[str] = []
    for index, answer in enumerate(answers):
        lowered = answer.lower()
        for marker in CORRECT_ANSWER_MARKERS:
            if marker in lowered:
                if correct_index == -1:
                    correct_index = index
                start = lowered.index(marker)
                answer = answer[:start] + answer[start + len(marker) :]
                lowered = answer.lower()
        cleaned.append(answer.strip())
    return correct_index, cleaned


def get_nested(data: Dict[str, Any], *path: Any) -> Any:
    """Walk nested dicts/lists, returning None on any missing step."""
    current: Any = data
    for step in path:
        try:
            current = current[step]
        except (KeyError, IndexError, TypeError):
            return None
    return current
