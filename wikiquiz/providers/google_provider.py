"""Google Gemini provider integration."""

import logging
from typing import Any, List, Optional

from google import genai
from google.genai import types

from ..models import Candidate
from .base import BaseLLMProvider, candidates_from_payload, get_nested

logger = logging.getLogger(__name__)


class GoogleProvider(BaseLLMProvider):
    """Google Gemini integration for question generation.

    Gemini is asked for JSON via ``response_mime_type`` but still wraps the
    object in fences or prose now and then, so the parser extracts the
    first JSON object from whatever text comes back.
    """

    provider_tag = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash-lite",
        temperature: float = 0.7,
        max_tokens: int = 300,
    ):
        """
        Initialize Google provider.

        Args:
            api_key: Google API key
            model: Model to use (default: gemini-2.0-flash-lite)
            temperature: Sampling temperature (0.0 to 2.0)
            max_tokens: Maximum tokens to generate
        """
        super().__init__(api_key, model, temperature=temperature, max_tokens=max_tokens)
        self.client = genai.Client(api_key=api_key)

    async def generate_completion_async(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: Optional[int] = None,
    ) -> Any:
        """
        Request JSON output from Gemini.

        Args:
            system_prompt: Instructions for the model
            user_prompt: Article slice
            max_tokens: Output budget (the provider default if None)

        Returns:
            The GenerateContentResponse object

        Raises:
            LLMProviderError: If the API call fails
        """
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=self.temperature,
            max_output_tokens=max_tokens or self.max_tokens,
            response_mime_type="application/json",
        )
        try:
            return await self.client.aio.models.generate_content(
                model=self.model,
                contents=user_prompt,
                config=config,
            )
        except Exception as e:
            raise self._handle_api_error(e)

    def parse_provider_candidates(self, raw: Any) -> List[Candidate]:
        """
        Convert a Gemini response into candidates.

        Accepts SDK response objects, the REST JSON envelope
        (``candidates[0].content.parts[*].text``), already-decoded question
        or batch dicts and plain strings.

        Args:
            raw: Response object, decoded dict, or text

        Returns:
            Candidates in response order (empty if none could be extracted)
        """
        if raw is None:
            return []

        if isinstance(raw, str):
            return self._candidates_from_text(raw)

        if isinstance(raw, dict):
            if "question" in raw or "questions" in raw or "sets" in raw:
                return candidates_from_payload(raw, self.provider_tag)
            parts = get_nested(raw, "candidates", 0, "content", "parts") or []
            text = "".join(
                part.get("text", "") for part in parts if isinstance(part, dict)
            )
            return self._candidates_from_text(text)

        return self._candidates_from_text(self._response_text(raw))

    @staticmethod
    def _response_text(response: Any) -> str:
        """Join the text parts of the first candidate of an SDK response."""
        try:
            text = response.text
        except ValueError:
            # Raised by the SDK when the response was blocked
            text = None
        if text:
            return text

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return ""
        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) or []
        return "".join(getattr(part, "text", None) or "" for part in parts)

    async def cleanup(self) -> None:
        """Close the async client if the SDK version supports it."""
        aclose = getattr(self.client.aio, "aclose", None)
        if aclose is not None:
            await aclose()
