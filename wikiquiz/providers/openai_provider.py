"""OpenAI LLM provider integration."""

import json
import logging
from typing import Any, List, Optional

import openai
from openai import AsyncOpenAI

from ..models import Candidate
from .base import BaseLLMProvider, candidates_from_payload, get_nested

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat-completion integration for question generation."""

    provider_tag = "gpt"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.6,
        max_tokens: int = 300,
        organization: Optional[str] = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Model to use (default: gpt-4o-mini)
            temperature: Sampling temperature (0.0 to 2.0)
            max_tokens: Maximum tokens to generate
            organization: Optional organization ID
        """
        super().__init__(api_key, model, temperature=temperature, max_tokens=max_tokens)
        self.async_client = AsyncOpenAI(api_key=api_key, organization=organization)

    async def generate_completion_async(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: Optional[int] = None,
    ) -> Any:
        """
        Request JSON output from the chat completions API.

        Args:
            system_prompt: Instructions for the model
            user_prompt: Article slice
            max_tokens: Output budget (the provider default if None)

        Returns:
            The ChatCompletion response object

        Raises:
            LLMProviderError: If the API call fails
        """
        try:
            return await self.async_client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=max_tokens or self.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise self._handle_api_error(e)

    def parse_provider_candidates(self, raw: Any) -> List[Candidate]:
        """
        Convert an OpenAI response into candidates.

        Handles every envelope the service has received from OpenAI:

        - ChatCompletion objects (``choices[0].message.content``)
        - Responses API objects or dicts (``output_text`` or
          ``output[0].content[0].text``)
        - dicts that already are the question or batch payload
        - plain strings

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
            text = (
                raw.get("output_text")
                or get_nested(raw, "output", 0, "content", 0, "text")
                or get_nested(raw, "choices", 0, "message", "content")
            )
            if isinstance(text, (dict, list)):
                return candidates_from_payload(text, self.provider_tag)
            return self._candidates_from_text(text)

        choices = getattr(raw, "choices", None)
        if choices:
            return self._candidates_from_text(choices[0].message.content)

        output_text = getattr(raw, "output_text", None)
        if output_text:
            return self._candidates_from_text(output_text)

        if hasattr(raw, "model_dump"):
            try:
                return self.parse_provider_candidates(raw.model_dump())
            except (TypeError, ValueError, json.JSONDecodeError):
                return []

        logger.debug(f"openai: unrecognised response type {type(raw).__name__}")
        return []

    async def cleanup(self) -> None:
        """Close the async client to release its connection pool."""
        if self.async_client is not None:
            await self.async_client.close()
