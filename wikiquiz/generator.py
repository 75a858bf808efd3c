"""Candidate generation with per-provider timeouts and provider fallback.

A ``CandidateGenerator`` turns one article into at most one raw candidate,
or into a batch of them, using a single provider. A ``FallbackGenerator``
composes two of them under a policy. Neither ever raises for provider
trouble: every failure becomes ``None`` (or an empty batch) and a log line
carrying the classified error category.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Any, List, Optional, Sequence

from .error_classifier import ErrorClassifier
from .models import Article, Candidate
from .prompts import build_batch_system_prompt, build_system_prompt, build_user_prompt
from .providers import GoogleProvider, OpenAIProvider
from .providers.base import BaseLLMProvider, LLMProviderError
from .slicing import ContextSlicer

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0
DEFAULT_MAX_CONCURRENT_REQUESTS = 10
DEFAULT_BATCH_MAX_TOKENS = 1500


class GenerationPolicy(str, Enum):
    """How two providers are combined for one candidate."""

    SEQUENTIAL_FALLBACK = "sequential-fallback"
    PARALLEL_PREFER_FIRST = "parallel-prefer-first"


class CandidateGenerator:
    """Produces at most one candidate per call from a single provider."""

    def __init__(
        self,
        provider: BaseLLMProvider,
        slicer: Optional[ContextSlicer] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS,
        batch_max_tokens: int = DEFAULT_BATCH_MAX_TOKENS,
    ):
        """Initialize the generator.

        Args:
            provider: Provider adapter used for every call
            slicer: Context slicer (default slicer if not provided)
            timeout_seconds: Deadline for a single provider call
            max_concurrent_requests: Cap on in-flight calls to this provider
            batch_max_tokens: Output budget for a multi-question call

        Raises:
            ValueError: If timeout_seconds or max_concurrent_requests is not positive
        """
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout_seconds}")
        if max_concurrent_requests < 1:
            raise ValueError(
                f"max_concurrent_requests must be at least 1, got {max_concurrent_requests}"
            )
        self.provider = provider
        self.slicer = slicer or ContextSlicer()
        self.timeout_seconds = timeout_seconds
        self.batch_max_tokens = batch_max_tokens
        self._rate_limiter = asyncio.Semaphore(max_concurrent_requests)

    @property
    def provider_name(self) -> str:
        return self.provider.get_provider_name()

    async def generate(self, article: Article) -> Optional[Candidate]:
        """Ask the provider for one question about the article.

        Args:
            article: Article to generate from

        Returns:
            Candidate tagged with provider, model and prompt slice, or None
            if the call failed, timed out, or returned nothing usable
        """
        context = self.slicer.pick_slice(article.text)
        system_prompt = build_system_prompt(article.lang, article.title)
        user_prompt = build_user_prompt(context, article.lang)

        raw = await self._call_provider(system_prompt, user_prompt)
        if raw is None:
            return None

        try:
            candidate = self.provider.parse_provider_response(raw)
        except Exception as e:
            self._log_parse_failure(e)
            return None

        if candidate is None:
            logger.warning(
                f"{self.provider_name} returned no usable question "
                f"(category=malformed_response)"
            )
            return None

        return self._tag(candidate, context)

    async def generate_batch(self, article: Article, count: int) -> List[Candidate]:
        """Ask the provider for several questions about the article in one call.

        Args:
            article: Article to generate from
            count: Number of questions to ask for

        Returns:
            Up to ``count`` tagged candidates; empty if the call failed,
            timed out, or returned nothing usable
        """
        context = self.slicer.pick_slice(article.text)
        system_prompt = build_batch_system_prompt(article.lang, article.title, count)
        user_prompt = build_user_prompt(context, article.lang)

        raw = await self._call_provider(
            system_prompt, user_prompt, max_tokens=self.batch_max_tokens
        )
        if raw is None:
            return []

        try:
            candidates = self.provider.parse_provider_candidates(raw)
        except Exception as e:
            self._log_parse_failure(e)
            return []

        if not candidates:
            logger.warning(
                f"{self.provider_name} returned no usable questions "
                f"(category=malformed_response)"
            )
            return []

        logger.info(
            f"{self.provider_name} returned {len(candidates)} questions "
            f"for a batch of {count}"
        )
        return [self._tag(candidate, context) for candidate in candidates[:count]]

    def _tag(self, candidate: Candidate, context: str) -> Candidate:
        return candidate.model_copy(
            update={"model": self.provider.model, "context_slice": context}
        )

    def _log_parse_failure(self, error: Exception) -> None:
        classified = ErrorClassifier.classify_error(error, self.provider_name)
        logger.warning(
            f"Could not parse {self.provider_name} response: {classified} "
            f"(category={classified.category.value})"
        )

    async def _call_provider(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: Optional[int] = None,
    ) -> Any:
        """Run one bounded provider call; None on any provider failure."""
        try:
            async with self._rate_limiter:
                return await asyncio.wait_for(
                    self.provider.generate_completion_async(
                        system_prompt, user_prompt, max_tokens=max_tokens
                    ),
                    timeout=self.timeout_seconds,
                )
        except asyncio.TimeoutError:
            logger.warning(
                f"Timeout generating question with {self.provider_name} "
                f"after {self.timeout_seconds}s "
                f"(category=timeout)"
            )
        except LLMProviderError as e:
            classified = e.classified_error
            log = logger.error if ErrorClassifier.should_alert(classified) else logger.warning
            log(
                f"Failed to generate question with {self.provider_name}: {str(e)} "
                f"(category={classified.category.value})"
            )
        except Exception as e:
            classified = ErrorClassifier.classify_error(e, self.provider_name)
            logger.error(
                f"Failed to generate question with {self.provider_name}: {str(e)} "
                f"(category={classified.category.value})"
            )
        return None

    async def cleanup(self) -> None:
        await self.provider.cleanup()


class FallbackGenerator:
    """Combines a primary and a secondary generator under a policy.

    ``sequential-fallback`` calls the secondary only when the primary yields
    nothing. ``parallel-prefer-first`` calls both at once, waits for both to
    settle and prefers the primary's candidate. With a single generator the
    policy is irrelevant.
    """

    def __init__(
        self,
        generators: Sequence[CandidateGenerator],
        policy: GenerationPolicy = GenerationPolicy.SEQUENTIAL_FALLBACK,
    ):
        """Initialize the composite generator.

        Args:
            generators: Generators in order of preference (one or two)
            policy: How to combine them

        Raises:
            ValueError: If no generator is given
        """
        if not generators:
            raise ValueError("At least one generator is required")
        self.generators: List[CandidateGenerator] = list(generators)
        self.policy = GenerationPolicy(policy)

    @property
    def provider_names(self) -> List[str]:
        return [generator.provider_name for generator in self.generators]

    async def generate(self, article: Article) -> Optional[Candidate]:
        """Produce one candidate according to the policy.

        Args:
            article: Article to generate from

        Returns:
            The preferred non-empty candidate, or None if every provider failed
        """
        if self.policy is GenerationPolicy.PARALLEL_PREFER_FIRST:
            results = await asyncio.gather(
                *(generator.generate(article) for generator in self.generators)
            )
            for candidate in results:
                if candidate is not None:
                    return candidate
            return None

        for generator in self.generators:
            candidate = await generator.generate(article)
            if candidate is not None:
                return candidate
            logger.info(f"No candidate from {generator.provider_name}, falling back")
        return None

    async def generate_batch(self, article: Article, count: int) -> List[Candidate]:
        """Produce a set of candidates from one provider according to the policy.

        Batches from different providers are never mixed: the first non-empty
        batch in preference order wins.

        Args:
            article: Article to generate from
            count: Number of questions to ask for

        Returns:
            The preferred non-empty batch, or an empty list if every provider failed
        """
        if self.policy is GenerationPolicy.PARALLEL_PREFER_FIRST:
            results = await asyncio.gather(
                *(generator.generate_batch(article, count) for generator in self.generators)
            )
            for batch in results:
                if batch:
                    return batch
            return []

        for generator in self.generators:
            batch = await generator.generate_batch(article, count)
            if batch:
                return batch
            logger.info(f"No batch from {generator.provider_name}, falling back")
        return []

    async def cleanup(self) -> None:
        """Release every provider client."""
        for generator in self.generators:
            await generator.cleanup()

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Any] = None,
        rng: Optional[random.Random] = None,
    ) -> "FallbackGenerator":
        """Build the generator from application settings.

        OpenAI is the primary provider and Gemini the secondary; a provider
        without an API key is left out.

        Args:
            settings: Settings instance (the global one if not provided)
            rng: Random source shared by the context slicers

        Returns:
            Configured FallbackGenerator

        Raises:
            ValueError: If no provider API key is configured or the policy
                name is unknown
        """
        if settings is None:
            from .config import settings as app_settings

            settings = app_settings

        slicer = ContextSlicer(settings.min_len_for_slicing, rng=rng)
        providers: List[BaseLLMProvider] = []

        if settings.openai_api_key:
            providers.append(
                OpenAIProvider(
                    api_key=settings.openai_api_key,
                    model=settings.openai_model,
                    temperature=settings.openai_temperature,
                    max_tokens=settings.max_output_tokens,
                )
            )
            logger.info(f"Initialized OpenAI provider with model {settings.openai_model}")

        if settings.google_api_key:
            providers.append(
                GoogleProvider(
                    api_key=settings.google_api_key,
                    model=settings.google_model,
                    temperature=settings.google_temperature,
                    max_tokens=settings.max_output_tokens,
                )
            )
            logger.info(f"Initialized Google provider with model {settings.google_model}")

        if not providers:
            raise ValueError("At least one LLM provider API key must be provided")

        generators = [
            CandidateGenerator(
                provider,
                slicer=slicer,
                timeout_seconds=settings.provider_timeout_seconds,
                batch_max_tokens=settings.batch_max_output_tokens,
            )
            for provider in providers
        ]
        return cls(generators, policy=GenerationPolicy(settings.generation_policy))
