"""Cache-or-generate policy for serving questions.

For an article the orchestrator first looks in the store. A well-stocked
article is served straight from the cache. Otherwise it runs a bounded
number of generation rounds, persists every accepted candidate and serves a
uniformly random question from the combined pool.

Question sets (``get_question_set``) follow the same policy but fill the gap
with a single multi-question provider call.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .database import InsertOutcome, QuestionStore
from .exceptions import ExhaustionError, InputError, StoreUnavailable
from .generator import FallbackGenerator
from .hashing import hash_question
from .models import AcceptedQuestion, Article, Candidate
from .validator import QuestionValidator, ValidationConfig

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Cache sizing and retry policy.

    Attributes:
        lookup_limit: Maximum cached rows read per request
        sufficiency_threshold: Cached count at which generation is skipped
        target_pool_size: Pool size generation tries to reach
        max_attempts_per_round: Attempts a round gets to yield an accepted question
        concurrent_rounds: Run the generation rounds concurrently
        store_timeout_seconds: Deadline for a single store lookup or insert
    """

    lookup_limit: int = 12
    sufficiency_threshold: int = 8
    target_pool_size: int = 12
    max_attempts_per_round: int = 1
    concurrent_rounds: bool = False
    store_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        for name in (
            "lookup_limit",
            "sufficiency_threshold",
            "target_pool_size",
            "max_attempts_per_round",
        ):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be at least 1, got {value}")
        if self.sufficiency_threshold > self.lookup_limit:
            raise ValueError(
                f"sufficiency_threshold ({self.sufficiency_threshold}) cannot exceed "
                f"lookup_limit ({self.lookup_limit})"
            )
        if self.target_pool_size < self.sufficiency_threshold:
            raise ValueError(
                f"target_pool_size ({self.target_pool_size}) cannot be below "
                f"sufficiency_threshold ({self.sufficiency_threshold})"
            )
        if self.store_timeout_seconds <= 0:
            raise ValueError(
                f"store_timeout_seconds must be positive, got {self.store_timeout_seconds}"
            )

    @classmethod
    def from_settings(cls, settings: Optional[Any] = None) -> "OrchestratorConfig":
        """Create config from application settings."""
        if settings is None:
            from .config import settings as app_settings

            settings = app_settings
        return cls(
            lookup_limit=settings.lookup_limit,
            sufficiency_threshold=settings.sufficiency_threshold,
            target_pool_size=settings.target_pool_size,
            max_attempts_per_round=settings.max_attempts_per_round,
            concurrent_rounds=settings.concurrent_rounds,
            store_timeout_seconds=settings.store_timeout_seconds,
        )


class QuestionCacheOrchestrator:
    """Serves questions for an article from the cache, generating when short.

    The generator must expose ``async generate(article) -> Candidate | None``
    and ``async generate_batch(article, count) -> list[Candidate]`` and never
    raise for provider failures. The store is synchronous and is driven from
    worker threads so database latency does not block the loop.
    """

    def __init__(
        self,
        store: QuestionStore,
        generator: Any,
        validator: Optional[QuestionValidator] = None,
        config: Optional[OrchestratorConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.generator = generator
        self.validator = validator or QuestionValidator()
        self.config = config or OrchestratorConfig()
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(
        cls,
        store: QuestionStore,
        settings: Optional[Any] = None,
        rng: Optional[random.Random] = None,
    ) -> "QuestionCacheOrchestrator":
        """Build an orchestrator with providers, filters and sizing from settings.

        Args:
            store: Question store
            settings: Settings instance (the global one if not provided)
            rng: Random source shared by slicing and the final pick

        Returns:
            Configured orchestrator

        Raises:
            ValueError: If no provider is configured or a setting is invalid
        """
        rng = rng or random.Random()
        return cls(
            store=store,
            generator=FallbackGenerator.from_settings(settings, rng=rng),
            validator=QuestionValidator(ValidationConfig.from_settings(settings)),
            config=OrchestratorConfig.from_settings(settings),
            rng=rng,
        )

    async def cleanup(self) -> None:
        """Release the generator's provider clients."""
        cleanup = getattr(self.generator, "cleanup", None)
        if cleanup is not None:
            await cleanup()

    async def get_question(self, article: Article) -> AcceptedQuestion:
        """Return one question for the article.

        Args:
            article: Article text, title and language

        Returns:
            A cached or freshly generated accepted question

        Raises:
            InputError: If the article text is empty
            ExhaustionError: If nothing is cached and no round succeeded
            StoreUnavailable: If the store fails or does not answer in time
        """
        _require_text(article)

        article_hash = article.hash
        cached = await self._store_call(
            "lookup", self.store.lookup, article_hash, article.lang, self.config.lookup_limit
        )

        if len(cached) >= self.config.sufficiency_threshold:
            logger.info(
                f"Serving cached question for {article_hash[:12]} "
                f"({len(cached)} cached, lang={article.lang})"
            )
            return self._rng.choice(cached)

        missing = max(0, self.config.target_pool_size - len(cached))
        logger.info(
            f"Cache short for {article_hash[:12]} ({len(cached)} cached), "
            f"running {missing} generation rounds"
        )
        generated = await self._fill(article, article_hash, missing)

        pool = _unique_by_hash(cached + generated)
        if not pool:
            logger.warning(f"No valid questions for {article_hash[:12]}")
            raise ExhaustionError()

        logger.info(
            f"Generated {len(generated)}/{missing} questions for {article_hash[:12]}, "
            f"pool size {len(pool)}"
        )
        return self._rng.choice(pool)

    async def get_question_set(self, article: Article, count: int) -> List[AcceptedQuestion]:
        """Return up to ``count`` distinct questions for the article.

        Cached questions are served when there are enough of them. Otherwise
        one batch call asks for ``count`` new questions; each one goes through
        the same filters as single questions and is persisted. The result may
        be shorter than ``count`` when the provider under-delivers.

        Args:
            article: Article text, title and language
            count: Number of questions wanted

        Returns:
            Distinct accepted questions in random order

        Raises:
            InputError: If the article text is empty or count is not positive
            ExhaustionError: If nothing is cached and the batch yielded nothing
            StoreUnavailable: If the store fails or does not answer in time
        """
        _require_text(article)
        if count < 1:
            raise InputError(f"count must be at least 1, got {count}")

        article_hash = article.hash
        cached = await self._store_call(
            "lookup",
            self.store.lookup,
            article_hash,
            article.lang,
            max(count, self.config.lookup_limit),
        )
        cached = _unique_by_hash(cached)

        if len(cached) >= count:
            logger.info(
                f"Serving {count} cached questions for {article_hash[:12]} "
                f"({len(cached)} cached, lang={article.lang})"
            )
            return self._rng.sample(cached, count)

        candidates = await self.generator.generate_batch(article, count)
        generated = []
        for number, candidate in enumerate(candidates):
            accepted = await self._accept(candidate, article, article_hash, f"Batch item {number}")
            if accepted is not None:
                generated.append(accepted)

        pool = _unique_by_hash(cached + generated)
        if not pool:
            logger.warning(f"No valid questions for {article_hash[:12]}")
            raise ExhaustionError()

        logger.info(
            f"Batch accepted {len(generated)}/{len(candidates)} questions for "
            f"{article_hash[:12]}, pool size {len(pool)}"
        )
        return self._rng.sample(pool, min(count, len(pool)))

    async def _fill(
        self, article: Article, article_hash: str, rounds: int
    ) -> List[AcceptedQuestion]:
        if self.config.concurrent_rounds:
            tasks = [
                asyncio.create_task(self._run_round(article, article_hash, n))
                for n in range(rounds)
            ]
            try:
                results = await asyncio.gather(*tasks)
            except BaseException:
                # One failed round fails the request; stop the others.
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
        else:
            results = []
            for n in range(rounds):
                results.append(await self._run_round(article, article_hash, n))
        return [question for question in results if question is not None]

    async def _run_round(
        self, article: Article, article_hash: str, round_number: int
    ) -> Optional[AcceptedQuestion]:
        """One generation round: generate, validate, persist.

        Returns:
            The accepted question, or None if every attempt came up empty
        """
        for attempt in range(1, self.config.max_attempts_per_round + 1):
            label = f"Round {round_number} attempt {attempt}"
            candidate = await self.generator.generate(article)
            if candidate is None:
                logger.debug(f"{label}: no candidate")
                continue

            accepted = await self._accept(candidate, article, article_hash, label)
            if accepted is not None:
                return accepted

        return None

    async def _accept(
        self, candidate: Candidate, article: Article, article_hash: str, label: str
    ) -> Optional[AcceptedQuestion]:
        """Validate a candidate and persist it; None if it was rejected."""
        verdict = self.validator.check(candidate, article.title)
        if not verdict:
            logger.info(
                f"{label}: rejected "
                f"{candidate.provider_tag or 'unknown'} candidate ({verdict.reason})"
            )
            return None

        accepted = AcceptedQuestion(
            question=candidate.question,
            answers=list(candidate.answers),
            correct_index=candidate.correct_index,
            provider_tag=candidate.provider_tag,
            model=candidate.model,
            context_slice=candidate.context_slice,
            question_hash=hash_question(
                candidate.question, candidate.answers, candidate.correct_index
            ),
            article_hash=article_hash,
            lang=article.lang,
            topic_title=article.title,
        )
        outcome = await self._store_call("insert", self.store.insert, accepted)
        if outcome is InsertOutcome.DUPLICATE:
            logger.debug(f"Question {accepted.question_hash[:12]} was already cached")
        return accepted

    async def _store_call(self, operation_name: str, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking store operation in a worker thread under a deadline.

        Raises:
            StoreUnavailable: If the store fails or the deadline passes
        """
        timeout = self.config.store_timeout_seconds
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Question store {operation_name} timed out after {timeout}s")
            raise StoreUnavailable(
                operation_name,
                e,
                message=f"Question store timed out during {operation_name}",
            ) from e


def _require_text(article: Article) -> None:
    if not article.text or not article.text.strip():
        raise InputError("Missing context")


def _unique_by_hash(questions: List[AcceptedQuestion]) -> List[AcceptedQuestion]:
    seen = set()
    unique = []
    for question in questions:
        if question.question_hash in seen:
            continue
        seen.add(question.question_hash)
        unique.append(question)
    return unique
