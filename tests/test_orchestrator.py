"""Tests for the cache-or-generate orchestrator."""

import asyncio
import random
import threading
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
from sqlalchemy.exc import OperationalError

from conftest import InMemoryQuestionStore, make_accepted
from wikiquiz.database import InsertOutcome
from wikiquiz.exceptions import ExhaustionError, InputError, StoreUnavailable
from wikiquiz.hashing import hash_question
from wikiquiz.models import Article, Candidate
from wikiquiz.orchestrator import OrchestratorConfig, QuestionCacheOrchestrator


class ScriptedGenerator:
    """Generator that replays a script of candidates, then repeats the last entry."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = 0

    async def generate(self, article):
        index = min(self.calls, len(self.script) - 1)
        self.calls += 1
        return self.script[index]


class BatchGenerator(ScriptedGenerator):
    """Generator whose batch call returns a fixed list of candidates."""

    def __init__(self, batch):
        super().__init__([None])
        self.batch = list(batch)
        self.batch_calls = []

    async def generate_batch(self, article, count):
        self.batch_calls.append(count)
        return list(self.batch)


class SlowRoundsGenerator:
    """First call answers at once; every later call takes a while."""

    def __init__(self, delay):
        self.delay = delay
        self.started = 0
        self.finished = 0

    async def generate(self, article):
        self.started += 1
        number = self.started
        if number > 1:
            await asyncio.sleep(self.delay)
        self.finished += 1
        return river_candidate(number)


def river_candidate(n: int) -> Candidate:
    """The n-th distinct candidate that passes validation for the Prague article."""
    return Candidate(
        question=f"Which river is described in paragraph {n} of the city guide?",
        answers=["Vltava", "Elbe", "Morava"],
        correct_index=0,
        provider_tag="gpt",
        model="gpt-4o-mini",
        context_slice="Prague is the capital of the Czech Republic.",
    )


def seed_store(store: InMemoryQuestionStore, article: Article, count: int) -> None:
    for n in range(count):
        store.insert(make_accepted(article, n))
    store.insert_calls.clear()


class TestOrchestratorConfig:
    """Tests for OrchestratorConfig."""

    def test_defaults(self):
        """Test the default cache sizing."""
        config = OrchestratorConfig()

        assert config.lookup_limit == 12
        assert config.sufficiency_threshold == 8
        assert config.target_pool_size == 12
        assert config.max_attempts_per_round == 1
        assert config.concurrent_rounds is False
        assert config.store_timeout_seconds == 10.0

    @pytest.mark.parametrize(
        "field", ["lookup_limit", "sufficiency_threshold", "target_pool_size", "max_attempts_per_round"]
    )
    def test_non_positive_values_rejected(self, field):
        """Test that every count must be at least 1."""
        with pytest.raises(ValueError, match=field):
            OrchestratorConfig(**{field: 0})

    def test_threshold_above_lookup_limit_rejected(self):
        """Test that a threshold the lookup can never reach is rejected."""
        with pytest.raises(ValueError, match="cannot exceed lookup_limit"):
            OrchestratorConfig(lookup_limit=5, sufficiency_threshold=8)

    def test_target_below_threshold_rejected(self):
        """Test that generation must be able to make the cache sufficient."""
        with pytest.raises(ValueError, match="cannot be below"):
            OrchestratorConfig(target_pool_size=6, sufficiency_threshold=8)

    def test_threshold_and_target_may_differ(self):
        """Test that sufficiency and target are independent settings."""
        config = OrchestratorConfig(sufficiency_threshold=4, target_pool_size=10)

        assert (config.sufficiency_threshold, config.target_pool_size) == (4, 10)

    def test_from_settings(self):
        """Test that sizing is read from settings."""
        settings = SimpleNamespace(
            lookup_limit=20,
            sufficiency_threshold=10,
            target_pool_size=15,
            max_attempts_per_round=2,
            concurrent_rounds=True,
            store_timeout_seconds=2.5,
        )

        config = OrchestratorConfig.from_settings(settings)

        assert config == OrchestratorConfig(20, 10, 15, 2, True, 2.5)


class TestCacheHit:
    """Requests served from a well-stocked cache."""

    @pytest.mark.asyncio
    async def test_sufficient_cache_skips_generation(self, prague_article, memory_store):
        """Test that nine cached questions mean no generator call."""
        seed_store(memory_store, prague_article, 9)
        generator = ScriptedGenerator([None])
        orchestrator = QuestionCacheOrchestrator(memory_store, generator)

        question = await orchestrator.get_question(prague_article)

        assert generator.calls == 0
        assert memory_store.insert_calls == []
        cached_hashes = {
            q.question_hash for q in memory_store.lookup(prague_article.hash, "en", 12)
        }
        assert question.question_hash in cached_hashes

    @pytest.mark.asyncio
    async def test_exactly_threshold_is_sufficient(self, prague_article, memory_store):
        """Test that reaching the threshold counts as sufficient."""
        seed_store(memory_store, prague_article, 8)
        generator = ScriptedGenerator([None])

        await QuestionCacheOrchestrator(memory_store, generator).get_question(prague_article)

        assert generator.calls == 0

    @pytest.mark.asyncio
    async def test_pick_uses_injected_rng(self, prague_article, memory_store):
        """Test that the final pick is reproducible with a seeded source."""
        seed_store(memory_store, prague_article, 10)
        cached = memory_store.lookup(prague_article.hash, "en", 12)
        expected = random.Random(99).choice(cached)

        orchestrator = QuestionCacheOrchestrator(
            memory_store, ScriptedGenerator([None]), rng=random.Random(99)
        )

        assert (await orchestrator.get_question(prague_article)) == expected

    @pytest.mark.asyncio
    async def test_cache_is_keyed_by_language(self, prague_article, memory_store):
        """Test that questions cached for another language are not served."""
        seed_store(memory_store, prague_article, 9)
        czech = Article(text=prague_article.text, title="Praha", lang="cs")
        generator = ScriptedGenerator([None])

        with pytest.raises(ExhaustionError):
            await QuestionCacheOrchestrator(memory_store, generator).get_question(czech)

        assert generator.calls == 12


class TestGeneration:
    """Requests that need generation rounds."""

    @pytest.mark.asyncio
    async def test_exhaustion_when_nothing_cached_and_all_rounds_fail(
        self, prague_article, memory_store
    ):
        """Test that an empty pool raises and nothing is stored."""
        generator = ScriptedGenerator([None])
        orchestrator = QuestionCacheOrchestrator(memory_store, generator)

        with pytest.raises(ExhaustionError):
            await orchestrator.get_question(prague_article)

        assert generator.calls == 12
        assert memory_store.insert_calls == []

    @pytest.mark.asyncio
    async def test_partial_success(self, prague_article, memory_store):
        """Test that one good round among failures is served and stored."""
        generator = ScriptedGenerator([None, None, river_candidate(1), None])
        orchestrator = QuestionCacheOrchestrator(memory_store, generator)

        question = await orchestrator.get_question(prague_article)

        assert question.question == river_candidate(1).question
        assert question.article_hash == prague_article.hash
        assert question.lang == "en"
        assert question.topic_title == "Prague"
        assert question.model == "gpt-4o-mini"
        assert question.question_hash == hash_question(
            question.question, question.answers, question.correct_index
        )
        assert len(memory_store.insert_calls) == 1
        assert generator.calls == 12

    @pytest.mark.asyncio
    async def test_rounds_fill_up_to_target(self, prague_article, memory_store):
        """Test that the number of rounds is target minus cached."""
        seed_store(memory_store, prague_article, 3)
        generator = ScriptedGenerator([None])

        question = await QuestionCacheOrchestrator(memory_store, generator).get_question(
            prague_article
        )

        assert generator.calls == 9
        # The cached questions still form a pool
        assert question.question.startswith("Which year")

    @pytest.mark.asyncio
    async def test_rejected_candidates_are_not_stored(self, prague_article, memory_store):
        """Test that candidates failing validation are discarded."""
        bad = Candidate(
            question="What is Prague?",
            answers=["Prague", "a city", "a river"],
            correct_index=0,
        )
        generator = ScriptedGenerator([bad])

        with pytest.raises(ExhaustionError):
            await QuestionCacheOrchestrator(memory_store, generator).get_question(
                prague_article
            )

        assert memory_store.insert_calls == []

    @pytest.mark.asyncio
    async def test_duplicates_are_benign(self, prague_article, memory_store):
        """Test that regenerating the same question stores it once."""
        generator = ScriptedGenerator([river_candidate(1)])

        question = await QuestionCacheOrchestrator(memory_store, generator).get_question(
            prague_article
        )

        assert question.question == river_candidate(1).question
        assert len(memory_store.insert_calls) == 12
        assert memory_store.count(prague_article.hash, "en") == 1

    @pytest.mark.asyncio
    async def test_every_accepted_round_is_stored(self, prague_article, memory_store):
        """Test that all distinct accepted questions end up in the cache."""
        generator = ScriptedGenerator([river_candidate(n) for n in range(12)])

        await QuestionCacheOrchestrator(memory_store, generator).get_question(prague_article)

        assert memory_store.count(prague_article.hash, "en") == 12

    @pytest.mark.asyncio
    async def test_retry_within_round(self, prague_article, memory_store):
        """Test that a round gets max_attempts_per_round tries."""
        generator = ScriptedGenerator([None, river_candidate(1), None])
        config = OrchestratorConfig(
            sufficiency_threshold=1, target_pool_size=1, lookup_limit=1, max_attempts_per_round=2
        )

        question = await QuestionCacheOrchestrator(
            memory_store, generator, config=config
        ).get_question(prague_article)

        assert generator.calls == 2
        assert question.question == river_candidate(1).question

    @pytest.mark.asyncio
    async def test_single_attempt_by_default(self, prague_article, memory_store):
        """Test that without retries a failed round is wasted."""
        generator = ScriptedGenerator([None, river_candidate(1)])
        config = OrchestratorConfig(sufficiency_threshold=1, target_pool_size=1, lookup_limit=1)

        with pytest.raises(ExhaustionError):
            await QuestionCacheOrchestrator(
                memory_store, generator, config=config
            ).get_question(prague_article)

        assert generator.calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_rounds(self, prague_article, memory_store):
        """Test that concurrent rounds run the same number of generations."""
        generator = ScriptedGenerator([river_candidate(n) for n in range(12)])
        config = OrchestratorConfig(concurrent_rounds=True)

        await QuestionCacheOrchestrator(
            memory_store, generator, config=config
        ).get_question(prague_article)

        assert generator.calls == 12
        assert memory_store.count(prague_article.hash, "en") == 12

    @pytest.mark.asyncio
    async def test_concurrent_round_failure_cancels_siblings(self, prague_article):
        """Test that no round finishes generating after one round has failed."""
        store = Mock()
        store.lookup.return_value = []
        store.insert.side_effect = StoreUnavailable("insert", Exception("disk full"))
        generator = SlowRoundsGenerator(delay=0.2)
        config = OrchestratorConfig(concurrent_rounds=True)

        with pytest.raises(StoreUnavailable):
            await QuestionCacheOrchestrator(
                store, generator, config=config
            ).get_question(prague_article)

        finished_at_raise = generator.finished
        await asyncio.sleep(0.4)

        assert generator.started == 12
        assert finished_at_raise == 1
        assert generator.finished == finished_at_raise
        assert store.insert.call_count == 1


class TestQuestionSet:
    """Requests for several questions at once."""

    @pytest.mark.asyncio
    async def test_served_from_cache_when_enough(self, prague_article, memory_store):
        """Test that a well-stocked cache answers without a batch call."""
        seed_store(memory_store, prague_article, 12)
        generator = BatchGenerator([])

        questions = await QuestionCacheOrchestrator(
            memory_store, generator
        ).get_question_set(prague_article, 10)

        assert generator.batch_calls == []
        assert len(questions) == 10
        assert len({q.question_hash for q in questions}) == 10

    @pytest.mark.asyncio
    async def test_batch_fills_short_cache(self, prague_article, memory_store):
        """Test that one batch call is made and every accepted item is stored."""
        seed_store(memory_store, prague_article, 3)
        generator = BatchGenerator([river_candidate(n) for n in range(10)])

        questions = await QuestionCacheOrchestrator(
            memory_store, generator
        ).get_question_set(prague_article, 10)

        assert generator.batch_calls == [10]
        assert generator.calls == 0
        assert len(questions) == 10
        assert len({q.question_hash for q in questions}) == 10
        assert memory_store.count(prague_article.hash, "en") == 13

    @pytest.mark.asyncio
    async def test_rejected_batch_items_are_dropped(self, prague_article, memory_store):
        """Test that each batch item goes through the quality filters."""
        leaked = Candidate(
            question="What is Prague?",
            answers=["Prague", "a city", "a river"],
            correct_index=0,
        )
        generator = BatchGenerator([river_candidate(1), leaked])

        questions = await QuestionCacheOrchestrator(
            memory_store, generator
        ).get_question_set(prague_article, 10)

        assert [q.question for q in questions] == [river_candidate(1).question]
        assert memory_store.count(prague_article.hash, "en") == 1

    @pytest.mark.asyncio
    async def test_duplicate_batch_items_served_once(self, prague_article, memory_store):
        """Test that a repeated item appears once in the set."""
        generator = BatchGenerator([river_candidate(1), river_candidate(1)])

        questions = await QuestionCacheOrchestrator(
            memory_store, generator
        ).get_question_set(prague_article, 5)

        assert len(questions) == 1

    @pytest.mark.asyncio
    async def test_exhaustion_when_batch_empty(self, prague_article, memory_store):
        """Test that an empty cache and an empty batch raise."""
        with pytest.raises(ExhaustionError):
            await QuestionCacheOrchestrator(
                memory_store, BatchGenerator([])
            ).get_question_set(prague_article, 10)

    @pytest.mark.asyncio
    async def test_lookup_reads_at_least_count(self, prague_article):
        """Test that a set larger than the lookup limit reads enough rows."""
        store = Mock()
        store.lookup.return_value = [make_accepted(prague_article, n) for n in range(20)]

        questions = await QuestionCacheOrchestrator(
            store, BatchGenerator([])
        ).get_question_set(prague_article, 20)

        store.lookup.assert_called_once_with(prague_article.hash, "en", 20)
        assert len(questions) == 20

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text,count", [("", 10), ("   ", 10), ("Prague is a city.", 0)]
    )
    async def test_bad_input_rejected(self, memory_store, text, count):
        """Test that missing text or a non-positive count is an input error."""
        generator = BatchGenerator([river_candidate(1)])

        with pytest.raises(InputError):
            await QuestionCacheOrchestrator(memory_store, generator).get_question_set(
                Article(text=text, lang="en"), count
            )

        assert generator.batch_calls == []


class TestFailures:
    """Input and store failures."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   \n"])
    async def test_empty_article_rejected(self, memory_store, text):
        """Test that missing text is an input error."""
        generator = ScriptedGenerator([None])
        orchestrator = QuestionCacheOrchestrator(memory_store, generator)

        with pytest.raises(InputError):
            await orchestrator.get_question(Article(text=text, lang="cs"))

        assert memory_store.lookup_calls == 0

    @pytest.mark.asyncio
    async def test_lookup_failure_propagates(self, prague_article):
        """Test that a failing store surfaces as StoreUnavailable."""
        store = Mock()
        store.lookup.side_effect = StoreUnavailable(
            "lookup", OperationalError("SELECT", {}, Exception("db down"))
        )
        generator = ScriptedGenerator([river_candidate(1)])

        with pytest.raises(StoreUnavailable):
            await QuestionCacheOrchestrator(store, generator).get_question(prague_article)

        assert generator.calls == 0

    @pytest.mark.asyncio
    async def test_insert_failure_propagates(self, prague_article):
        """Test that a failed insert is not mistaken for a duplicate."""
        store = Mock()
        store.lookup.return_value = []
        store.insert.side_effect = StoreUnavailable("insert", Exception("disk full"))

        with pytest.raises(StoreUnavailable):
            await QuestionCacheOrchestrator(
                store, ScriptedGenerator([river_candidate(1)])
            ).get_question(prague_article)

    @pytest.mark.asyncio
    async def test_store_called_with_lookup_limit(self, prague_article):
        """Test that the lookup honours the configured limit."""
        store = Mock()
        store.lookup.return_value = [make_accepted(prague_article, n) for n in range(5)]
        store.insert.return_value = InsertOutcome.INSERTED
        config = OrchestratorConfig(lookup_limit=5, sufficiency_threshold=5, target_pool_size=5)

        await QuestionCacheOrchestrator(
            store, ScriptedGenerator([None]), config=config
        ).get_question(prague_article)

        store.lookup.assert_called_once_with(prague_article.hash, "en", 5)

    @pytest.mark.asyncio
    async def test_slow_lookup_times_out(self, prague_article):
        """Test that a store that does not answer in time is unavailable."""
        release = threading.Event()
        store = Mock()
        store.lookup.side_effect = lambda *args: release.wait(5) and []
        generator = ScriptedGenerator([river_candidate(1)])
        config = OrchestratorConfig(store_timeout_seconds=0.05)

        try:
            with pytest.raises(StoreUnavailable, match="timed out during lookup") as exc_info:
                await QuestionCacheOrchestrator(
                    store, generator, config=config
                ).get_question(prague_article)
        finally:
            release.set()

        assert exc_info.value.operation_name == "lookup"
        assert generator.calls == 0

    @pytest.mark.asyncio
    async def test_slow_insert_times_out(self, prague_article):
        """Test that an insert stuck past the deadline fails the request."""
        release = threading.Event()
        store = Mock()
        store.lookup.return_value = []
        store.insert.side_effect = lambda question: release.wait(5) and InsertOutcome.INSERTED
        config = OrchestratorConfig(store_timeout_seconds=0.05)

        try:
            with pytest.raises(StoreUnavailable, match="timed out during insert"):
                await QuestionCacheOrchestrator(
                    store, ScriptedGenerator([river_candidate(1)]), config=config
                ).get_question(prague_article)
        finally:
            release.set()

    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_store_timeout_must_be_positive(self, timeout):
        """Test that a non-positive store deadline is rejected."""
        with pytest.raises(ValueError, match="store_timeout_seconds"):
            OrchestratorConfig(store_timeout_seconds=timeout)


class TestFromSettings:
    """Tests for QuestionCacheOrchestrator.from_settings."""

    @patch("wikiquiz.orchestrator.FallbackGenerator")
    def test_builds_components(self, mock_fallback, memory_store):
        """Test that generator, validator and sizing come from settings."""
        settings = SimpleNamespace(
            title_overlap_ratio=0.3,
            numeric_absolute_gap=5.0,
            numeric_relative_gap=0.05,
            lookup_limit=12,
            sufficiency_threshold=6,
            target_pool_size=10,
            max_attempts_per_round=2,
            concurrent_rounds=False,
            store_timeout_seconds=10.0,
        )
        rng = random.Random(1)

        orchestrator = QuestionCacheOrchestrator.from_settings(memory_store, settings, rng=rng)

        mock_fallback.from_settings.assert_called_once_with(settings, rng=rng)
        assert orchestrator.generator is mock_fallback.from_settings.return_value
        assert orchestrator.validator.config.title_overlap_ratio == 0.3
        assert orchestrator.config.sufficiency_threshold == 6
        assert orchestrator.config.max_attempts_per_round == 2

    @pytest.mark.asyncio
    async def test_cleanup_releases_generator(self, memory_store):
        """Test that cleanup is forwarded to the generator."""
        generator = Mock()
        generator.cleanup = Mock(side_effect=lambda: _done())

        await QuestionCacheOrchestrator(memory_store, generator).cleanup()

        generator.cleanup.assert_called_once()

    @pytest.mark.asyncio
    async def test_cleanup_without_generator_support(self, memory_store):
        """Test that generators without cleanup are tolerated."""
        await QuestionCacheOrchestrator(memory_store, ScriptedGenerator([None])).cleanup()


async def _done():
    return None
