"""Pytest configuration and shared fixtures for quiz service tests."""

import random
import threading
from typing import Dict, List

import pytest

from wikiquiz.database import InsertOutcome, QuestionStore
from wikiquiz.hashing import hash_question
from wikiquiz.models import AcceptedQuestion, Article, Candidate


class InMemoryQuestionStore(QuestionStore):
    """Dict-backed store with the same duplicate semantics as the database."""

    def __init__(self) -> None:
        self._rows: Dict[str, AcceptedQuestion] = {}
        self._lock = threading.Lock()
        self.insert_calls: List[AcceptedQuestion] = []
        self.lookup_calls = 0

    def lookup(self, article_hash: str, lang: str, limit: int) -> List[AcceptedQuestion]:
        self.lookup_calls += 1
        with self._lock:
            rows = [
                q
                for q in self._rows.values()
                if q.article_hash == article_hash and q.lang == lang
            ]
        return rows[:limit]

    def insert(self, question: AcceptedQuestion) -> InsertOutcome:
        with self._lock:
            self.insert_calls.append(question)
            if question.question_hash in self._rows:
                return InsertOutcome.DUPLICATE
            self._rows[question.question_hash] = question
            return InsertOutcome.INSERTED

    def count(self, article_hash: str, lang: str) -> int:
        return len(self.lookup(article_hash, lang, limit=10_000))


def make_accepted(article: Article, n: int) -> AcceptedQuestion:
    """Build the n-th distinct cached question for an article."""
    question = f"Which year is listed as event number {n}?"
    answers = [f"{1000 + n * 100}", f"{1500 + n * 100}", f"{2000 + n * 100}"]
    return AcceptedQuestion(
        question=question,
        answers=answers,
        correct_index=0,
        provider_tag="gpt",
        question_hash=hash_question(question, answers, 0),
        article_hash=article.hash,
        lang=article.lang,
        topic_title=article.title,
    )


@pytest.fixture
def mock_openai_api_key() -> str:
    """Fixture providing a mock OpenAI API key for testing."""
    return "sk-test-mock-api-key-12345"


@pytest.fixture
def mock_google_api_key() -> str:
    """Fixture providing a mock Google API key for testing."""
    return "AIza-test-mock-api-key-12345"


@pytest.fixture
def prague_article() -> Article:
    """Short English article about Prague."""
    return Article(
        text="Prague is the capital of the Czech Republic.",
        title="Prague",
        lang="en",
    )


@pytest.fixture
def valid_candidate() -> Candidate:
    """Candidate that passes every quality filter for the Prague article."""
    return Candidate(
        question="What country is Prague the capital of?",
        answers=["Czech Republic", "Germany", "Austria"],
        correct_index=0,
        provider_tag="gpt",
    )


@pytest.fixture
def memory_store() -> InMemoryQuestionStore:
    """Empty in-memory question store."""
    return InMemoryQuestionStore()


@pytest.fixture
def seeded_rng() -> random.Random:
    """Deterministic random source."""
    return random.Random(1234)
