"""Question store backed by SQLAlchemy.

Accepted questions are keyed by ``(article_hash, lang)`` and unique by
``question_hash``, so a concurrent or repeated insert of the same question
is a no-op. Any other database failure surfaces as ``StoreUnavailable``.
"""

import enum
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    func,
    select,
    text,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import StoreUnavailable
from .models import AcceptedQuestion, QuestionRating

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class WikiQuestionModel(Base):
    """SQLAlchemy model for the cached questions table."""

    __tablename__ = "wiki_questions"
    __table_args__ = (Index("ix_wiki_questions_article_lang", "article_hash", "lang"),)

    id = Column(Integer, primary_key=True, index=True)
    question_hash = Column(String(64), nullable=False, unique=True)
    article_hash = Column(String(64), nullable=False)
    lang = Column(String(16), nullable=False)
    topic_title = Column(String(500))
    context_slice = Column(Text)
    question = Column(Text, nullable=False)
    answers = Column(JSON, nullable=False)
    correct_index = Column(Integer, nullable=False)
    model = Column(String(100))
    provider_tag = Column(String(50))
    is_removed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_utc_now, nullable=False)


class QuestionRatingModel(Base):
    """SQLAlchemy model for player ratings of served questions."""

    __tablename__ = "wiki_question_ratings"

    id = Column(Integer, primary_key=True, index=True)
    question_hash = Column(String(64), nullable=False, index=True)
    selected_answer = Column(String(500), nullable=False)
    correct = Column(Boolean, nullable=False)
    model = Column(String(100), nullable=False)
    quality_rating = Column(Integer)
    difficulty_rating = Column(Integer)
    duration_ms = Column(Integer)
    session_id = Column(String(100))
    topic_title = Column(String(500))
    created_at = Column(DateTime, default=_utc_now, nullable=False)


class InsertOutcome(str, enum.Enum):
    """Result of inserting a question."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"


class QuestionStore(ABC):
    """Persistence interface the orchestrator depends on."""

    @abstractmethod
    def lookup(self, article_hash: str, lang: str, limit: int) -> List[AcceptedQuestion]:
        """Return up to ``limit`` live questions for the article and language."""

    @abstractmethod
    def insert(self, question: AcceptedQuestion) -> InsertOutcome:
        """Persist a question; an existing ``question_hash`` is not an error."""

    @abstractmethod
    def count(self, article_hash: str, lang: str) -> int:
        """Number of live questions for the article and language."""


class QuestionDatabase(QuestionStore):
    """SQLAlchemy implementation of the question store."""

    def __init__(self, database_url: str):
        """Initialize the store.

        Args:
            database_url: SQLAlchemy connection URL. In-memory SQLite URLs
                share one connection across threads.
        """
        self.database_url = database_url
        engine_kwargs = {}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )

    def create_tables(self) -> None:
        """Create missing tables.

        Raises:
            StoreUnavailable: If the schema cannot be created
        """
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create tables: {str(e)}")
            raise StoreUnavailable("create_tables", e) from e

    def get_session(self) -> Session:
        return self.SessionLocal()

    def close_session(self, session: Session) -> None:
        """Close a database session.

        Args:
            session: Session to close
        """
        try:
            session.close()
        except SQLAlchemyError as e:
            logger.error(f"Error closing session: {str(e)}")

    def _run(self, operation_name: str, work: Callable[[Session], T]) -> T:
        """Run ``work`` in a fresh session, mapping database errors."""
        session = self.get_session()
        try:
            return work(session)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Question store {operation_name} failed: {str(e)}")
            raise StoreUnavailable(operation_name, e) from e
        finally:
            self.close_session(session)

    def lookup(self, article_hash: str, lang: str, limit: int) -> List[AcceptedQuestion]:
        """Fetch cached questions for an article.

        Args:
            article_hash: Article identity
            lang: Language code
            limit: Maximum number of rows

        Returns:
            Accepted questions, removed ones excluded

        Raises:
            StoreUnavailable: If the query fails
        """

        def work(session: Session) -> List[AcceptedQuestion]:
            rows = session.scalars(
                select(WikiQuestionModel)
                .where(
                    WikiQuestionModel.article_hash == article_hash,
                    WikiQuestionModel.lang == lang,
                    WikiQuestionModel.is_removed.is_(False),
                )
                .order_by(WikiQuestionModel.id)
                .limit(limit)
            ).all()
            return [_to_accepted(row) for row in rows]

        return self._run("lookup", work)

    def insert(self, question: AcceptedQuestion) -> InsertOutcome:
        """Insert an accepted question.

        Args:
            question: Question to store

        Returns:
            INSERTED, or DUPLICATE if the question hash already exists

        Raises:
            StoreUnavailable: If the insert fails for any other reason
        """

        def work(session: Session) -> InsertOutcome:
            session.add(
                WikiQuestionModel(
                    question_hash=question.question_hash,
                    article_hash=question.article_hash,
                    lang=question.lang,
                    topic_title=question.topic_title or None,
                    context_slice=question.context_slice or None,
                    question=question.question,
                    answers=list(question.answers),
                    correct_index=question.correct_index,
                    model=question.model or None,
                    provider_tag=question.provider_tag or None,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                # Unique question_hash: someone stored it first
                session.rollback()
                logger.debug(f"Question {question.question_hash[:12]} already stored")
                return InsertOutcome.DUPLICATE
            return InsertOutcome.INSERTED

        return self._run("insert", work)

    def count(self, article_hash: str, lang: str) -> int:
        """Count live questions for an article.

        Raises:
            StoreUnavailable: If the query fails
        """

        def work(session: Session) -> int:
            return session.scalar(
                select(func.count(WikiQuestionModel.id)).where(
                    WikiQuestionModel.article_hash == article_hash,
                    WikiQuestionModel.lang == lang,
                    WikiQuestionModel.is_removed.is_(False),
                )
            ) or 0

        return self._run("count", work)

    def record_rating(self, rating: QuestionRating) -> int:
        """Store a player rating.

        Args:
            rating: Validated rating payload

        Returns:
            ID of the new rating row

        Raises:
            StoreUnavailable: If the insert fails
        """

        def work(session: Session) -> int:
            row = QuestionRatingModel(
                question_hash=rating.question_hash,
                selected_answer=str(rating.selected_answer),
                correct=rating.correct,
                model=rating.model,
                quality_rating=rating.quality_rating,
                difficulty_rating=rating.difficulty_rating,
                duration_ms=rating.duration_ms,
                session_id=rating.session_id,
                topic_title=rating.topic_title,
            )
            session.add(row)
            session.commit()
            return row.id  # type: ignore[return-value]

        rating_id = self._run("record_rating", work)
        logger.info(f"Recorded rating {rating_id} for question {rating.question_hash[:12]}")
        return rating_id

    def test_connection(self) -> bool:
        """Test database connection.

        Returns:
            True if connection successful, False otherwise
        """
        session = self.get_session()
        try:
            session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection test failed: {str(e)}")
            return False
        finally:
            self.close_session(session)


def _to_accepted(row: WikiQuestionModel) -> AcceptedQuestion:
    return AcceptedQuestion(
        question=row.question,
        answers=list(row.answers or []),
        correct_index=row.correct_index,
        provider_tag=row.provider_tag or "",
        model=row.model or "",
        context_slice=row.context_slice or "",
        question_hash=row.question_hash,
        article_hash=row.article_hash,
        lang=row.lang,
        topic_title=row.topic_title or "",
    )
