"""Data models for the quiz question service.

Pydantic models for article input, raw LLM candidates, accepted (cached)
questions and the HTTP payloads exchanged with the game client.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .hashing import hash_article

ANSWER_COUNT = 3
MAX_HINTS_COUNT = 20


class Article(BaseModel):
    """Article supplied with a request. Never mutated."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Full article body")
    title: str = Field("", description="Article title (may be empty)")
    lang: str = Field("cs", description="Target language code")

    @property
    def hash(self) -> str:
        """Content-derived identity used as the cache key."""
        return hash_article(self.text)


class Candidate(BaseModel):
    """Unvalidated question produced by one LLM call.

    Shape is not checked here: a candidate with two answers or an out of
    range index is representable and rejected later by the validator.
    """

    model_config = ConfigDict(populate_by_name=True)

    question: str = Field("", description="Question text")
    answers: List[str] = Field(
        default_factory=list, description="Answer options in display order"
    )
    correct_index: int = Field(
        -1, alias="correctIndex", description="Index of the correct answer"
    )
    provider_tag: str = Field("", description="Backend that produced the candidate")
    model: str = Field("", description="Model identifier that produced it")
    context_slice: str = Field("", description="Article slice used for the prompt")


class AcceptedQuestion(Candidate):
    """Candidate that passed validation and may be cached and served."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    question_hash: str = Field(..., description="Normalized content hash")
    article_hash: str = Field(..., description="Owning article hash")
    lang: str = Field(..., description="Language code")
    topic_title: str = Field("", description="Article title at generation time")


class QuestionRequest(BaseModel):
    """Request body for question generation."""

    context: str = Field("", description="Article text")
    lang: str = Field("cs", description="Target language code")
    title: str = Field("", description="Article title")

    @field_validator("lang")
    @classmethod
    def normalize_lang(cls, v: str) -> str:
        """Lower-case the language code; blank falls back to Czech."""
        v = v.strip().lower()
        return v or "cs"


class QuestionResponse(BaseModel):
    """Question returned to the game client."""

    model_config = ConfigDict(populate_by_name=True)

    question: str
    answers: List[str]
    correct_index: int = Field(..., serialization_alias="correctIndex")


class HintsRequest(QuestionRequest):
    """Request body for a set of questions about one article."""

    count: Optional[int] = Field(
        None, ge=1, le=MAX_HINTS_COUNT, description="Questions wanted (service default if omitted)"
    )


class HintsResponse(BaseModel):
    """Set of questions returned to the game client."""

    mode: str = "game"
    language: str
    questions: List[QuestionResponse]


class ErrorResponse(BaseModel):
    """Uniform error body."""

    error: str


class SaveQuestionRequest(BaseModel):
    """Client-submitted question to store as-is."""

    question_hash: Optional[str] = Field(
        None, description="Computed from question and answers when omitted"
    )
    article_hash: str = ""
    lang: str = Field(..., min_length=1)
    topic_title: str = ""
    context_slice: str = ""
    question: str = Field(..., min_length=1)
    answers: List[str]
    correct_index: int = Field(..., ge=0, le=ANSWER_COUNT - 1)
    model: str = Field(..., min_length=1)

    @field_validator("answers")
    @classmethod
    def validate_answers(cls, v: List[str]) -> List[str]:
        """Require exactly three answers."""
        if len(v) != ANSWER_COUNT:
            raise ValueError(f"answers must be array of {ANSWER_COUNT} items")
        return v


class SaveQuestionResponse(BaseModel):
    """Result of a save request."""

    ok: bool = True
    saved: bool
    reason: str
    question_hash: str


class QuestionRating(BaseModel):
    """Player feedback on a served question."""

    question_hash: str = Field(..., min_length=1)
    selected_answer: Union[int, str]
    correct: bool
    model: str = Field(..., min_length=1)
    quality_rating: Optional[int] = Field(None, ge=1, le=5)
    difficulty_rating: Optional[int] = Field(None, ge=1, le=5)
    duration_ms: Optional[int] = Field(None, ge=0)
    session_id: Optional[str] = None
    topic_title: Optional[str] = None


class RateQuestionResponse(BaseModel):
    """Result of a rating request."""

    ok: bool = True
    id: int
