"""
HTTP transport for the quiz question service.

Endpoints:
    POST /api/questions       one question for an article (cache or generate)
    POST /api/hints           a set of questions for an article in one call
    POST /api/question-save   store a client-supplied question
    POST /api/question-rate   record a player's rating of a question
    GET  /health              liveness check

Every error body has the shape ``{"error": "..."}``.
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from . import __version__
from .database import InsertOutcome, QuestionDatabase
from .exceptions import ExhaustionError, InputError, StoreUnavailable
from .hashing import hash_question
from .logging_config import request_id_context
from .models import (
    AcceptedQuestion,
    Article,
    ErrorResponse,
    HintsRequest,
    HintsResponse,
    QuestionRating,
    QuestionRequest,
    QuestionResponse,
    RateQuestionResponse,
    SaveQuestionRequest,
    SaveQuestionResponse,
)
from .observability import capture_error, init_sentry
from .orchestrator import QuestionCacheOrchestrator

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error."


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID and logs its outcome."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_context.set(request_id)
        start_time = time.time()

        response = await call_next(request)

        duration_ms = round((time.time() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        extra_fields = {
            "method": request.method,
            "path": str(request.url.path),
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
        if response.status_code >= 500:
            logger.error("Server error response", extra=extra_fields)
        elif response.status_code >= 400:
            logger.warning("Client error response", extra=extra_fields)
        else:
            logger.info("Request completed", extra=extra_fields)
        return response


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content=ErrorResponse(error=message).model_dump()
    )


def create_app(
    orchestrator: Optional[QuestionCacheOrchestrator] = None,
    store: Optional[QuestionDatabase] = None,
    settings: Optional[Any] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Components that are not passed in are built from settings at startup,
    and the generator built there is closed at shutdown.

    Args:
        orchestrator: Question orchestrator to serve /api/questions
        store: Question store for saves and ratings
        settings: Settings instance (the global one if not provided)

    Returns:
        Configured application
    """
    if settings is None:
        from .config import settings as app_settings

        settings = app_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        init_sentry(settings)

        if app.state.store is None:
            app.state.store = QuestionDatabase(settings.database_url)
            app.state.store.create_tables()

        owned_orchestrator = None
        if app.state.orchestrator is None:
            owned_orchestrator = QuestionCacheOrchestrator.from_settings(
                app.state.store, settings
            )
            app.state.orchestrator = owned_orchestrator
            logger.info(
                f"Question service ready (providers: "
                f"{', '.join(owned_orchestrator.generator.provider_names)}, "
                f"policy: {owned_orchestrator.generator.policy.value})"
            )

        yield

        if owned_orchestrator is not None:
            await owned_orchestrator.cleanup()

    app = FastAPI(
        title="wikiquiz",
        version=__version__,
        description="Multiple-choice quiz questions generated from article text.",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.store = store

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", []) if part != "body")
            message = f"{field}: {first.get('msg', 'invalid')}" if field else first.get("msg")
        else:
            message = "Invalid request"
        return _error(status.HTTP_400_BAD_REQUEST, str(message))

    @app.exception_handler(InputError)
    async def input_error_handler(request: Request, exc: InputError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(ExhaustionError)
    async def exhaustion_handler(request: Request, exc: ExhaustionError) -> JSONResponse:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))

    @app.exception_handler(StoreUnavailable)
    async def store_error_handler(
        request: Request, exc: StoreUnavailable
    ) -> JSONResponse:
        logger.error(f"{exc.message}: {exc.original_error}")
        capture_error(
            exc,
            context={"path": str(request.url.path), "operation": exc.operation_name},
            tags={"error_type": "StoreUnavailable"},
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        error_id = str(uuid.uuid4())
        logger.exception(f"Unhandled exception [error_id={error_id}]: {exc}")
        capture_error(
            exc,
            context={
                "path": str(request.url.path),
                "method": request.method,
                "error_id": error_id,
            },
            tags={"error_type": exc.__class__.__name__},
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "healthy", "service": "wikiquiz"}

    @app.post("/api/questions")
    async def get_question(payload: QuestionRequest, request: Request) -> JSONResponse:
        """Return one question for the posted article text."""
        if not payload.context.strip():
            raise InputError("Missing context")

        article = Article(text=payload.context, title=payload.title, lang=payload.lang)
        question = await request.app.state.orchestrator.get_question(article)
        response = QuestionResponse(
            question=question.question,
            answers=list(question.answers),
            correct_index=question.correct_index,
        )
        return JSONResponse(content=response.model_dump(by_alias=True))

    @app.post("/api/hints")
    async def get_hints(payload: HintsRequest, request: Request) -> JSONResponse:
        """Return a set of distinct questions for the posted article text."""
        if not payload.context.strip():
            raise InputError("Missing context")

        article = Article(text=payload.context, title=payload.title, lang=payload.lang)
        questions = await request.app.state.orchestrator.get_question_set(
            article, payload.count or settings.batch_size
        )
        response = HintsResponse(
            language=article.lang,
            questions=[
                QuestionResponse(
                    question=question.question,
                    answers=list(question.answers),
                    correct_index=question.correct_index,
                )
                for question in questions
            ],
        )
        return JSONResponse(content=response.model_dump(by_alias=True))

    @app.post("/api/question-save")
    def save_question(
        payload: SaveQuestionRequest, request: Request
    ) -> SaveQuestionResponse:
        """Store a question exactly as the client supplied it."""
        question_hash = payload.question_hash or hash_question(
            payload.question, payload.answers, payload.correct_index
        )
        outcome = request.app.state.store.insert(
            AcceptedQuestion(
                question=payload.question,
                answers=payload.answers,
                correct_index=payload.correct_index,
                model=payload.model,
                context_slice=payload.context_slice,
                question_hash=question_hash,
                article_hash=payload.article_hash,
                lang=payload.lang,
                topic_title=payload.topic_title,
            )
        )
        saved = outcome is InsertOutcome.INSERTED
        return SaveQuestionResponse(
            saved=saved,
            reason="inserted" if saved else "duplicate_question_hash",
            question_hash=question_hash,
        )

    @app.post("/api/question-rate")
    def rate_question(
        payload: QuestionRating, request: Request
    ) -> RateQuestionResponse:
        """Record a player's rating of a served question."""
        rating_id = request.app.state.store.record_rating(payload)
        return RateQuestionResponse(id=rating_id)

    return app
