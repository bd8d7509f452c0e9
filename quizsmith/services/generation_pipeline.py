"""
Document-to-Quiz Generation Pipeline

Runs one generation request end to end:

    GATING -> EXTRACTING -> COMPOSING -> INVOKING -> PARSING -> PERSISTING -> DONE

Any step can move the request to FAILED; the error of that step is what the
caller sees. Steps run strictly in order with no retries. Every attempt is
recorded as a GenerationJob (queued -> running -> succeeded | failed) for
auditing; jobs are never resumed.

The pipeline is not idempotent: running the same request twice creates a
second set of questions and consumes quota twice.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from quizsmith.exceptions import NotFound, QuizsmithError, ValidationError
from quizsmith.models.models import Document, GenerationJob, Quiz
from quizsmith.services.completion import CompletionInvoker
from quizsmith.services.prompt_composer import PromptComposer
from quizsmith.services.quiz_persister import QuizPersister
from quizsmith.services.response_parser import ResponseParser
from quizsmith.services.text_extraction import ExtractorRegistry, default_registry
from quizsmith.services.usage_gate import UsageGate
from quizsmith.utils.blob_store import BlobStore

logger = logging.getLogger(__name__)

MAX_QUESTIONS_PER_REQUEST = 50
SUPPORTED_QUESTION_TYPES = ("mcq",)

# One generation uploads a document, creates a quiz and spends an AI call
GATED_RESOURCES = ("documents_uploaded", "quizzes_created", "ai_calls")


class PipelineState(str, Enum):
    GATING = "gating"
    EXTRACTING = "extracting"
    COMPOSING = "composing"
    INVOKING = "invoking"
    PARSING = "parsing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class GenerationRequest:
    user_id: str
    quiz_id: str
    document_id: str
    requested_question_count: int
    requested_types: Sequence[str] = ("mcq",)

    def validate(self) -> None:
        missing = [
            name for name in ("user_id", "quiz_id", "document_id")
            if not isinstance(getattr(self, name), str) or not getattr(self, name).strip()
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        count = self.requested_question_count
        if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= MAX_QUESTIONS_PER_REQUEST:
            raise ValidationError(
                f"requested_question_count must be an integer between 1 and {MAX_QUESTIONS_PER_REQUEST}"
            )

        unsupported = [t for t in self.requested_types if t not in SUPPORTED_QUESTION_TYPES]
        if not self.requested_types or unsupported:
            raise ValidationError(
                f"Unsupported question types: {', '.join(unsupported) or 'none given'}"
            )


@dataclass
class GenerationResult:
    success: bool
    count: int
    job_id: str
    question_ids: List[str] = field(default_factory=list)
    truncated: bool = False


class GenerationPipeline:
    """
    Orchestrates gating, extraction, prompting, completion, parsing and
    persistence for one request.

    All collaborators are injected; only the database session, blob store
    and completion invoker are required.
    """

    def __init__(
        self,
        db: Session,
        blob_store: BlobStore,
        completion: CompletionInvoker,
        usage_gate: Optional[UsageGate] = None,
        extractors: Optional[ExtractorRegistry] = None,
        composer: Optional[PromptComposer] = None,
        parser: Optional[ResponseParser] = None,
        persister: Optional[QuizPersister] = None,
    ):
        self.db = db
        self.blob_store = blob_store
        self.completion = completion
        self.usage_gate = usage_gate or UsageGate(db)
        self.extractors = extractors or default_registry()
        self.composer = composer or PromptComposer()
        self.parser = parser or ResponseParser()
        self.persister = persister or QuizPersister(db)

    def run(self, request: GenerationRequest) -> GenerationResult:
        request.validate()
        quiz, document = self._load_targets(request)

        job = self._create_job(request)
        state = PipelineState.GATING
        try:
            self._transition(job, state)
            self.usage_gate.check_and_consume_all(request.user_id, GATED_RESOURCES)

            state = PipelineState.EXTRACTING
            self._transition(job, state)
            data = self.blob_store.download(document.storage_path)
            text = self.extractors.extract(data, document.mime, document.filename)

            state = PipelineState.COMPOSING
            self._transition(job, state)
            payload = self.composer.compose(text, request.requested_question_count)

            state = PipelineState.INVOKING
            self._transition(job, state)
            raw = self.completion.complete(payload)

            state = PipelineState.PARSING
            self._transition(job, state)
            drafts = self.parser.parse(raw)
            if len(drafts) > request.requested_question_count:
                logger.info(
                    "Model returned %d questions, keeping first %d",
                    len(drafts), request.requested_question_count
                )
                drafts = drafts[:request.requested_question_count]

            state = PipelineState.PERSISTING
            self._transition(job, state)
            self._lock_quiz(quiz.id)
            result = self.persister.persist(quiz.id, request.user_id, drafts)

        except QuizsmithError as e:
            self._fail(job.id, state, e.message)
            raise
        except Exception as e:
            logger.error("Unexpected failure in %s for job_id=%s", state.value, job.id, exc_info=True)
            self._fail(job.id, state, str(e))
            raise

        self._complete(job.id, result.inserted_count)
        return GenerationResult(
            success=True,
            count=result.inserted_count,
            job_id=job.id,
            question_ids=result.question_ids,
            truncated=payload.truncated,
        )

    # ------------------------------------------------------------------
    # Job bookkeeping
    # ------------------------------------------------------------------

    def _load_targets(self, request: GenerationRequest):
        quiz = self.db.query(Quiz).filter(Quiz.id == request.quiz_id).first()
        if not quiz or quiz.owner_id != request.user_id:
            raise NotFound("Quiz not found")

        document = self.db.query(Document).filter(Document.id == request.document_id).first()
        if not document or document.owner_id != request.user_id:
            raise NotFound("Document not found")

        return quiz, document

    def _lock_quiz(self, quiz_id: str) -> None:
        """Serialize concurrent writers on one quiz (no-op on SQLite)."""
        quiz = self.db.query(Quiz).filter(Quiz.id == quiz_id).with_for_update().first()
        if quiz is None:
            # Deleted while the model call was in flight
            raise NotFound("Quiz not found")

    def _create_job(self, request: GenerationRequest) -> GenerationJob:
        job = GenerationJob(
            owner_id=request.user_id,
            document_id=request.document_id,
            quiz_id=request.quiz_id,
            requested_question_count=request.requested_question_count,
            requested_types=list(request.requested_types),
            status="queued",
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        logger.info(
            "Generation job %s queued: quiz_id=%s document_id=%s count=%d",
            job.id, request.quiz_id, request.document_id, request.requested_question_count
        )
        return job

    def _transition(self, job: GenerationJob, state: PipelineState) -> None:
        if state == PipelineState.GATING:
            job.status = "running"
            job.started_at = datetime.utcnow()
            self.db.commit()
        logger.info("Generation job %s -> %s", job.id, state.value)

    def _fail(self, job_id: str, state: PipelineState, message: str) -> None:
        self.db.rollback()
        job = self.db.get(GenerationJob, job_id)
        if job is None:
            return
        job.status = "failed"
        job.error = f"{state.value}: {message}"
        job.completed_at = datetime.utcnow()
        self.db.commit()
        logger.warning("Generation job %s -> %s at %s: %s", job_id, PipelineState.FAILED.value, state.value, message)

    def _complete(self, job_id: str, count: int) -> None:
        job = self.db.get(GenerationJob, job_id)
        job.status = "succeeded"
        job.question_count = count
        job.completed_at = datetime.utcnow()
        self.db.commit()
        logger.info("Generation job %s -> %s with %d questions", job_id, PipelineState.DONE.value, count)
