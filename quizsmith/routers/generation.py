"""
Quiz Generation API Router

Provides endpoints for:
- Generating questions for a quiz from an uploaded document
- Fetching the audit record of a generation job
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from quizsmith.database import get_db
from quizsmith.exceptions import NotFound
from quizsmith.models.models import GenerationJob
from quizsmith.schemas.generation import (
    GenerateQuestionsRequest,
    GenerateQuestionsResponse,
    GenerationJobResponse,
)
from quizsmith.services.completion import CompletionInvoker, OpenAICompletionInvoker
from quizsmith.services.generation_pipeline import GenerationPipeline, GenerationRequest
from quizsmith.utils.blob_store import BlobStore, get_blob_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generate", tags=["generation"])


# ============================================================================
# Dependencies
# ============================================================================

def get_completion_invoker() -> CompletionInvoker:
    return OpenAICompletionInvoker()


def get_pipeline(
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    completion: CompletionInvoker = Depends(get_completion_invoker),
) -> GenerationPipeline:
    return GenerationPipeline(db, blob_store=blob_store, completion=completion)


# ============================================================================
# Helper Functions
# ============================================================================

def job_to_response(job: GenerationJob) -> GenerationJobResponse:
    """Convert a GenerationJob to response format."""
    return GenerationJobResponse(
        id=job.id,
        owner_id=job.owner_id,
        quiz_id=job.quiz_id,
        document_id=job.document_id,
        status=job.status,
        requested_question_count=job.requested_question_count,
        requested_types=job.requested_types or ["mcq"],
        question_count=job.question_count or 0,
        error=job.error,
        created_at=job.created_at.isoformat() if job.created_at else None,
        started_at=job.started_at.isoformat() if job.started_at else None,
        completed_at=job.completed_at.isoformat() if job.completed_at else None,
    )


# ============================================================================
# Endpoints
# ============================================================================

@router.post("", response_model=GenerateQuestionsResponse)
def generate_questions(
    request: GenerateQuestionsRequest,
    pipeline: GenerationPipeline = Depends(get_pipeline),
):
    """
    Generate multiple-choice questions for a quiz from an uploaded document.

    Consumes one document upload, one quiz creation and one AI call from the
    user's monthly plan before any work is done. Returns 403 with an upgrade
    prompt when a limit is reached.
    """
    result = pipeline.run(GenerationRequest(
        user_id=request.user_id,
        quiz_id=request.quiz_id,
        document_id=request.document_id,
        requested_question_count=request.requested_question_count,
        requested_types=request.requested_types,
    ))

    return GenerateQuestionsResponse(
        success=result.success,
        count=result.count,
        job_id=result.job_id,
        question_ids=result.question_ids,
    )


@router.get("/jobs/{job_id}", response_model=GenerationJobResponse)
def get_generation_job(
    job_id: str,
    user_id: str = Query(..., description="User ID"),
    db: Session = Depends(get_db),
):
    """Get the status and outcome of a generation job."""
    job = db.query(GenerationJob).filter(GenerationJob.id == job_id).first()
    if not job or job.owner_id != user_id:
        raise NotFound("Job not found")
    return job_to_response(job)
