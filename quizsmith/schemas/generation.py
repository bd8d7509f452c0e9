"""
Request/response schemas for the generation and usage APIs.

Request bodies accept both snake_case and camelCase field names, since the
quiz-creation form posts camelCase.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# GENERATION
# =============================================================================

class GenerateQuestionsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quiz_id: str = Field(..., alias="quizId", min_length=1)
    document_id: str = Field(..., alias="documentId", min_length=1)
    requested_question_count: int = Field(
        ..., alias="requestedQuestionCount", ge=1, le=50,
        description="Number of questions to generate (1-50)"
    )
    user_id: str = Field(..., alias="userId", min_length=1)
    requested_types: List[str] = Field(default_factory=lambda: ["mcq"], alias="requestedTypes")

    @field_validator("quiz_id", "document_id", "user_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class GenerateQuestionsResponse(BaseModel):
    success: bool
    count: int
    job_id: str
    question_ids: List[str]


class GenerationJobResponse(BaseModel):
    """Audit record of one generation attempt."""
    id: str
    owner_id: str
    quiz_id: str
    document_id: str
    status: str
    requested_question_count: int
    requested_types: List[str]
    question_count: int
    error: Optional[str]
    created_at: Optional[str]
    started_at: Optional[str]
    completed_at: Optional[str]


# =============================================================================
# USAGE
# =============================================================================

class UsageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    type: str = Field(..., description="ai_calls, documents_uploaded or quizzes_created")


class UsageResponse(BaseModel):
    success: bool
    type: str
    used: int
    remaining: int  # -1 when unlimited
    limit: int
    plan: str


class ResourceUsage(BaseModel):
    used: int
    limit: int
    remaining: int
    unlimited: bool


class UsageSummaryResponse(BaseModel):
    user_id: str
    plan: str
    usage: Dict[str, ResourceUsage]
    last_reset: str
    resets_at: str
