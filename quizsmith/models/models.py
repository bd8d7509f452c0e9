from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, JSON, ForeignKey, Text,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from quizsmith.database import Base


def generate_uuid():
    return str(uuid.uuid4())


class User(Base):
    """Account owner. Rows are created by the identity layer; read-only here."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    full_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    subscriptions = relationship("Subscription", back_populates="user")
    usage = relationship("UsageCounter", back_populates="user", uselist=False)


# ============================================================================
# MONETIZATION & USAGE MODELS
# ============================================================================

class Subscription(Base):
    """
    Subscription history for a user.
    The most recent row decides the active plan; no row means Free.
    """
    __tablename__ = "subscriptions"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    # Plan name: "Free", "Standard", "Pro"
    plan = Column(String, nullable=False, default="Free")
    status = Column(String, nullable=False, default="active")  # "active", "past_due", "cancelled"

    started_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=True)  # Null for open-ended plans
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user = relationship("User", back_populates="subscriptions")


class UsageCounter(Base):
    """
    Monthly consumption per user and resource type.
    Reset to zero once a calendar month has passed since last_reset.
    """
    __tablename__ = "usage_counters"
    __table_args__ = (
        CheckConstraint("ai_calls >= 0", name="ck_usage_ai_calls_non_negative"),
        CheckConstraint("documents_uploaded >= 0", name="ck_usage_documents_non_negative"),
        CheckConstraint("quizzes_created >= 0", name="ck_usage_quizzes_non_negative"),
    )

    user_id = Column(String, ForeignKey("users.id"), primary_key=True)

    ai_calls = Column(Integer, nullable=False, default=0)
    documents_uploaded = Column(Integer, nullable=False, default=0)
    quizzes_created = Column(Integer, nullable=False, default=0)

    last_reset = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="usage")


# ============================================================================
# DOCUMENT & QUIZ MODELS
# ============================================================================

class Document(Base):
    """Uploaded source file. Immutable once uploaded."""
    __tablename__ = "documents"

    id = Column(String, primary_key=True, default=generate_uuid)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    storage_path = Column(String, nullable=False)  # Key in the blob store
    mime = Column(String, nullable=True)  # As declared by the uploader
    filename = Column(String, nullable=False)
    size = Column(Integer, nullable=True)  # Bytes
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("User")


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String, primary_key=True, default=generate_uuid)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_published = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("User")
    questions = relationship("Question", back_populates="quiz", order_by="Question.created_at")


class Question(Base):
    __tablename__ = "questions"

    id = Column(String, primary_key=True, default=generate_uuid)
    quiz_id = Column(String, ForeignKey("quizzes.id"), nullable=False, index=True)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False, default="mcq")
    text = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes, hence the attribute name
    meta = Column("metadata", JSON, nullable=True)  # {"explanation": {...}}
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    quiz = relationship("Quiz", back_populates="questions")
    choices = relationship(
        "Choice",
        back_populates="question",
        order_by="Choice.position",
        cascade="all, delete-orphan",
    )


class Choice(Base):
    __tablename__ = "choices"
    __table_args__ = (
        UniqueConstraint("question_id", "position", name="uq_choice_question_position"),
        CheckConstraint("position >= 0 AND position <= 3", name="ck_choice_position_range"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    question_id = Column(String, ForeignKey("questions.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False)  # 0..3, rendered as A-D

    question = relationship("Question", back_populates="choices")


# ============================================================================
# GENERATION JOB MODEL
# ============================================================================

class GenerationJob(Base):
    """
    Audit record of one generation attempt.
    Not a resumable work queue entry: the pipeline is stateless per call.
    """
    __tablename__ = "generation_jobs"

    id = Column(String, primary_key=True, default=generate_uuid)
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    document_id = Column(String, ForeignKey("documents.id"), nullable=False, index=True)
    quiz_id = Column(String, ForeignKey("quizzes.id"), nullable=False, index=True)

    requested_question_count = Column(Integer, nullable=False)
    requested_types = Column(JSON, nullable=False, default=lambda: ["mcq"])

    # Status: queued, running, succeeded, failed
    status = Column(String, nullable=False, default="queued", index=True)

    # Results
    question_count = Column(Integer, default=0)
    error = Column(Text, nullable=True)

    # Timing
    created_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
