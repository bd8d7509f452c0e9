"""
Mock infrastructure for Quizsmith testing.
Provides deterministic fakes for the completion service, blob storage
and in-memory document builders.
"""

from .completion_mocks import (
    MOCK_EXPLANATION,
    MOCK_QUESTIONS,
    FENCED_ARRAY_RESPONSE,
    WRAPPED_OBJECT_RESPONSE,
    INVALID_BATCH_RESPONSE,
    SOURCE_TEXT,
    FakeCompletionInvoker,
    FailingCompletionInvoker,
    InMemoryBlobStore,
    MockChatCompletion,
    mock_openai_completion,
    questions_json,
)
from .documents import build_docx, build_pdf, build_pptx

__all__ = [
    "MOCK_EXPLANATION",
    "MOCK_QUESTIONS",
    "FENCED_ARRAY_RESPONSE",
    "WRAPPED_OBJECT_RESPONSE",
    "INVALID_BATCH_RESPONSE",
    "SOURCE_TEXT",
    "FakeCompletionInvoker",
    "FailingCompletionInvoker",
    "InMemoryBlobStore",
    "MockChatCompletion",
    "mock_openai_completion",
    "questions_json",
    "build_docx",
    "build_pdf",
    "build_pptx",
]
