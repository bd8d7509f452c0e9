"""
Pytest configuration and fixtures for Quizsmith tests.

Provides:
- Fresh in-memory database per test
- FastAPI test client with database, blob store and completion overrides
- User, subscription, quiz and document fixtures
- OpenAI mock for completion tests
"""

import pytest
import os
from typing import Generator
from datetime import datetime
from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///./test_quizsmith.db"
os.environ["OPENAI_API_KEY"] = "test-key-not-real"
os.environ["BLOB_STORE_BACKEND"] = "local"
os.environ.pop("SENTRY_DSN", None)

from quizsmith.main import app
from quizsmith.database import Base, get_db
from quizsmith.models.models import Document, Quiz, Subscription, UsageCounter, User
from quizsmith.routers.generation import get_completion_invoker
from quizsmith.utils.blob_store import get_blob_store

from tests.mocks import FakeCompletionInvoker, InMemoryBlobStore, SOURCE_TEXT, WRAPPED_OBJECT_RESPONSE


@pytest.fixture(scope="session", autouse=True)
def cleanup_app_database():
    """Remove the file database the app creates on import"""
    yield
    if os.path.exists("./test_quizsmith.db"):
        os.remove("./test_quizsmith.db")


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database for each test"""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    """Provide a database session for each test"""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def completion() -> FakeCompletionInvoker:
    return FakeCompletionInvoker(response=WRAPPED_OBJECT_RESPONSE)


@pytest.fixture(scope="function")
def client(db: Session, blob_store: InMemoryBlobStore, completion: FakeCompletionInvoker) -> Generator[TestClient, None, None]:
    """Provide FastAPI test client with database and collaborator overrides"""
    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_completion_invoker] = lambda: completion
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# =========================================================================
# User Fixtures
# =========================================================================

@pytest.fixture
def test_user(db: Session) -> User:
    """Create a test user on the Free plan (no subscription row)"""
    user = User(
        id="test-user-123",
        full_name="Test User",
        email="test@quizsmith.dev",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db: Session) -> User:
    user = User(id="other-user-456", full_name="Other User", email="other@quizsmith.dev")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def pro_user(db: Session, test_user: User) -> User:
    """Test user with an active Pro subscription"""
    db.add(Subscription(user_id=test_user.id, plan="Pro", status="active"))
    db.commit()
    return test_user


def _write_usage(db: Session, user_id: str, last_reset: datetime = None, **counts) -> UsageCounter:
    counter = db.get(UsageCounter, user_id)
    if counter is None:
        counter = UsageCounter(user_id=user_id, ai_calls=0, documents_uploaded=0, quizzes_created=0)
        db.add(counter)
    for column, value in counts.items():
        setattr(counter, column, value)
    counter.last_reset = last_reset or datetime.utcnow()
    db.commit()
    db.refresh(counter)
    return counter


@pytest.fixture
def set_usage(db: Session):
    """Create or overwrite a user's usage counter row: set_usage(user_id, ai_calls=50)"""
    def _set(user_id: str, last_reset: datetime = None, **counts) -> UsageCounter:
        return _write_usage(db, user_id, last_reset, **counts)
    return _set


# =========================================================================
# Quiz & Document Fixtures
# =========================================================================

@pytest.fixture
def test_quiz(db: Session, test_user: User) -> Quiz:
    quiz = Quiz(id="quiz-1", owner_id=test_user.id, title="Photosynthesis basics")
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    return quiz


@pytest.fixture
def text_document(db: Session, test_user: User, blob_store: InMemoryBlobStore) -> Document:
    """Plain text document with roughly 300 words, stored in the blob store"""
    data = SOURCE_TEXT.encode("utf-8")
    document = Document(
        id="doc-1",
        owner_id=test_user.id,
        storage_path=f"{test_user.id}/notes.txt",
        mime="text/plain",
        filename="notes.txt",
        size=len(data),
    )
    blob_store.upload(document.storage_path, data, "text/plain")
    db.add(document)
    db.commit()
    db.refresh(document)
    return document


# =========================================================================
# Mock Fixtures
# =========================================================================

@pytest.fixture
def mock_openai():
    """Mock OpenAI API calls for testing without API costs"""
    import quizsmith.utils.openai_client as openai_module

    # Reset the cached client
    openai_module._client = None

    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = WRAPPED_OBJECT_RESPONSE

    mock_instance = MagicMock()
    mock_instance.chat.completions.create.return_value = mock_response

    # Patch the cached client so get_openai_client hands out the mock
    with patch.object(openai_module, '_client', mock_instance):
        yield mock_instance

    # Reset after test to avoid affecting other tests
    openai_module._client = None
