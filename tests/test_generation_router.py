"""
Tests for the generation HTTP API.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from quizsmith.exceptions import CompletionTimeout
from quizsmith.models.models import Choice, Document, GenerationJob, Question, Quiz, User

from tests.mocks import INVALID_BATCH_RESPONSE, FakeCompletionInvoker


def _body(quiz: Quiz, document: Document, count: int = 5, camel: bool = False):
    if camel:
        return {
            "quizId": quiz.id,
            "documentId": document.id,
            "requestedQuestionCount": count,
            "userId": quiz.owner_id,
        }
    return {
        "quiz_id": quiz.id,
        "document_id": document.id,
        "requested_question_count": count,
        "user_id": quiz.owner_id,
    }


class TestGenerateEndpoint:

    @pytest.mark.integration
    def test_generate_success(self, client: TestClient, db: Session, test_quiz: Quiz, text_document: Document):
        response = client.post("/api/generate", json=_body(test_quiz, text_document))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["count"] == 5
        assert len(data["question_ids"]) == 5
        assert data["job_id"]
        assert db.query(Choice).count() == 20

    @pytest.mark.integration
    def test_camel_case_body_accepted(self, client: TestClient, test_quiz: Quiz, text_document: Document):
        response = client.post("/api/generate", json=_body(test_quiz, text_document, count=2, camel=True))
        assert response.status_code == 200
        assert response.json()["count"] == 2

    @pytest.mark.unit
    def test_missing_fields_is_400(self, client: TestClient):
        response = client.post("/api/generate", json={"quiz_id": "quiz-1"})
        assert response.status_code == 400
        data = response.json()
        assert "error" in data
        assert "document" in data["details"].lower()

    @pytest.mark.unit
    @pytest.mark.parametrize("count", [0, 51, "many"])
    def test_invalid_count_is_400(self, client: TestClient, test_quiz: Quiz, text_document: Document, count):
        response = client.post("/api/generate", json=_body(test_quiz, text_document, count=count))
        assert response.status_code == 400

    @pytest.mark.unit
    def test_unknown_quiz_is_404(self, client: TestClient, test_quiz: Quiz, text_document: Document):
        body = _body(test_quiz, text_document)
        body["quiz_id"] = "does-not-exist"
        response = client.post("/api/generate", json=body)
        assert response.status_code == 404
        assert response.json() == {"error": "Quiz not found"}

    @pytest.mark.integration
    def test_quota_exceeded_is_403_with_upgrade(
        self, client: TestClient, test_user: User, test_quiz: Quiz, text_document: Document, set_usage
    ):
        set_usage(test_user.id, ai_calls=50)

        response = client.post("/api/generate", json=_body(test_quiz, text_document))

        assert response.status_code == 403
        data = response.json()
        assert data["upgrade"] is True
        assert data["plan"] == "Free"
        assert data["resource_type"] == "ai_calls"
        assert data["limit"] == 50
        assert data["used"] == 50
        assert "message" in data

    @pytest.mark.integration
    def test_unsupported_document_is_400(
        self, client: TestClient, db: Session, test_user: User, test_quiz: Quiz, blob_store
    ):
        blob_store.upload("test-user-123/photo.jpg", b"\xff\xd8\xff" + b"\x00" * 64)
        db.add(Document(
            id="doc-jpg", owner_id=test_user.id, storage_path="test-user-123/photo.jpg",
            mime="image/jpeg", filename="photo.jpg",
        ))
        db.commit()

        response = client.post("/api/generate", json={
            "quiz_id": test_quiz.id, "document_id": "doc-jpg",
            "requested_question_count": 5, "user_id": test_user.id,
        })
        assert response.status_code == 400
        assert "Unsupported document format" in response.json()["error"]

    @pytest.mark.integration
    def test_malformed_output_is_500_with_no_rows(
        self, client: TestClient, db: Session, completion: FakeCompletionInvoker,
        test_quiz: Quiz, text_document: Document
    ):
        completion.response = INVALID_BATCH_RESPONSE

        response = client.post("/api/generate", json=_body(test_quiz, text_document))

        assert response.status_code == 500
        assert "error" in response.json()
        assert db.query(Question).count() == 0

    @pytest.mark.integration
    def test_completion_timeout_is_502(
        self, client: TestClient, completion: FakeCompletionInvoker, test_quiz: Quiz, text_document: Document
    ):
        completion.error = CompletionTimeout("Completion service timed out", detail="60s elapsed")

        response = client.post("/api/generate", json=_body(test_quiz, text_document))

        assert response.status_code == 502
        assert response.json()["error"] == "Completion service timed out"

    @pytest.mark.integration
    def test_details_hidden_in_production(
        self, client: TestClient, completion: FakeCompletionInvoker, test_quiz: Quiz,
        text_document: Document, monkeypatch
    ):
        monkeypatch.setenv("ENVIRONMENT", "production")
        completion.error = CompletionTimeout("Completion service timed out", detail="60s elapsed")

        response = client.post("/api/generate", json=_body(test_quiz, text_document))

        assert response.status_code == 502
        assert "details" not in response.json()

    @pytest.mark.integration
    def test_details_shown_outside_production(
        self, client: TestClient, completion: FakeCompletionInvoker, test_quiz: Quiz,
        text_document: Document, monkeypatch
    ):
        monkeypatch.setenv("ENVIRONMENT", "development")
        completion.error = CompletionTimeout("Completion service timed out", detail="60s elapsed")

        response = client.post("/api/generate", json=_body(test_quiz, text_document))

        assert response.json()["details"] == "60s elapsed"


class TestJobEndpoint:

    @pytest.mark.integration
    def test_job_status_after_generation(
        self, client: TestClient, test_user: User, test_quiz: Quiz, text_document: Document
    ):
        job_id = client.post("/api/generate", json=_body(test_quiz, text_document)).json()["job_id"]

        response = client.get(f"/api/generate/jobs/{job_id}", params={"user_id": test_user.id})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "succeeded"
        assert data["question_count"] == 5
        assert data["requested_types"] == ["mcq"]

    @pytest.mark.unit
    def test_job_of_other_user_is_404(self, client: TestClient, db: Session, test_user: User, other_user: User,
                                      test_quiz: Quiz, text_document: Document):
        job = GenerationJob(
            owner_id=test_user.id, document_id=text_document.id, quiz_id=test_quiz.id,
            requested_question_count=5, status="queued",
        )
        db.add(job)
        db.commit()

        response = client.get(f"/api/generate/jobs/{job.id}", params={"user_id": other_user.id})
        assert response.status_code == 404
