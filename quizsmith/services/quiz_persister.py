"""
Quiz persistence.

Writes a validated batch of QuestionDrafts as Question + Choice rows in a
single transaction. Either the whole batch is committed or nothing is.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizsmith.exceptions import PersistenceError
from quizsmith.models.models import Choice, Question, generate_uuid
from quizsmith.services.response_parser import CHOICE_COUNT, QuestionDraft

logger = logging.getLogger(__name__)


@dataclass
class PersistResult:
    inserted_count: int
    question_ids: List[str] = field(default_factory=list)


def _check_draft(draft: QuestionDraft, idx: int) -> List[bool]:
    """Re-check the four-choices / one-correct invariant; returns is_correct flags."""
    if len(draft.choices) != CHOICE_COUNT:
        raise PersistenceError(
            "Generated question failed validation",
            detail=f"question {idx} has {len(draft.choices)} choices",
        )
    target = draft.correct.strip()
    flags = [choice.strip() == target for choice in draft.choices]
    if sum(flags) != 1:
        raise PersistenceError(
            "Generated question failed validation",
            detail=f"question {idx} has {sum(flags)} correct choices",
        )
    return flags


class QuizPersister:
    def __init__(self, db: Session):
        self.db = db

    def persist(self, quiz_id: str, owner_id: str, drafts: Sequence[QuestionDraft]) -> PersistResult:
        """
        Save all drafts to the quiz.

        Choices keep the order the model produced them in (position 0..3).
        Any database error rolls the batch back and raises PersistenceError.
        """
        flags_per_draft = [_check_draft(draft, idx) for idx, draft in enumerate(drafts)]

        question_ids: List[str] = []
        try:
            for draft, flags in zip(drafts, flags_per_draft):
                question = Question(
                    id=generate_uuid(),
                    quiz_id=quiz_id,
                    owner_id=owner_id,
                    type="mcq",
                    text=draft.question,
                    meta={"explanation": draft.explanation} if draft.explanation is not None else None,
                )
                question.choices = [
                    Choice(
                        id=generate_uuid(),
                        text=choice_text,
                        is_correct=is_correct,
                        position=position,
                    )
                    for position, (choice_text, is_correct) in enumerate(zip(draft.choices, flags))
                ]
                self.db.add(question)
                question_ids.append(question.id)

            self.db.flush()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to persist %d questions for quiz_id=%s: %s", len(drafts), quiz_id, e, exc_info=True)
            raise PersistenceError("Failed to save questions", detail=str(e)) from e

        logger.info("Persisted %d questions for quiz_id=%s", len(question_ids), quiz_id)
        return PersistResult(inserted_count=len(question_ids), question_ids=question_ids)
