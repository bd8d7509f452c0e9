"""
Model output parsing.

Completion output is semi-structured at best: models wrap JSON in code
fences, prepend prose, or pick a different top-level shape than asked for.
ResponseParser recovers the JSON payload, reconciles the accepted shapes
into one list and validates every element against QuestionDraft.

Accepted shapes:
    [ {question, choices, correct}, ... ]
    { "questions": [ {question, choices, correct}, ... ] }

Validation is all-or-nothing: one bad element rejects the batch.
"""

import json
import logging
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from quizsmith.exceptions import MalformedOutput

logger = logging.getLogger(__name__)

CHOICE_COUNT = 4


class QuestionDraft(BaseModel):
    """One validated multiple-choice question, not yet persisted."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    question: str
    choices: List[str]
    correct: str = Field(alias="correct_answer")
    explanation: Optional[Any] = None

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question text is empty")
        return v.strip()

    @field_validator("choices", mode="before")
    @classmethod
    def choices_are_four_strings(cls, v: Any) -> Any:
        if not isinstance(v, list):
            raise ValueError("choices must be a list")
        if len(v) != CHOICE_COUNT:
            raise ValueError(f"expected {CHOICE_COUNT} choices, got {len(v)}")
        if not all(isinstance(c, str) for c in v):
            raise ValueError("choices must all be strings")
        return v

    @field_validator("correct", mode="before")
    @classmethod
    def correct_is_string(cls, v: Any) -> Any:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("correct answer must be a non-empty string")
        return v

    @model_validator(mode="after")
    def correct_matches_one_choice(self) -> "QuestionDraft":
        target = self.correct.strip()
        matches = [c for c in self.choices if c.strip() == target]
        if len(matches) != 1:
            raise ValueError(
                f"correct answer must match exactly one choice, matched {len(matches)}"
            )
        return self

    @property
    def correct_index(self) -> int:
        target = self.correct.strip()
        for idx, choice in enumerate(self.choices):
            if choice.strip() == target:
                return idx
        raise ValueError("correct answer does not match any choice")


class ResponseParser:
    """Recover and validate QuestionDrafts from raw completion text."""

    def parse(self, raw: str) -> List[QuestionDraft]:
        if not raw or not raw.strip():
            raise MalformedOutput("The AI returned an empty response")

        payload = self._decode(raw)
        items = self._reconcile(payload)

        drafts: List[QuestionDraft] = []
        for idx, item in enumerate(items):
            if not isinstance(item, dict):
                raise MalformedOutput(
                    "The AI returned an invalid question format",
                    detail=f"question {idx} is not an object",
                )
            try:
                drafts.append(QuestionDraft.model_validate(item))
            except PydanticValidationError as e:
                reasons = "; ".join(err["msg"] for err in e.errors())
                logger.warning("Rejecting generated batch: question %d invalid (%s)", idx, reasons)
                raise MalformedOutput(
                    "The AI returned an invalid question format",
                    detail=f"question {idx}: {reasons}",
                ) from e

        logger.info("Parsed %d question drafts", len(drafts))
        return drafts

    @staticmethod
    def sanitize(raw: str) -> str:
        """Strip code fences and prose: keep first '[' or '{' through last ']' or '}'."""
        starts = [i for i in (raw.find("["), raw.find("{")) if i != -1]
        end = max(raw.rfind("]"), raw.rfind("}"))
        if not starts or end == -1:
            return ""
        start = min(starts)
        if end < start:
            return ""
        return raw[start:end + 1]

    def _decode(self, raw: str) -> Any:
        cleaned = self.sanitize(raw)
        if not cleaned:
            logger.debug("No JSON structure in model output: %r", raw)
            raise MalformedOutput("Failed to parse the AI response")
        try:
            return json.loads(cleaned)
        except (json.JSONDecodeError, RecursionError, ValueError) as e:
            # RecursionError: nesting deeper than the decoder can follow
            logger.debug("Undecodable model output: %r", raw)
            raise MalformedOutput("Failed to parse the AI response", detail=str(e)) from e

    @staticmethod
    def _reconcile(payload: Any) -> List[Any]:
        if isinstance(payload, list):
            items = payload
        elif isinstance(payload, dict) and isinstance(payload.get("questions"), list):
            items = payload["questions"]
        else:
            shape = type(payload).__name__
            if isinstance(payload, dict):
                shape = f"object with keys {sorted(payload.keys())}"
            raise MalformedOutput("The AI returned an invalid question format", detail=f"unexpected shape: {shape}")

        if not items:
            raise MalformedOutput("The AI returned no questions")
        return items

