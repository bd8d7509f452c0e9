"""
Prompt construction for quiz generation.

Turns extracted document text and a requested question count into chat
messages plus the sampling parameters sent to the completion service.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from quizsmith.exceptions import ValidationError

logger = logging.getLogger(__name__)

MAX_SOURCE_CHARS = 12000
DEFAULT_TEMPERATURE = 0.2

SYSTEM_PROMPT = (
    "You are a quiz generator. You write clear, unambiguous multiple-choice "
    "questions grounded strictly in the source text you are given. "
    "You must respond with valid JSON only, no markdown or explanations."
)

EXPLANATION_SCHEMA = """,
      "explanation": {{
        "correct": "why the correct choice is right",
        "incorrect": {{
          "A": "why choice A is wrong (omit the key of the correct choice)",
          "B": "...",
          "C": "...",
          "D": "..."
        }}
      }}"""

USER_PROMPT_TEMPLATE = """Generate {count} multiple-choice questions from the following text.

Each question must have exactly 4 choices (A, B, C, D) and exactly one correct answer.
The "correct" value must be copied verbatim from one of the choices.

Return a JSON object with this exact structure:
{{
  "questions": [
    {{
      "question": "question text here",
      "choices": ["option A", "option B", "option C", "option D"],
      "correct": "option B"{explanation}
    }}
  ]
}}

Text:
{text}"""


@dataclass
class PromptPayload:
    """Everything the completion service needs for one call."""
    messages: List[Dict[str, str]]
    temperature: float
    max_tokens: int
    response_format: Dict[str, str] = field(default_factory=lambda: {"type": "json_object"})
    requested_count: int = 0
    source_chars: int = 0
    truncated: bool = False

    def to_request_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for `chat.completions.create`."""
        return {
            "messages": self.messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": self.response_format,
        }


class PromptComposer:
    """
    Builds the generation prompt.

    The source text is cut to a fixed prefix of MAX_SOURCE_CHARS characters
    so identical inputs always produce identical prompts. With
    `include_explanations` each question also asks for a rationale for the
    correct answer and for each distractor.
    """

    def __init__(
        self,
        max_source_chars: int = MAX_SOURCE_CHARS,
        temperature: float = DEFAULT_TEMPERATURE,
        include_explanations: bool = True,
        tokens_per_question: int = 400,
    ):
        self.max_source_chars = max_source_chars
        self.temperature = temperature
        self.include_explanations = include_explanations
        self.tokens_per_question = tokens_per_question

    def compose(self, extracted_text: str, requested_count: int) -> PromptPayload:
        if isinstance(requested_count, bool) or not isinstance(requested_count, int) or requested_count < 1:
            raise ValidationError("requested_question_count must be a positive integer")

        source = extracted_text or ""
        truncated = len(source) > self.max_source_chars
        if truncated:
            logger.info(
                "Source text truncated from %d to %d chars",
                len(source), self.max_source_chars
            )
            source = source[:self.max_source_chars]

        user_prompt = USER_PROMPT_TEMPLATE.format(
            count=requested_count,
            explanation=EXPLANATION_SCHEMA.format() if self.include_explanations else "",
            text=source,
        )

        return PromptPayload(
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.temperature,
            max_tokens=min(16000, 500 + requested_count * self.tokens_per_question),
            requested_count=requested_count,
            source_chars=len(source),
            truncated=truncated,
        )
