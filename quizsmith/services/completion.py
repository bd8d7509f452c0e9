"""
Completion service client.

`OpenAICompletionInvoker.complete(payload)` sends one chat completion and
returns the raw assistant text. No retries happen here; upstream failures
are reported to Sentry and surfaced as CompletionError / CompletionTimeout.
"""

import logging
import os
from datetime import datetime
from typing import Callable, Optional

import openai
import sentry_sdk
from openai import OpenAI

from quizsmith.exceptions import CompletionError, CompletionTimeout
from quizsmith.services.prompt_composer import PromptPayload
from quizsmith.utils.openai_client import get_openai_client

logger = logging.getLogger(__name__)

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")


class CompletionInvoker:
    """Anything that turns a PromptPayload into raw model text."""

    def complete(self, payload: PromptPayload) -> str:
        raise NotImplementedError


class OpenAICompletionInvoker(CompletionInvoker):
    def __init__(self, model: str = OPENAI_MODEL, client_factory: Callable[[], OpenAI] = get_openai_client):
        self.model = model
        self._client_factory = client_factory

    def complete(self, payload: PromptPayload) -> str:
        try:
            client = self._client_factory()
        except ValueError as e:
            # Missing API key
            raise CompletionError("Completion service is not configured", detail=str(e)) from e

        start_time = datetime.utcnow()
        try:
            response = client.chat.completions.create(model=self.model, **payload.to_request_kwargs())
        except openai.APITimeoutError as e:
            self._report(e, payload)
            logger.error("OpenAI call timed out after %.0fms", self._elapsed_ms(start_time))
            raise CompletionTimeout("Completion service timed out", detail=str(e)) from e
        except openai.APIError as e:
            self._report(e, payload)
            logger.error("OpenAI call failed: %s", str(e))
            raise CompletionError("Completion service request failed", detail=str(e)) from e

        content = self._extract_content(response)
        logger.info(
            "OpenAI call succeeded model=%s in %.0fms (%d chars)",
            self.model, self._elapsed_ms(start_time), len(content)
        )
        return content

    @staticmethod
    def _extract_content(response) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise CompletionError("Completion service returned no choices")
        content: Optional[str] = choices[0].message.content
        if not content:
            raise CompletionError("Completion service returned an empty response")
        return content

    @staticmethod
    def _elapsed_ms(start_time: datetime) -> float:
        return (datetime.utcnow() - start_time).total_seconds() * 1000

    def _report(self, error: Exception, payload: PromptPayload) -> None:
        sentry_sdk.capture_exception(error, extras={
            "model": self.model,
            "message_count": len(payload.messages),
            "requested_count": payload.requested_count,
        })
