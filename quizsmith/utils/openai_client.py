"""
OpenAI client used by the completion invoker.

Built on first use so the API, the usage endpoints and the test suite can
start without OPENAI_API_KEY. One client is shared process-wide.
"""

import os
from typing import Optional

import httpx
from openai import OpenAI

OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))
OPENAI_CONNECT_TIMEOUT_SECONDS = 10.0
# Zero keeps a failed generation to exactly one model call
OPENAI_MAX_RETRIES = int(os.getenv("OPENAI_MAX_RETRIES", "0"))

DEFAULT_TIMEOUT = httpx.Timeout(OPENAI_TIMEOUT_SECONDS, connect=OPENAI_CONNECT_TIMEOUT_SECONDS)

_client: Optional[OpenAI] = None


def get_openai_client() -> OpenAI:
    """
    Shared OpenAI client for quiz generation.

    Raises:
        ValueError: If OPENAI_API_KEY is not set; the invoker reports this
            as an unconfigured completion service.
    """
    global _client

    if _client is not None:
        return _client

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ValueError("OPENAI_API_KEY is not set; quiz generation is unavailable.")

    _client = OpenAI(api_key=api_key, timeout=DEFAULT_TIMEOUT, max_retries=OPENAI_MAX_RETRIES)
    return _client


def reset_client() -> None:
    global _client
    _client = None
