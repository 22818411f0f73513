from __future__ import annotations

import logging
import time
from typing import Any, Optional, Protocol

from errors import ExternalServiceError

logger = logging.getLogger(__name__)

RATE_LIMIT_WAIT = 60.0


class LLMClient(Protocol):
    def chat(self, prompt: str, *, max_retries: int = 3) -> str: ...


class OpenAIClient:
    def __init__(self, api_key: str, model: str = "gpt-4o-mini", client: Any = None):
        if client is None:
            try:
                import openai  # type: ignore
            except Exception as exc:  # pragma: no cover - import guard
                raise RuntimeError(
                    "openai package is required. Install with `pip install openai`."
                ) from exc
            client = openai.OpenAI(api_key=api_key)

        self.client = client
        self.model = model

    def chat(self, prompt: str, *, max_retries: int = 3) -> str:
        messages = [{"role": "user", "content": prompt}]
        delay = 1.0
        last_error: Exception | None = None
        for attempt in range(max_retries):
            try:
                resp = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=0.2,
                )
                return resp.choices[0].message.content or ""
            except Exception as exc:
                last_error = exc
                if _is_rate_limit_error(exc):
                    logger.warning(
                        "OpenAI rate limit encountered (attempt %s). Waiting %.1fs",
                        attempt + 1,
                        RATE_LIMIT_WAIT,
                    )
                    time.sleep(RATE_LIMIT_WAIT)
                else:
                    logger.warning(
                        "OpenAI call failed (attempt %s): %s", attempt + 1, exc
                    )
                    time.sleep(delay)
                delay *= 2
        raise ExternalServiceError(
            f"OpenAI call failed after retries: {last_error}"
        ) from last_error


class HuggingFaceClient:
    def __init__(self, api_token: str, model: str, client: Any = None):
        if client is None:
            if not api_token:
                raise ValueError("Hugging Face token required.")
            try:
                from huggingface_hub import InferenceClient  # type: ignore
            except Exception as exc:  # pragma: no cover - import guard
                raise RuntimeError(
                    "huggingface_hub package is required. Install with `pip install huggingface_hub`."
                ) from exc
            client = InferenceClient(model=model, token=api_token)

        self.client = client
        self.model = model

    def chat(self, prompt: str, *, max_retries: int = 3) -> str:
        delay = 1.0
        last_error: Exception | None = None
        for attempt in range(max_retries):
            try:
                return self.client.text_generation(
                    prompt,
                    max_new_tokens=1024,
                    temperature=0.2,
                    do_sample=False,
                    return_full_text=False,
                )
            except Exception as exc:
                last_error = exc
                if _is_rate_limit_error(exc):
                    logger.warning(
                        "Hugging Face rate limit encountered (attempt %s). Waiting %.1fs",
                        attempt + 1,
                        RATE_LIMIT_WAIT / 2,
                    )
                    time.sleep(RATE_LIMIT_WAIT / 2)
                else:
                    logger.warning(
                        "Hugging Face call failed (attempt %s): %s", attempt + 1, exc
                    )
                    time.sleep(delay)
                delay *= 2
        raise ExternalServiceError(
            f"Hugging Face call failed after retries: {last_error}"
        ) from last_error


class UnconfiguredClient:
    """Stands in when no API key is configured so the rest of the app still serves."""

    def __init__(self, reason: str):
        self.reason = reason

    def chat(self, prompt: str, *, max_retries: int = 3) -> str:
        raise ExternalServiceError(f"AI API key not configured: {self.reason}")


def build_client(provider: str, api_key: Optional[str], model: str) -> LLMClient:
    normalized = provider.strip().lower()
    if normalized in {"openai", "open ai"}:
        if not api_key:
            raise ValueError("OpenAI API key required.")
        return OpenAIClient(api_key=api_key, model=model)
    if normalized in {"huggingface", "hugging face", "hugging face (inference api)"}:
        return HuggingFaceClient(api_token=api_key or "", model=model)
    raise ValueError(f"Unknown provider: {provider}")


def _is_rate_limit_error(exc: Exception) -> bool:
    msg = str(exc).lower()
    if "rate limit" in msg or "rate_limit" in msg:
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    return False
