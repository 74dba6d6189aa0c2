from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import lru_cache
import logging
from threading import BoundedSemaphore
from typing import Any

import openai
from openai import OpenAI

from ..core.config import Settings, get_settings
from ..core.errors import UpstreamError

logger = logging.getLogger(__name__)

_llm_semaphore: BoundedSemaphore | None = None


def _get_semaphore() -> BoundedSemaphore:
    """
    Lazy-initialised global semaphore for limiting concurrent completion calls.
    """
    global _llm_semaphore
    if _llm_semaphore is None:
        settings = get_settings()
        _llm_semaphore = BoundedSemaphore(settings.LLM_MAX_CONCURRENCY)
    return _llm_semaphore


@contextmanager
def limit_llm_concurrency():
    """
    Simple context manager to bound concurrent calls to the LLM provider.

    Usage:

        with limit_llm_concurrency():
            client.chat.completions.create(...)
    """
    sem = _get_semaphore()
    sem.acquire()
    try:
        yield
    finally:
        sem.release()


@dataclass
class CompletionResult:
    text: str
    model: str
    usage: dict[str, Any] = field(default_factory=dict)


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class CompletionClient:
    """
    Single text-completion call against an OpenAI-compatible chat endpoint.

    Sampling parameters are fixed per process (low randomness, no
    streaming). Any failure is raised as a generic `UpstreamError`; the
    provider's own error text is logged here and never leaves this class.
    """

    def __init__(self, client: OpenAI, settings: Settings):
        self._client = client
        self._settings = settings

    def complete(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
    ) -> CompletionResult:
        model_name = model or self._settings.LLM_MODEL
        try:
            with limit_llm_concurrency():
                resp = self._client.chat.completions.create(
                    model=model_name,
                    messages=messages,
                    temperature=self._settings.LLM_TEMPERATURE,
                    top_p=self._settings.LLM_TOP_P,
                    stream=False,
                )
        except openai.APIConnectionError as e:
            # Includes APITimeoutError
            logger.error(
                "Completion endpoint unreachable: %s", e,
                extra={"model": model_name, "step": "completion"},
            )
            raise UpstreamError(retryable=True) from e
        except openai.APIStatusError as e:
            logger.error(
                "Completion endpoint returned %s: %s", e.status_code, e.message,
                extra={"model": model_name, "step": "completion"},
            )
            raise UpstreamError(retryable=_is_retryable_status(e.status_code)) from e
        except openai.OpenAIError as e:
            logger.error(
                "Completion call failed: %s", e,
                extra={"model": model_name, "step": "completion"},
            )
            raise UpstreamError() from e

        if not resp.choices:
            logger.error("Completion response had no choices", extra={"model": model_name, "step": "completion"})
            raise UpstreamError(retryable=True)

        text = (resp.choices[0].message.content or "").strip()
        if not text:
            logger.error("Completion response was empty", extra={"model": model_name, "step": "completion"})
            raise UpstreamError(retryable=True)

        usage = resp.usage.model_dump() if resp.usage is not None else {}
        return CompletionResult(text=text, model=resp.model or model_name, usage=usage)


@lru_cache(maxsize=1)
def get_completion_client() -> CompletionClient:
    """
    Centralised factory for the completion client used across the app.

    Requests go to LLM_BASE_URL (Perplexity by default) with the bearer key
    from PERPLEXITY_API_KEY. SDK-level retries are disabled; callers see one
    attempt and an explicit timeout.

    This is cached so all callers in a process share a single client instance.
    """
    settings = get_settings()

    if not settings.PERPLEXITY_API_KEY:
        raise RuntimeError("No LLM API key configured. Set PERPLEXITY_API_KEY.")

    client = OpenAI(
        base_url=settings.LLM_BASE_URL,
        api_key=settings.PERPLEXITY_API_KEY.strip(),
        timeout=settings.LLM_TIMEOUT_SECONDS,
        max_retries=0,
    )
    return CompletionClient(client, settings)


class LazyCompletionClient:
    """
    Resolves the shared client on the first call instead of at request wiring.

    A misconfigured endpoint (no API key) then fails only the requests that
    actually reach the model, after their input has been validated.
    """

    def __init__(self, factory=get_completion_client):
        self._factory = factory

    def complete(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
    ) -> CompletionResult:
        return self._factory().complete(messages, model)
