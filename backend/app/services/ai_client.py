"""Text-generation collaborator backed by the OpenAI chat completions API."""
from __future__ import annotations

import logging
from functools import lru_cache
from time import perf_counter
from typing import Optional

import openai

from app.core.config import settings
from app.observability.metrics import log_metric
from app.observability.tracing import trace

logger = logging.getLogger(__name__)

SUMMARY_FALLBACK = "Let's make today a great one!"
SYSTEM_PROMPT = "You are Aura, a friendly and concise personal planning assistant."


class LLMError(RuntimeError):
    """Raised when the language model cannot produce a reply."""


@lru_cache
def get_openai_client() -> Optional[openai.OpenAI]:
    api_key = settings.openai_api_key
    if not api_key:
        return None
    return openai.OpenAI(api_key=api_key, timeout=settings.llm_timeout_seconds, max_retries=1)


def generate_text(prompt: str, *, purpose: str = "chat") -> str:
    """Send ``prompt`` to the model and return its text reply."""
    client = get_openai_client()
    if client is None:
        raise LLMError("OPENAI_API_KEY is not configured")

    start = perf_counter()
    with trace(
        f"llm.{purpose}",
        metadata={"model": settings.openai_model, "prompt_length": len(prompt)},
    ) as span:
        try:
            completion = client.chat.completions.create(
                model=settings.openai_model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
        except openai.OpenAIError as exc:
            log_metric("llm.error", 1, metadata={"purpose": purpose})
            raise LLMError(str(exc)) from exc
        content = (completion.choices[0].message.content or "").strip()
        if span:
            span.update(output={"text": content[:500]})

    log_metric("llm.latency_ms", (perf_counter() - start) * 1000, metadata={"purpose": purpose})
    if not content:
        raise LLMError("model returned an empty reply")
    return content


def generate_plan_summary(title: str) -> str:
    prompt = (
        f'The title of my daily plan is "{title}". Write one short, upbeat sentence '
        "that summarises it and motivates me for the day."
    )
    try:
        return generate_text(prompt, purpose="plan_summary")
    except LLMError as exc:
        logger.info("Plan summary generation failed, using fallback: %s", exc)
        return SUMMARY_FALLBACK


def generate_reminder_message(description: str, task_time: str) -> str:
    """Return push copy for an upcoming task; raises LLMError if the model call fails."""
    if get_openai_client() is None:
        return f'Heads up! "{description}" starts at {task_time}. You\'ve got this.'
    prompt = (
        "Write a short, creative and encouraging push notification reminding me to do "
        f'"{description}", which is scheduled for {task_time}. Keep it under 120 characters.'
    )
    return generate_text(prompt, purpose="reminder")
