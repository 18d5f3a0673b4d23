"""Content Generator — the capability behind every generated lesson and quiz.

The workflows only see ``ContentGenerator.generate(prompt, output_shape)``.
Any provider error, timeout, open circuit, unparseable JSON or shape mismatch
surfaces as ``GenerationFailure`` so the caller can apply its fallback.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

from flask import current_app

from ai_resilience import resilient_llm_call
from errors import GenerationFailure

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an adaptive tutor for school students. "
    "Keep language clear and age-appropriate."
)


class ContentGenerator(Protocol):
    def generate(self, prompt: str, output_shape: dict | None = None) -> Any:
        """Return parsed JSON for ``output_shape`` or text when it is None."""
        ...


def _extract_json_block(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        pass
    # Models sometimes wrap JSON in prose or fences
    match = re.search(r"\{[\s\S]*\}", text or "")
    if match:
        try:
            return json.loads(match.group(0))
        except ValueError:
            pass
    raise GenerationFailure("Failed to parse JSON from model output")


def _shape_prompt(prompt: str, output_shape: dict) -> str:
    return (
        f"{prompt.strip()}\n\n"
        "Output STRICTLY JSON, no markdown, no commentary, matching this shape:\n"
        f"{json.dumps(output_shape, indent=2)}"
    )


class GeminiContentGenerator:
    """ContentGenerator backed by Gemini through the resilience layer."""

    PROVIDER = "gemini"

    def __init__(self, api_key: str, model: str, timeout: float) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def generate(self, prompt: str, output_shape: dict | None = None) -> Any:
        if not self.api_key:
            raise GenerationFailure("GOOGLE_API_KEY is not configured")

        json_mode = output_shape is not None
        full_prompt = _shape_prompt(prompt, output_shape) if json_mode else prompt
        try:
            text, meta = resilient_llm_call(
                self.PROVIDER,
                self.model,
                full_prompt,
                system=SYSTEM_PROMPT,
                json_mode=json_mode,
                timeout=self.timeout,
                api_key=self.api_key,
            )
        except Exception as exc:
            raise GenerationFailure(f"{self.PROVIDER} call failed: {exc}") from exc

        logger.debug("generation ok model=%s latency_ms=%s", self.model, meta.get("latency_ms"))

        if not json_mode:
            text = (text or "").strip()
            if not text:
                raise GenerationFailure("Empty response")
            return text

        data = _extract_json_block(text)
        if not isinstance(data, dict):
            raise GenerationFailure("Expected a JSON object")
        return data


def init_generator(app) -> None:
    """Install the app's ContentGenerator unless the config supplies one."""
    generator = app.config.get("CONTENT_GENERATOR")
    if generator is None:
        generator = GeminiContentGenerator(
            api_key=app.config.get("GOOGLE_API_KEY", ""),
            model=app.config.get("GEMINI_MODEL", "gemini-2.5-flash"),
            timeout=app.config.get("GENERATION_TIMEOUT_SECONDS", 30),
        )
    app.extensions["content_generator"] = generator


def get_generator() -> ContentGenerator:
    return current_app.extensions["content_generator"]
