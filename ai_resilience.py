"""AI Resilience Layer — Retry, Circuit Breaker, Timeouts.

resilient_llm_call() is the single path to a model provider. Each call gets a
per-attempt request timeout, tenacity retries on transient errors, and a
per-provider circuit breaker that fails fast after repeated failures.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


# ── Circuit Breaker ─────────────────────────────────────────

CLOSED, OPEN, HALF_OPEN = "closed", "open", "half_open"


@dataclass
class _ProviderState:
    failures: int = 0
    state: str = CLOSED
    opened_at: float = 0.0


class CircuitBreaker:
    """Per-provider breaker: closed -> open -> half_open -> closed.

    After ``failure_threshold`` consecutive failures the provider is skipped
    for ``recovery_timeout`` seconds; then a single trial call is let through.
    """

    def __init__(self, failure_threshold: int = 3, recovery_timeout: float = 60) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._providers: dict[str, _ProviderState] = {}
        self._lock = threading.Lock()

    def _state_for(self, provider: str) -> _ProviderState:
        return self._providers.setdefault(provider, _ProviderState())

    def record_success(self, provider: str) -> None:
        with self._lock:
            self._providers[provider] = _ProviderState()

    def record_failure(self, provider: str) -> None:
        with self._lock:
            st = self._state_for(provider)
            st.failures += 1
            if st.state == HALF_OPEN or st.failures >= self.failure_threshold:
                if st.state != OPEN:
                    logger.warning("circuit opened provider=%s failures=%d", provider, st.failures)
                st.state = OPEN
                st.opened_at = time.time()

    def is_open(self, provider: str) -> bool:
        with self._lock:
            st = self._state_for(provider)
            if st.state != OPEN:
                return False
            if time.time() - st.opened_at >= self.recovery_timeout:
                st.state = HALF_OPEN
                return False
            return True

    def get_state(self, provider: str) -> str:
        with self._lock:
            return self._state_for(provider).state

    def reset(self) -> None:
        with self._lock:
            self._providers.clear()


_circuit_breaker = CircuitBreaker()


# ── Transient error detection ───────────────────────────────

_TRANSIENT_TYPES = (ConnectionError, TimeoutError, OSError)

# google-api-core errors surface mostly through their message text
_TRANSIENT_MARKERS = (
    "429",
    "500",
    "502",
    "503",
    "504",
    "rate limit",
    "resource exhausted",
    "overloaded",
    "unavailable",
    "deadline",
    "timeout",
    "timed out",
    "connection",
)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, _TRANSIENT_TYPES):
        return True
    msg = str(exc).lower()
    return any(marker in msg for marker in _TRANSIENT_MARKERS)


class TransientLLMError(Exception):
    """A provider error worth retrying."""


# ── Provider call ───────────────────────────────────────────

def _do_call(
    provider: str,
    model: str,
    prompt: str,
    system: str,
    json_mode: bool,
    timeout: float | None,
    api_key: str,
) -> str:
    """One provider request, no retry."""
    if provider != "gemini":
        raise ValueError(f"Unknown provider: {provider}")

    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(model, system_instruction=system or None)
    response = gm.generate_content(
        prompt,
        generation_config={"response_mime_type": "application/json"} if json_mode else None,
        request_options={"timeout": timeout} if timeout else None,
    )
    return response.text


@retry(
    retry=retry_if_exception_type(TransientLLMError),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    stop=stop_after_attempt(MAX_ATTEMPTS),
    before_sleep=before_sleep_log(logger, logging.INFO),
    reraise=True,
)
def _call_with_retry(
    provider: str,
    model: str,
    prompt: str,
    system: str,
    json_mode: bool,
    timeout: float | None,
    api_key: str,
) -> str:
    try:
        return _do_call(provider, model, prompt, system, json_mode, timeout, api_key)
    except Exception as exc:
        if _is_transient(exc):
            raise TransientLLMError(str(exc)) from exc
        raise


def resilient_llm_call(
    provider: str,
    model: str,
    prompt: str,
    system: str = "",
    json_mode: bool = False,
    timeout: float | None = None,
    api_key: str = "",
) -> tuple[str, dict]:
    """Call ``provider`` with retry and circuit breaking.

    Args:
        provider: Provider name (only 'gemini' is wired up)
        model: Model name string
        prompt: The prompt text
        system: System instruction (optional)
        json_mode: Ask the provider for an application/json response
        timeout: Per-attempt request timeout in seconds
        api_key: Provider API key

    Returns:
        (response_text, {"provider", "model", "latency_ms"})

    Raises:
        RuntimeError: the circuit for ``provider`` is open.
    """
    if _circuit_breaker.is_open(provider):
        raise RuntimeError(f"Circuit breaker open for provider: {provider}")

    start = time.monotonic()
    try:
        text = _call_with_retry(provider, model, prompt, system, json_mode, timeout, api_key)
    except Exception:
        _circuit_breaker.record_failure(provider)
        raise
    _circuit_breaker.record_success(provider)

    return text, {
        "provider": provider,
        "model": model,
        "latency_ms": int((time.monotonic() - start) * 1000),
    }


def get_circuit_breaker() -> CircuitBreaker:
    return _circuit_breaker
