"""Tests for the AI resilience layer and the Gemini content generator."""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest

from ai_resilience import (
    CircuitBreaker,
    TransientLLMError,
    _call_with_retry,
    _is_transient,
    get_circuit_breaker,
    resilient_llm_call,
)
from content_generator import GeminiContentGenerator, _extract_json_block
from errors import GenerationFailure


# ── CircuitBreaker Tests ────────────────────────────────────


class TestCircuitBreaker:
    def test_starts_closed(self):
        cb = CircuitBreaker()
        assert not cb.is_open("test_provider")
        assert cb.get_state("test_provider") == "closed"

    def test_opens_after_threshold_failures(self):
        cb = CircuitBreaker()
        for _ in range(cb.failure_threshold):
            cb.record_failure("bad_provider")
        assert cb.is_open("bad_provider")
        assert cb.get_state("bad_provider") == "open"

    def test_success_resets(self):
        cb = CircuitBreaker()
        cb.record_failure("p1")
        cb.record_failure("p1")
        cb.record_success("p1")
        assert not cb.is_open("p1")
        assert cb.get_state("p1") == "closed"

    def test_recovery_timeout(self):
        cb = CircuitBreaker()
        cb.recovery_timeout = 0.01  # 10ms for test
        for _ in range(cb.failure_threshold):
            cb.record_failure("recover_provider")
        assert cb.is_open("recover_provider")
        time.sleep(0.02)
        assert not cb.is_open("recover_provider")  # half_open
        assert cb.get_state("recover_provider") == "half_open"

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=0.01)
        for _ in range(3):
            cb.record_failure("p")
        time.sleep(0.02)
        assert not cb.is_open("p")
        cb.record_failure("p")
        assert cb.get_state("p") == "open"

    def test_reset(self):
        cb = CircuitBreaker()
        for _ in range(cb.failure_threshold):
            cb.record_failure("gemini")
        cb.reset()
        assert cb.get_state("gemini") == "closed"


# ── Transient detection & retry ─────────────────────────────


class TestRetry:
    @pytest.mark.parametrize("exc,expected", [
        (TimeoutError(), True),
        (ConnectionError(), True),
        (Exception("429 Resource exhausted"), True),
        (Exception("Deadline Exceeded"), True),
        (ValueError("API key not valid"), False),
    ])
    def test_is_transient(self, exc, expected):
        assert _is_transient(exc) is expected

    @patch("tenacity.nap.time.sleep")
    @patch("ai_resilience._do_call")
    def test_transient_then_success(self, mock_call, _sleep):
        mock_call.side_effect = [TimeoutError("slow"), "ok"]
        assert _call_with_retry("gemini", "m", "p", "", False, 5, "k") == "ok"
        assert mock_call.call_count == 2

    @patch("tenacity.nap.time.sleep")
    @patch("ai_resilience._do_call")
    def test_gives_up_after_three_attempts(self, mock_call, _sleep):
        mock_call.side_effect = TimeoutError("slow")
        with pytest.raises(TransientLLMError):
            _call_with_retry("gemini", "m", "p", "", False, 5, "k")
        assert mock_call.call_count == 3

    @patch("ai_resilience._do_call")
    def test_non_transient_not_retried(self, mock_call):
        mock_call.side_effect = ValueError("bad request")
        with pytest.raises(ValueError):
            _call_with_retry("gemini", "m", "p", "", False, 5, "k")
        assert mock_call.call_count == 1


# ── resilient_llm_call Tests ────────────────────────────────


class TestResilientLLMCall:
    @patch("ai_resilience._call_with_retry")
    def test_basic_call(self, mock_retry):
        mock_retry.return_value = "LLM says hello"

        text, meta = resilient_llm_call("gemini", "gemini-2.5-flash", "Hello", timeout=7)
        assert text == "LLM says hello"
        assert meta["provider"] == "gemini"
        assert meta["model"] == "gemini-2.5-flash"
        assert meta["latency_ms"] >= 0
        assert mock_retry.call_args[0][5] == 7

    def test_circuit_breaker_blocks_call(self):
        cb = get_circuit_breaker()
        for _ in range(cb.failure_threshold):
            cb.record_failure("blocked_provider")

        with pytest.raises(RuntimeError, match="Circuit breaker open"):
            resilient_llm_call("blocked_provider", "model", "prompt")

    @patch("ai_resilience._call_with_retry")
    def test_failure_records_to_circuit_breaker(self, mock_retry):
        mock_retry.side_effect = ValueError("Non-transient error")
        cb = get_circuit_breaker()

        with pytest.raises(ValueError):
            resilient_llm_call("fail_test_provider", "model", "prompt")

        assert cb.get_state("fail_test_provider") == "closed"  # only 1 failure

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            resilient_llm_call("nobody", "model", "prompt")


# ── GeminiContentGenerator Tests ────────────────────────────


class TestGeminiContentGenerator:
    def test_missing_key_is_failure(self):
        gen = GeminiContentGenerator(api_key="", model="m", timeout=5)
        with pytest.raises(GenerationFailure):
            gen.generate("prompt", {"a": "string"})

    @patch("content_generator.resilient_llm_call")
    def test_json_mode(self, mock_call):
        mock_call.return_value = ('```json\n{"interests": ["Maps"]}\n```', {"latency_ms": 3})
        gen = GeminiContentGenerator(api_key="k", model="m", timeout=5)
        assert gen.generate("prompt", {"interests": ["string"]}) == {"interests": ["Maps"]}
        kwargs = mock_call.call_args.kwargs
        assert kwargs["json_mode"] is True
        assert kwargs["timeout"] == 5
        assert '"interests"' in mock_call.call_args.args[2]

    @patch("content_generator.resilient_llm_call")
    def test_text_mode(self, mock_call):
        mock_call.return_value = ("  Group work helps.  ", {})
        gen = GeminiContentGenerator(api_key="k", model="m", timeout=5)
        assert gen.generate("prompt") == "Group work helps."
        assert mock_call.call_args.kwargs["json_mode"] is False

    @pytest.mark.parametrize("reply", ["not json at all", "[1, 2]", ""])
    @patch("content_generator.resilient_llm_call")
    def test_unusable_json(self, mock_call, reply):
        mock_call.return_value = (reply, {})
        gen = GeminiContentGenerator(api_key="k", model="m", timeout=5)
        with pytest.raises(GenerationFailure):
            gen.generate("prompt", {"a": "string"})

    @patch("content_generator.resilient_llm_call")
    def test_provider_error_wrapped(self, mock_call):
        mock_call.side_effect = RuntimeError("Circuit breaker open for provider: gemini")
        gen = GeminiContentGenerator(api_key="k", model="m", timeout=5)
        with pytest.raises(GenerationFailure):
            gen.generate("prompt", {"a": "string"})

    def test_extract_json_block(self):
        assert _extract_json_block('Sure! {"a": 1} Hope that helps') == {"a": 1}
        with pytest.raises(GenerationFailure):
            _extract_json_block("nothing here")

    @patch("ai_resilience._do_call")
    def test_end_to_end_with_provider_mock(self, mock_do_call):
        mock_do_call.return_value = '{"isCorrect": true}'
        gen = GeminiContentGenerator(api_key="k", model="gemini-2.5-flash", timeout=5)
        assert gen.generate("prompt", {"isCorrect": "boolean"}) == {"isCorrect": True}
        assert get_circuit_breaker().get_state("gemini") == "closed"
        assert isinstance(mock_do_call.call_args.args[4], bool)
