"""
Tests for generator.py - per-section generation with retry and fallback.
"""
import asyncio
from unittest.mock import patch

from screener.services.generator import generate_section
from screener.services.progress import ProgressStatus
from screener.services.sections import NOT_VERIFIED, SECTIONS_BY_KEY, thaw

from tests.fixtures.report_fixtures import SAMPLE_USAGE, always_fail, grounded


AML = SECTIONS_BY_KEY["aml_risk_assessment"]
MARKET = SECTIONS_BY_KEY["market_presence"]


class _Flaky:
    """Fails `failures` times, then returns `response`."""

    def __init__(self, failures, response):
        self.failures = failures
        self.response = response
        self.calls = 0

    async def __call__(self, prompt):
        self.calls += 1
        if self.calls <= self.failures:
            raise TimeoutError(f"attempt {self.calls} timed out")
        return self.response


def _run(definition, call, **kwargs):
    events = []
    result = asyncio.run(
        generate_section(
            definition,
            "Acme Ltd",
            call=call,
            on_progress=lambda key, status: events.append((key, status)),
            backoff_seconds=0,
            **kwargs,
        )
    )
    return result, events


class TestRetryAndFallback:

    def test_always_failing_call_returns_default(self):
        result, events = _run(AML, always_fail, max_attempts=3)

        assert result.data == thaw(AML.default)
        assert result.status == ProgressStatus.ERROR
        assert result.fell_back
        assert result.attempts == 3
        assert events == [("aml_risk_assessment", ProgressStatus.ERROR)]

    def test_fail_twice_then_succeed_yields_parsed_value(self):
        call = _Flaky(2, grounded('{"riskLevel": "High", "summary": "s", "redFlags": ["x"]}'))

        result, events = _run(AML, call, max_attempts=3)

        assert call.calls == 3
        assert result.status == ProgressStatus.COMPLETE
        assert not result.fell_back
        assert result.attempts == 3
        assert result.data == {"riskLevel": "High", "summary": "s", "redFlags": ["x"]}
        assert events == [("aml_risk_assessment", ProgressStatus.COMPLETE)]

    def test_attempts_are_bounded(self):
        call = _Flaky(5, grounded("{}"))

        result, _ = _run(AML, call, max_attempts=2)

        assert call.calls == 2
        assert result.fell_back

    def test_malformed_json_is_not_retried(self):
        call = _Flaky(0, grounded("Sorry, I cannot help with that.", usage=SAMPLE_USAGE))

        result, events = _run(AML, call, max_attempts=3)

        assert call.calls == 1
        assert result.status == ProgressStatus.ERROR
        assert result.fell_back
        assert result.data == thaw(AML.default)
        # The request itself succeeded, so its usage still counts
        assert result.usage == SAMPLE_USAGE
        assert events == [("aml_risk_assessment", ProgressStatus.ERROR)]


class TestTextSections:

    def test_text_is_wrapped(self):
        call = _Flaky(0, grounded("Acme sells anvils.", web=[("Acme", "https://acme.example")]))

        result, _ = _run(MARKET, call)

        assert result.status == ProgressStatus.COMPLETE
        assert result.data == {"text": "Acme sells anvils."}
        assert [s.uri for s in result.sources.web] == ["https://acme.example"]

    def test_empty_text_falls_back(self):
        result, _ = _run(MARKET, _Flaky(0, grounded("")))

        assert result.status == ProgressStatus.ERROR
        assert result.data == {"text": NOT_VERIFIED}


class TestProgressCallback:

    def test_broken_callback_does_not_lose_result(self):
        def broken(key, status):
            raise RuntimeError("sink closed")

        result = asyncio.run(
            generate_section(
                MARKET,
                "Acme Ltd",
                call=_Flaky(0, grounded("text")),
                on_progress=broken,
                backoff_seconds=0,
            )
        )
        assert result.status == ProgressStatus.COMPLETE


class TestBackoff:

    def test_waits_grow_linearly_between_attempts(self):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        with patch("asyncio.sleep", new=fake_sleep):
            result = asyncio.run(
                generate_section(AML, "Acme Ltd", call=always_fail, max_attempts=3, backoff_seconds=2.0)
            )

        assert result.fell_back
        assert sleeps == [2.0, 4.0]
