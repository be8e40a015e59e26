"""Unit tests for the guardrail engine and built-in validators."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import SystemMessage

from agentrunner.guardrails import (
    Guardrail,
    GuardrailDirection,
    GuardrailEngine,
    GuardrailOutcome,
    GuardrailResult,
    content_safety_guardrail,
    custom_guardrail,
    detect_pii,
    length_guardrail,
    measure_length,
    pii_guardrail,
    regex_guardrail,
    revision_directive,
)
from agentrunner.guardrails.validators import SafetyClassification
from agentrunner.runtime.errors import InputGuardrailRejection
from agentrunner.runtime.events import EventBus, EventType


def _check(name, passed, direction=GuardrailDirection.OUTPUT, calls=None, message="nope"):
    def validate(content):
        if calls is not None:
            calls.append(name)
        return GuardrailResult(passed=passed, message="" if passed else message)

    return Guardrail(name=name, direction=direction, validate=validate)


class TestGuardrailEngine:
    @pytest.mark.asyncio
    async def test_runs_in_order_and_stops_at_first_failure(self):
        calls = []
        guardrails = [_check("a", True, calls=calls), _check("b", False, calls=calls), _check("c", True, calls=calls)]

        outcome = await GuardrailEngine().validate(guardrails, "text", GuardrailDirection.OUTPUT)

        assert not outcome.passed
        assert outcome.guardrail_name == "b"
        assert outcome.passed_names == ["a"]
        assert calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_only_matching_direction_runs(self):
        calls = []
        guardrails = [
            _check("in", False, direction=GuardrailDirection.INPUT, calls=calls),
            _check("out", True, calls=calls),
        ]

        outcome = await GuardrailEngine().validate(guardrails, "text", GuardrailDirection.OUTPUT)

        assert outcome.passed
        assert calls == ["out"]

    @pytest.mark.asyncio
    async def test_raising_guardrail_counts_as_failure(self):
        def broken(content):
            raise ValueError("classifier offline")

        guardrail = Guardrail(name="broken", direction="output", validate=broken)

        outcome = await GuardrailEngine().validate([guardrail], "text", GuardrailDirection.OUTPUT)

        assert not outcome.passed
        assert outcome.message == "classifier offline"

    @pytest.mark.asyncio
    async def test_async_and_bool_validators(self):
        async def async_ok(content):
            return True

        guardrails = [
            Guardrail(name="async", direction=GuardrailDirection.OUTPUT, validate=async_ok),
            Guardrail(name="bool", direction=GuardrailDirection.OUTPUT, validate=lambda content: "x" in content),
        ]

        assert (await GuardrailEngine().validate(guardrails, "xyz", GuardrailDirection.OUTPUT)).passed
        assert not (await GuardrailEngine().validate(guardrails, "abc", GuardrailDirection.OUTPUT)).passed

    @pytest.mark.asyncio
    async def test_check_input_raises(self):
        guardrail = _check("topic", False, direction=GuardrailDirection.INPUT, message="off topic")

        with pytest.raises(InputGuardrailRejection) as exc_info:
            await GuardrailEngine().check_input([guardrail], "text")

        assert exc_info.value.guardrail_name == "topic"
        assert "off topic" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_publishes_guardrail_events(self):
        bus = EventBus()
        events = []
        bus.subscribe(events.append)

        await GuardrailEngine(bus).validate([_check("a", True)], "text", GuardrailDirection.OUTPUT, run_id="r")

        assert [e.type for e in events] == [EventType.GUARDRAIL_RESULT]
        assert events[0].data["guardrail"] == "a"
        assert events[0].data["passed"] is True

    def test_revision_directive(self):
        outcome_message = revision_directive(
            GuardrailOutcome(passed=False, guardrail_name="length_check", message="Too long")
        )
        assert isinstance(outcome_message, SystemMessage)
        assert "length_check" in outcome_message.content
        assert "Too long" in outcome_message.content
        assert "without requesting new information" in outcome_message.content


class TestLengthGuardrail:
    def test_measure_units(self):
        assert measure_length("hello world", "characters") == 11
        assert measure_length("hello  big\nworld", "words") == 3
        assert measure_length("abcdefghi", "tokens") == 3

    def test_unknown_unit(self):
        with pytest.raises(ValueError):
            length_guardrail(max_length=10, unit="lines")

    def test_too_long_asks_to_shorten_by_percentage(self):
        guardrail = length_guardrail(max_length=50)

        result = guardrail.validate("x" * 100)

        assert not result.passed
        assert "Shorten it by at least 50%" in result.message
        assert result.metadata["shorten_by_percent"] == 50

    def test_too_short(self):
        result = length_guardrail(min_length=3, unit="words").validate("one two")
        assert not result.passed
        assert "too short" in result.message

    def test_within_bounds(self):
        assert length_guardrail(min_length=1, max_length=10).validate("fine").passed


class TestPIIGuardrail:
    def test_detects_categories(self):
        text = "Mail jane.doe@example.com or call 555-123-4567, server 10.0.0.1"
        detected = detect_pii(text)
        assert "email" in detected
        assert "phone" in detected
        assert "ip_address" in detected

    def test_blocks_by_default(self):
        result = pii_guardrail().validate("my ssn is 123-45-6789")
        assert not result.passed
        assert "ssn" in result.metadata["detected_categories"]

    def test_warn_only(self):
        result = pii_guardrail(block=False).validate("card 4111 1111 1111 1111")
        assert result.passed
        assert result.message.startswith("Warning")

    def test_category_filter(self):
        guardrail = pii_guardrail(categories=["ssn"])
        assert guardrail.validate("write to a@b.io").passed

    def test_unknown_category(self):
        with pytest.raises(ValueError):
            pii_guardrail(categories=["passport"])


class TestRegexAndCustomGuardrails:
    def test_regex_blocks(self):
        guardrail = regex_guardrail([r"drop\s+table"], direction="input")
        assert guardrail.direction == GuardrailDirection.INPUT
        result = guardrail.validate("please DROP TABLE users")
        assert not result.passed
        assert result.metadata["matched_patterns"] == [r"drop\s+table"]
        assert guardrail.validate("select 1").passed

    def test_custom(self):
        guardrail = custom_guardrail("polite", lambda content: GuardrailResult("please" in content, "Say please"))
        assert guardrail.name == "polite"
        assert guardrail.direction == GuardrailDirection.OUTPUT
        assert not guardrail.validate("do it").passed


class TestContentSafetyGuardrail:
    def _model(self, verdict):
        model = MagicMock()
        model.with_structured_output.return_value.ainvoke = AsyncMock(return_value=verdict)
        return model

    @pytest.mark.asyncio
    async def test_unsafe_content_fails(self):
        model = self._model(SafetyClassification(is_safe=False, detected_categories=["violence"], confidence=0.9))
        guardrail = content_safety_guardrail(model)

        result = await guardrail.validate("something violent")

        assert not result.passed
        assert result.message == "Content contains: violence"
        model.with_structured_output.assert_called_once_with(SafetyClassification)

    @pytest.mark.asyncio
    async def test_low_confidence_passes(self):
        model = self._model({"is_safe": False, "detected_categories": ["harassment"], "confidence": 0.2})
        guardrail = content_safety_guardrail(model, threshold=0.5)

        result = await guardrail.validate("borderline")

        assert result.passed

    @pytest.mark.asyncio
    async def test_safe_content_passes(self):
        guardrail = content_safety_guardrail(self._model(SafetyClassification(is_safe=True)))
        assert (await guardrail.validate("hello")).passed
