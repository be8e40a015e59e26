"""Built-in guardrails.

Factories returning Guardrail instances:
- length_guardrail: character / word / approximate token bounds
- pii_guardrail: regex detection of emails, phone numbers, SSNs, cards, IPs
- regex_guardrail: blocks content matching any of a set of patterns
- custom_guardrail: wraps a user validate function
- content_safety_guardrail: classification through a LangChain chat model
"""

from __future__ import annotations

import logging
import math
import re
from typing import Dict, Iterable, List, Optional, Pattern, Union

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from .base import Guardrail, GuardrailDirection, GuardrailResult, GuardrailValidate

LOGGER = logging.getLogger(__name__)

PII_PATTERNS: Dict[str, Pattern[str]] = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "phone": re.compile(r"\b(\+\d{1,3}[-.]?)?\(?\d{3}\)?[-.]?\d{3}[-.]?\d{4}\b"),
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "credit_card": re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"),
    "ip_address": re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"),
}

LENGTH_UNITS = ("characters", "words", "tokens")

DEFAULT_SAFETY_CATEGORIES = ["hate speech", "violence", "sexual content", "harassment", "self-harm"]


def measure_length(content: str, unit: str = "characters") -> int:
    """Measure content in the given unit. Tokens are estimated at four characters each."""
    if unit == "characters":
        return len(content)
    if unit == "words":
        return len(content.split())
    if unit == "tokens":
        return math.ceil(len(content) / 4)
    raise ValueError(f"Unknown length unit: {unit}")


def length_guardrail(
    direction: Union[GuardrailDirection, str] = GuardrailDirection.OUTPUT,
    *,
    min_length: Optional[int] = None,
    max_length: Optional[int] = None,
    unit: str = "characters",
    name: str = "length_check",
) -> Guardrail:
    """Reject content shorter than min_length or longer than max_length."""
    if unit not in LENGTH_UNITS:
        raise ValueError(f"Unknown length unit: {unit}, expected one of {LENGTH_UNITS}")

    def _validate(content: str) -> GuardrailResult:
        length = measure_length(content, unit)
        metadata = {"length": length, "unit": unit}

        if min_length is not None and length < min_length:
            return GuardrailResult(
                passed=False,
                message=f"Content too short: {length} {unit} (min: {min_length}). Expand it.",
                metadata=metadata,
            )
        if max_length is not None and length > max_length:
            excess = math.ceil((length - max_length) * 100 / length)
            return GuardrailResult(
                passed=False,
                message=f"Content too long: {length} {unit} (max: {max_length}). Shorten it by at least {excess}%.",
                metadata={**metadata, "shorten_by_percent": excess},
            )
        return GuardrailResult(passed=True, metadata=metadata)

    return Guardrail(name=name, direction=GuardrailDirection(direction), validate=_validate)


def detect_pii(content: str, categories: Optional[Iterable[str]] = None) -> List[str]:
    selected = set(categories) if categories is not None else None
    return [
        category
        for category, pattern in PII_PATTERNS.items()
        if (selected is None or category in selected) and pattern.search(content)
    ]


def pii_guardrail(
    direction: Union[GuardrailDirection, str] = GuardrailDirection.OUTPUT,
    *,
    block: bool = True,
    categories: Optional[Iterable[str]] = None,
    name: str = "pii_detection",
) -> Guardrail:
    """Detect personal data. With ``block=False`` detections only produce a warning."""
    categories = list(categories) if categories is not None else None
    if categories is not None:
        unknown = set(categories) - set(PII_PATTERNS)
        if unknown:
            raise ValueError(f"Unknown PII categories: {sorted(unknown)}")

    def _validate(content: str) -> GuardrailResult:
        detected = detect_pii(content, categories)
        if not detected:
            return GuardrailResult(passed=True)
        metadata = {"detected_categories": detected}
        if block:
            return GuardrailResult(
                passed=False,
                message=f"PII detected: {', '.join(detected)}. Remove or redact it.",
                metadata=metadata,
            )
        return GuardrailResult(passed=True, message=f"Warning: PII detected: {', '.join(detected)}", metadata=metadata)

    return Guardrail(name=name, direction=GuardrailDirection(direction), validate=_validate)


def regex_guardrail(
    patterns: Iterable[Union[str, Pattern[str]]],
    direction: Union[GuardrailDirection, str] = GuardrailDirection.OUTPUT,
    *,
    name: str = "blocked_patterns",
    message: Optional[str] = None,
    flags: int = re.IGNORECASE,
) -> Guardrail:
    """Reject content matching any of the given patterns."""
    compiled = [p if isinstance(p, re.Pattern) else re.compile(p, flags) for p in patterns]

    def _validate(content: str) -> GuardrailResult:
        matched = [p.pattern for p in compiled if p.search(content)]
        if not matched:
            return GuardrailResult(passed=True)
        return GuardrailResult(
            passed=False,
            message=message or f"Content matches blocked pattern(s): {', '.join(matched)}",
            metadata={"matched_patterns": matched},
        )

    return Guardrail(name=name, direction=GuardrailDirection(direction), validate=_validate)


def custom_guardrail(
    name: str,
    validate: GuardrailValidate,
    direction: Union[GuardrailDirection, str] = GuardrailDirection.OUTPUT,
) -> Guardrail:
    return Guardrail(name=name, direction=GuardrailDirection(direction), validate=validate)


class SafetyClassification(BaseModel):
    """Content moderation verdict."""

    is_safe: bool = Field(description="True when the text contains none of the listed categories")
    detected_categories: List[str] = Field(default_factory=list, description="Categories found in the text")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


def content_safety_guardrail(
    chat_model: BaseChatModel,
    direction: Union[GuardrailDirection, str] = GuardrailDirection.INPUT,
    *,
    categories: Optional[Iterable[str]] = None,
    threshold: float = 0.0,
    name: str = "content_safety",
) -> Guardrail:
    """Classify content with a chat model and reject unsafe text.

    Detections below ``threshold`` confidence are let through. Classifier
    errors propagate and count as a failed check.
    """
    categories = list(categories or DEFAULT_SAFETY_CATEGORIES)
    classifier = chat_model.with_structured_output(SafetyClassification)
    system_prompt = (
        "You are a content moderation system. Analyze the following text and determine "
        f"if it contains any of these categories: {', '.join(categories)}."
    )

    async def _validate(content: str) -> GuardrailResult:
        verdict = await classifier.ainvoke([SystemMessage(content=system_prompt), HumanMessage(content=content)])
        if isinstance(verdict, dict):
            verdict = SafetyClassification.model_validate(verdict)

        if verdict.is_safe or verdict.confidence < threshold:
            return GuardrailResult(passed=True, metadata=verdict.model_dump())

        found = ", ".join(verdict.detected_categories) or "unsafe content"
        return GuardrailResult(passed=False, message=f"Content contains: {found}", metadata=verdict.model_dump())

    return Guardrail(name=name, direction=GuardrailDirection(direction), validate=_validate)
