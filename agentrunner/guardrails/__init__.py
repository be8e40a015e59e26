"""Input and output guardrails."""

from .base import Guardrail, GuardrailDirection, GuardrailResult
from .engine import GuardrailEngine, GuardrailOutcome, revision_directive
from .validators import (
    PII_PATTERNS,
    content_safety_guardrail,
    custom_guardrail,
    detect_pii,
    length_guardrail,
    measure_length,
    pii_guardrail,
    regex_guardrail,
)

__all__ = [
    "Guardrail",
    "GuardrailDirection",
    "GuardrailResult",
    "GuardrailEngine",
    "GuardrailOutcome",
    "revision_directive",
    "PII_PATTERNS",
    "content_safety_guardrail",
    "custom_guardrail",
    "detect_pii",
    "length_guardrail",
    "measure_length",
    "pii_guardrail",
    "regex_guardrail",
]
