from .guardrail import CustomGuardrail, Guardrail, GuardrailResult, GuardrailType, guardrail
from .length import LengthGuardrail
from .pii import PiiGuardrail, PII_PATTERNS
from .content_safety import ContentSafetyGuardrail
from .pipeline import GuardrailOutcome, run_guardrails, select_guardrails
from .feedback import build_feedback

__all__ = [
  "CustomGuardrail",
  "ContentSafetyGuardrail",
  "Guardrail",
  "GuardrailOutcome",
  "GuardrailResult",
  "GuardrailType",
  "LengthGuardrail",
  "PiiGuardrail",
  "PII_PATTERNS",
  "build_feedback",
  "guardrail",
  "run_guardrails",
  "select_guardrails",
]
