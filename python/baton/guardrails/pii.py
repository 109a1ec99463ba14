import re

from typing import List, Optional

from .guardrail import GuardrailResult, GuardrailType
from ..context import RunContextWrapper

PII_PATTERNS = {
  "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
  "phone": re.compile(r"(?<![\w-])(\+\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.]?\d{4}\b"),
  "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
  "credit_card": re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"),
  "ip_address": re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"),
}


class PiiGuardrail:
  """
  Detects personally identifiable information with regular expressions.

  With ``block=False`` detections only produce a warning message and the check passes.
  """

  def __init__(
    self,
    type: GuardrailType | str,
    categories: Optional[List[str]] = None,
    block: bool = True,
    name: str = "pii_detection",
  ):
    unknown = set(categories or []) - set(PII_PATTERNS)
    if unknown:
      raise ValueError(f"Unknown PII categories: {', '.join(sorted(unknown))}")
    self.name = name
    self.type = GuardrailType(type)
    self.categories = categories
    self.block = block

  def detect(self, content: str) -> List[str]:
    return [
      category
      for category, pattern in PII_PATTERNS.items()
      if (self.categories is None or category in self.categories) and pattern.search(content)
    ]

  async def validate(self, content: str, context_wrapper: RunContextWrapper) -> GuardrailResult:
    detected = self.detect(content)
    if not detected:
      return GuardrailResult(passed=True)

    metadata = {"detected_categories": detected}
    if self.block:
      return GuardrailResult(passed=False, message=f"PII detected: {', '.join(detected)}", metadata=metadata)
    return GuardrailResult(passed=True, message=f"Warning: PII detected: {', '.join(detected)}", metadata=metadata)
