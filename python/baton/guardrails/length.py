import re

from typing import Optional

from .guardrail import GuardrailResult, GuardrailType
from ..context import RunContextWrapper

UNITS = ("characters", "words", "tokens")


def measure(content: str, unit: str, context_wrapper: RunContextWrapper) -> int:
  match unit:
    case "characters":
      return len(content)
    case "words":
      return len([w for w in re.split(r"\s+", content) if w])
    case "tokens":
      return context_wrapper.count_tokens(content)
    case _:
      raise ValueError(f"Unknown length unit '{unit}', expected one of: {', '.join(UNITS)}")


class LengthGuardrail:
  """
  Rejects content shorter than ``min_length`` or longer than ``max_length``.

  Length is measured in characters, words, or tokens. Tokens are counted with the active
  agent's tokenizer.
  """

  def __init__(
    self,
    type: GuardrailType | str,
    max_length: Optional[int] = None,
    min_length: Optional[int] = None,
    unit: str = "characters",
    name: str = "length_check",
  ):
    if unit not in UNITS:
      raise ValueError(f"Unknown length unit '{unit}', expected one of: {', '.join(UNITS)}")
    self.name = name
    self.type = GuardrailType(type)
    self.max_length = max_length
    self.min_length = min_length
    self.unit = unit

  async def validate(self, content: str, context_wrapper: RunContextWrapper) -> GuardrailResult:
    length = measure(content, self.unit, context_wrapper)
    metadata = {"character_length": len(content), "length": length, "unit": self.unit}

    if self.min_length is not None and length < self.min_length:
      return GuardrailResult(
        passed=False, message=f"Content too short: {length} {self.unit} (min: {self.min_length})", metadata=metadata
      )
    if self.max_length is not None and length > self.max_length:
      return GuardrailResult(
        passed=False, message=f"Content too long: {length} {self.unit} (max: {self.max_length})", metadata=metadata
      )
    return GuardrailResult(passed=True, metadata=metadata)
