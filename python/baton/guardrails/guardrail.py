import inspect

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union

from ..context import RunContextWrapper


class GuardrailType(Enum):
  INPUT = "input"
  OUTPUT = "output"


@dataclass
class GuardrailResult:
  passed: bool
  message: Optional[str] = None
  metadata: Dict[str, Any] = field(default_factory=dict)


class Guardrail(Protocol):
  name: str
  type: GuardrailType

  async def validate(self, content: str, context_wrapper: RunContextWrapper) -> GuardrailResult: ...


Validator = Callable[[str, RunContextWrapper], Union[GuardrailResult, dict, bool, Awaitable]]


class CustomGuardrail:
  """
  Guardrail backed by any function of ``(content, context_wrapper)``.

  The function may be sync or async and may return a ``GuardrailResult``, a dict with
  ``passed``/``message``/``metadata`` keys, or a plain bool.

  Example:
    def business_hours(content, context_wrapper):
      hour = datetime.now().hour
      return GuardrailResult(passed=9 <= hour <= 17, message="Service only available 9 AM - 5 PM")

    CustomGuardrail("business_hours", GuardrailType.INPUT, business_hours)
  """

  def __init__(self, name: str, type: GuardrailType | str, validate: Validator):
    self.name = name
    self.type = GuardrailType(type)
    self._validate = validate

  async def validate(self, content: str, context_wrapper: RunContextWrapper) -> GuardrailResult:
    r = self._validate(content, context_wrapper)
    if inspect.isawaitable(r):
      r = await r
    return as_result(r)


def as_result(value) -> GuardrailResult:
  if isinstance(value, GuardrailResult):
    return value
  if isinstance(value, bool):
    return GuardrailResult(passed=value)
  if isinstance(value, dict):
    return GuardrailResult(
      passed=bool(value.get("passed")), message=value.get("message"), metadata=dict(value.get("metadata") or {})
    )
  raise TypeError(f"A guardrail must return a GuardrailResult, a dict or a bool, got {type(value).__name__}")


def guardrail(type: GuardrailType | str, name: Optional[str] = None):
  """
  Decorator that turns a validation function into a guardrail.

  Example:
    @guardrail("output")
    def no_apologies(content, context_wrapper):
      return GuardrailResult(passed="sorry" not in content.lower(), message="Do not apologize")
  """

  def decorate(f) -> CustomGuardrail:
    return CustomGuardrail(name or f.__name__, type, f)

  return decorate
