import asyncio
import inspect
import traceback

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .guardrail import as_result, Guardrail, GuardrailType
from ..context import RunContextWrapper
from ..logs import get_logger

logger = get_logger("guardrail")


@dataclass
class GuardrailOutcome:
  """Result of one guardrail in a pipeline run. ``error`` is set when the validator raised."""

  name: str
  type: GuardrailType
  passed: bool
  message: Optional[str] = None
  metadata: Dict[str, Any] = field(default_factory=dict)
  error: Optional[str] = None


def select_guardrails(guardrails: List[Guardrail], type: GuardrailType) -> List[Guardrail]:
  return [g for g in guardrails or [] if GuardrailType(g.type) == type]


def _failed_closed(name: str, g_type: GuardrailType, error: Exception) -> GuardrailOutcome:
  return GuardrailOutcome(name, g_type, passed=False, message=f"Guardrail check failed: {error}", error=str(error))


async def _validate(guardrail: Guardrail, content: str, context_wrapper: RunContextWrapper):
  r = guardrail.validate(content, context_wrapper)
  if inspect.isawaitable(r):
    r = await r
  return r


async def run_guardrails(
  guardrails: List[Guardrail], content: str, context_wrapper: RunContextWrapper
) -> List[GuardrailOutcome]:
  """
  Run guardrails concurrently and wait for all of them.

  A guardrail that raises, or returns something other than a GuardrailResult, a dict or
  a bool, is reported as failed, never as passed.

  Args:
    guardrails: Guardrails of one type
    content: The text to validate
    context_wrapper: Read access to the run

  Returns:
    One outcome per guardrail, in the order of ``guardrails``
  """
  if not guardrails:
    return []

  results = await asyncio.gather(*[_validate(g, content, context_wrapper) for g in guardrails], return_exceptions=True)

  outcomes = []
  for g, result in zip(guardrails, results):
    g_type = GuardrailType(g.type)
    if isinstance(result, BaseException):
      if not isinstance(result, Exception):
        raise result
      logger.error(f"[GUARDRAIL] '{g.name}' raised {type(result).__name__}: {result}")
      logger.debug(
        f"[GUARDRAIL] Traceback: {''.join(traceback.format_exception(type(result), result, result.__traceback__))}"
      )
      outcomes.append(_failed_closed(g.name, g_type, result))
      continue

    try:
      result = as_result(result)
    except TypeError as e:
      logger.error(f"[GUARDRAIL] '{g.name}' returned an invalid result: {e}")
      outcomes.append(_failed_closed(g.name, g_type, e))
      continue

    passed = result.passed
    outcome = GuardrailOutcome(g.name, g_type, passed=passed, message=result.message, metadata=dict(result.metadata))
    if not passed:
      logger.info(f"[GUARDRAIL] '{g.name}' ({g_type.value}) failed: {outcome.message}")
    outcomes.append(outcome)
  return outcomes
