"""
Tool execution for one turn of a run.

Requested calls are checked for approval first. Calls to unknown tools, to tools that
are not enabled, or calls that an approval predicate flags are held back as pending
approvals and never run. Permitted calls run in batches of ``TOOL_BATCH_SIZE``: the calls
of one batch run concurrently and batches run one after the other, which bounds the
pressure on rate limited services. Every call is isolated, so an exception becomes the
``error`` of its own result and never affects its siblings.
"""

import asyncio
import json
import time
import traceback

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .protocol import InvokableTool
from ..context import RunContextWrapper
from ..logs import get_logger
from ..messages import ToolCall, ToolCallResponseMessage

logger = get_logger("tool")


# =============================================================================
# CONSTANTS - EXECUTION LIMITS
# =============================================================================

TOOL_BATCH_SIZE = 3

TOKEN_BUDGET_PLACEHOLDER = "[Result unavailable: the token budget for tool results has been reached]"


@dataclass
class ToolExecutionResult:
  """
  Outcome of one requested tool call.

  A call waiting for approval has ``needs_approval=True``, ``approved=False`` and no
  result. It must end up in an interruption, never be dropped.
  """

  tool_name: str
  args: Dict[str, Any]
  tool_call_id: Optional[str] = None
  result: Any = None
  error: Optional[str] = None
  duration_ms: float = 0.0
  needs_approval: bool = False
  approved: Optional[bool] = None
  approval_metadata: Dict[str, Any] = field(default_factory=dict)

  @property
  def pending(self) -> bool:
    return self.needs_approval and not self.approved

  @property
  def succeeded(self) -> bool:
    return not self.needs_approval and self.error is None


@dataclass
class TokenBudget:
  """
  Running estimate of the tokens taken by tool results in a run.

  Once reached, the budget stays reached for the rest of the run.
  """

  limit: Optional[int] = None
  used: int = 0
  reached: bool = False

  def admit(self, text: str, tokenizer: Callable[[str], int]) -> str:
    if self.limit is None:
      return text
    if self.reached:
      return TOKEN_BUDGET_PLACEHOLDER

    cost = tokenizer(text)
    if self.used + cost > self.limit:
      logger.warning(f"[TOOL←RESULT] Token budget of {self.limit} reached after {self.used} tokens")
      self.reached = True
      return TOKEN_BUDGET_PLACEHOLDER

    self.used += cost
    return text


def format_tool_output(result: ToolExecutionResult) -> str:
  """Text the model sees for a tool result."""
  if result.needs_approval and not result.approved:
    return f"Tool '{result.tool_name}' was not executed: it requires approval."
  if result.error is not None:
    return f"Tool execution failed: {result.error}"
  if isinstance(result.result, str):
    return result.result
  try:
    return json.dumps(result.result, default=str)
  except (TypeError, ValueError):
    return str(result.result)


def tool_response_message(
  result: ToolExecutionResult, budget: Optional[TokenBudget] = None, tokenizer: Optional[Callable] = None
) -> ToolCallResponseMessage:
  content = format_tool_output(result)
  if budget is not None and tokenizer is not None:
    content = budget.admit(content, tokenizer)
  return ToolCallResponseMessage(tool_call_id=result.tool_call_id, name=result.tool_name, content=content)


async def execute_tools(
  tools: Dict[str, InvokableTool],
  requested_calls: List[ToolCall],
  context_wrapper: RunContextWrapper,
  enabled: Optional[Dict[str, bool]] = None,
  hooks=None,
) -> List[ToolExecutionResult]:
  """
  Execute the tool calls requested by the model in one turn.

  Args:
    tools: The tools of the active agent, keyed by name
    requested_calls: Calls in the order the model requested them
    context_wrapper: Read access to the run, passed to every tool
    enabled: Enablement resolved for this turn; resolved here when missing
    hooks: Optional lifecycle hooks notified before and after each call

  Returns:
    One result per requested call, in request order
  """
  results: List[Optional[ToolExecutionResult]] = [None] * len(requested_calls)
  permitted = []

  for index, call in enumerate(requested_calls):
    tool = tools.get(call.name)
    try:
      args = call.parsed_arguments()
    except ValueError as e:
      logger.error(f"[TOOL←ERROR] id={call.id}, name={call.name}, invalid arguments: {e}")
      results[index] = ToolExecutionResult(call.name, {}, tool_call_id=call.id, error=f"ValueError: {e}")
      continue

    if tool is None:
      logger.warning(f"[TOOL→CALL] Unknown tool '{call.name}' requested, holding it for approval")
      results[index] = pending_result(call, args)
      continue

    is_enabled = enabled[call.name] if enabled is not None and call.name in enabled else await tool.is_enabled(context_wrapper)
    if not is_enabled or await tool.needs_approval(context_wrapper, args):
      logger.info(f"[TOOL→CALL] Tool '{call.name}' requires approval, id={call.id}")
      results[index] = pending_result(call, args, getattr(tool, "approval_metadata", None))
      continue

    permitted.append((index, call, tool, args))

  for start in range(0, len(permitted), TOOL_BATCH_SIZE):
    batch = permitted[start : start + TOOL_BATCH_SIZE]
    logger.debug(f"[TOOL→CALL] Executing batch of {len(batch)} tool calls")
    outcomes = await asyncio.gather(
      *[run_tool(tool, call, args, context_wrapper, hooks=hooks) for _, call, tool, args in batch],
      return_exceptions=True,
    )
    for (index, call, _, args), outcome in zip(batch, outcomes):
      if isinstance(outcome, BaseException):
        if not isinstance(outcome, Exception):
          raise outcome
        outcome = ToolExecutionResult(call.name, args, tool_call_id=call.id, error=f"{type(outcome).__name__}: {outcome}")
      results[index] = outcome

  return results


def pending_result(call: ToolCall, args: dict, approval_metadata: Optional[dict] = None) -> ToolExecutionResult:
  return ToolExecutionResult(
    tool_name=call.name,
    args=args,
    tool_call_id=call.id,
    needs_approval=True,
    approved=False,
    approval_metadata=dict(approval_metadata or {}),
  )


async def run_tool(
  tool: InvokableTool,
  call: ToolCall,
  args: dict,
  context_wrapper: RunContextWrapper,
  approved: Optional[bool] = None,
  hooks=None,
) -> ToolExecutionResult:
  """Execute a single call, capturing any exception as the result error."""
  logger.debug(f"[TOOL→CALL] id={call.id}, name={call.name}")
  if hooks is not None:
    await hooks.emit("tool_start", tool_name=call.name, args=args, context_wrapper=context_wrapper)

  start_time = time.time()
  result = ToolExecutionResult(call.name, args, tool_call_id=call.id, approved=approved, needs_approval=bool(approved))
  try:
    result.result = await tool.execute(args, context_wrapper)
    result.duration_ms = (time.time() - start_time) * 1000
    logger.debug(f"[TOOL←RESULT] id={call.id}, name={call.name}, elapsed={result.duration_ms:.1f}ms")
  except Exception as e:
    result.duration_ms = (time.time() - start_time) * 1000
    result.error = f"{type(e).__name__}: {e}"
    logger.error(f"[TOOL←ERROR] id={call.id}, name={call.name}, error={result.error}")
    logger.debug(f"[TOOL←ERROR] Traceback: {traceback.format_exc()}")

  if hooks is not None:
    await hooks.emit("tool_end", tool_name=call.name, result=result, context_wrapper=context_wrapper)
  return result
