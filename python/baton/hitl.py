"""
Human-in-the-loop helpers.

A run pauses when a tool call needs approval: the result has no final output, and its
``interruptions`` list the calls waiting for a decision. The caller collects one
``ApprovalDecision`` per interruption and resumes the same state:

  result = await run(agent, "Delete the staging database")
  while needs_approval(result):
    decisions = [ApprovalDecision(approve=ask_operator(i)) for i in get_pending_approvals(result)]
    result = await Runner().resume(result.state, decisions)

``run_with_approval_callback`` wraps this loop around a decision callback.
"""

import inspect

from typing import Any, Awaitable, Callable, List, Union

from .logs import get_logger
from .result import RunResult
from .runner import Runner
from .state import ApprovalDecision, Interruption, RunState

logger = get_logger("hitl")

ApprovalCallback = Callable[[Interruption], Union[ApprovalDecision, bool, Awaitable[Union[ApprovalDecision, bool]]]]


def needs_approval(result: RunResult) -> bool:
  return result.final_output is None and bool(result.interruptions)


def get_pending_approvals(result: RunResult) -> List[Interruption]:
  return result.interruptions


def resume_after_approval(state: RunState, decisions: List[ApprovalDecision]) -> RunState:
  """
  Apply decisions to a paused state without resuming it yet.

  Raises:
    ValueError: If there is not exactly one decision per pending interruption
  """
  state.apply_decisions(decisions)
  return state


async def _decide(callback: ApprovalCallback, interruption: Interruption) -> ApprovalDecision:
  decision = callback(interruption)
  if inspect.isawaitable(decision):
    decision = await decision
  if isinstance(decision, ApprovalDecision):
    return decision
  return ApprovalDecision(approve=bool(decision))


async def run_with_approval_callback(agent, input: Any, callback: ApprovalCallback, **options) -> RunResult:
  """
  Run an agent, asking ``callback`` for a decision whenever the run pauses.

  The callback receives one interruption and returns an ``ApprovalDecision`` or a bool,
  either directly or as an awaitable.
  """
  runner = Runner()
  result = await runner.execute(agent, input, options)
  while needs_approval(result):
    pending = get_pending_approvals(result)
    logger.info(f"Asking for {len(pending)} approval decisions")
    decisions = [await _decide(callback, interruption) for interruption in pending]
    result = await runner.resume(result.state, decisions, options)
  return result
