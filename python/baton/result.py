from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .messages import ConversationMessage
from .state import Interruption, RunState, StepResult
from .usage import Usage


@dataclass
class RunResult:
  """
  Outcome of a run.

  ``final_output`` is None when the run paused for approvals. In that case
  ``interruptions`` lists the calls waiting for a decision and ``state`` is the instance to
  resume.

  Metadata keys: ``total_tokens``, ``prompt_tokens``, ``completion_tokens``,
  ``finish_reason``, ``total_tool_calls``, ``handoff_chain``, ``agent_metrics``, ``duration``.
  """

  final_output: Any
  messages: List[ConversationMessage]
  steps: List[StepResult]
  state: RunState
  metadata: Dict[str, Any] = field(default_factory=dict)

  @property
  def interruptions(self) -> List[Interruption]:
    return [i for i in self.state.pending_interruptions if not i.decided]

  @property
  def is_interrupted(self) -> bool:
    return bool(self.interruptions)

  @property
  def last_agent(self):
    return self.state.current_agent

  @property
  def usage(self) -> Usage:
    return self.state.usage

  @property
  def finish_reason(self) -> Optional[str]:
    return self.metadata.get("finish_reason")


def build_metadata(state: RunState, finish_reason: str) -> Dict[str, Any]:
  return {
    "total_tokens": state.usage.total_tokens,
    "prompt_tokens": state.usage.input_tokens,
    "completion_tokens": state.usage.output_tokens,
    "finish_reason": finish_reason,
    "total_tool_calls": sum(len(step.tool_calls) for step in state.steps),
    "handoff_chain": list(state.handoff_chain),
    "agent_metrics": dict(state.agent_metrics),
    "duration": state.get_duration(),
  }
