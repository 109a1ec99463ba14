"""
Run state: the complete, mutable record of one execution.

A ``RunState`` is created when a run starts and is written only by the runner. When a
run pauses for approvals the same instance is handed back to the caller, and it can be
resumed directly or after a round trip through ``to_dict``/``from_dict`` (for example
when the approval happens in another process).
"""

import json
import time

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import UserError
from .messages import ConversationMessage, ConversationRole, MessageConverter, to_messages
from .tools.execution import TokenBudget
from .usage import Usage


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_MAX_TURNS = 50

SNAPSHOT_VERSION = 1


# =============================================================================
# STEPS AND TRANSITIONS
# =============================================================================


@dataclass(frozen=True)
class ToolCallRecord:
  tool_name: str
  args: Dict[str, Any]
  result: Any = None
  error: Optional[str] = None


@dataclass(frozen=True)
class StepResult:
  """Audit record of one turn. Steps are appended once and never modified."""

  step_number: int
  agent_name: str
  tool_calls: Tuple[ToolCallRecord, ...] = ()
  text: str = ""
  finish_reason: str = "stop"
  timestamp: float = field(default_factory=time.time)

  def summary(self) -> str:
    tools = ", ".join(t.tool_name for t in self.tool_calls) or "none"
    text = self.text if len(self.text) <= 200 else self.text[:200] + "..."
    return f"step {self.step_number} by '{self.agent_name}', finish_reason={self.finish_reason}, tools=[{tools}], text={text!r}"


class NextStepType(Enum):
  RUN_AGAIN = "run_again"
  HANDOFF = "handoff"
  FINAL_OUTPUT = "final_output"
  INTERRUPTION = "interruption"


@dataclass(frozen=True)
class NextStepRunAgain:
  type: NextStepType = NextStepType.RUN_AGAIN


@dataclass(frozen=True)
class NextStepHandoff:
  new_agent: Any
  reason: Optional[str] = None
  context: Optional[str] = None
  type: NextStepType = NextStepType.HANDOFF


@dataclass(frozen=True)
class NextStepFinalOutput:
  output: Any
  type: NextStepType = NextStepType.FINAL_OUTPUT


@dataclass(frozen=True)
class NextStepInterruption:
  interruptions: Tuple["Interruption", ...]
  type: NextStepType = NextStepType.INTERRUPTION


NextStep = Union[NextStepRunAgain, NextStepHandoff, NextStepFinalOutput, NextStepInterruption]


# =============================================================================
# INTERRUPTIONS AND METRICS
# =============================================================================


@dataclass
class Interruption:
  """
  A tool call waiting for a human decision.

  ``approved`` stays ``None`` until a decision is written. When ``modified_args`` is set,
  the call runs with those arguments instead of the ones the model requested.
  """

  tool_name: str
  args: Dict[str, Any]
  tool_call_id: str
  agent_name: str
  type: str = "tool_approval"
  approved: Optional[bool] = None
  reason: Optional[str] = None
  modified_args: Optional[Dict[str, Any]] = None
  approval_metadata: Dict[str, Any] = field(default_factory=dict)

  @property
  def decided(self) -> bool:
    return self.approved is not None

  @property
  def call_args(self) -> Dict[str, Any]:
    return self.modified_args if self.modified_args is not None else self.args


@dataclass
class ApprovalDecision:
  """A human decision for one pending interruption."""

  approve: bool
  reason: Optional[str] = None
  modified_args: Optional[Dict[str, Any]] = None


@dataclass
class AgentMetrics:
  """Metrics of one agent, merged across every visit of that agent in a run."""

  agent_name: str
  turns: int = 0
  tokens: Usage = field(default_factory=Usage)
  tool_calls: int = 0
  duration: float = 0.0
  start_time: Optional[float] = None
  end_time: Optional[float] = None


# =============================================================================
# RUN STATE
# =============================================================================


class RunState:
  """
  Mutable record of one run.

  Attributes:
    current_agent: The agent whose turn it is
    original_input: The first user input, kept verbatim for transfers
    messages: The conversation the current agent sees
    context: The caller's payload, shared by reference with tools and guardrails
    current_turn: Number of turns started so far
    max_turns: Turn limit of the run
    steps: One StepResult per completed turn
    agent_metrics: Metrics per agent name
    handoff_chain: Agent names in first-visit order, starting with the initial agent
    pending_interruptions: Tool calls waiting for approval, then the declined ones once decided
    resolved_interruptions: Decided calls the runner has not processed yet
    usage: Tokens used by all model calls of the run
    token_budget: Budget for tool results included in the conversation
  """

  def __init__(
    self,
    agent,
    original_input: Union[str, List[ConversationMessage]],
    context: Any = None,
    max_turns: int = DEFAULT_MAX_TURNS,
    token_budget: Optional[int] = None,
    messages: Optional[List[ConversationMessage]] = None,
  ):
    if max_turns < 1:
      raise UserError(f"max_turns must be at least 1, got {max_turns}")

    self.root_agent = agent
    self.current_agent = agent
    self.original_input = original_input
    self.messages: List[ConversationMessage] = list(messages) if messages is not None else to_messages(original_input)
    self.context = context
    self.current_turn = 0
    self.max_turns = max_turns
    self.steps: List[StepResult] = []
    self.agent_metrics: Dict[str, AgentMetrics] = {}
    self.handoff_chain: List[str] = [agent.name]
    self._handoff_chain_set = {agent.name}
    self.pending_interruptions: List[Interruption] = []
    self.resolved_interruptions: List[Interruption] = []
    self.usage = Usage()
    self.token_budget = TokenBudget(limit=token_budget)
    self.pending_transfer_note: Optional[str] = None
    self.loop_guard_count = 0
    self.input_guardrails_done = False
    self.start_time = time.time()
    self.end_time: Optional[float] = None
    self.tool_use_tracker: Dict[str, List[str]] = {}

  # ---------------------------------------------------------------------------
  # Turns and steps
  # ---------------------------------------------------------------------------

  def increment_turn(self) -> int:
    self.current_turn += 1
    return self.current_turn

  def is_max_turns_exceeded(self) -> bool:
    return self.current_turn >= self.max_turns

  @property
  def step_number(self) -> int:
    return len(self.steps)

  @property
  def last_step(self) -> Optional[StepResult]:
    return self.steps[-1] if self.steps else None

  def record_step(self, step: StepResult):
    self.steps.append(step)
    metrics = self.metrics_for(step.agent_name)
    metrics.turns += 1
    metrics.tool_calls += len(step.tool_calls)

  def metrics_for(self, agent_name: str) -> AgentMetrics:
    if agent_name not in self.agent_metrics:
      self.agent_metrics[agent_name] = AgentMetrics(agent_name=agent_name, start_time=time.time())
    return self.agent_metrics[agent_name]

  def record_agent_time(self, agent_name: str, started: float):
    metrics = self.metrics_for(agent_name)
    now = time.time()
    metrics.duration += now - started
    metrics.end_time = now

  def record_tool_use(self, agent_name: str, tool_names: List[str]):
    used = self.tool_use_tracker.setdefault(agent_name, [])
    for name in tool_names:
      if name not in used:
        used.append(name)

  # ---------------------------------------------------------------------------
  # Handoffs
  # ---------------------------------------------------------------------------

  def track_handoff(self, agent_name: str):
    if agent_name not in self._handoff_chain_set:
      self.handoff_chain.append(agent_name)
      self._handoff_chain_set.add(agent_name)

  def seed_messages(self) -> List[ConversationMessage]:
    """The original user message(s), the only history a new agent starts from after a transfer."""
    messages = to_messages(self.original_input)
    user_messages = [m for m in messages if m.role == ConversationRole.USER]
    return user_messages or messages

  # ---------------------------------------------------------------------------
  # Interruptions
  # ---------------------------------------------------------------------------

  def add_interruption(self, interruption: Interruption):
    self.pending_interruptions.append(interruption)

  def has_interruptions(self) -> bool:
    return any(not i.decided for i in self.pending_interruptions)

  def clear_interruptions(self):
    self.pending_interruptions = []

  def apply_decisions(self, decisions: List[ApprovalDecision]):
    """
    Write one decision onto each pending interruption, in order.

    The decided records are queued for the runner, which executes the approved calls
    exactly once when the run resumes. ``pending_interruptions`` is cleared when every
    call was approved, otherwise it keeps the declined records.

    Raises:
      ValueError: If the number of decisions does not match the pending interruptions
    """
    pending = [i for i in self.pending_interruptions if not i.decided]
    if len(decisions) != len(pending):
      raise ValueError(f"Expected {len(pending)} approval decisions, got {len(decisions)}")

    for interruption, decision in zip(pending, decisions):
      interruption.approved = bool(decision.approve)
      interruption.reason = decision.reason
      if decision.modified_args is not None:
        interruption.modified_args = dict(decision.modified_args)

    self.resolved_interruptions.extend(pending)
    declined = [i for i in pending if not i.approved]
    if declined:
      self.pending_interruptions = declined
    else:
      self.clear_interruptions()

  # ---------------------------------------------------------------------------
  # Timing
  # ---------------------------------------------------------------------------

  def get_duration(self) -> float:
    return (self.end_time or time.time()) - self.start_time

  def mark_finished(self):
    self.end_time = time.time()

  # ---------------------------------------------------------------------------
  # Snapshots
  # ---------------------------------------------------------------------------

  def to_dict(self) -> dict:
    converter = StateConverter.create()
    return converter.state_to_dict(self)

  def to_json(self) -> str:
    return json.dumps(self.to_dict())

  @staticmethod
  def from_dict(data: dict, agent) -> "RunState":
    """
    Restore a run state from a snapshot.

    Args:
      data: The output of ``to_dict``
      agent: The agent the run was started with; sub-agents are looked up from it

    Raises:
      UserError: If the snapshot refers to an agent that cannot be found
    """
    return StateConverter.create().state_from_dict(data, agent)

  @staticmethod
  def from_json(data: str, agent) -> "RunState":
    return RunState.from_dict(json.loads(data), agent)

  def __repr__(self) -> str:
    return (
      f"RunState(agent={self.current_agent.name!r}, turn={self.current_turn}/{self.max_turns}, "
      f"messages={len(self.messages)}, pending_interruptions={len(self.pending_interruptions)})"
    )


CACHE = None


class StateConverter:
  """Converts run states to and from plain, JSON compatible dicts."""

  @staticmethod
  def create():
    global CACHE
    if CACHE:
      return CACHE

    CACHE = StateConverter()
    return CACHE

  def __init__(self):
    self.messages = MessageConverter.create()
    self.converter = self.messages.converter

  def _input_to_dict(self, original_input):
    if isinstance(original_input, str):
      return original_input
    return self.messages.messages_to_dicts(to_messages(original_input))

  def _input_from_dict(self, data):
    if isinstance(data, str):
      return data
    return self.messages.messages_from_dicts(data)

  def state_to_dict(self, state: RunState) -> dict:
    unstructure = self.converter.unstructure
    return {
      "version": SNAPSHOT_VERSION,
      "root_agent": state.root_agent.name,
      "current_agent": state.current_agent.name,
      "original_input": self._input_to_dict(state.original_input),
      "messages": self.messages.messages_to_dicts(state.messages),
      "context": state.context,
      "current_turn": state.current_turn,
      "max_turns": state.max_turns,
      "steps": [unstructure(s) for s in state.steps],
      "agent_metrics": {name: unstructure(m) for name, m in state.agent_metrics.items()},
      "handoff_chain": list(state.handoff_chain),
      "pending_interruptions": [unstructure(i) for i in state.pending_interruptions],
      "resolved_interruptions": [unstructure(i) for i in state.resolved_interruptions],
      "usage": unstructure(state.usage),
      "token_budget": unstructure(state.token_budget),
      "pending_transfer_note": state.pending_transfer_note,
      "loop_guard_count": state.loop_guard_count,
      "input_guardrails_done": state.input_guardrails_done,
      "start_time": state.start_time,
      "end_time": state.end_time,
      "tool_use_tracker": {k: list(v) for k, v in state.tool_use_tracker.items()},
    }

  def state_from_dict(self, data: dict, agent) -> RunState:
    version = data.get("version")
    if version != SNAPSHOT_VERSION:
      raise UserError(f"Unsupported run state snapshot version: {version}")

    current = agent.find_agent(data["current_agent"])
    if current is None:
      raise UserError(f"Agent '{data['current_agent']}' of the snapshot is not reachable from agent '{agent.name}'")

    structure = self.converter.structure
    state = RunState(
      agent,
      self._input_from_dict(data["original_input"]),
      context=data.get("context"),
      max_turns=data["max_turns"],
      messages=self.messages.messages_from_dicts(data["messages"]),
    )
    state.current_agent = current
    state.current_turn = data["current_turn"]
    state.steps = [structure(s, StepResult) for s in data.get("steps", [])]
    state.agent_metrics = {name: structure(m, AgentMetrics) for name, m in data.get("agent_metrics", {}).items()}
    state.handoff_chain = list(data["handoff_chain"])
    state._handoff_chain_set = set(state.handoff_chain)
    state.pending_interruptions = [structure(i, Interruption) for i in data.get("pending_interruptions", [])]
    state.resolved_interruptions = [structure(i, Interruption) for i in data.get("resolved_interruptions", [])]
    state.usage = structure(data["usage"], Usage)
    state.token_budget = structure(data["token_budget"], TokenBudget)
    state.pending_transfer_note = data.get("pending_transfer_note")
    state.loop_guard_count = data.get("loop_guard_count", 0)
    state.input_guardrails_done = data.get("input_guardrails_done", False)
    state.start_time = data["start_time"]
    state.end_time = data.get("end_time")
    state.tool_use_tracker = {k: list(v) for k, v in data.get("tool_use_tracker", {}).items()}
    return state
