"""
Agent definition.

An agent bundles what the runner needs to drive a conversation:

- instructions, static or computed from the run context every turn;
- a model capability, passed explicitly (there is no global default model);
- tools, keyed by unique name;
- sub-agents it may transfer the conversation to, each contributing one reserved
  ``transfer_to_<name>`` tool;
- input and output guardrails;
- an optional output schema for structured final output;
- an optional ``should_finish`` check and an optional tokenizer.

Agents hold configuration only. All per-run data lives in ``RunState``, so one agent can
serve any number of concurrent runs. Reconfiguring tools or sub-agents between runs is
supported; doing it while a run is in progress is not.
"""

import inspect
import math

from typing import Any, Awaitable, Callable, Dict, List, Optional, TypedDict, NotRequired, Union

from .transfers import create_transfer_tools, is_transfer_call, normalize_agent_name, TRANSFER_PREFIXES, TransferTool
from ..context import RunContextWrapper
from ..errors import ToolNotFoundError, UserError
from ..guardrails.guardrail import Guardrail, GuardrailType
from ..logs import get_logger
from ..tools.protocol import InvokableTool
from ..tools.tool import as_tools

logger = get_logger("agent")


# =============================================================================
# CONSTANTS - AGENT DEFAULTS
# =============================================================================

# Bound on tool-use depth within one model call, forwarded to the model as a setting
DEFAULT_MAX_STEPS = 10

# Characters per token of the default tokenizer
CHARACTERS_PER_TOKEN = 4


# =============================================================================
# CONFIGURATION TYPE DEFINITIONS
# =============================================================================

Instructions = Union[str, Callable[[RunContextWrapper], Union[str, Awaitable[str]]]]


class AgentConfig(TypedDict):
  """Configuration accepted by ``Agent.from_config``.

  Only 'name' and 'model' are required.

  Example:
    agent = Agent.from_config({
      "name": "Billing",
      "instructions": "You answer billing questions.",
      "model": Model("gpt-4o-mini"),
      "tools": [lookup_invoice],
    })
  """

  name: str
  model: Any
  instructions: NotRequired[Instructions]
  tools: NotRequired[List]
  subagents: NotRequired[List["Agent"]]
  guardrails: NotRequired[List[Guardrail]]
  output_schema: NotRequired[Any]
  max_steps: NotRequired[int]
  model_settings: NotRequired[Dict[str, Any]]
  should_finish: NotRequired[Callable[[Any, List[Any]], bool]]
  tokenizer: NotRequired[Callable[[str], int]]
  transfer_description: NotRequired[str]


def default_tokenizer(text: str) -> int:
  return math.ceil(len(text) / CHARACTERS_PER_TOKEN)


# =============================================================================
# AGENT
# =============================================================================


class Agent:
  """
  A configured unit of instructions, model, tools and sub-agents.

  Attributes:
    name: Unique identity of the agent, also used for its transfer tool
    model: Object implementing ``generate(system, messages, tools, settings)``
    guardrails: Input and output guardrails
    output_schema: Type the final output is structured into, if any
    max_steps: Tool-use depth bound forwarded to the model
    model_settings: Generation settings sent with every model call
    should_finish: Optional ``(context, tool_results) -> bool`` finish check
    tokenizer: Token estimator used for token budgets and token length checks
    transfer_description: Shown to parent agents in the transfer tool description

  Example:
    billing = Agent(name="Billing", instructions="Answer billing questions.", model=model)
    router = Agent(
      name="Router",
      instructions="Route the user to the right specialist.",
      model=model,
      subagents=[billing],
    )
  """

  def __init__(
    self,
    name: str,
    model: Any = None,
    instructions: Instructions = "",
    tools: Optional[List] = None,
    subagents: Optional[List["Agent"]] = None,
    guardrails: Optional[List[Guardrail]] = None,
    output_schema: Any = None,
    max_steps: int = DEFAULT_MAX_STEPS,
    model_settings: Optional[Dict[str, Any]] = None,
    should_finish: Optional[Callable[[Any, List[Any]], bool]] = None,
    tokenizer: Optional[Callable[[str], int]] = None,
    transfer_description: Optional[str] = None,
  ):
    if not name or not name.strip():
      raise UserError("An agent needs a non-empty name")
    if max_steps < 1:
      raise UserError(f"Agent '{name}' max_steps must be at least 1, got {max_steps}")

    self.name = name
    self.model = model
    self.instructions = instructions
    self.guardrails = list(guardrails or [])
    self.output_schema = output_schema
    self.max_steps = max_steps
    self.model_settings = dict(model_settings or {})
    self.should_finish = should_finish
    self.tokenizer = tokenizer or default_tokenizer
    self.transfer_description = transfer_description

    self._resolved_instructions: Optional[str] = None
    self._tools: Dict[str, InvokableTool] = {}
    self._subagents: List["Agent"] = []
    self._transfer_tools: Dict[str, TransferTool] = {}

    self.tools = tools or []
    self.subagents = subagents or []

  # ---------------------------------------------------------------------------
  # Tools and sub-agents
  # ---------------------------------------------------------------------------

  @property
  def tools(self) -> Dict[str, InvokableTool]:
    return dict(self._tools)

  @tools.setter
  def tools(self, tools: List):
    by_name = {}
    for tool in as_tools(tools):
      if tool.name in by_name:
        raise UserError(f"Agent '{self.name}' has duplicate tool name '{tool.name}'")
      by_name[tool.name] = tool
    self._check_name_collisions(by_name)
    self._tools = by_name

  @property
  def subagents(self) -> List["Agent"]:
    return list(self._subagents)

  @subagents.setter
  def subagents(self, subagents: List["Agent"]):
    names = [normalize_agent_name(a.name) for a in subagents]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
      raise UserError(f"Agent '{self.name}' has sub-agents with the same name: {', '.join(duplicates)}")
    self._subagents = list(subagents)
    self._transfer_tools = create_transfer_tools(self._subagents)
    logger.debug(f"Agent '{self.name}' can transfer to: {[a.name for a in self._subagents]}")

  @property
  def transfer_tools(self) -> Dict[str, TransferTool]:
    return dict(self._transfer_tools)

  def all_tools(self) -> Dict[str, InvokableTool]:
    """Ordinary tools followed by the reserved transfer tools."""
    return {**self._tools, **self._transfer_tools}

  def get_tool(self, name: str) -> InvokableTool:
    tools = self.all_tools()
    if name not in tools:
      raise ToolNotFoundError(name, self.name, list(tools))
    return tools[name]

  def _check_name_collisions(self, tools: Optional[Dict[str, InvokableTool]] = None):
    # calls with a reserved prefix are always resolved as transfers, never executed
    reserved = sorted(name for name in (self._tools if tools is None else tools) if is_transfer_call(name))
    if reserved:
      raise UserError(
        f"Agent '{self.name}' has tools named like transfer tools: {', '.join(reserved)} "
        f"(the prefixes {', '.join(TRANSFER_PREFIXES)} are reserved)"
      )

  def find_agent(self, name: str) -> Optional["Agent"]:
    """Find an agent by name in the tree of sub-agents rooted at this agent."""
    seen = set()
    pending = [self]
    while pending:
      agent = pending.pop(0)
      if id(agent) in seen:
        continue
      seen.add(id(agent))
      if agent.name == name:
        return agent
      pending.extend(agent._subagents)
    return None

  # ---------------------------------------------------------------------------
  # Instructions and tokens
  # ---------------------------------------------------------------------------

  @property
  def has_dynamic_instructions(self) -> bool:
    return callable(self.instructions)

  async def get_instructions(self, context_wrapper: RunContextWrapper) -> str:
    """
    Resolve the instructions for the current turn.

    Static instructions are resolved once and cached. Callable instructions are evaluated
    on every call, since the context may have changed between turns.
    """
    if not self.has_dynamic_instructions:
      if self._resolved_instructions is None:
        self._resolved_instructions = str(self.instructions or "")
      return self._resolved_instructions

    r = self.instructions(context_wrapper)
    if inspect.isawaitable(r):
      r = await r
    return str(r or "")

  def count_tokens(self, text: str) -> int:
    return int(self.tokenizer(text))

  def input_guardrails(self) -> List[Guardrail]:
    return [g for g in self.guardrails if GuardrailType(g.type) == GuardrailType.INPUT]

  def output_guardrails(self) -> List[Guardrail]:
    return [g for g in self.guardrails if GuardrailType(g.type) == GuardrailType.OUTPUT]

  # ---------------------------------------------------------------------------
  # Derived agents
  # ---------------------------------------------------------------------------

  def clone(self, **overrides) -> "Agent":
    """Create a copy of this agent, replacing the given configuration values."""
    config = {
      "name": self.name,
      "model": self.model,
      "instructions": self.instructions,
      "tools": list(self._tools.values()),
      "subagents": list(self._subagents),
      "guardrails": list(self.guardrails),
      "output_schema": self.output_schema,
      "max_steps": self.max_steps,
      "model_settings": dict(self.model_settings),
      "should_finish": self.should_finish,
      "tokenizer": self.tokenizer,
      "transfer_description": self.transfer_description,
    }
    unknown = set(overrides) - set(config)
    if unknown:
      raise UserError(f"Unknown agent configuration: {', '.join(sorted(unknown))}")
    config.update(overrides)
    return Agent(**config)

  def as_tool(self, name: Optional[str] = None, description: Optional[str] = None, max_turns: Optional[int] = None):
    """
    Expose this agent as a tool of another agent.

    Unlike a transfer, the calling agent keeps control: the tool runs this agent in a
    nested run with the given input and returns its final output.
    """
    from .agent_tool import AgentTool

    return AgentTool(self, name=name, description=description, max_turns=max_turns)

  @staticmethod
  def from_config(config: AgentConfig) -> "Agent":
    return Agent(**config)

  def __repr__(self) -> str:
    return f"Agent(name={self.name!r}, tools={list(self._tools)}, subagents={[a.name for a in self._subagents]})"
