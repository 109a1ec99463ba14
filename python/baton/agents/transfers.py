"""
Agent to agent transfers (handoffs).

Every sub-agent of an agent contributes one reserved tool, ``transfer_to_<name>``, where
``<name>`` is the sub-agent's name lowercased with runs of whitespace replaced by ``_``.
When the model calls such a tool the runner does not execute it. The resolver below
matches the call to a sub-agent instead, and the runner switches agents with a fresh
history:

  - the new agent only sees the original user input;
  - a short transfer note is prepended to its instructions for its first turn;
  - the handoff chain records the new agent the first time it is visited.

Only the first transfer call of a turn is considered. A transfer call whose target does
not match any sub-agent is reported back to the model as a failed tool call.
"""

import re

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..context import RunContextWrapper
from ..logs import get_logger
from ..messages import ToolCall

logger = get_logger("transfer")

TRANSFER_PREFIX = "transfer_to_"

# Accepted when detecting transfer calls, only TRANSFER_PREFIX is generated
TRANSFER_PREFIXES = (TRANSFER_PREFIX, "handoff_to_")

DEFAULT_TRANSFER_REASON = "Transfer requested"


def normalize_agent_name(name: str) -> str:
  return re.sub(r"\s+", "_", name.strip().lower())


def transfer_tool_name(agent_name: str) -> str:
  return f"{TRANSFER_PREFIX}{normalize_agent_name(agent_name)}"


def is_transfer_call(tool_name: str) -> bool:
  return tool_name.startswith(TRANSFER_PREFIXES)


def transfer_target(tool_name: str) -> str:
  """Target agent name encoded in a transfer tool name, with ``_`` turned back into spaces."""
  for prefix in TRANSFER_PREFIXES:
    if tool_name.startswith(prefix):
      return tool_name[len(prefix) :].replace("_", " ")
  return tool_name


class TransferTool:
  """
  The reserved tool that lets the model hand the conversation to a sub-agent.

  The runner intercepts calls to it. ``execute`` only runs when the tool is invoked
  outside of a run loop, and returns a description of the requested transfer.
  """

  def __init__(self, agent):
    self.agent_name = agent.name
    self.name = transfer_tool_name(agent.name)
    description = getattr(agent, "transfer_description", None) or f"Hand off the conversation to {agent.name}."
    self.description = f"Transfer to {agent.name}. {description}"
    self.approval_metadata = {}

  async def spec(self) -> dict:
    return {
      "type": "function",
      "function": {
        "name": self.name,
        "description": self.description,
        "parameters": {
          "type": "object",
          "properties": {
            "reason": {"type": "string", "description": f"Why the conversation is transferred to {self.agent_name}"},
            "context": {"type": "string", "description": "Optional extra context for the next agent"},
          },
          "required": ["reason"],
        },
      },
    }

  async def is_enabled(self, context_wrapper: RunContextWrapper) -> bool:
    return True

  async def needs_approval(self, context_wrapper: RunContextWrapper, args: dict) -> bool:
    return False

  async def execute(self, args: Optional[dict], context_wrapper: RunContextWrapper) -> Any:
    args = args or {}
    return {
      "transfer": True,
      "agent_name": self.agent_name,
      "reason": args.get("reason") or DEFAULT_TRANSFER_REASON,
      "context": args.get("context") or args.get("query"),
    }


def create_transfer_tools(subagents: List) -> Dict[str, TransferTool]:
  tools = {}
  for agent in subagents:
    tool = TransferTool(agent)
    tools[tool.name] = tool
  return tools


@dataclass
class Handoff:
  """A resolved transfer: the agent to switch to and why."""

  agent: Any
  tool_call: ToolCall
  reason: str = DEFAULT_TRANSFER_REASON
  context: Optional[str] = None


@dataclass
class TransferResolution:
  handoff: Optional[Handoff] = None
  # transfer calls that did not resolve to a sub-agent
  unmatched: Tuple[ToolCall, ...] = ()
  # transfer calls after the first one
  ignored: Tuple[ToolCall, ...] = ()


def split_transfer_calls(tool_calls: List[ToolCall]) -> Tuple[List[ToolCall], List[ToolCall]]:
  """Split calls into (ordinary calls, transfer calls), preserving order."""
  ordinary, transfers = [], []
  for call in tool_calls:
    (transfers if is_transfer_call(call.name) else ordinary).append(call)
  return ordinary, transfers


def find_subagent(agent, target_name: str):
  wanted = normalize_agent_name(target_name.replace("_", " "))
  for subagent in agent.subagents:
    if normalize_agent_name(subagent.name) == wanted:
      return subagent
  return None


def resolve_transfer(agent, transfer_calls: List[ToolCall]) -> TransferResolution:
  """
  Resolve the transfer calls of one turn.

  Args:
    agent: The active agent
    transfer_calls: Calls with a reserved transfer name, in request order

  Returns:
    The resolution: a handoff if the first transfer call matches a sub-agent
  """
  if not transfer_calls:
    return TransferResolution()

  first, rest = transfer_calls[0], tuple(transfer_calls[1:])
  if rest:
    logger.warning(
      f"[HANDOFF] Agent '{agent.name}' requested {len(transfer_calls)} transfers in one turn, only '{first.name}' is considered"
    )

  target = find_subagent(agent, transfer_target(first.name))
  if target is None:
    logger.warning(f"[HANDOFF] No sub-agent of '{agent.name}' matches '{first.name}'")
    return TransferResolution(unmatched=(first,), ignored=rest)

  try:
    args = first.parsed_arguments()
  except ValueError:
    args = {}
  handoff = Handoff(
    agent=target,
    tool_call=first,
    reason=args.get("reason") or DEFAULT_TRANSFER_REASON,
    context=args.get("context") or args.get("query"),
  )
  logger.info(f"[HANDOFF] '{agent.name}' → '{target.name}', reason: {handoff.reason}")
  return TransferResolution(handoff=handoff, ignored=rest)


def transfer_note(from_agent: str, to_agent: str, reason: Optional[str] = None, context: Optional[str] = None) -> str:
  """The system note prepended to the instructions of the new agent for one turn."""
  note = f"[Transfer from {from_agent}] You are now {to_agent}."
  if reason:
    note += f" Reason: {reason.rstrip('.')}."
  if context:
    note += f" Context: {context}"
  return note


def handoff_prompt(agents: List) -> str:
  """Describe the sub-agents an agent can transfer to, for use in its instructions."""
  if not agents:
    return ""
  lines = ["You can transfer the conversation to the following agents:"]
  for agent in agents:
    description = getattr(agent, "transfer_description", None) or "No description"
    lines.append(f"- {agent.name} (use {transfer_tool_name(agent.name)}): {description}")
  return "\n".join(lines)
