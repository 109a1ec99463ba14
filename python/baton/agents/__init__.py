from .agent import Agent, AgentConfig, DEFAULT_MAX_STEPS, default_tokenizer
from .agent_tool import AgentTool
from .transfers import (
  Handoff,
  TransferTool,
  TRANSFER_PREFIX,
  handoff_prompt,
  is_transfer_call,
  resolve_transfer,
  split_transfer_calls,
  transfer_note,
  transfer_tool_name,
)

__all__ = [
  "Agent",
  "AgentConfig",
  "AgentTool",
  "DEFAULT_MAX_STEPS",
  "Handoff",
  "TRANSFER_PREFIX",
  "TransferTool",
  "default_tokenizer",
  "handoff_prompt",
  "is_transfer_call",
  "resolve_transfer",
  "split_transfer_calls",
  "transfer_note",
  "transfer_tool_name",
]
