from typing import Any, Optional

from .transfers import normalize_agent_name
from ..context import RunContextWrapper
from ..logs import get_logger

logger = get_logger("agent")


class AgentTool:
  """
  Runs an agent as a tool: a nested run whose final output becomes the tool result.

  The nested run shares the caller's context payload but has its own history, turn
  counter and usage.
  """

  def __init__(self, agent, name: Optional[str] = None, description: Optional[str] = None, max_turns: Optional[int] = None):
    self.agent = agent
    self.name = name or normalize_agent_name(agent.name)
    self.description = description or agent.transfer_description or f"Ask {agent.name} to handle a task."
    self.max_turns = max_turns
    self.approval_metadata = {}

  async def spec(self) -> dict:
    return {
      "type": "function",
      "function": {
        "name": self.name,
        "description": self.description,
        "parameters": {
          "type": "object",
          "properties": {"input": {"type": "string", "description": f"The task for {self.agent.name}"}},
          "required": ["input"],
        },
      },
    }

  async def is_enabled(self, context_wrapper: RunContextWrapper) -> bool:
    return True

  async def needs_approval(self, context_wrapper: RunContextWrapper, args: dict) -> bool:
    return False

  async def execute(self, args: Optional[dict], context_wrapper: RunContextWrapper) -> Any:
    from ..runner import Runner

    task = (args or {}).get("input")
    if not task:
      raise ValueError("Missing required arguments: input")

    options = {"context": context_wrapper.context}
    if self.max_turns is not None:
      options["max_turns"] = self.max_turns

    logger.debug(f"Running agent '{self.agent.name}' as a tool")
    result = await Runner().execute(self.agent, task, options)
    if result.final_output is None:
      raise RuntimeError(f"Agent '{self.agent.name}' paused for approval, it cannot be used as a tool in that state")
    return result.final_output
