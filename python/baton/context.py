from typing import Any, Optional, Tuple

from .messages import ConversationMessage
from .usage import Usage


class RunContextWrapper:
  """
  Read access to a run for tools, guardrails and dynamic instructions.

  ``context`` is the caller's payload and is shared by reference across the whole run,
  so mutations made by one tool are visible to the next. Everything else is a read-only
  view: ``messages`` returns a snapshot tuple, and the run state itself is only updated
  by the runner.
  """

  def __init__(self, context: Any = None, state: Optional["RunState"] = None):
    self._context = context
    self._state = state

  @property
  def context(self) -> Any:
    return self._context

  @property
  def messages(self) -> Tuple[ConversationMessage, ...]:
    if self._state is None:
      return ()
    return tuple(self._state.messages)

  @property
  def usage(self) -> Usage:
    if self._state is None:
      return Usage()
    return self._state.usage

  @property
  def agent_name(self) -> Optional[str]:
    if self._state is None:
      return None
    return self._state.current_agent.name

  @property
  def agent(self):
    if self._state is None:
      return None
    return self._state.current_agent

  def count_tokens(self, text: str) -> int:
    """Estimate tokens with the active agent's tokenizer, or ceil(len / 4) without one."""
    agent = self.agent
    if agent is not None:
      return agent.count_tokens(text)
    return -(-len(text) // 4)

  @property
  def turn(self) -> int:
    if self._state is None:
      return 0
    return self._state.current_turn
