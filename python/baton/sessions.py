"""
Conversation history stores.

The runner loads the history once before the first turn and persists the full message
list once after a final output. It never reads or writes a session in the middle of a run.
"""

from typing import List, Protocol

from .logs import get_logger
from .messages import ConversationMessage, MessageConverter

logger = get_logger("session")


class Session(Protocol):
  async def get_history(self) -> List[ConversationMessage]: ...

  async def add_messages(self, messages: List[ConversationMessage]) -> None: ...


class InMemorySession:
  """
  Session that keeps the history in memory.

  ``add_messages`` receives the complete message list of a finished run. Messages the
  session already holds as a prefix are not stored twice.
  """

  def __init__(self, session_id: str = "default", messages: List[ConversationMessage] = None):
    self.session_id = session_id
    self._messages: List[ConversationMessage] = list(messages or [])

  async def get_history(self) -> List[ConversationMessage]:
    return list(self._messages)

  async def add_messages(self, messages: List[ConversationMessage]) -> None:
    messages = list(messages)
    if messages[: len(self._messages)] == self._messages:
      messages = messages[len(self._messages) :]
    logger.debug(f"Session '{self.session_id}' storing {len(messages)} new messages")
    self._messages.extend(messages)

  async def clear(self) -> None:
    self._messages = []

  def to_dicts(self) -> List[dict]:
    return MessageConverter.create().messages_to_dicts(self._messages)
