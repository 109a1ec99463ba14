from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from ..messages import ConversationMessage, ToolCall
from ..usage import Usage

# Finish reasons that mean the model completed its answer on its own
NATURAL_FINISH_REASONS = ("stop", "length")


@dataclass
class ModelResponse:
  """
  Normalized result of one model call.

  ``finish_reason`` is one of ``stop``, ``length``, ``tool-calls``, ``content-filter``
  or a provider specific value. ``response_messages`` holds the messages to append to
  the history; when empty, the runner builds an assistant message from ``text`` and
  ``tool_calls``.
  """

  text: str = ""
  tool_calls: List[ToolCall] = field(default_factory=list)
  finish_reason: str = "stop"
  usage: Usage = field(default_factory=Usage)
  response_messages: List[ConversationMessage] = field(default_factory=list)


class ModelProtocol(Protocol):
  name: str

  async def generate(
    self,
    system: str,
    messages: List[ConversationMessage],
    tools: List[dict],
    settings: Optional[Dict[str, Any]] = None,
  ) -> ModelResponse: ...
