"""
Shared utilities for testing baton agents.

This module provides a scripted model that implements the model protocol used by the
runner, so that runs can be tested without a language model.
"""

import asyncio
import json
from copy import deepcopy
from typing import Any, Dict, List, Optional

from baton.messages import FunctionToolCall, ToolCall
from baton.models.protocol import ModelResponse
from baton.usage import Usage


class MockModel:
  """
  Scripted model that returns predefined responses in sequence.

  Each response is a dict with any of these keys:
    - content: the text of the answer
    - tool_calls: a list of {"name", "arguments", "id"}; arguments may be a dict or a string
    - finish_reason: defaults to "tool-calls" with tool calls and "stop" otherwise
    - usage: {"input_tokens", "output_tokens"}, defaults to 10 and 5
    - delay: seconds to sleep before answering
    - error: an exception to raise instead of answering

  Every call is recorded in ``calls`` with the system text, a copy of the messages and
  the tool specs.

  Usage:
      # Simple response
      model = MockModel([{"content": "Hello!"}])

      # Tool call response
      model = MockModel([
          {"tool_calls": [{"name": "calculator", "arguments": {"x": 5, "y": 3}}]},
          {"content": "The result is 8"},
      ])
  """

  def __init__(self, responses: List[Dict[str, Any]] = None, name: str = "MockModel"):
    self.provided_responses = list(responses or [])
    self.name = name
    self.call_count = 0
    self.tool_call_counter = 0
    self.calls: List[Dict[str, Any]] = []

  async def generate(self, system, messages, tools, settings=None) -> ModelResponse:
    self.call_count += 1
    self.calls.append(
      {
        "system": system,
        "messages": deepcopy(list(messages)),
        "tools": [t["function"]["name"] for t in tools],
        "settings": dict(settings or {}),
      }
    )

    if not self.provided_responses:
      return self._default_response()

    provided = self.provided_responses.pop(0)
    if provided.get("delay"):
      await asyncio.sleep(provided["delay"])
    if provided.get("error") is not None:
      raise provided["error"]

    tool_calls = [self._tool_call(t) for t in provided.get("tool_calls", [])]
    usage = provided.get("usage", {})
    input_tokens = usage.get("input_tokens", 10)
    output_tokens = usage.get("output_tokens", 5)
    return ModelResponse(
      text=provided.get("content", ""),
      tool_calls=tool_calls,
      finish_reason=provided.get("finish_reason", "tool-calls" if tool_calls else "stop"),
      usage=Usage(1, input_tokens, output_tokens, input_tokens + output_tokens),
    )

  def _tool_call(self, spec: Dict[str, Any]) -> ToolCall:
    self.tool_call_counter += 1
    arguments = spec.get("arguments", "{}")
    if not isinstance(arguments, str):
      arguments = json.dumps(arguments)
    return ToolCall(
      id=spec.get("id", f"call_{self.tool_call_counter}"),
      function=FunctionToolCall(name=spec["name"], arguments=arguments),
    )

  def _default_response(self) -> ModelResponse:
    return ModelResponse(text="Default mock response", finish_reason="stop", usage=Usage(1, 10, 5, 15))

  def system_prompts(self) -> List[str]:
    return [c["system"] for c in self.calls]

  def messages_of_call(self, index: int) -> List[Any]:
    return self.calls[index]["messages"]


def tool_messages(messages) -> List[Any]:
  return [m for m in messages if getattr(m, "tool_call_id", None) is not None]


def find_tool_response(messages, tool_call_id: str) -> Optional[Any]:
  for m in tool_messages(messages):
    if m.tool_call_id == tool_call_id:
      return m
  return None
