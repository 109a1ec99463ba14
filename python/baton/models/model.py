import os
import httpx
import litellm

from copy import deepcopy
from typing import Any, Dict, List, Optional

from ..logs import get_logger, InfoContext, DebugContext
from ..messages import ConversationMessage, FunctionToolCall, MessageConverter, ToolCall, AssistantMessage
from ..usage import Usage
from .protocol import ModelResponse

FINISH_REASONS = {
  "stop": "stop",
  "end_turn": "stop",
  "length": "length",
  "max_tokens": "length",
  "tool_calls": "tool-calls",
  "function_call": "tool-calls",
  "tool_use": "tool-calls",
  "content_filter": "content-filter",
}

# Settings understood by the engine that are not sent to the provider
ENGINE_SETTINGS = ("max_steps",)


class Model(InfoContext, DebugContext):
  """
  Model capability backed by LiteLLM.

  Any model name LiteLLM understands can be used (``gpt-4o``, ``anthropic/claude-3-5-sonnet``,
  ``ollama_chat/llama3`` ...). When ``LITELLM_PROXY_API_BASE`` is set, calls go through a
  LiteLLM proxy, authenticated with ``LITELLM_PROXY_API_KEY``.

  Example:
    model = Model("gpt-4o-mini", temperature=0.2)
    agent = Agent(name="Support", instructions="Be helpful.", model=model)
  """

  def __init__(
    self,
    name: str,
    request_timeout: float = 120.0,
    connect_timeout: float = 10.0,
    **kwargs,
  ):
    """
    Initialize a Model instance.

    :param name: LiteLLM model name
    :param request_timeout: Timeout for one model call in seconds (default: 120.0)
    :param connect_timeout: Connection establishment timeout in seconds (default: 10.0)
    :param kwargs: Default settings sent with every call, such as temperature or max_tokens
    """
    self.name = name
    self.logger = get_logger("model")
    self.request_timeout = request_timeout
    self.connect_timeout = connect_timeout
    self.kwargs = kwargs
    self.kwargs["drop_params"] = True

    proxy_api_base = os.environ.get("LITELLM_PROXY_API_BASE")
    if proxy_api_base:
      if not self.name.startswith("litellm_proxy/"):
        self.name = f"litellm_proxy/{self.name}"
      self.kwargs["api_base"] = proxy_api_base
      proxy_api_key = os.environ.get("LITELLM_PROXY_API_KEY")
      if proxy_api_key:
        self.kwargs["api_key"] = proxy_api_key

  def prepare_llm_call(self, system: str, messages: List[ConversationMessage], tools: List[dict], settings: dict):
    prepared = normalize_messages(messages)
    if system:
      prepared.insert(0, {"role": "system", "content": system})

    # parameters provided per call override the defaults
    kwargs = {**self.kwargs, **{k: v for k, v in (settings or {}).items() if k not in ENGINE_SETTINGS}}
    kwargs.setdefault("timeout", httpx.Timeout(self.request_timeout, connect=self.connect_timeout))

    # an empty tools list is sometimes interpreted as "please hallucinate tools"
    if tools:
      kwargs["tools"] = tools
    return prepared, kwargs

  async def generate(
    self,
    system: str,
    messages: List[ConversationMessage],
    tools: List[dict],
    settings: Optional[Dict[str, Any]] = None,
  ) -> ModelResponse:
    self.logger.info(f"Processing {len(messages)} messages with model '{self.name}'")
    prepared, kwargs = self.prepare_llm_call(system, messages, tools, settings)
    self.logger.debug(f"Sending the following messages to the model: {prepared}")

    response = await litellm.acompletion(model=self.name, messages=prepared, stream=False, **kwargs)
    self.logger.debug(f"Got a response from model '{self.name}': {response}")
    return parse_response(response)

  def count_tokens(self, messages: List[ConversationMessage], tools: Optional[List[dict]] = None) -> int:
    return litellm.token_counter(self.name, messages=normalize_messages(messages), tools=tools)


def parse_response(response) -> ModelResponse:
  choice = response.choices[0]
  message = choice.message
  text = message.content or ""

  # some models inline their reasoning in the content
  end_think_tag = text.find("</think>")
  if end_think_tag != -1:
    text = text[end_think_tag + len("</think>") :].lstrip()

  tool_calls = []
  for tool_call in getattr(message, "tool_calls", None) or []:
    tool_calls.append(
      ToolCall(
        id=tool_call.id,
        function=FunctionToolCall(name=tool_call.function.name, arguments=tool_call.function.arguments or ""),
      )
    )

  usage = Usage()
  raw_usage = getattr(response, "usage", None)
  if raw_usage is not None:
    usage.add_tokens(
      input_tokens=getattr(raw_usage, "prompt_tokens", 0) or 0,
      output_tokens=getattr(raw_usage, "completion_tokens", 0) or 0,
      total_tokens=getattr(raw_usage, "total_tokens", None),
    )
  else:
    usage.requests = 1

  finish_reason = FINISH_REASONS.get(choice.finish_reason, choice.finish_reason or "stop")
  return ModelResponse(
    text=text,
    tool_calls=tool_calls,
    finish_reason=finish_reason,
    usage=usage,
    response_messages=[AssistantMessage(text, tool_calls=tool_calls)],
  )


def normalize_messages(messages: List[ConversationMessage]) -> List[dict]:
  """Convert conversation messages to the chat completion format."""
  converter = MessageConverter.create()
  normalized = []
  for message in deepcopy(messages):
    d = converter.message_to_dict(message) if not isinstance(message, dict) else message
    msg = {"role": d["role"], "content": d["content"]["text"] if isinstance(d.get("content"), dict) else d.get("content")}
    if d.get("tool_calls"):
      msg["tool_calls"] = d["tool_calls"]
    if d.get("tool_call_id"):
      msg["tool_call_id"] = d["tool_call_id"]
      msg["name"] = d.get("name")
    normalized.append(msg)

  # drop messages without useful information
  result = []
  for msg in normalized:
    match msg["role"]:
      case "system" | "user" if not msg.get("content"):
        continue
      case "assistant" if not msg.get("content") and not msg.get("tool_calls"):
        continue
      case _:
        if msg["role"] == "assistant" and not msg.get("content"):
          msg["content"] = None
        result.append(msg)
  return result
