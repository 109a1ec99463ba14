import cattr
import json

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class ConversationRole(Enum):
  USER = "user"
  SYSTEM = "system"
  ASSISTANT = "assistant"
  TOOL = "tool"


@dataclass
class FunctionToolCall:
  name: str
  arguments: str = field(default_factory=str)


@dataclass
class ToolCall:
  id: str
  function: FunctionToolCall
  type: str = "function"

  @property
  def name(self) -> str:
    return self.function.name

  def parsed_arguments(self) -> dict:
    """
    Decode the JSON arguments of this call.

    Returns an empty dict for empty arguments. Raises ValueError when the arguments are
    not a JSON object.
    """
    raw = self.function.arguments
    if raw is None or raw.strip() == "":
      return {}
    try:
      args = json.loads(raw)
    except json.JSONDecodeError as e:
      raise ValueError(f"Invalid JSON format: {str(e)}")
    if not isinstance(args, dict):
      raise ValueError(f"JSON argument must be an object, got {type(args).__name__}")
    return args


@dataclass
class TextContent:
  text: str = ""

  def __add__(self, other):
    if isinstance(other, TextContent):
      return TextContent(self.text + other.text)
    if isinstance(other, str):
      return TextContent(self.text + other)
    raise TypeError("Unsupported type for addition with TextContent: {}".format(type(other)))


class BaseMessage:
  content: TextContent
  role: ConversationRole

  @property
  def text(self) -> str:
    return self.content.text


@dataclass
class UserMessage(BaseMessage):
  content: TextContent = field(default_factory=lambda: TextContent(""))
  role: ConversationRole = ConversationRole.USER

  def __init__(self, content: str | TextContent = "", role: ConversationRole = ConversationRole.USER):
    if isinstance(content, str):
      content = TextContent(content)
    self.content = content
    self.role = role


@dataclass
class SystemMessage(BaseMessage):
  content: TextContent = field(default_factory=lambda: TextContent(""))
  role: ConversationRole = ConversationRole.SYSTEM

  def __init__(self, content: str | TextContent = "", role: ConversationRole = ConversationRole.SYSTEM):
    if isinstance(content, str):
      content = TextContent(content)
    self.content = content
    self.role = role


@dataclass
class AssistantMessage(BaseMessage):
  content: TextContent = field(default_factory=lambda: TextContent(""))
  tool_calls: list[ToolCall] = field(default_factory=list)
  role: ConversationRole = ConversationRole.ASSISTANT

  def __init__(
    self,
    content: str | TextContent = "",
    tool_calls: Optional[list[ToolCall]] = None,
    role: ConversationRole = ConversationRole.ASSISTANT,
  ):
    if isinstance(content, str):
      content = TextContent(content)
    self.content = content
    self.tool_calls = tool_calls if tool_calls is not None else []
    self.role = role


@dataclass
class ToolCallResponseMessage(BaseMessage):
  tool_call_id: str
  name: str
  content: TextContent = field(default_factory=lambda: TextContent(""))
  role: ConversationRole = ConversationRole.TOOL

  def __init__(
    self,
    tool_call_id: str,
    name: str,
    content: str | TextContent = "",
    role: ConversationRole = ConversationRole.TOOL,
  ):
    if isinstance(content, str):
      content = TextContent(content)
    self.tool_call_id = tool_call_id
    self.name = name
    self.content = content
    self.role = role


ConversationMessage = Union[UserMessage, SystemMessage, AssistantMessage, ToolCallResponseMessage]


def to_messages(value: Union[str, ConversationMessage, list]) -> list[ConversationMessage]:
  """
  Normalize run input into a list of conversation messages.

  Accepts a plain string (a single user message), one message, a list of messages,
  or a list of role/content dicts.
  """
  if isinstance(value, str):
    return [UserMessage(value)]
  if isinstance(value, BaseMessage):
    return [value]

  messages = []
  for item in value:
    if isinstance(item, BaseMessage):
      messages.append(item)
    elif isinstance(item, dict):
      messages.append(MessageConverter.create().conversation_message_from_dict(item))
    elif isinstance(item, str):
      messages.append(UserMessage(item))
    else:
      raise TypeError(f"Unsupported input message type: {type(item).__name__}")
  return messages


CACHE = None


class MessageConverter:
  """
  Converts conversation messages to and from plain dicts and JSON.

  Plain dicts may use either the nested form produced by ``message_to_dict``
  (``{"role": "user", "content": {"text": "hi"}}``) or the flat form used by chat APIs
  (``{"role": "user", "content": "hi"}``).
  """

  @staticmethod
  def create():
    global CACHE
    if CACHE:
      return CACHE

    CACHE = MessageConverter()
    return CACHE

  def __init__(self):
    self.converter = cattr.Converter()
    self._register_hooks()

  def _register_hooks(self):
    # ConversationRole
    @self.converter.register_unstructure_hook
    def unstructure_conversation_role(enum_obj: ConversationRole) -> str:
      return enum_obj.value

    @self.converter.register_structure_hook
    def structure_conversation_role(data: str, cls) -> ConversationRole:
      return cls(data)

    # TextContent, flat strings are accepted on the way in
    @self.converter.register_structure_hook
    def structure_text_content(data: Any, cls) -> TextContent:
      if data is None:
        return TextContent("")
      if isinstance(data, str):
        return TextContent(data)
      return TextContent(data.get("text", ""))

    # ConversationMessage
    @self.converter.register_structure_hook
    def structure_conversation_message(obj: dict, cls) -> ConversationMessage:
      role = obj.get("role")
      mapping = {
        "user": UserMessage,
        "system": SystemMessage,
        "assistant": AssistantMessage,
        "tool": ToolCallResponseMessage,
      }
      typ = mapping.get(role)
      if typ is None:
        raise ValueError(f"Unknown conversation role: {role}")
      return self._structure_message(obj, typ)

  def _structure_message(self, obj: dict, typ):
    content = self.converter.structure(obj.get("content"), TextContent)
    if typ is AssistantMessage:
      tool_calls = [self.converter.structure(t, ToolCall) for t in obj.get("tool_calls") or []]
      return AssistantMessage(content, tool_calls=tool_calls)
    if typ is ToolCallResponseMessage:
      return ToolCallResponseMessage(obj["tool_call_id"], obj["name"], content)
    return typ(content)

  def conversation_message_from_dict(self, data: dict) -> ConversationMessage:
    return self.converter.structure(data, ConversationMessage)

  def message_to_dict(self, message: ConversationMessage) -> dict:
    return self.converter.unstructure(message)

  def messages_to_dicts(self, messages: list[ConversationMessage]) -> list[dict]:
    return [self.message_to_dict(m) for m in messages]

  def messages_from_dicts(self, data: list[dict]) -> list[ConversationMessage]:
    return [self.conversation_message_from_dict(m) for m in data]

  def message_from_json(self, data: str) -> ConversationMessage:
    return self.conversation_message_from_dict(json.loads(data))

  def message_to_json(self, message: ConversationMessage) -> str:
    return json.dumps(self.message_to_dict(message))
