import inspect
import re

from typing import Any, Callable, Dict, List, Optional, Union, get_args, get_origin, get_type_hints
from functools import wraps
from docstring_parser import parse

from .protocol import InvokableTool
from ..context import RunContextWrapper
from ..errors import UserError
from ..logs.logs import DebugContext

TOOL_NAME_PATTERN = r"^[a-z0-9_-]+$"

# Parameter names that receive the run context wrapper instead of a model argument
CONTEXT_PARAMETER_NAMES = ("context_wrapper", "run_context")

# Upper bound on the JSON size of the arguments of one call
MAX_ARGUMENTS_SIZE = 1024 * 1024

EnabledPredicate = Callable[[RunContextWrapper], Union[bool, Any]]
ApprovalPredicate = Callable[[Any, dict], Union[bool, Any]]


class Tool(InvokableTool, DebugContext):
  """
  A python function exposed to the model as a callable tool.

  The JSON schema of the parameters is derived from the signature and the docstring.
  A parameter named ``context_wrapper`` (or annotated with ``RunContextWrapper``) is not
  exposed to the model; it receives the run context wrapper instead.

  ``enabled`` is either a bool or a predicate of the context wrapper, evaluated once per
  turn. A tool that is not enabled stays visible to the model, but every call to it
  requires a human approval before it runs. ``needs_approval`` is an optional per call
  predicate of ``(context, args)`` with the same effect.

  Example:
    def delete_file(path: str):
      \"\"\"Delete a file.

      Args:
        path (str): the file to delete
      \"\"\"
      ...

    Tool(delete_file, enabled=False, approval_metadata={"severity": "high"})
  """

  _logger = None

  @classmethod
  def class_logger(cls):
    if cls._logger:
      return cls._logger
    else:
      from ..logs.logs import get_logger

      cls._logger = get_logger("tool")
      return cls._logger

  def __init__(
    self,
    func: Callable,
    name: Optional[str] = None,
    description: Optional[str] = None,
    enabled: Union[bool, EnabledPredicate] = True,
    needs_approval: Optional[ApprovalPredicate] = None,
    approval_metadata: Optional[Dict[str, Any]] = None,
    parameters: Optional[dict] = None,
  ):
    self.logger = Tool.class_logger()
    self.context_parameter = context_parameter(func)
    tool_name, spec = function_spec(func, name=name, description=description, parameters=parameters)
    if re.match(TOOL_NAME_PATTERN, tool_name) is None:
      raise UserError(f"Tool name '{tool_name}' may only contain [a-z0-9_-] characters")

    self.original_func = func
    self.func = wrap(func)
    self.name = tool_name
    self.description = spec["function"]["description"]
    self.parameters = spec["function"]["parameters"]
    self._spec = spec
    self.enabled = enabled
    self.approval_predicate = needs_approval
    self.approval_metadata = approval_metadata or {}

  async def spec(self) -> dict:
    return self._spec

  async def is_enabled(self, context_wrapper: RunContextWrapper) -> bool:
    if isinstance(self.enabled, bool):
      return self.enabled
    return bool(await maybe_await(self.enabled(context_wrapper)))

  async def needs_approval(self, context_wrapper: RunContextWrapper, args: dict) -> bool:
    if self.approval_predicate is None:
      return False
    return bool(await maybe_await(self.approval_predicate(context_wrapper.context, args)))

  async def execute(self, args: Optional[dict], context_wrapper: RunContextWrapper) -> Any:
    """
    Validate the arguments and call the function.

    Args:
      args: Decoded arguments requested by the model
      context_wrapper: The run context wrapper

    Returns:
      Whatever the function returns

    Raises:
      ValueError: If the arguments do not match the signature
      Exception: Anything raised by the function itself
    """
    with self.debug(f"Execute tool: '{self.name}'", f"Executed tool: '{self.name}'"):
      self.logger.debug(f"The tool arguments are: {args}")
      kwargs = self._validate_arguments(args or {})
      if self.context_parameter:
        kwargs[self.context_parameter] = context_wrapper
      return await self.func(**kwargs)

  def _validate_arguments(self, args: dict) -> dict:
    if not isinstance(args, dict):
      raise ValueError(f"Tool arguments must be an object, got {type(args).__name__}")
    if len(repr(args)) > MAX_ARGUMENTS_SIZE:
      raise ValueError(f"Tool arguments too large (max: {MAX_ARGUMENTS_SIZE:,} bytes)")

    signature = inspect.signature(self.original_func)
    accepts_kwargs = any(p.kind == inspect.Parameter.VAR_KEYWORD for p in signature.parameters.values())
    names = {
      n
      for n, p in signature.parameters.items()
      if n != self.context_parameter and p.kind not in (inspect.Parameter.VAR_KEYWORD, inspect.Parameter.VAR_POSITIONAL)
    }

    extra = set(args) - names
    if extra and not accepts_kwargs:
      raise ValueError(f"Unexpected arguments: {', '.join(sorted(extra))}")

    missing = {
      n for n in names if signature.parameters[n].default == inspect.Parameter.empty and n not in args
    }
    if missing:
      raise ValueError(f"Missing required arguments: {', '.join(sorted(missing))}")

    return self._coerce_arguments(args)

  def _coerce_arguments(self, args: dict) -> dict:
    """Coerce JSON values to the types declared by the function.

    Models frequently send numbers and booleans as strings.
    """
    try:
      type_hints = get_type_hints(self.original_func)
    except Exception:
      return dict(args)

    coerced = {}
    for arg_name, value in args.items():
      expected = unwrap_optional(type_hints.get(arg_name))
      if expected is None:
        coerced[arg_name] = value
        continue
      try:
        coerced[arg_name] = coerce_value(value, expected)
      except (ValueError, TypeError):
        type_name = getattr(expected, "__name__", str(expected))
        raise ValueError(
          f"Argument '{arg_name}' has invalid type: expected {type_name}, "
          f"got {type(value).__name__} (value: {value!r})"
        )
      if type(coerced[arg_name]) is not type(value):
        self.logger.debug(f"Coerced argument '{arg_name}': {value!r} -> {coerced[arg_name]!r}")
    return coerced


def unwrap_optional(expected):
  """Return X for Optional[X] and X | None, and the type itself otherwise."""
  if expected is None:
    return None
  origin = get_origin(expected)
  if origin is Union or type(expected).__name__ == "UnionType":
    non_none = [t for t in get_args(expected) if t is not type(None)]
    return non_none[0] if len(non_none) == 1 else None
  return expected


def coerce_value(value, expected):
  if value is None or expected is Any:
    return value

  origin = get_origin(expected)
  if origin is not None:
    if not isinstance(origin, type) or isinstance(value, origin):
      return value
    raise TypeError(f"expected {origin.__name__}")

  if expected is bool:
    if isinstance(value, bool):
      return value
    if isinstance(value, str):
      lowered = value.strip().lower()
      if lowered in ("true", "1", "yes", "on"):
        return True
      if lowered in ("false", "0", "no", "off"):
        return False
      raise ValueError(f"Cannot coerce string '{value}' to bool")
    if isinstance(value, (int, float)):
      return bool(value)
    raise TypeError("bool expected")

  if expected is int:
    if isinstance(value, bool):
      return int(value)
    if isinstance(value, int):
      return value
    if isinstance(value, float) and value.is_integer():
      return int(value)
    if isinstance(value, str):
      return int(value.strip())
    raise TypeError("int expected")

  if expected is float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
      return float(value)
    if isinstance(value, str):
      return float(value.strip())
    raise TypeError("float expected")

  if expected is str:
    return value if isinstance(value, str) else str(value)

  if isinstance(expected, type) and not isinstance(value, expected):
    if expected in (list, dict):
      raise TypeError(f"{expected.__name__} expected")
  return value


async def maybe_await(value):
  if inspect.isawaitable(value):
    return await value
  return value


def wrap(f) -> Callable:
  @wraps(f)
  async def wrapper(**kwargs):
    r = f(**kwargs)
    if inspect.isawaitable(r):
      return await r
    return r

  return wrapper


def context_parameter(f) -> Optional[str]:
  """Name of the parameter that receives the run context wrapper, if any."""
  for p_name, p in inspect.signature(f).parameters.items():
    if p_name in CONTEXT_PARAMETER_NAMES or p.annotation is RunContextWrapper or p.annotation == "RunContextWrapper":
      return p_name
  return None


def function_spec(
  f, name: Optional[str] = None, description: Optional[str] = None, parameters: Optional[dict] = None
) -> (str, dict):
  f_name = name or f.__name__
  if description is None:
    description = inspect.cleandoc(f.__doc__) if f.__doc__ else f"Function {f_name}"
  f_parameters = parameters if parameters is not None else parameters_spec(f)
  return f_name, {
    "type": "function",
    "function": {"name": f_name, "description": description, "parameters": f_parameters},
  }


def parameters_spec(f):
  f_parameters = {"type": "object", "properties": {}, "required": []}

  signature = inspect.signature(f)
  try:
    type_hints = get_type_hints(f)
  except Exception:
    type_hints = {}
  skip = context_parameter(f)

  p_info_from_docstring = parameter_info_from_docstring(f.__doc__)
  for p_name, p in signature.parameters.items():
    if p_name == skip or p.kind in (inspect.Parameter.VAR_KEYWORD, inspect.Parameter.VAR_POSITIONAL):
      continue

    # The docstring type wins over the type hint
    hint = unwrap_optional(type_hints.get(p_name))
    p_type = getattr(get_origin(hint) or hint, "__name__", "Any") if hint is not None else "Any"
    doc_type, p_description = p_info_from_docstring.get(p_name, (None, None))
    p_type = to_json_schema_type(doc_type or p_type)

    f_parameters["properties"][p_name] = {"type": p_type, "description": p_description or f"parameter {p_name}"}

    if p.default == inspect.Parameter.empty:
      f_parameters["required"].append(p_name)

  return f_parameters


def to_json_schema_type(p_type):
  return {
    "bool": "boolean",
    "int": "integer",
    "float": "number",
    "str": "string",
    "list": "array",
    "List": "array",
    "dict": "object",
    "Dict": "object",
  }.get(p_type, "string")


def parameter_info_from_docstring(docstring) -> Dict[str, tuple]:
  p_info = {}
  if not docstring:
    return p_info

  parsed = parse(docstring)
  for parameter in parsed.params:
    p_info[parameter.arg_name] = (parameter.type_name, parameter.description)

  return p_info


def as_tools(tools: Optional[List[Union[Tool, Callable]]]) -> List[InvokableTool]:
  """Wrap plain functions as tools, keep everything else as is."""
  result = []
  for t in tools or []:
    if isinstance(t, Tool) or hasattr(t, "execute"):
      result.append(t)
    elif callable(t):
      result.append(Tool(t))
    else:
      raise UserError(f"Unsupported tool: {t!r}")
  return result
