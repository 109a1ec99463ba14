"""
Structured output extraction.

``extract_structured_output`` is the single place where free text from a model is turned
into a structured payload. The order is fixed:

1. parse the whole text as JSON;
2. parse the first fenced code block (```json ... ``` or ``` ... ```);
3. give up and return the raw text.

When a schema is given, the parsed JSON must also structure into it (through cattrs) for
a step to succeed. A schema can be a dataclass or attrs class, ``dict``/``list``, or any
type cattrs knows how to structure.
"""

import json
import re

from typing import Any, Optional, Tuple

import cattr

from .logs import get_logger

logger = get_logger("runner")

FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*\n(.*?)\n?```", re.DOTALL)

_converter = cattr.Converter()


def _structure(payload: Any, schema: Optional[Any]) -> Any:
  if schema is None or schema is Any:
    return payload
  return _converter.structure(payload, schema)


def _attempt(raw: str, schema: Optional[Any]) -> Tuple[bool, Any]:
  try:
    payload = json.loads(raw)
  except (json.JSONDecodeError, TypeError):
    return False, None
  try:
    return True, _structure(payload, schema)
  except Exception as e:
    logger.debug(f"Parsed JSON does not match the output schema: {e}")
    return False, None


def extract_structured_output(text: str, schema: Optional[Any] = None) -> Any:
  """
  Extract a structured payload from model text.

  Args:
    text: Text produced by the model
    schema: Optional type the payload must structure into

  Returns:
    The structured payload, or ``text`` unchanged when nothing could be extracted

  Example:
    @dataclass
    class Invoice:
      total: float

    extract_structured_output('Here:\\n```json\\n{"total": 12.5}\\n```', Invoice)
    # Invoice(total=12.5)
  """
  if not text:
    return text

  ok, value = _attempt(text.strip(), schema)
  if ok:
    return value

  match = FENCED_BLOCK.search(text)
  if match:
    ok, value = _attempt(match.group(1).strip(), schema)
    if ok:
      return value

  logger.debug("No structured payload found in the output, returning the raw text")
  return text
