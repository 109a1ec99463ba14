from typing import List, Optional

from .guardrail import GuardrailResult, GuardrailType
from ..context import RunContextWrapper
from ..logs import get_logger
from ..messages import UserMessage
from ..output import extract_structured_output

logger = get_logger("guardrail")

DEFAULT_CATEGORIES = ["hate speech", "violence", "sexual content", "harassment", "self-harm"]

CLASSIFY_TOOL = {
  "type": "function",
  "function": {
    "name": "classify",
    "description": "Classify content safety",
    "parameters": {
      "type": "object",
      "properties": {
        "is_safe": {"type": "boolean", "description": "whether the content is safe"},
        "detected_categories": {
          "type": "array",
          "items": {"type": "string"},
          "description": "unsafe categories found in the content",
        },
        "confidence": {"type": "number", "description": "confidence between 0 and 1"},
      },
      "required": ["is_safe", "detected_categories"],
    },
  },
}


class ContentSafetyGuardrail:
  """
  Content moderation with a language model.

  The model is asked to call a ``classify`` tool. A classification is also accepted as
  JSON in the text of the answer. When no classification can be read at all, the check
  fails: an unreadable verdict is not treated as safe.
  """

  def __init__(
    self,
    type: GuardrailType | str,
    model,
    categories: Optional[List[str]] = None,
    name: str = "content_safety",
  ):
    self.name = name
    self.type = GuardrailType(type)
    self.model = model
    self.categories = categories or list(DEFAULT_CATEGORIES)

  def system_prompt(self) -> str:
    return (
      "You are a content moderation system. Analyze the following text and determine if it contains any of "
      f"these categories: {', '.join(self.categories)}. Call the classify tool with your verdict."
    )

  async def validate(self, content: str, context_wrapper: RunContextWrapper) -> GuardrailResult:
    response = await self.model.generate(self.system_prompt(), [UserMessage(content)], [CLASSIFY_TOOL], {})
    classification = None
    for tool_call in response.tool_calls:
      if tool_call.name == "classify":
        classification = tool_call.parsed_arguments()
        break
    if classification is None:
      parsed = extract_structured_output(response.text, dict)
      classification = parsed if isinstance(parsed, dict) else None

    if classification is None:
      logger.warning(f"[GUARDRAIL] '{self.name}' could not read a classification: {response.text!r}")
      return GuardrailResult(passed=False, message="Content safety classification unavailable")

    if classification.get("is_safe", False):
      return GuardrailResult(passed=True, metadata=classification)

    detected = classification.get("detected_categories") or []
    return GuardrailResult(
      passed=False,
      message=f"Content contains inappropriate content: {', '.join(detected) or 'unsafe content'}",
      metadata=dict(classification),
    )
