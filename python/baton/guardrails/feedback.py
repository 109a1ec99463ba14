"""
Feedback for failed output guardrails.

The feedback is appended to the conversation as a system message so the agent can revise
its own answer. It is tailored to the kind of failure so that the model knows what to fix,
and it steers the model away from fetching more data when a rewrite is enough.
"""

import re

from typing import Optional

from .pipeline import GuardrailOutcome

DEFAULT_MAX_LENGTH = 1500

MAX_LENGTH_PATTERN = re.compile(r"max[:\s]+(\d+)", re.IGNORECASE)
MIN_LENGTH_PATTERN = re.compile(r"min[:\s]+(\d+)", re.IGNORECASE)

LENGTH_GUARDRAIL_NAMES = ("length_check",)
PII_GUARDRAIL_NAMES = ("pii_check", "pii_detection")


def length_feedback(output: str, outcome: GuardrailOutcome) -> str:
  match = MAX_LENGTH_PATTERN.search(outcome.message or "")
  max_length = int(match.group(1)) if match else DEFAULT_MAX_LENGTH
  current_length = outcome.metadata.get("length", len(output))
  unit = outcome.metadata.get("unit", "characters")
  reduction = max(round(((current_length - max_length) / current_length) * 100), 0) if current_length else 0
  return (
    f"Your response is too long ({current_length} {unit}, max: {max_length}). "
    f"Please CONDENSE your existing response to be {reduction}% shorter. "
    "Keep all key points but make it more concise. "
    "DO NOT fetch more data - just summarize what you already have."
  )


def short_feedback(output: str, outcome: GuardrailOutcome) -> str:
  match = MIN_LENGTH_PATTERN.search(outcome.message or "")
  current_length = outcome.metadata.get("length", len(output))
  unit = outcome.metadata.get("unit", "characters")
  minimum = f", min: {match.group(1)}" if match else ""
  return (
    f"Your response is too short ({current_length} {unit}{minimum}). "
    "Please EXPAND your existing response with more detail and explanation. "
    "Keep the same answer and use the information you already have."
  )


def build_feedback(output: str, outcome: GuardrailOutcome) -> str:
  """
  Build the feedback for one failed output guardrail.

  Args:
    output: The rejected output
    outcome: The failed guardrail outcome

  Returns:
    An actionable instruction for the model
  """
  if outcome.error is not None:
    return f"Guardrail check failed: {outcome.error}. Please regenerate your response."

  message: Optional[str] = outcome.message or "Validation failed"
  if "too short" in message:
    return short_feedback(output, outcome)
  if "too long" in message or (outcome.name in LENGTH_GUARDRAIL_NAMES and MAX_LENGTH_PATTERN.search(message)):
    return length_feedback(output, outcome)
  if outcome.name in PII_GUARDRAIL_NAMES or "PII" in message:
    return (
      "Your response contains personally identifiable information (PII). Please rewrite your response "
      "without including any personal data, email addresses, phone numbers, or sensitive information."
    )
  if "profanity" in message or "inappropriate" in message:
    return (
      "Your response contains inappropriate content. "
      "Please rewrite your response using professional and appropriate language."
    )
  if "format" in message:
    return (
      f"Your response format is invalid. {message}. Please reformat your response to match the required structure."
    )
  return (
    f"Your response failed validation: {message}. "
    "Please revise your response to address this issue without fetching additional data."
  )
