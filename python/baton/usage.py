from dataclasses import dataclass, asdict
from typing import Optional


@dataclass
class Usage:
  """Token usage accumulated across model calls. Counters only ever increase."""

  requests: int = 0
  input_tokens: int = 0
  output_tokens: int = 0
  total_tokens: int = 0

  def add(self, other: "Usage") -> "Usage":
    self.requests += other.requests
    self.input_tokens += other.input_tokens
    self.output_tokens += other.output_tokens
    self.total_tokens += other.total_tokens
    return self

  def add_tokens(self, input_tokens: int = 0, output_tokens: int = 0, total_tokens: Optional[int] = None, requests: int = 1):
    input_tokens, output_tokens = max(input_tokens or 0, 0), max(output_tokens or 0, 0)
    if not total_tokens:
      total_tokens = input_tokens + output_tokens
    self.add(Usage(max(requests, 1), input_tokens, output_tokens, max(total_tokens, 0)))
    return self

  def to_dict(self) -> dict:
    return asdict(self)


# Price per million tokens as (input, output), matched by substring of the model name.
# More specific names come first.
MODEL_PRICING = [
  ("gpt-4o", (2.5, 10.0)),
  ("gpt-4", (30.0, 60.0)),
  ("gpt-3.5", (0.5, 1.5)),
  ("claude-3-opus", (15.0, 75.0)),
  ("sonnet", (3.0, 15.0)),
  ("haiku", (0.25, 1.25)),
]
DEFAULT_PRICING = (0.5, 1.5)


def estimate_cost(usage: Usage, model_name: str) -> float:
  """
  Estimate the cost in USD of the given usage for a model.

  Args:
    usage: Accumulated usage
    model_name: Model name, matched case-insensitively against known model families

  Returns:
    Estimated cost in USD
  """
  name = (model_name or "").lower()
  input_price, output_price = next((price for key, price in MODEL_PRICING if key in name), DEFAULT_PRICING)
  return (usage.input_tokens / 1_000_000) * input_price + (usage.output_tokens / 1_000_000) * output_price
