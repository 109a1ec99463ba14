from dataclasses import dataclass
from typing import List

from baton import Agent, extract_structured_output, run
from tests.agents.mock_utils import MockModel

import pytest


@dataclass
class Invoice:
  total: float
  items: List[str]


class TestExtractStructuredOutput:
  def test_whole_text_is_json(self):
    assert extract_structured_output('{"total": 12.5, "items": ["a"]}') == {"total": 12.5, "items": ["a"]}

  def test_fenced_block(self):
    text = 'Here is the invoice:\n```json\n{"total": 3, "items": []}\n```\nAnything else?'
    assert extract_structured_output(text, Invoice) == Invoice(total=3.0, items=[])

  def test_unlabelled_fence(self):
    assert extract_structured_output("```\n[1, 2]\n```") == [1, 2]

  def test_raw_text_is_returned_unchanged(self):
    assert extract_structured_output("Just words") == "Just words"
    assert extract_structured_output("") == ""

  def test_schema_mismatch_falls_back_to_text(self):
    text = '{"amount": 3}'
    assert extract_structured_output(text, Invoice) == text


class TestOutputSchema:
  @pytest.mark.asyncio
  async def test_final_output_is_structured(self):
    model = MockModel([{"content": '```json\n{"total": 40, "items": ["setup", "support"]}\n```'}])
    agent = Agent(name="billing", model=model, output_schema=Invoice)

    result = await run(agent, "Bill the customer")

    assert result.final_output == Invoice(total=40.0, items=["setup", "support"])
