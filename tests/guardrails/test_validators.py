import pytest

from baton import Agent, RunContextWrapper
from baton.guardrails import (
  ContentSafetyGuardrail,
  CustomGuardrail,
  GuardrailResult,
  GuardrailType,
  LengthGuardrail,
  PiiGuardrail,
  guardrail,
)
from baton.state import RunState
from tests.agents.mock_utils import MockModel


def wrapper_for(agent=None, context=None):
  if agent is None:
    return RunContextWrapper(context)
  return RunContextWrapper(context, RunState(agent, "hello", context=context))


class TestLengthGuardrail:
  @pytest.mark.asyncio
  async def test_characters(self):
    check = LengthGuardrail("output", max_length=10)

    assert (await check.validate("short", wrapper_for())).passed
    result = await check.validate("this is far too long", wrapper_for())
    assert not result.passed
    assert result.message == "Content too long: 20 characters (max: 10)"
    assert result.metadata == {"character_length": 20, "length": 20, "unit": "characters"}

  @pytest.mark.asyncio
  async def test_words_and_minimum(self):
    check = LengthGuardrail(GuardrailType.INPUT, min_length=3, unit="words")

    result = await check.validate("two words", wrapper_for())
    assert not result.passed
    assert result.message == "Content too short: 2 words (min: 3)"

  @pytest.mark.asyncio
  async def test_tokens_use_the_agent_tokenizer(self):
    agent = Agent(name="counter", tokenizer=lambda text: len(text.split()))
    check = LengthGuardrail("output", max_length=2, unit="tokens")

    result = await check.validate("one two three", wrapper_for(agent))
    assert not result.passed
    assert result.metadata["length"] == 3

  def test_unknown_unit(self):
    with pytest.raises(ValueError):
      LengthGuardrail("output", unit="pages")


class TestPiiGuardrail:
  @pytest.mark.asyncio
  async def test_detects_categories(self):
    check = PiiGuardrail("input")

    result = await check.validate("Mail me at ada@example.com, my SSN is 123-45-6789", wrapper_for())
    assert not result.passed
    assert "email" in result.metadata["detected_categories"]
    assert "ssn" in result.metadata["detected_categories"]
    assert result.message.startswith("PII detected: ")

  @pytest.mark.asyncio
  async def test_clean_content_passes(self):
    assert (await PiiGuardrail("output").validate("The invoice total is 42 dollars", wrapper_for())).passed

  @pytest.mark.asyncio
  async def test_categories_and_warning_mode(self):
    check = PiiGuardrail("output", categories=["ip_address"], block=False)

    assert check.detect("server 10.0.0.1, contact ada@example.com") == ["ip_address"]
    result = await check.validate("server 10.0.0.1", wrapper_for())
    assert result.passed
    assert result.message == "Warning: PII detected: ip_address"

  def test_unknown_category(self):
    with pytest.raises(ValueError):
      PiiGuardrail("input", categories=["passport"])


class TestCustomGuardrail:
  @pytest.mark.asyncio
  async def test_function_results_are_normalized(self):
    as_bool = CustomGuardrail("bool", "input", lambda content, cw: "hello" in content)
    as_dict = CustomGuardrail("dict", "input", lambda content, cw: {"passed": False, "message": "nope"})

    assert (await as_bool.validate("hello there", wrapper_for())).passed
    result = await as_dict.validate("anything", wrapper_for())
    assert not result.passed
    assert result.message == "nope"

  @pytest.mark.asyncio
  async def test_decorator(self):
    @guardrail("output")
    async def no_apologies(content, context_wrapper):
      return GuardrailResult(passed="sorry" not in content.lower(), message="Do not apologize")

    assert no_apologies.name == "no_apologies"
    assert no_apologies.type == GuardrailType.OUTPUT
    assert not (await no_apologies.validate("Sorry about that", wrapper_for())).passed

  @pytest.mark.asyncio
  async def test_invalid_return_value(self):
    check = CustomGuardrail("broken", "input", lambda content, cw: 42)
    with pytest.raises(TypeError):
      await check.validate("x", wrapper_for())


class TestContentSafetyGuardrail:
  @pytest.mark.asyncio
  async def test_safe_classification(self):
    model = MockModel(
      [{"tool_calls": [{"name": "classify", "arguments": {"is_safe": True, "detected_categories": [], "confidence": 0.9}}]}]
    )
    check = ContentSafetyGuardrail("output", model)

    result = await check.validate("Have a nice day", wrapper_for())

    assert result.passed
    assert model.calls[0]["tools"] == ["classify"]
    assert "hate speech" in model.calls[0]["system"]
    assert model.calls[0]["messages"][0].text == "Have a nice day"

  @pytest.mark.asyncio
  async def test_unsafe_classification(self):
    model = MockModel(
      [{"tool_calls": [{"name": "classify", "arguments": {"is_safe": False, "detected_categories": ["harassment"]}}]}]
    )
    result = await ContentSafetyGuardrail("output", model).validate("...", wrapper_for())

    assert not result.passed
    assert result.message == "Content contains inappropriate content: harassment"

  @pytest.mark.asyncio
  async def test_json_answer_is_accepted(self):
    model = MockModel([{"content": '{"is_safe": true, "detected_categories": []}'}])
    assert (await ContentSafetyGuardrail("input", model).validate("hi", wrapper_for())).passed

  @pytest.mark.asyncio
  async def test_unreadable_classification_fails(self):
    model = MockModel([{"content": "I think it is fine"}])
    result = await ContentSafetyGuardrail("input", model).validate("hi", wrapper_for())

    assert not result.passed
    assert result.message == "Content safety classification unavailable"
