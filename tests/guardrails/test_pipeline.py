import pytest

from baton import (
  Agent,
  CustomGuardrail,
  GuardrailResult,
  GuardrailType,
  InputGuardrailTripwire,
  LengthGuardrail,
  MaxTurnsExceededError,
  PiiGuardrail,
  RunContextWrapper,
  RunHooks,
  run,
)
from baton.guardrails import GuardrailOutcome, build_feedback, run_guardrails, select_guardrails
from baton.messages import SystemMessage
from tests.agents.mock_utils import MockModel


def raising(content, context_wrapper):
  raise RuntimeError("validator offline")


class TestRunGuardrails:
  @pytest.mark.asyncio
  async def test_outcomes_keep_order(self):
    guardrails = [
      CustomGuardrail("first", "input", lambda c, cw: True),
      CustomGuardrail("second", "input", lambda c, cw: {"passed": False, "message": "no"}),
    ]

    outcomes = await run_guardrails(guardrails, "text", RunContextWrapper())

    assert [(o.name, o.passed) for o in outcomes] == [("first", True), ("second", False)]
    assert outcomes[1].message == "no"

  @pytest.mark.asyncio
  async def test_raising_validator_fails_closed(self):
    outcomes = await run_guardrails([CustomGuardrail("flaky", "input", raising)], "text", RunContextWrapper())

    assert not outcomes[0].passed
    assert outcomes[0].message == "Guardrail check failed: validator offline"
    assert outcomes[0].error == "validator offline"

  @pytest.mark.asyncio
  async def test_plain_guardrail_results_are_normalized(self):
    class PlainGuardrail:
      type = "output"

      def __init__(self, name, returned):
        self.name = name
        self.returned = returned

      async def validate(self, content, context_wrapper):
        return self.returned

    guardrails = [
      PlainGuardrail("as_dict", {"passed": True, "message": "fine"}),
      PlainGuardrail("as_bool", True),
      PlainGuardrail("as_number", 42),
    ]

    outcomes = await run_guardrails(guardrails, "text", RunContextWrapper())

    assert [(o.name, o.passed) for o in outcomes] == [("as_dict", True), ("as_bool", True), ("as_number", False)]
    assert outcomes[0].message == "fine"
    assert outcomes[2].error is not None
    assert "int" in outcomes[2].error
    assert outcomes[2].message.startswith("Guardrail check failed:")

  @pytest.mark.asyncio
  async def test_no_guardrails(self):
    assert await run_guardrails([], "text", RunContextWrapper()) == []

  def test_select_by_type(self):
    pii = PiiGuardrail("input")
    length = LengthGuardrail("output", max_length=5)

    assert select_guardrails([pii, length], GuardrailType.OUTPUT) == [length]
    assert select_guardrails(None, GuardrailType.INPUT) == []


class TestFeedback:
  def test_length_feedback(self):
    outcome = GuardrailOutcome(
      "length_check",
      GuardrailType.OUTPUT,
      passed=False,
      message="Content too long: 200 characters (max: 100)",
      metadata={"length": 200, "unit": "characters"},
    )

    feedback = build_feedback("x" * 200, outcome)

    assert "too long (200 characters, max: 100)" in feedback
    assert "50% shorter" in feedback
    assert "DO NOT fetch more data" in feedback

  @pytest.mark.asyncio
  async def test_too_short_feedback_asks_to_expand(self):
    guardrail = LengthGuardrail("output", min_length=50)
    [outcome] = await run_guardrails([guardrail], "Short.", RunContextWrapper())

    feedback = build_feedback("Short.", outcome)

    assert outcome.name == "length_check"
    assert "too short (6 characters, min: 50)" in feedback
    assert "EXPAND" in feedback
    assert "too long" not in feedback
    assert "shorter" not in feedback

  def test_pii_feedback(self):
    outcome = GuardrailOutcome("pii_detection", GuardrailType.OUTPUT, passed=False, message="PII detected: email")
    assert "personally identifiable information" in build_feedback("a@b.io", outcome)

  def test_inappropriate_feedback(self):
    outcome = GuardrailOutcome(
      "content_safety", GuardrailType.OUTPUT, passed=False, message="Content contains inappropriate content: violence"
    )
    assert "professional and appropriate language" in build_feedback("...", outcome)

  def test_error_feedback(self):
    outcome = GuardrailOutcome("flaky", GuardrailType.OUTPUT, passed=False, error="timeout")
    assert build_feedback("...", outcome) == "Guardrail check failed: timeout. Please regenerate your response."

  def test_generic_feedback(self):
    outcome = GuardrailOutcome("tone", GuardrailType.OUTPUT, passed=False, message="Too casual")
    assert build_feedback("yo", outcome).startswith("Your response failed validation: Too casual.")


class TestInputGuardrails:
  @pytest.mark.asyncio
  async def test_rejected_input_never_reaches_the_model(self):
    model = MockModel([{"content": "Sure"}])
    agent = Agent(name="support", model=model, guardrails=[PiiGuardrail("input")])

    with pytest.raises(InputGuardrailTripwire) as exc_info:
      await run(agent, "My SSN is 123-45-6789")

    assert exc_info.value.guardrail_name == "pii_detection"
    assert exc_info.value.reason == "PII detected: ssn"
    assert exc_info.value.agent_name == "support"
    assert model.call_count == 0

  @pytest.mark.asyncio
  async def test_raising_input_guardrail_is_fatal(self):
    model = MockModel([{"content": "Sure"}])
    agent = Agent(name="support", model=model, guardrails=[CustomGuardrail("flaky", "input", raising)])

    with pytest.raises(InputGuardrailTripwire) as exc_info:
      await run(agent, "Hello")

    assert exc_info.value.reason == "Guardrail check failed: validator offline"
    assert model.call_count == 0

  @pytest.mark.asyncio
  async def test_tripwire_hook(self):
    tripped = []
    hooks = RunHooks()
    hooks.on("guardrail_tripped", lambda outcome, **kwargs: tripped.append(outcome.name))
    agent = Agent(name="support", model=MockModel(), guardrails=[LengthGuardrail("input", max_length=3)])

    with pytest.raises(InputGuardrailTripwire):
      await run(agent, "far too long", hooks=hooks)

    assert tripped == ["length_check"]

  @pytest.mark.asyncio
  async def test_accepted_input(self):
    model = MockModel([{"content": "Hi!"}])
    agent = Agent(name="support", model=model, guardrails=[PiiGuardrail("input"), PiiGuardrail("output")])

    result = await run(agent, "Hello there")

    assert result.final_output == "Hi!"
    assert model.call_count == 1


class TestOutputGuardrails:
  @pytest.mark.asyncio
  async def test_failed_output_is_retried_with_feedback(self):
    model = MockModel(
      [
        {"content": "You can reach Ada at ada@example.com"},
        {"content": "You can reach Ada through the support portal"},
      ]
    )
    agent = Agent(name="support", model=model, guardrails=[PiiGuardrail("output")])

    result = await run(agent, "How do I contact Ada?")

    assert result.final_output == "You can reach Ada through the support portal"
    assert model.call_count == 2
    second_call = model.messages_of_call(1)
    assert isinstance(second_call[-1], SystemMessage)
    assert "personally identifiable information" in second_call[-1].text
    assert second_call[-2].text == "You can reach Ada at ada@example.com"

  @pytest.mark.asyncio
  async def test_every_failure_gets_feedback(self):
    model = MockModel([{"content": "Mail ada@example.com for the full long story"}, {"content": "Ask support"}])
    agent = Agent(
      name="support",
      model=model,
      guardrails=[PiiGuardrail("output"), LengthGuardrail("output", max_length=20)],
    )

    await run(agent, "Who do I ask?")

    feedback = [m.text for m in model.messages_of_call(1) if isinstance(m, SystemMessage)]
    assert len(feedback) == 2
    assert "personally identifiable information" in feedback[0]
    assert "too long" in feedback[1]

  @pytest.mark.asyncio
  async def test_raising_output_guardrail_is_treated_as_failure(self):
    calls = []

    def once_flaky(content, context_wrapper):
      calls.append(content)
      if len(calls) == 1:
        raise RuntimeError("validator offline")
      return GuardrailResult(passed=True)

    model = MockModel([{"content": "first"}, {"content": "second"}])
    agent = Agent(name="support", model=model, guardrails=[CustomGuardrail("flaky", "output", once_flaky)])

    result = await run(agent, "Hi")

    assert result.final_output == "second"
    assert "Guardrail check failed: validator offline" in model.messages_of_call(1)[-1].text

  @pytest.mark.asyncio
  async def test_retries_are_bounded_by_max_turns(self):
    model = MockModel([{"content": "ada@example.com"} for _ in range(5)])
    agent = Agent(name="support", model=model, guardrails=[PiiGuardrail("output")])

    with pytest.raises(MaxTurnsExceededError):
      await run(agent, "Email?", max_turns=3)

    assert model.call_count == 3
