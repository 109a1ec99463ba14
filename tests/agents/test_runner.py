"""
Tests for the run loop: turns, transitions, limits, cancellation and collaborators.
"""

import asyncio
import pytest

from dataclasses import dataclass

from baton import (
  Agent,
  InMemorySession,
  MaxTurnsExceededError,
  ModelCallError,
  RecordingTracer,
  RunHooks,
  Runner,
  run,
)
from baton.messages import AssistantMessage, ToolCallResponseMessage, UserMessage
from baton.models.protocol import ModelResponse
from baton.runner import LOOP_DETECTED, LOOP_DETECTED_MESSAGE, determine_next_step
from baton.state import NextStepFinalOutput, NextStepInterruption, NextStepRunAgain
from baton.tools.execution import ToolExecutionResult
from baton.usage import Usage
from tests.agents.mock_utils import MockModel


def add(x: int, y: int) -> int:
  """Add two numbers.

  Args:
    x: the first number
    y: the second number
  """
  return x + y


def ping() -> str:
  """Check that the service is alive."""
  return "pong"


class TestRunLoop:
  """Basic turns of the loop."""

  @pytest.mark.asyncio
  async def test_text_answer_finishes_in_one_turn(self):
    model = MockModel([{"content": "Hello!"}])
    agent = Agent(name="assistant", instructions="Be nice.", model=model)

    result = await run(agent, "Hi")

    assert result.final_output == "Hello!"
    assert result.state.current_turn == 1
    assert len(result.steps) == 1
    assert result.metadata["finish_reason"] == "stop"
    assert result.metadata["handoff_chain"] == ["assistant"]
    assert result.messages == [UserMessage("Hi"), AssistantMessage("Hello!")]
    assert model.calls[0]["system"] == "Be nice."

  @pytest.mark.asyncio
  async def test_tool_call_then_answer(self):
    model = MockModel(
      [
        {"tool_calls": [{"name": "add", "arguments": {"x": 2, "y": 3}}]},
        {"content": "The sum is 5"},
      ]
    )
    agent = Agent(name="calculator", model=model, tools=[add])

    result = await run(agent, "What is 2 + 3?")

    assert result.final_output == "The sum is 5"
    assert result.steps[0].tool_calls[0].tool_name == "add"
    assert result.steps[0].tool_calls[0].result == 5
    assert result.metadata["total_tool_calls"] == 1

    second_call = model.messages_of_call(1)
    assert isinstance(second_call[-1], ToolCallResponseMessage)
    assert second_call[-1].tool_call_id == "call_1"
    assert second_call[-1].text == "5"
    assert model.calls[0]["tools"] == ["add"]
    assert model.calls[0]["settings"]["max_steps"] == 10

  @pytest.mark.asyncio
  async def test_turns_and_steps_are_monotonic(self):
    model = MockModel(
      [
        {"tool_calls": [{"name": "ping"}]},
        {"tool_calls": [{"name": "ping"}]},
        {"content": "Service is up"},
      ]
    )
    agent = Agent(name="monitor", model=model, tools=[ping])

    result = await run(agent, "Is the service up?")

    assert [s.step_number for s in result.steps] == [1, 2, 3]
    assert result.state.current_turn == len(result.steps)
    timestamps = [s.timestamp for s in result.steps]
    assert timestamps == sorted(timestamps)

  @pytest.mark.asyncio
  async def test_usage_accumulates_across_turns(self):
    model = MockModel(
      [
        {"tool_calls": [{"name": "ping"}], "usage": {"input_tokens": 100, "output_tokens": 20}},
        {"content": "ok", "usage": {"input_tokens": 150, "output_tokens": 10}},
      ]
    )
    agent = Agent(name="monitor", model=model, tools=[ping])

    result = await run(agent, "ping it")

    assert result.usage.requests == 2
    assert result.metadata["prompt_tokens"] == 250
    assert result.metadata["completion_tokens"] == 30
    assert result.metadata["total_tokens"] == 280
    metrics = result.metadata["agent_metrics"]["monitor"]
    assert metrics.turns == 2
    assert metrics.tool_calls == 1
    assert metrics.tokens.total_tokens == 280
    assert result.state.tool_use_tracker == {"monitor": ["ping"]}

  @pytest.mark.asyncio
  async def test_reported_usage_is_normalized(self):
    class SloppyUsageModel:
      name = "sloppy"

      async def generate(self, system, messages, tools, settings=None):
        return ModelResponse(text="done", usage=Usage(0, -5, 7, 0))

    result = await run(Agent(name="counter", model=SloppyUsageModel()), "count")

    assert result.usage == Usage(1, 0, 7, 7)
    assert result.metadata["agent_metrics"]["counter"].tokens == Usage(1, 0, 7, 7)

  @pytest.mark.asyncio
  async def test_dynamic_instructions_are_evaluated_every_turn(self):
    model = MockModel([{"tool_calls": [{"name": "ping"}]}, {"content": "done"}])
    agent = Agent(name="dynamic", model=model, tools=[ping], instructions=lambda cw: f"Turn {cw.turn}")

    await run(agent, "go")

    assert model.system_prompts() == ["Turn 1", "Turn 2"]

  @pytest.mark.asyncio
  async def test_structured_output_uses_schema(self):
    @dataclass
    class Invoice:
      total: float

    model = MockModel([{"content": 'Here it is:\n```json\n{"total": 12.5}\n```'}])
    agent = Agent(name="extractor", model=model, output_schema=Invoice)

    result = await run(agent, "Extract the invoice")

    assert result.final_output == Invoice(total=12.5)

  @pytest.mark.asyncio
  async def test_context_is_shared_by_reference(self):
    def remember(note: str, context_wrapper) -> str:
      context_wrapper.context["notes"].append(note)
      return "saved"

    context = {"notes": []}
    model = MockModel([{"tool_calls": [{"name": "remember", "arguments": {"note": "buy milk"}}]}, {"content": "Saved"}])
    agent = Agent(name="notes", model=model, tools=[remember])

    result = await run(agent, "Remember to buy milk", context=context)

    assert context["notes"] == ["buy milk"]
    assert result.state.context is context


class TestLimits:
  """Turn limit and loop guard."""

  @pytest.mark.asyncio
  async def test_max_turns_exceeded(self):
    model = MockModel([{"content": "checking", "tool_calls": [{"name": "ping"}]} for _ in range(3)])
    agent = Agent(name="looper", model=model, tools=[ping])

    with pytest.raises(MaxTurnsExceededError) as exc_info:
      await run(agent, "Loop forever", max_turns=3)

    error = exc_info.value
    assert str(error).startswith("Max turns (3) exceeded.")
    assert error.agent_name == "looper"
    assert "ping" in error.last_step_summary
    assert "checking" in error.last_step_summary
    assert model.call_count == 3

  @pytest.mark.asyncio
  async def test_loop_guard_stops_repeated_rejected_answers(self):
    model = MockModel(
      [
        {"content": "first try", "finish_reason": "content-filter"},
        {"content": "second try", "finish_reason": "content-filter"},
        {"content": "third try", "finish_reason": "content-filter"},
      ]
    )
    agent = Agent(name="stubborn", model=model, should_finish=lambda context, results: False)

    result = await run(agent, "Answer")

    assert result.final_output == LOOP_DETECTED_MESSAGE
    assert result.metadata["finish_reason"] == LOOP_DETECTED
    assert model.call_count == 2

  @pytest.mark.asyncio
  async def test_rejected_check_still_finishes_on_stop(self):
    model = MockModel([{"content": "final answer", "finish_reason": "stop"}])
    agent = Agent(name="strict", model=model, should_finish=lambda context, results: False)

    result = await run(agent, "Answer")

    assert result.final_output == "final answer"
    assert result.metadata["finish_reason"] == "stop"
    assert model.call_count == 1

  @pytest.mark.asyncio
  async def test_loop_guard_resets_after_a_tool_call(self):
    model = MockModel(
      [
        {"content": "thinking", "finish_reason": "content-filter"},
        {"tool_calls": [{"name": "ping"}]},
        {"content": "still thinking", "finish_reason": "content-filter"},
        {"content": "Done", "finish_reason": "stop"},
      ]
    )
    agent = Agent(name="steady", model=model, tools=[ping], should_finish=lambda context, results: False)

    result = await run(agent, "Work")

    assert result.final_output == "Done"
    assert model.call_count == 4

  @pytest.mark.asyncio
  async def test_should_finish_ends_run_with_tool_calls(self):
    model = MockModel([{"content": "All done", "tool_calls": [{"name": "ping"}]}])
    agent = Agent(name="finisher", model=model, tools=[ping], should_finish=lambda context, results: "pong" in results)

    result = await run(agent, "Ping and finish")

    assert result.final_output == "All done"
    assert model.call_count == 1


class TestModelFailures:
  """Model errors, timeouts and aborts are fatal."""

  @pytest.mark.asyncio
  async def test_model_error_is_raised(self):
    model = MockModel([{"error": RuntimeError("provider unavailable")}])
    agent = Agent(name="fragile", model=model)

    with pytest.raises(ModelCallError) as exc_info:
      await run(agent, "Hi")

    assert isinstance(exc_info.value.cause, RuntimeError)
    assert exc_info.value.agent_name == "fragile"
    assert exc_info.value.turn == 1

  @pytest.mark.asyncio
  async def test_model_timeout(self):
    model = MockModel([{"delay": 1.0, "content": "too late"}])
    agent = Agent(name="slow", model=model)

    with pytest.raises(ModelCallError) as exc_info:
      await run(agent, "Hi", timeout=0.05)

    assert "timed out" in str(exc_info.value)

  @pytest.mark.asyncio
  async def test_abort_before_model_call(self):
    model = MockModel([{"content": "never"}])
    agent = Agent(name="aborted", model=model)
    abort = asyncio.Event()
    abort.set()

    with pytest.raises(ModelCallError) as exc_info:
      await run(agent, "Hi", abort=abort)

    assert exc_info.value.reason == "aborted"
    assert model.call_count == 0

  @pytest.mark.asyncio
  async def test_abort_during_model_call(self):
    model = MockModel([{"delay": 1.0, "content": "never"}])
    agent = Agent(name="aborted", model=model)
    abort = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, abort.set)

    with pytest.raises(ModelCallError) as exc_info:
      await run(agent, "Hi", abort=abort)

    assert exc_info.value.reason == "aborted"


class TestCollaborators:
  """Sessions, hooks and tracers."""

  @pytest.mark.asyncio
  async def test_session_history_is_loaded_and_persisted(self):
    session = InMemorySession("s1", [UserMessage("Earlier question"), AssistantMessage("Earlier answer")])
    model = MockModel([{"content": "New answer"}])
    agent = Agent(name="memory", model=model)

    await Runner().execute(agent, "New question", {"session": session})

    assert len(model.messages_of_call(0)) == 3
    history = await session.get_history()
    assert [m.text for m in history] == ["Earlier question", "Earlier answer", "New question", "New answer"]

  @pytest.mark.asyncio
  async def test_hooks_observe_the_run(self):
    events = []
    hooks = RunHooks()
    for event in ("agent_start", "model_start", "model_end", "tool_start", "tool_end", "agent_end", "run_end"):
      hooks.on(event, lambda event=event, **kwargs: events.append(event))

    @hooks.on("tool_end")
    def broken_listener(**kwargs):
      raise RuntimeError("listener failure")

    model = MockModel([{"tool_calls": [{"name": "ping"}]}, {"content": "done"}])
    agent = Agent(name="observed", model=model, tools=[ping])

    result = await run(agent, "go", hooks=hooks)

    assert result.final_output == "done"
    assert events == [
      "agent_start",
      "model_start",
      "model_end",
      "tool_start",
      "tool_end",
      "model_start",
      "model_end",
      "agent_end",
      "run_end",
    ]

  @pytest.mark.asyncio
  async def test_tracer_records_agent_and_generation_spans(self):
    tracer = RecordingTracer()
    model = MockModel([{"tool_calls": [{"name": "ping"}]}, {"content": "done"}])
    agent = Agent(name="traced", model=model, tools=[ping])

    await run(agent, "go", tracer=tracer)

    generations = tracer.spans("generation:")
    agents = tracer.spans("agent:")
    assert len(generations) == 2
    assert len(agents) == 1
    assert agents[0].output == "done"
    assert all(g.parent is agents[0] for g in generations)
    assert generations[0].usage.total_tokens == 15

  @pytest.mark.asyncio
  async def test_failing_tracer_does_not_affect_the_run(self):
    class BrokenTracer:
      def begin(self, name, metadata=None, parent=None):
        raise RuntimeError("exporter down")

    model = MockModel([{"content": "fine"}])
    agent = Agent(name="untraced", model=model)

    result = await run(agent, "go", tracer=BrokenTracer())

    assert result.final_output == "fine"

  @pytest.mark.asyncio
  async def test_agent_as_tool_runs_nested(self):
    translator = Agent(name="translator", model=MockModel([{"content": "Bonjour"}]))
    model = MockModel(
      [
        {"tool_calls": [{"name": "translate", "arguments": {"input": "Hello"}}]},
        {"content": "In French: Bonjour"},
      ]
    )
    agent = Agent(name="orchestrator", model=model, tools=[translator.as_tool(name="translate")])

    result = await run(agent, "Translate Hello to French")

    assert result.steps[0].tool_calls[0].result == "Bonjour"
    assert result.final_output == "In French: Bonjour"


class TestDetermineNextStep:
  """Priority of the transitions."""

  def _agent(self, should_finish=None):
    return Agent(name="decider", model=MockModel(), should_finish=should_finish)

  def test_final_output_on_stop_or_length(self):
    for reason in ("stop", "length"):
      step = determine_next_step(self._agent(), ModelResponse(text="answer", finish_reason=reason), [])
      assert isinstance(step, NextStepFinalOutput)
      assert step.output == "answer"

  def test_run_again_on_other_finish_reasons(self):
    step = determine_next_step(self._agent(), ModelResponse(text="answer", finish_reason="content-filter"), [])
    assert isinstance(step, NextStepRunAgain)

  def test_run_again_without_text(self):
    step = determine_next_step(self._agent(), ModelResponse(text="  ", finish_reason="stop"), [])
    assert isinstance(step, NextStepRunAgain)

  def test_interruption_comes_first(self):
    pending = ToolExecutionResult("delete", {"path": "/"}, tool_call_id="c1", needs_approval=True, approved=False)
    step = determine_next_step(
      self._agent(should_finish=lambda context, results: True), ModelResponse(text="done"), [pending]
    )
    assert isinstance(step, NextStepInterruption)
    assert step.interruptions[0].tool_name == "delete"
    assert step.interruptions[0].type == "tool_approval"
    assert step.interruptions[0].agent_name == "decider"

  def test_should_finish_receives_tool_results(self):
    seen = []

    def should_finish(context, results):
      seen.append((context, results))
      return False

    done = ToolExecutionResult("ping", {}, tool_call_id="c1", result="pong")
    response = ModelResponse(text="x", finish_reason="content-filter")
    step = determine_next_step(self._agent(should_finish), response, [done], context={"k": 1})
    assert isinstance(step, NextStepRunAgain)
    assert seen == [({"k": 1}, ["pong"])]

  def test_false_check_falls_through_to_natural_finish(self):
    agent = self._agent(should_finish=lambda context, results: False)

    step = determine_next_step(agent, ModelResponse(text="answer", finish_reason="stop"), [])
    assert isinstance(step, NextStepFinalOutput)
    assert step.output == "answer"

    step = determine_next_step(agent, ModelResponse(text="answer", finish_reason="length"), [])
    assert isinstance(step, NextStepFinalOutput)

  def test_true_check_needs_text(self):
    agent = self._agent(should_finish=lambda context, results: True)
    step = determine_next_step(agent, ModelResponse(text="", finish_reason="stop"), [])
    assert isinstance(step, NextStepRunAgain)
