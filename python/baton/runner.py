"""
The run loop.

``Runner`` is the entry point: ``execute`` starts a run, ``resume`` continues a run that
paused for approvals. Each call creates a ``RunLoop``, an ephemeral orchestrator that
owns the ``RunState`` for the duration of the call and drives it turn by turn.

Agents are configuration only, so one runner (and one agent) can drive any number of
concurrent runs, each with its own state.

Example:
  billing = Agent(name="Billing", instructions="Answer billing questions.", model=model)
  router = Agent(name="Router", instructions="Route the user.", model=model, subagents=[billing])

  result = await run(router, "What's my invoice total?")
  print(result.final_output, result.metadata["handoff_chain"])
"""

import asyncio
import json
import time
import traceback

from typing import Any, List, NotRequired, Optional, Tuple, TypedDict, Union

from .agents.transfers import resolve_transfer, split_transfer_calls, transfer_note, transfer_target
from .context import RunContextWrapper
from .errors import InputGuardrailTripwire, MaxTurnsExceededError, ModelCallError, UserError
from .guardrails.feedback import build_feedback
from .guardrails.pipeline import GuardrailOutcome, run_guardrails
from .hooks import RunHooks
from .logs import get_logger
from .messages import (
  AssistantMessage,
  ConversationMessage,
  ConversationRole,
  FunctionToolCall,
  SystemMessage,
  ToolCall,
  ToolCallResponseMessage,
  to_messages,
)
from .models.protocol import ModelResponse, NATURAL_FINISH_REASONS
from .output import extract_structured_output
from .result import RunResult, build_metadata
from .sessions import Session
from .state import (
  ApprovalDecision,
  DEFAULT_MAX_TURNS,
  Interruption,
  NextStep,
  NextStepFinalOutput,
  NextStepHandoff,
  NextStepInterruption,
  NextStepRunAgain,
  RunState,
  StepResult,
  ToolCallRecord,
)
from .tools.execution import ToolExecutionResult, execute_tools, run_tool, tool_response_message
from .tracing import SafeTracer, Tracer
from .usage import Usage

logger = get_logger("runner")


# =============================================================================
# CONSTANTS
# =============================================================================

# Consecutive text-only steps rejected by a custom should_finish before the run is stopped
LOOP_GUARD_THRESHOLD = 2

LOOP_DETECTED_MESSAGE = (
  "The run was stopped because the agent kept answering without calling tools while its "
  "finish check kept rejecting the answer. Review the agent's should_finish check and instructions."
)

LOOP_DETECTED = "loop_detected"
INTERRUPTED = "interrupted"


# =============================================================================
# CONFIGURATION TYPE DEFINITIONS
# =============================================================================


class RunOptions(TypedDict):
  """Options of a run. All keys are optional.

  Example:
    await Runner().execute(agent, "hello", {"max_turns": 10, "context": {"user_id": 42}})
  """

  context: NotRequired[Any]
  max_turns: NotRequired[int]
  token_budget: NotRequired[int]
  session: NotRequired[Session]
  tracer: NotRequired[Tracer]
  hooks: NotRequired[RunHooks]
  timeout: NotRequired[float]
  abort: NotRequired[asyncio.Event]


# =============================================================================
# TRANSITIONS
# =============================================================================

#       ┌───────────────┐
#       │  run started  │
#       └───────┬───────┘
#               │ [input guardrails pass]
#               ▼
#       ┌───────────────┐
#  ┌───▶│     TURN      │◀───────────────────────────────┐
#  │    │ (model call,  │                                │
#  │    │  tool calls)  │                                │
#  │    └┬──────┬──────┬┘                                │
#  │     │      │      │                                 │
#  │     │      │      │ [pending approval]              │
#  │     │      │      ▼                                 │
#  │     │      │  ╔══════════════╗    resume()          │
#  │     │      │  ║ INTERRUPTION ║──────────────────────┤
#  │     │      │  ╚══════════════╝ (approved calls run  │
#  │     │      │                    exactly once)       │
#  │     │      │ [transfer to a sub-agent]              │
#  │     │      ▼                                        │
#  │     │  ┌─────────┐  history reset to the            │
#  │     │  │ HANDOFF │  original input, transfer note   │
#  │     │  └────┬────┘──────────────────────────────────┘
#  │     │
#  │     │ [final text]
#  │     ▼
#  │  ┌────────────────────┐  [output guardrail failed]
#  │  │ OUTPUT GUARDRAILS  │──── feedback appended ───────┐
#  │  └─────────┬──────────┘                              │
#  │            │ [passed]                                │
#  │            ▼                                         │
#  │      ┌──────────┐                                    │
#  │      │   DONE   │                                    │
#  │      └──────────┘                                    │
#  └──────────────────────────────────────────────────────┘
#                   [RUN_AGAIN]
#
# Each TURN produces exactly one next step, decided in this order:
# - INTERRUPTION: [a tool call needs approval]
# - HANDOFF: [the first transfer call names a sub-agent]
# - FINAL_OUTPUT: [should_finish(context, tool_results) is true and there is text]
# - FINAL_OUTPUT: [no tool calls, text, finish reason stop or length]
# - RUN_AGAIN: [otherwise]
#
# The run fails with MaxTurnsExceededError when max_turns turns have started without a
# final output, with InputGuardrailTripwire when an input guardrail rejects the input,
# and with ModelCallError when a model call fails, times out or is aborted.
#


def determine_next_step(
  agent,
  response: ModelResponse,
  tool_results: List[ToolExecutionResult],
  handoff=None,
  context: Any = None,
) -> NextStep:
  """
  Decide the transition for one turn.

  Args:
    agent: The agent that took the turn
    response: The model response of the turn
    tool_results: Results of the ordinary tool calls of the turn
    handoff: The resolved handoff of the turn, if any
    context: The caller's context payload, passed to ``should_finish``

  Returns:
    Exactly one next step
  """
  pending = [r for r in tool_results if r.pending]
  if pending:
    return NextStepInterruption(
      tuple(
        Interruption(
          tool_name=r.tool_name,
          args=r.args,
          tool_call_id=r.tool_call_id,
          agent_name=agent.name,
          approval_metadata=dict(r.approval_metadata),
        )
        for r in pending
      )
    )

  if handoff is not None:
    return NextStepHandoff(new_agent=handoff.agent, reason=handoff.reason, context=handoff.context)

  has_text = bool(response.text and response.text.strip())
  if agent.should_finish is not None:
    # a false check falls through to the natural finish rule
    if agent.should_finish(context, [r.result for r in tool_results]) and has_text:
      return NextStepFinalOutput(output=response.text)

  if not response.tool_calls and has_text and response.finish_reason in NATURAL_FINISH_REASONS:
    return NextStepFinalOutput(output=response.text)

  return NextStepRunAgain()


class ModelCallAborted(Exception):
  pass


async def await_model_call(call, timeout: Optional[float] = None, abort: Optional[asyncio.Event] = None):
  """Await a model call, cancelling it when the timeout expires or the abort event is set."""
  task = asyncio.ensure_future(call)
  waiters = {task}
  abort_waiter = None
  if abort is not None:
    abort_waiter = asyncio.ensure_future(abort.wait())
    waiters.add(abort_waiter)

  try:
    done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
  except asyncio.CancelledError:
    # asyncio.wait leaves the awaited tasks running when the waiter itself is cancelled
    task.cancel()
    await asyncio.wait({task})
    raise
  finally:
    if abort_waiter is not None:
      abort_waiter.cancel()

  if task in done:
    return task.result()

  task.cancel()
  if abort_waiter is not None and abort_waiter in done:
    raise ModelCallAborted()
  raise asyncio.TimeoutError()


# =============================================================================
# RUN LOOP
# =============================================================================


class RunLoop:
  """
  Drive one ``RunState`` until it finishes, pauses or fails.

  Created per ``Runner.execute``/``Runner.resume`` call and discarded afterwards. Only the
  loop writes the state, and it does so after every await has resolved.
  """

  def __init__(self, state: RunState, options: Optional[RunOptions] = None):
    options = options or {}
    self.state = state
    self.session: Optional[Session] = options.get("session")
    self.hooks: RunHooks = options.get("hooks") or RunHooks()
    self.tracer = SafeTracer(options.get("tracer"))
    self.timeout: Optional[float] = options.get("timeout")
    self.abort: Optional[asyncio.Event] = options.get("abort")
    self.context_wrapper = RunContextWrapper(state.context, state)
    self.agent_span = None
    self.visit_start = time.time()

  # ---------------------------------------------------------------------------
  # Agent visits
  # ---------------------------------------------------------------------------

  async def begin_agent(self):
    agent = self.state.current_agent
    self.visit_start = time.time()
    self.state.metrics_for(agent.name)
    self.agent_span = self.tracer.begin(
      f"agent:{agent.name}", {"agent_name": agent.name, "turn": self.state.current_turn}
    )
    await self.hooks.emit("agent_start", agent=agent, context_wrapper=self.context_wrapper)

  async def end_agent(self, output: Any = None):
    agent = self.state.current_agent
    self.state.record_agent_time(agent.name, self.visit_start)
    if self.agent_span is not None:
      self.agent_span.end(output, usage=self.state.metrics_for(agent.name).tokens)
      self.agent_span = None
    await self.hooks.emit("agent_end", agent=agent, output=output, context_wrapper=self.context_wrapper)

  # ---------------------------------------------------------------------------
  # Guardrails
  # ---------------------------------------------------------------------------

  async def check_input(self):
    """Run the input guardrails once against the most recent user message."""
    agent = self.state.current_agent
    guardrails = agent.input_guardrails()
    if not guardrails:
      return

    user_messages = [m for m in self.state.messages if m.role == ConversationRole.USER]
    content = user_messages[-1].text if user_messages else ""
    logger.debug(f"[GUARDRAIL] Running {len(guardrails)} input guardrails for agent '{agent.name}'")

    for outcome in await run_guardrails(guardrails, content, self.context_wrapper):
      if not outcome.passed:
        await self.hooks.emit("guardrail_tripped", outcome=outcome, agent=agent, context_wrapper=self.context_wrapper)
        logger.warning(f"[GUARDRAIL] Input rejected by '{outcome.name}': {outcome.message}")
        raise InputGuardrailTripwire(outcome.name, outcome.message, agent.name)

  async def check_output(self, output: str) -> List[GuardrailOutcome]:
    agent = self.state.current_agent
    guardrails = agent.output_guardrails()
    if not guardrails:
      return []

    failed = [o for o in await run_guardrails(guardrails, output, self.context_wrapper) if not o.passed]
    for outcome in failed:
      await self.hooks.emit("guardrail_tripped", outcome=outcome, agent=agent, context_wrapper=self.context_wrapper)
    return failed

  # ---------------------------------------------------------------------------
  # Model
  # ---------------------------------------------------------------------------

  async def instructions(self, agent) -> str:
    system = await agent.get_instructions(self.context_wrapper)
    note = self.state.pending_transfer_note
    if note:
      self.state.pending_transfer_note = None
      system = f"{note}\n\n{system}" if system else note
    return system

  async def call_model(self, agent, system: str, tool_specs: List[dict]) -> ModelResponse:
    if agent.model is None:
      raise UserError(f"Agent '{agent.name}' has no model")

    state = self.state
    turn = state.current_turn
    if self.abort is not None and self.abort.is_set():
      raise ModelCallError(agent.name, turn, reason="aborted")

    settings = {**agent.model_settings, "max_steps": agent.max_steps}
    messages = list(state.messages)
    span = self.tracer.begin(f"generation:{agent.name}", {"agent_name": agent.name, "turn": turn}, parent=self.agent_span)
    await self.hooks.emit("model_start", agent=agent, turn=turn, system=system, messages=messages)

    logger.debug(f"[MODEL→CALL] agent='{agent.name}', turn={turn}, messages={len(messages)}, tools={len(tool_specs)}")
    try:
      response = await await_model_call(agent.model.generate(system, messages, tool_specs, settings), self.timeout, self.abort)
    except ModelCallAborted:
      span.end(output="aborted")
      logger.warning(f"[MODEL→CALL] Model call of agent '{agent.name}' aborted")
      raise ModelCallError(agent.name, turn, reason="aborted")
    except asyncio.TimeoutError as e:
      span.end(output="timeout")
      logger.warning(f"[MODEL→CALL] Model call of agent '{agent.name}' timed out after {self.timeout}s")
      raise ModelCallError(agent.name, turn, cause=e, reason=f"timed out after {self.timeout}s") from e
    except Exception as e:
      span.end(output=f"{type(e).__name__}: {e}")
      logger.error(f"[MODEL→CALL] Model call of agent '{agent.name}' failed: {e}")
      logger.debug(f"[MODEL→CALL] Traceback: {traceback.format_exc()}")
      raise ModelCallError(agent.name, turn, cause=e) from e

    reported = response.usage or Usage()
    usage = Usage().add_tokens(
      input_tokens=reported.input_tokens,
      output_tokens=reported.output_tokens,
      total_tokens=reported.total_tokens,
      requests=reported.requests,
    )
    state.usage.add(usage)
    state.metrics_for(agent.name).tokens.add(usage)
    span.end(response.text, usage=usage)
    await self.hooks.emit("model_end", agent=agent, turn=turn, response=response)
    return response

  # ---------------------------------------------------------------------------
  # Turns
  # ---------------------------------------------------------------------------

  def append_tool_responses(self, agent, results: List[ToolExecutionResult]):
    for result in results:
      if result.pending:
        continue
      self.state.messages.append(tool_response_message(result, self.state.token_budget, agent.count_tokens))

  async def turn(self) -> NextStep:
    """Take one turn with the current agent and decide the next step."""
    state = self.state
    agent = state.current_agent
    turn = state.increment_turn()
    logger.debug(f"[STATE:THINKING] agent='{agent.name}', turn={turn}/{state.max_turns}")

    system = await self.instructions(agent)
    tools = agent.all_tools()
    enabled = {name: await tool.is_enabled(self.context_wrapper) for name, tool in tools.items()}
    tool_specs = [await tool.spec() for tool in tools.values()]

    response = await self.call_model(agent, system, tool_specs)
    state.messages.extend(
      response.response_messages or [AssistantMessage(response.text, tool_calls=list(response.tool_calls))]
    )

    ordinary, transfers = split_transfer_calls(response.tool_calls)
    resolution = resolve_transfer(agent, transfers)

    if ordinary:
      logger.debug(f"[STATE:ACTING] agent='{agent.name}', {len(ordinary)} tool calls")
    results = await execute_tools(agent.tools, ordinary, self.context_wrapper, enabled, self.hooks)

    transfer_pairs = self.transfer_results(agent, resolution)
    next_step = determine_next_step(agent, response, results, resolution.handoff, state.context)

    self.append_tool_responses(agent, results)
    self.append_tool_responses(agent, [r for _, r in transfer_pairs])
    if isinstance(next_step, NextStepInterruption) and resolution.handoff is not None:
      call = resolution.handoff.tool_call
      state.messages.append(
        ToolCallResponseMessage(
          call.id, call.name, f"Transfer to {resolution.handoff.agent.name} was not performed: tool calls are waiting for approval."
        )
      )

    by_call = {id(call): r for call, r in [*zip(ordinary, results), *transfer_pairs]}
    records = []
    for call in response.tool_calls:
      r = by_call.get(id(call))
      if r is not None:
        records.append(ToolCallRecord(r.tool_name, r.args, r.result, r.error))
      elif resolution.handoff is not None and call is resolution.handoff.tool_call:
        records.append(
          ToolCallRecord(call.name, safe_arguments(call), {"transfer": True, "agent_name": resolution.handoff.agent.name})
        )

    state.record_step(
      StepResult(
        step_number=turn,
        agent_name=agent.name,
        tool_calls=tuple(records),
        text=response.text or "",
        finish_reason=response.finish_reason,
      )
    )
    state.record_tool_use(agent.name, [r.tool_name for r in results if r.succeeded])

    text_only = bool(response.text and response.text.strip()) and not response.tool_calls
    if agent.should_finish is not None and isinstance(next_step, NextStepRunAgain) and text_only:
      state.loop_guard_count += 1
    else:
      state.loop_guard_count = 0

    return next_step

  def transfer_results(self, agent, resolution) -> List[Tuple[ToolCall, ToolExecutionResult]]:
    """Results for the transfer calls that do not lead to a handoff, paired with their calls."""
    pairs = []
    for call in resolution.unmatched:
      result = ToolExecutionResult(
        call.name,
        safe_arguments(call),
        tool_call_id=call.id,
        error=f"ToolNotFoundError: Agent '{agent.name}' has no sub-agent named '{transfer_target(call.name)}'",
      )
      pairs.append((call, result))
    for call in resolution.ignored:
      result = ToolExecutionResult(
        call.name,
        safe_arguments(call),
        tool_call_id=call.id,
        result="Transfer ignored: only the first transfer request of a turn is performed.",
      )
      pairs.append((call, result))
    return pairs

  # ---------------------------------------------------------------------------
  # Transitions
  # ---------------------------------------------------------------------------

  async def handoff(self, next_step: NextStepHandoff):
    state = self.state
    from_agent = state.current_agent
    to_agent = next_step.new_agent

    await self.end_agent({"handoff_to": to_agent.name, "reason": next_step.reason})
    await self.hooks.emit(
      "handoff",
      from_agent=from_agent,
      to_agent=to_agent,
      reason=next_step.reason,
      context_wrapper=self.context_wrapper,
    )

    state.current_agent = to_agent
    state.messages = state.seed_messages()
    state.pending_transfer_note = transfer_note(from_agent.name, to_agent.name, next_step.reason, next_step.context)
    state.track_handoff(to_agent.name)
    state.loop_guard_count = 0
    logger.info(f"[HANDOFF] Now running '{to_agent.name}', chain: {' → '.join(state.handoff_chain)}")

    await self.begin_agent()

  async def interrupt(self, next_step: NextStepInterruption) -> RunResult:
    state = self.state
    state.pending_interruptions = list(next_step.interruptions)
    names = ", ".join(i.tool_name for i in next_step.interruptions)
    logger.info(f"[STATE:WAITING_FOR_INPUT] {len(next_step.interruptions)} tool calls waiting for approval: {names}")

    await self.hooks.emit("interruption", interruptions=list(next_step.interruptions), context_wrapper=self.context_wrapper)
    await self.end_agent(None)
    return await self.result(None, INTERRUPTED)

  async def finish(self, output: Any, finish_reason: str) -> RunResult:
    state = self.state
    if self.session is not None:
      await self.session.add_messages(list(state.messages))
    state.mark_finished()
    await self.end_agent(output)
    logger.info(
      f"[STATE:DONE] agent='{state.current_agent.name}', turns={state.current_turn}, "
      f"tokens={state.usage.total_tokens}, finish_reason={finish_reason}"
    )
    return await self.result(output, finish_reason)

  async def result(self, output: Any, finish_reason: str) -> RunResult:
    state = self.state
    result = RunResult(
      final_output=output,
      messages=list(state.messages),
      steps=list(state.steps),
      state=state,
      metadata=build_metadata(state, finish_reason),
    )
    await self.hooks.emit("run_end", result=result)
    return result

  # ---------------------------------------------------------------------------
  # Resumption
  # ---------------------------------------------------------------------------

  async def resolve_interruptions(self):
    """Run approved calls once and report declined ones, without calling the model."""
    state = self.state
    agent = state.current_agent
    resolved, state.resolved_interruptions = state.resolved_interruptions, []
    tools = agent.tools

    results = []
    for interruption in resolved:
      args = interruption.call_args
      if not interruption.approved:
        reason = f" Reason: {interruption.reason}" if interruption.reason else ""
        logger.info(f"[TOOL→CALL] Call to '{interruption.tool_name}' declined, id={interruption.tool_call_id}")
        results.append(
          ToolExecutionResult(
            interruption.tool_name,
            args,
            tool_call_id=interruption.tool_call_id,
            result=f"Tool '{interruption.tool_name}' was not executed: the call was declined.{reason}",
          )
        )
        continue

      tool = tools.get(interruption.tool_name)
      if tool is None:
        results.append(
          ToolExecutionResult(
            interruption.tool_name,
            args,
            tool_call_id=interruption.tool_call_id,
            error=f"ToolNotFoundError: Agent '{agent.name}' has no tool named '{interruption.tool_name}'",
          )
        )
        continue

      call = ToolCall(interruption.tool_call_id, FunctionToolCall(interruption.tool_name, json.dumps(args, default=str)))
      logger.info(f"[TOOL→CALL] Running approved call to '{interruption.tool_name}', id={interruption.tool_call_id}")
      results.append(await run_tool(tool, call, args, self.context_wrapper, approved=True, hooks=self.hooks))

    self.append_tool_responses(agent, results)
    state.record_tool_use(agent.name, [r.tool_name for r in results if r.approved and r.error is None])

  # ---------------------------------------------------------------------------
  # Main loop
  # ---------------------------------------------------------------------------

  async def run(self, resuming: bool = False) -> RunResult:
    state = self.state
    if not state.input_guardrails_done:
      await self.check_input()
      state.input_guardrails_done = True

    await self.begin_agent()
    try:
      return await self.loop(resuming)
    except Exception as e:
      if self.agent_span is not None:
        self.agent_span.end(f"{type(e).__name__}: {e}")
        self.agent_span = None
      raise

  async def loop(self, resuming: bool) -> RunResult:
    state = self.state
    if resuming:
      await self.resolve_interruptions()

    while state.current_turn < state.max_turns:
      next_step = await self.turn()
      agent = state.current_agent

      match next_step:
        case NextStepInterruption():
          return await self.interrupt(next_step)

        case NextStepHandoff():
          await self.handoff(next_step)

        case NextStepFinalOutput(output=output):
          failed = await self.check_output(output)
          if failed:
            for outcome in failed:
              state.messages.append(SystemMessage(build_feedback(output, outcome)))
            logger.info(f"[GUARDRAIL] Output of '{agent.name}' rejected by {[o.name for o in failed]}, retrying")
            continue
          if agent.output_schema is not None:
            output = extract_structured_output(output, agent.output_schema)
          return await self.finish(output, state.last_step.finish_reason)

        case NextStepRunAgain():
          if state.loop_guard_count >= LOOP_GUARD_THRESHOLD:
            logger.warning(
              f"[STATE:THINKING] Agent '{agent.name}' produced {state.loop_guard_count} text-only answers "
              "rejected by should_finish, stopping the run"
            )
            return await self.finish(LOOP_DETECTED_MESSAGE, LOOP_DETECTED)
          logger.debug("[STATE:THINKING] Running another turn")

    last_step = state.last_step
    logger.error(f"[STATE:THINKING] Reached max_turns ({state.max_turns}) with agent '{state.current_agent.name}'")
    await self.end_agent(None)
    raise MaxTurnsExceededError(
      state.max_turns,
      state.current_agent.name,
      last_step.summary() if last_step is not None else None,
      context={"turns": state.current_turn},
    )


def safe_arguments(call: ToolCall) -> dict:
  try:
    return call.parsed_arguments()
  except ValueError:
    return {}


# =============================================================================
# RUNNER
# =============================================================================


class Runner:
  """Starts and resumes runs."""

  async def execute(
    self,
    agent,
    input: Union[str, ConversationMessage, List[ConversationMessage]],
    options: Optional[RunOptions] = None,
  ) -> RunResult:
    """
    Run an agent until it produces a final output or pauses for approvals.

    Args:
      agent: The agent to start with
      input: A string, a message, or a list of messages
      options: See ``RunOptions``

    Returns:
      The run result; ``final_output`` is None when the run paused for approvals

    Raises:
      MaxTurnsExceededError: If ``max_turns`` turns passed without a final output
      InputGuardrailTripwire: If an input guardrail rejected the input
      ModelCallError: If a model call failed, timed out or was aborted
    """
    options = options or {}
    session = options.get("session")
    history = await session.get_history() if session is not None else []
    if history:
      logger.debug(f"[STATE:READY] Loaded {len(history)} messages from the session")

    state = RunState(
      agent,
      input,
      context=options.get("context"),
      max_turns=options.get("max_turns", DEFAULT_MAX_TURNS),
      token_budget=options.get("token_budget"),
      messages=[*history, *to_messages(input)],
    )
    logger.info(f"[STATE:READY] Starting run with agent '{agent.name}', max_turns={state.max_turns}")
    return await RunLoop(state, options).run()

  async def resume(
    self,
    state: RunState,
    decisions: Optional[List[ApprovalDecision]] = None,
    options: Optional[RunOptions] = None,
  ) -> RunResult:
    """
    Continue a run that paused for approvals.

    Args:
      state: The state of the paused run, as returned or restored from a snapshot
      decisions: One decision per pending interruption, unless already applied
      options: See ``RunOptions``; the run's context is kept from the state

    Raises:
      ValueError: If the number of decisions does not match the pending interruptions
      UserError: If interruptions are still waiting for a decision
    """
    if decisions is not None:
      state.apply_decisions(decisions)
    if state.has_interruptions():
      raise UserError(f"{len([i for i in state.pending_interruptions if not i.decided])} tool calls are still waiting for approval")

    logger.info(f"[STATE:READY] Resuming run with agent '{state.current_agent.name}' at turn {state.current_turn}")
    return await RunLoop(state, options).run(resuming=True)


async def run(agent, input, **options) -> RunResult:
  """Run an agent. Keyword arguments are the ``RunOptions``."""
  return await Runner().execute(agent, input, options)
