"""
Multi-agent coordination patterns built on ``Runner.execute``.

- ``race_agents``: run agents concurrently; the first run that produces a final output
  wins and the others are cancelled.
- ``run_parallel``: run agents concurrently and collect every result and every failure.
- ``run_with_judge``: run candidate agents in parallel, then let a judge agent pick or
  synthesize the best answer from their outputs.
- ``run_hierarchical``: run a coordinator that delegates to its sub-agents through
  transfers.

Every participant gets its own run state. The run options are shared, so all runs see the
same context object. A session cannot be shared by concurrent runs.
"""

import asyncio
import inspect
import json
import time

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import cattr

from .errors import CoordinationError, UserError
from .logs import get_logger
from .messages import MessageConverter, to_messages
from .result import RunResult
from .runner import Runner, RunOptions

logger = get_logger("coordination")

JUDGE_INSTRUCTION = "Please evaluate these outputs and select or synthesize the best response."


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class AgentOutcome:
  """Result of one participant: either ``result`` or ``error`` is set."""

  agent: Any
  result: Optional[RunResult] = None
  error: Optional[BaseException] = None

  @property
  def succeeded(self) -> bool:
    return self.error is None


@dataclass
class RaceResult:
  result: RunResult
  winning_agent: Any
  participants: List[str]
  # agents that finished before the winner without a final output
  failures: Dict[str, BaseException] = field(default_factory=dict)

  @property
  def final_output(self) -> Any:
    return self.result.final_output


@dataclass
class ParallelResult:
  outcomes: List[AgentOutcome]
  aggregated: Any = None
  duration: float = 0.0

  @property
  def results(self) -> List[RunResult]:
    return [o.result for o in self.outcomes if o.succeeded]

  @property
  def failures(self) -> Dict[str, BaseException]:
    return {o.agent.name: o.error for o in self.outcomes if not o.succeeded}


@dataclass
class JudgedResult:
  result: RunResult
  candidates: List[AgentOutcome]

  @property
  def final_output(self) -> Any:
    return self.result.final_output


# =============================================================================
# HELPERS
# =============================================================================


def _check_agents(pattern: str, agents: Sequence, options: Optional[RunOptions]) -> List:
  agents = list(agents or [])
  if not agents:
    raise UserError(f"{pattern} needs at least one agent")
  names = [a.name for a in agents]
  duplicates = sorted({n for n in names if names.count(n) > 1})
  if duplicates:
    raise UserError(f"{pattern} needs agents with distinct names, got duplicates: {', '.join(duplicates)}")
  if (options or {}).get("session") is not None:
    raise UserError(f"{pattern} cannot share a session between concurrent runs")
  return agents


def _outcome(agent, task: asyncio.Future) -> AgentOutcome:
  if task.cancelled():
    return AgentOutcome(agent, error=asyncio.CancelledError())
  error = task.exception()
  if error is not None:
    return AgentOutcome(agent, error=error)
  return AgentOutcome(agent, result=task.result())


async def _cancel(tasks) -> None:
  tasks = [t for t in tasks if not t.done()]
  for task in tasks:
    task.cancel()
  if tasks:
    await asyncio.gather(*tasks, return_exceptions=True)


def render_output(output: Any) -> str:
  if isinstance(output, str):
    return output
  try:
    return json.dumps(cattr.unstructure(output), default=str)
  except (TypeError, ValueError):
    return str(output)


def render_request(input) -> str:
  if isinstance(input, str):
    return input
  return json.dumps(MessageConverter.create().messages_to_dicts(to_messages(input)))


def judge_prompt(input, candidates: List[AgentOutcome]) -> str:
  """The input of the judge: the original request followed by every candidate answer."""
  answers = "\n\n".join(f"[{o.agent.name}]:\n{render_output(o.result.final_output)}" for o in candidates)
  return f"Original request: {render_request(input)}\n\nWorker outputs:\n{answers}\n\n{JUDGE_INSTRUCTION}"


# =============================================================================
# PATTERNS
# =============================================================================


async def race_agents(
  agents: Sequence,
  input,
  options: Optional[RunOptions] = None,
  timeout: Optional[float] = None,
  runner: Optional[Runner] = None,
) -> RaceResult:
  """
  Run agents concurrently and return the first final output.

  A run that fails or pauses for approvals does not win; the race goes on with the others.
  Once a winner is known, the runs still in progress are cancelled.

  Args:
    agents: The competing agents, with distinct names
    input: Run input given to every agent
    options: Run options shared by every run
    timeout: Seconds to wait for a winner
    runner: Runner to execute with, a new one by default

  Returns:
    The winning run and the names of all participants

  Raises:
    CoordinationError: If no agent produced a final output, or the timeout expired
  """
  agents = _check_agents("race_agents", agents, options)
  runner = runner or Runner()
  participants = [a.name for a in agents]
  tasks = {asyncio.ensure_future(runner.execute(a, input, dict(options or {}))): a for a in agents}
  order = list(tasks)
  failures: Dict[str, BaseException] = {}

  logger.info(f"[COORDINATION] Racing {len(agents)} agents: {participants}")
  loop = asyncio.get_running_loop()
  deadline = None if timeout is None else loop.time() + timeout
  pending = set(tasks)
  try:
    while pending:
      remaining = None if deadline is None else max(deadline - loop.time(), 0)
      done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
      if not done:
        logger.warning(f"[COORDINATION] Race timed out after {timeout}s")
        raise CoordinationError("race_agents", f"timed out after {timeout}s", failures)

      for task in sorted(done, key=order.index):
        outcome = _outcome(tasks[task], task)
        if outcome.succeeded and outcome.result.is_interrupted:
          outcome.error = RuntimeError(f"Agent '{outcome.agent.name}' paused for approval")
        if not outcome.succeeded:
          logger.warning(f"[COORDINATION] '{outcome.agent.name}' dropped out of the race: {outcome.error}")
          failures[outcome.agent.name] = outcome.error
          continue

        logger.info(f"[COORDINATION] '{outcome.agent.name}' won the race, cancelling {len(pending)} runs")
        return RaceResult(outcome.result, outcome.agent, participants, failures)

    raise CoordinationError("race_agents", "all agents failed", failures)
  finally:
    await _cancel(pending)


async def run_parallel(
  agents: Sequence,
  input=None,
  options: Optional[RunOptions] = None,
  inputs: Optional[Sequence] = None,
  aggregator: Optional[Callable[[List[RunResult]], Any]] = None,
  fail_fast: bool = False,
  runner: Optional[Runner] = None,
) -> ParallelResult:
  """
  Run agents concurrently and wait for all of them.

  Args:
    agents: The agents to run, with distinct names
    input: Run input given to every agent
    options: Run options shared by every run
    inputs: One run input per agent, instead of ``input``
    aggregator: Called with the successful results, sync or async
    fail_fast: Cancel the remaining runs and raise on the first failure
    runner: Runner to execute with, a new one by default

  Returns:
    One outcome per agent, in the order of ``agents``

  Raises:
    CoordinationError: If ``fail_fast`` is set and a run failed
  """
  agents = _check_agents("run_parallel", agents, options)
  if inputs is None:
    inputs = [input] * len(agents)
  elif len(inputs) != len(agents):
    raise UserError(f"run_parallel got {len(inputs)} inputs for {len(agents)} agents")

  runner = runner or Runner()
  start_time = time.time()
  tasks = [asyncio.ensure_future(runner.execute(a, i, dict(options or {}))) for a, i in zip(agents, inputs)]

  logger.info(f"[COORDINATION] Running {len(agents)} agents in parallel: {[a.name for a in agents]}")
  try:
    await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION if fail_fast else asyncio.ALL_COMPLETED)
    if fail_fast:
      failures = {
        a.name: t.exception() for a, t in zip(agents, tasks) if t.done() and not t.cancelled() and t.exception()
      }
      if failures:
        logger.warning(f"[COORDINATION] Parallel run failed fast: {list(failures)}")
        raise CoordinationError("run_parallel", "an agent failed", failures)
  finally:
    await _cancel(tasks)

  outcomes = [_outcome(a, t) for a, t in zip(agents, tasks)]
  for outcome in outcomes:
    if not outcome.succeeded:
      logger.warning(f"[COORDINATION] '{outcome.agent.name}' failed: {outcome.error}")

  result = ParallelResult(outcomes)
  if aggregator is not None:
    aggregated = aggregator(result.results)
    if inspect.isawaitable(aggregated):
      aggregated = await aggregated
    result.aggregated = aggregated
  result.duration = time.time() - start_time
  return result


async def run_with_judge(
  agents: Sequence,
  judge,
  input,
  options: Optional[RunOptions] = None,
  fail_fast: bool = False,
  runner: Optional[Runner] = None,
) -> JudgedResult:
  """
  Run candidate agents in parallel and let a judge agent pick the best answer.

  The judge receives the original request and the final output of every candidate that
  produced one, labelled with the candidate's name.

  Raises:
    CoordinationError: If no candidate produced a final output
  """
  runner = runner or Runner()
  parallel = await run_parallel(agents, input, options, fail_fast=fail_fast, runner=runner)
  candidates = [o for o in parallel.outcomes if o.succeeded and o.result.final_output is not None]
  if not candidates:
    raise CoordinationError("run_with_judge", "no candidate produced an output to judge", parallel.failures)

  logger.info(f"[COORDINATION] Judge '{judge.name}' evaluates {len(candidates)} candidates")
  result = await runner.execute(judge, judge_prompt(input, candidates), dict(options or {}))
  return JudgedResult(result, parallel.outcomes)


async def run_hierarchical(
  coordinator, input, options: Optional[RunOptions] = None, runner: Optional[Runner] = None
) -> RunResult:
  """Run a coordinator agent that delegates to its sub-agents through transfers."""
  if not coordinator.subagents:
    logger.warning(f"[COORDINATION] Coordinator '{coordinator.name}' has no sub-agents, running it as a plain agent")
  return await (runner or Runner()).execute(coordinator, input, dict(options or {}))
