"""
Exception classes raised by the execution engine.

Only fatal conditions are raised to the caller: exceeding the turn limit, an input
guardrail rejection, and a failed model call. Each error carries enough context to
diagnose the run without re-running it, and ends with a remediation suggestion.
"""

from typing import Optional, Dict, Any


class BatonError(Exception):
  """
  Base class for engine errors.

  Attributes:
    method: The operation that failed
    context: Additional context about the failure
    message: Human-readable error message
  """

  def __init__(
    self,
    method: str,
    context: Optional[Dict[str, Any]] = None,
    message: Optional[str] = None,
  ):
    self.method = method
    self.context = context or {}

    if message is None:
      message = self._build_message()

    self.message = message
    super().__init__(message)

  def _describe(self) -> str:
    return f"{self.method} failed."

  def _build_message(self) -> str:
    """Build a helpful error message with context."""
    parts = [self._describe()]

    if self.context:
      context_parts = [f"{k}: {v}" for k, v in self.context.items() if v is not None]
      if context_parts:
        parts.append(f"Context: {', '.join(context_parts)}.")

    suggestion = self._get_suggestion()
    if suggestion:
      parts.append(suggestion)

    return " ".join(parts)

  def _get_suggestion(self) -> str:
    return ""


class UserError(BatonError):
  """
  Raised when the engine is configured or called incorrectly.

  Example:
    Agent(name="a", model=model, tools=[Tool(search), Tool(search)])
    # UserError: Agent 'a' has duplicate tool name 'search'
  """

  def __init__(self, message: str):
    super().__init__(method="configuration", message=message)


class ToolNotFoundError(BatonError):
  def __init__(self, tool_name: str, agent_name: Optional[str] = None, available: Optional[list] = None):
    self.tool_name = tool_name
    super().__init__(
      method=f"Tool lookup for '{tool_name}'",
      context={"agent_name": agent_name, "available_tools": ", ".join(available) if available else None},
    )

  def _describe(self) -> str:
    return f"Tool '{self.tool_name}' not found."


class MaxTurnsExceededError(BatonError):
  """
  Raised when a run reaches its turn limit without producing a final output.

  The message names the active agent and summarizes the last step, so that a loop
  (for example, an agent that keeps calling the same tool) can be spotted right away.

  Example:
    try:
      result = await run(agent, "Summarize the report", max_turns=5)
    except MaxTurnsExceededError as e:
      print(e.agent_name, e.last_step_summary)
  """

  def __init__(
    self,
    max_turns: int,
    agent_name: str,
    last_step_summary: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
  ):
    self.max_turns = max_turns
    self.agent_name = agent_name
    self.last_step_summary = last_step_summary
    ctx = context or {}
    ctx["agent_name"] = agent_name
    ctx["last_step"] = last_step_summary
    super().__init__(method="Runner.execute()", context=ctx)

  def _describe(self) -> str:
    return f"Max turns ({self.max_turns}) exceeded."

  def _get_suggestion(self) -> str:
    return (
      "The agent did not produce a final answer. Check whether it keeps calling the same tools, "
      "whether a custom should_finish check ever returns true, or whether an output guardrail keeps "
      "rejecting its answer. Consider increasing max_turns or tightening the instructions."
    )


class InputGuardrailTripwire(BatonError):
  """
  Raised when an input guardrail rejects the user input, or its validator raises.

  The input never reaches the model.

  Example:
    try:
      await run(agent, "my ssn is 123-45-6789")
    except InputGuardrailTripwire as e:
      print(f"Rejected by {e.guardrail_name}: {e.reason}")
  """

  def __init__(
    self,
    guardrail_name: str,
    reason: Optional[str],
    agent_name: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
  ):
    self.guardrail_name = guardrail_name
    self.reason = reason
    self.agent_name = agent_name
    ctx = context or {}
    ctx["agent_name"] = agent_name
    ctx["reason"] = reason
    super().__init__(method=f"Input guardrail '{guardrail_name}'", context=ctx)

  def _describe(self) -> str:
    return f"Input guardrail '{self.guardrail_name}' rejected the input."

  def _get_suggestion(self) -> str:
    return "Rephrase the input so that it satisfies the guardrail, or review the guardrail configuration."


class ModelCallError(BatonError):
  """
  Raised when the model call fails, times out, or is aborted.

  There is no partial-turn retry: the run ends with this error.
  """

  def __init__(
    self,
    agent_name: str,
    turn: int,
    cause: Optional[BaseException] = None,
    reason: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
  ):
    self.agent_name = agent_name
    self.turn = turn
    self.cause = cause
    self.reason = reason or (f"{type(cause).__name__}: {cause}" if cause is not None else "unknown error")
    ctx = context or {}
    ctx["agent_name"] = agent_name
    ctx["turn"] = turn
    super().__init__(method="Model call", context=ctx)

  def _describe(self) -> str:
    return f"Model call failed ({self.reason})."

  def _get_suggestion(self) -> str:
    return "Verify the model configuration and credentials, or increase the timeout if the call was cut short."


class CoordinationError(BatonError):
  """
  Raised when a multi-agent pattern cannot produce a result.

  ``failures`` maps each failed agent name to the exception of its run.

  Example:
    try:
      await race_agents([fast, smart], "Capital of France?")
    except CoordinationError as e:
      for name, error in e.failures.items():
        print(name, error)
  """

  def __init__(self, pattern: str, reason: str, failures: Optional[Dict[str, BaseException]] = None):
    self.pattern = pattern
    self.reason = reason
    self.failures = dict(failures or {})
    context = {name: f"{type(e).__name__}: {e}" for name, e in self.failures.items()}
    super().__init__(method=pattern, context=context)

  def _describe(self) -> str:
    return f"{self.pattern} failed ({self.reason})."

  def _get_suggestion(self) -> str:
    if self.failures:
      return "Check the errors of the individual agents listed above."
    return ""
