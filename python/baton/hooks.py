"""
Lifecycle hooks for observing a run.

Listeners are registered per event name and are awaited one after the other when the
runner emits the event. A listener cannot influence the run: its return value is ignored
and any exception it raises is logged and discarded.

Example:
  hooks = RunHooks()

  @hooks.on("handoff")
  def log_handoff(from_agent, to_agent, reason, **kwargs):
    print(f"{from_agent} -> {to_agent}: {reason}")

  await run(agent, "hello", hooks=hooks)
"""

import inspect
import traceback
from typing import Callable, Dict, List, Optional

from .logs import get_logger

logger = get_logger("runner")

EVENTS = (
  "agent_start",
  "agent_end",
  "model_start",
  "model_end",
  "tool_start",
  "tool_end",
  "handoff",
  "guardrail_tripped",
  "interruption",
  "run_end",
)


class RunHooks:
  def __init__(self):
    self._listeners: Dict[str, List[Callable]] = {}

  def on(self, event: str, listener: Optional[Callable] = None):
    """
    Register a listener for an event. Can be used as a decorator.

    Raises:
      ValueError: If the event name is unknown
    """
    if event not in EVENTS:
      raise ValueError(f"Unknown event '{event}', expected one of: {', '.join(EVENTS)}")

    def register(f):
      self._listeners.setdefault(event, []).append(f)
      return f

    if listener is None:
      return register
    return register(listener)

  def off(self, event: str, listener: Callable):
    listeners = self._listeners.get(event, [])
    if listener in listeners:
      listeners.remove(listener)

  def listeners(self, event: str) -> List[Callable]:
    return list(self._listeners.get(event, []))

  async def emit(self, event: str, **payload):
    for listener in self._listeners.get(event, []):
      try:
        r = listener(**payload)
        if inspect.isawaitable(r):
          await r
      except Exception as e:
        logger.warning(f"[HOOK] Listener for '{event}' failed: {type(e).__name__}: {e}")
        logger.debug(f"[HOOK] Traceback: {traceback.format_exc()}")
