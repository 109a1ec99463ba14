"""
Optional tracing collaborator.

The runner opens one span per agent visit and one generation span per model call. A
tracer only observes: failures inside a tracer are logged and never reach the run.
"""

import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from .logs import get_logger
from .usage import Usage

logger = get_logger("runner")


class Span(Protocol):
  def end(self, output: Any = None, usage: Optional[Usage] = None) -> None: ...


class Tracer(Protocol):
  def begin(self, name: str, metadata: Optional[Dict[str, Any]] = None, parent: Optional[Span] = None) -> Span: ...


class NoopSpan:
  def end(self, output: Any = None, usage: Optional[Usage] = None) -> None:
    pass


class NoopTracer:
  def begin(self, name: str, metadata: Optional[Dict[str, Any]] = None, parent: Optional[Span] = None) -> Span:
    return NoopSpan()


@dataclass
class RecordedSpan:
  name: str
  metadata: Dict[str, Any] = field(default_factory=dict)
  parent: Optional["RecordedSpan"] = None
  start_time: float = field(default_factory=time.time)
  end_time: Optional[float] = None
  output: Any = None
  usage: Optional[Usage] = None
  tracer: Optional["RecordingTracer"] = None

  def end(self, output: Any = None, usage: Optional[Usage] = None) -> None:
    self.end_time = time.time()
    self.output = output
    self.usage = usage
    if self.tracer is not None:
      self.tracer.finished.append(self)


class RecordingTracer:
  """Keeps every finished span in memory, in the order they ended."""

  def __init__(self):
    self.finished: List[RecordedSpan] = []

  def begin(self, name: str, metadata: Optional[Dict[str, Any]] = None, parent: Optional[Span] = None) -> Span:
    return RecordedSpan(name=name, metadata=dict(metadata or {}), parent=parent, tracer=self)

  def spans(self, prefix: str = "") -> List[RecordedSpan]:
    return [s for s in self.finished if s.name.startswith(prefix)]


class SafeTracer:
  """Wraps a tracer so that none of its failures can affect the run."""

  def __init__(self, tracer: Optional[Tracer]):
    self.tracer = tracer or NoopTracer()

  def begin(self, name: str, metadata: Optional[Dict[str, Any]] = None, parent: Optional[Span] = None) -> Span:
    try:
      return SafeSpan(self.tracer.begin(name, metadata, parent=parent.span if isinstance(parent, SafeSpan) else parent))
    except Exception as e:
      logger.warning(f"[TRACE] Failed to begin span '{name}': {e}")
      return SafeSpan(NoopSpan())


class SafeSpan:
  def __init__(self, span: Span):
    self.span = span

  def end(self, output: Any = None, usage: Optional[Usage] = None) -> None:
    try:
      self.span.end(output, usage)
    except Exception as e:
      logger.warning(f"[TRACE] Failed to end span: {e}")
      logger.debug(f"[TRACE] Traceback: {traceback.format_exc()}")
