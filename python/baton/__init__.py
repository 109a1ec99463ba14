from .agents import Agent, AgentConfig, AgentTool, handoff_prompt
from .approvals import ApprovalPolicies
from .context import RunContextWrapper
from .coordination import (
  AgentOutcome,
  JudgedResult,
  ParallelResult,
  RaceResult,
  race_agents,
  run_hierarchical,
  run_parallel,
  run_with_judge,
)
from .errors import (
  BatonError,
  UserError,
  ToolNotFoundError,
  MaxTurnsExceededError,
  InputGuardrailTripwire,
  ModelCallError,
  CoordinationError,
)
from .guardrails import (
  CustomGuardrail,
  ContentSafetyGuardrail,
  GuardrailResult,
  GuardrailType,
  LengthGuardrail,
  PiiGuardrail,
  guardrail,
)
from .hitl import (
  needs_approval,
  get_pending_approvals,
  resume_after_approval,
  run_with_approval_callback,
)
from .hooks import RunHooks
from .logs import (
  set_log_level,
  set_log_levels,
  get_logger,
  InfoContext,
  DebugContext,
)
from .messages import (
  SystemMessage,
  UserMessage,
  AssistantMessage,
  ToolCallResponseMessage,
  ToolCall,
  FunctionToolCall,
)
from .models import Model, ModelResponse
from .output import extract_structured_output
from .result import RunResult
from .runner import Runner, RunOptions, determine_next_step, run
from .sessions import InMemorySession, Session
from .state import ApprovalDecision, Interruption, RunState, StepResult
from .tools import Tool
from .tracing import NoopTracer, RecordingTracer
from .usage import Usage, estimate_cost
