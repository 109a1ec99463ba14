from .tool import Tool, as_tools
from .execution import (
  execute_tools,
  ToolExecutionResult,
  TokenBudget,
  TOOL_BATCH_SIZE,
  TOKEN_BUDGET_PLACEHOLDER,
)
from .protocol import InvokableTool

__all__ = [
  "Tool",
  "as_tools",
  "execute_tools",
  "ToolExecutionResult",
  "TokenBudget",
  "TOOL_BATCH_SIZE",
  "TOKEN_BUDGET_PLACEHOLDER",
  "InvokableTool",
]
