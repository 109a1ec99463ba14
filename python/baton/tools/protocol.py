from typing import Any, Protocol, Optional


class InvokableTool(Protocol):
  name: str

  async def spec(self) -> dict: ...

  async def is_enabled(self, context_wrapper) -> bool: ...

  async def needs_approval(self, context_wrapper, args: dict) -> bool: ...

  async def execute(self, args: Optional[dict], context_wrapper) -> Any: ...
