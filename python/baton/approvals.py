"""
Approval policies for tools.

A policy is a predicate of ``(context, args)`` that returns True when a call needs a
human approval. Policies plug into ``Tool(needs_approval=...)``:

  Tool(
    transfer_funds,
    needs_approval=ApprovalPolicies.any_of(
      ApprovalPolicies.require_for_args(lambda args: args.get("amount", 0) > 1000),
      ApprovalPolicies.require_admin_role(),
    ),
    approval_metadata={"severity": "high", "reason": "moves money"},
  )

Policies read the caller's ``context`` payload, either as a mapping or as attributes.
"""

import inspect
from typing import Any, Callable, List

ApprovalPolicy = Callable[[Any, dict], Any]

SEVERITIES = ("low", "medium", "high", "critical")


def _get(context: Any, key: str, default=None):
  if context is None:
    return default
  if isinstance(context, dict):
    return context.get(key, default)
  return getattr(context, key, default)


async def _check(policy: ApprovalPolicy, context: Any, args: dict) -> bool:
  r = policy(context, args)
  if inspect.isawaitable(r):
    r = await r
  return bool(r)


class ApprovalPolicies:
  @staticmethod
  def require_admin_role(required_role: str = "admin") -> ApprovalPolicy:
    """Require approval unless the caller has ``required_role`` (``context.user.role`` or ``context.role``)."""

    def policy(context: Any, args: dict) -> bool:
      user = _get(context, "user")
      role = _get(user, "role") if user is not None else _get(context, "role")
      return role != required_role

    return policy

  @staticmethod
  def require_for_args(check: Callable[[dict], bool]) -> ApprovalPolicy:
    return lambda context, args: bool(check(args or {}))

  @staticmethod
  def require_for_state(check: Callable[[Any], bool]) -> ApprovalPolicy:
    return lambda context, args: bool(check(context))

  @staticmethod
  def require_after_count(key: str, threshold: int) -> ApprovalPolicy:
    """
    Let the first ``threshold`` calls through, then require approval.

    Each evaluation increments the counter ``key`` of the context, which must be a mutable
    mapping or object.
    """

    def policy(context: Any, args: dict) -> bool:
      count = (_get(context, key, 0) or 0) + 1
      if isinstance(context, dict):
        context[key] = count
      elif context is not None:
        setattr(context, key, count)
      return count > threshold

    return policy

  @staticmethod
  def require_for_sensitive_paths(sensitive_prefixes: List[str], arg_name: str = "path") -> ApprovalPolicy:
    def policy(context: Any, args: dict) -> bool:
      path = str((args or {}).get(arg_name, ""))
      return any(path.startswith(prefix) for prefix in sensitive_prefixes)

    return policy

  @staticmethod
  def always() -> ApprovalPolicy:
    return lambda context, args: True

  @staticmethod
  def never() -> ApprovalPolicy:
    return lambda context, args: False

  @staticmethod
  def any_of(*policies: ApprovalPolicy) -> ApprovalPolicy:
    async def policy(context: Any, args: dict) -> bool:
      for p in policies:
        if await _check(p, context, args):
          return True
      return False

    return policy

  @staticmethod
  def all_of(*policies: ApprovalPolicy) -> ApprovalPolicy:
    async def policy(context: Any, args: dict) -> bool:
      for p in policies:
        if not await _check(p, context, args):
          return False
      return bool(policies)

    return policy
