"""Composable approval predicates for Tool.needs_approval.

Every policy returns a callable ``(context, args, call_id) -> bool`` (or an
awaitable of one), so policies nest freely with ``any_of`` and ``all_of``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Mapping

from agentrunner.tools.base import ApprovalPredicate, maybe_await


def _lookup(context: Any, key: str, default: Any = None) -> Any:
    if isinstance(context, Mapping):
        return context.get(key, default)
    return getattr(context, key, default)


def always() -> ApprovalPredicate:
    return lambda context, args, call_id: True


def never() -> ApprovalPredicate:
    return lambda context, args, call_id: False


def require_for_args(check: Callable[[Dict[str, Any]], bool]) -> ApprovalPredicate:
    """Require approval when ``check(args)`` is true, e.g. ``lambda a: a["amount"] > 1000``."""
    return lambda context, args, call_id: bool(check(args))


def require_for_context(check: Callable[[Any], bool]) -> ApprovalPredicate:
    return lambda context, args, call_id: bool(check(context))


def require_after_count(key: str, threshold: int) -> ApprovalPredicate:
    """Require approval once the counter ``context[key]`` reaches ``threshold``."""
    return lambda context, args, call_id: (_lookup(context, key, 0) or 0) >= threshold


def require_for_sensitive_paths(prefixes: Iterable[str], arg: str = "path") -> ApprovalPredicate:
    prefixes = tuple(prefixes)

    def _predicate(context: Any, args: Dict[str, Any], call_id: str) -> bool:
        value = args.get(arg)
        return isinstance(value, str) and value.startswith(prefixes)

    return _predicate


def require_unless_role(role: str = "admin", key: str = "roles") -> ApprovalPredicate:
    """Require approval unless the context lists ``role`` under ``key``."""
    return lambda context, args, call_id: role not in (_lookup(context, key) or ())


def any_of(*policies: ApprovalPredicate) -> ApprovalPredicate:
    async def _predicate(context: Any, args: Dict[str, Any], call_id: str) -> bool:
        for policy in policies:
            if await maybe_await(policy(context, args, call_id)):
                return True
        return False

    return _predicate


def all_of(*policies: ApprovalPredicate) -> ApprovalPredicate:
    async def _predicate(context: Any, args: Dict[str, Any], call_id: str) -> bool:
        for policy in policies:
            if not await maybe_await(policy(context, args, call_id)):
                return False
        return True

    return _predicate
