"""Tool definitions consumed by the execution engine."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Type, Union

from langchain_core.tools import BaseTool
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel

ToolExecute = Callable[[Dict[str, Any], Any], Union[Any, Awaitable[Any]]]
ApprovalPredicate = Callable[[Any, Dict[str, Any], str], Union[bool, Awaitable[bool]]]

SEVERITIES = ("low", "medium", "high", "critical")


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(frozen=True)
class Tool:
    """A named capability an agent may call.

    Attributes:
        name: Unique name within an agent
        description: Shown to the model
        execute: ``execute(args, context)``; may be sync or async. Sync
            functions run in a worker thread so they do not block the
            dispatch barrier.
        input_schema: Pydantic model validating the arguments. Validated
            arguments are passed to ``execute`` as a plain dict.
        parameters: Explicit JSON schema, used when there is no input_schema
        needs_approval: ``predicate(context, args, call_id)``; a truthy
            result defers the call until a human decides
        timeout: Per-call wall-clock timeout in seconds (dispatcher default when None)
        severity: Approval severity shown to reviewers
        approval_reason: Default explanation attached to approval requests
    """

    name: str
    description: str
    execute: ToolExecute
    input_schema: Optional[Type[BaseModel]] = None
    parameters: Optional[Dict[str, Any]] = None
    needs_approval: Optional[ApprovalPredicate] = None
    timeout: Optional[float] = None
    severity: str = "medium"
    approval_reason: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Tool name must not be empty")
        if self.severity not in SEVERITIES:
            raise ValueError(f"Unknown severity '{self.severity}', expected one of {SEVERITIES}")

    def validate_args(self, args: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Validate raw model arguments.

        Raises:
            pydantic.ValidationError: Arguments do not match input_schema
        """
        args = dict(args or {})
        if self.input_schema is None:
            return args
        return self.input_schema.model_validate(args).model_dump()

    def schema(self) -> Dict[str, Any]:
        """Return the OpenAI-style function schema handed to the model gateway."""
        if self.input_schema is not None:
            parameters = self.input_schema.model_json_schema()
        else:
            parameters = self.parameters or {"type": "object", "properties": {}}
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }

    async def run(self, args: Dict[str, Any], context: Any) -> Any:
        """Execute with already-validated arguments."""
        if inspect.iscoroutinefunction(self.execute):
            return await self.execute(args, context)
        result = await asyncio.to_thread(self.execute, args, context)
        return await maybe_await(result)

    @classmethod
    def from_langchain(
        cls,
        tool: BaseTool,
        *,
        needs_approval: Optional[ApprovalPredicate] = None,
        timeout: Optional[float] = None,
        severity: str = "medium",
    ) -> "Tool":
        """Wrap a LangChain tool. LangChain validates the arguments itself."""

        async def _execute(args: Dict[str, Any], context: Any) -> Any:
            return await tool.ainvoke(args)

        parameters = convert_to_openai_tool(tool)["function"].get("parameters")
        return cls(
            name=tool.name,
            description=tool.description or "",
            execute=_execute,
            parameters=parameters,
            needs_approval=needs_approval,
            timeout=timeout,
            severity=severity,
        )
