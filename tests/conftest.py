"""Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and ensures proper test environment setup.
"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

# Ensure project root is in PYTHONPATH for imports to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from agentrunner.config import GovernanceSettings, ModelSettings, ObservabilitySettings, Settings  # noqa: E402
from agentrunner.models import ModelResponse  # noqa: E402
from agentrunner.runtime.state import TokenUsage, ToolCallRequest  # noqa: E402


class Responses:
    """Builders for scripted model turns."""

    @staticmethod
    def text(content: str, input_tokens: int = 10, output_tokens: int = 5) -> ModelResponse:
        return ModelResponse(text=content, usage=TokenUsage(input_tokens, output_tokens))

    @staticmethod
    def tools(*calls: tuple, input_tokens: int = 10, output_tokens: int = 5) -> ModelResponse:
        """Each call is ``(tool_name, args)`` or ``(tool_name, args, call_id)``."""
        requests = [
            ToolCallRequest(tool_name=call[0], args=dict(call[1]), call_id=call[2])
            if len(call) > 2
            else ToolCallRequest(tool_name=call[0], args=dict(call[1]))
            for call in calls
        ]
        return ModelResponse(tool_calls=requests, usage=TokenUsage(input_tokens, output_tokens))


ScriptItem = Union[ModelResponse, Exception]


class ScriptedGateway:
    """ModelGateway returning canned responses and recording every invocation.

    ``script`` is a list consumed in order, or a function
    ``script(index, call) -> ModelResponse``.
    """

    def __init__(self, script: Union[Sequence[ScriptItem], Callable[[int, Dict[str, Any]], ModelResponse]]):
        self.script = script
        self.calls: List[Dict[str, Any]] = []

    async def invoke(
        self,
        *,
        instructions: str,
        messages: Sequence[Any],
        tools: Sequence[Dict[str, Any]],
        output_schema: Optional[type] = None,
        model: Optional[str] = None,
    ) -> ModelResponse:
        call = {
            "instructions": instructions,
            "messages": list(messages),
            "tools": [tool["function"]["name"] for tool in tools],
            "output_schema": output_schema,
            "model": model,
        }
        self.calls.append(call)
        index = len(self.calls) - 1

        if callable(self.script):
            return self.script(index, call)
        if index >= len(self.script):
            raise AssertionError(f"Gateway script exhausted after {len(self.script)} response(s)")
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def responses():
    return Responses


@pytest.fixture
def scripted_gateway():
    return ScriptedGateway


@pytest.fixture
def settings():
    """Settings independent of the developer's .env."""
    return Settings(
        environment="test",
        models=ModelSettings(model_id="test-model", api_key=None, base_url=None),
        governance=GovernanceSettings(
            max_steps=50,
            guardrail_retry_budget=1,
            tool_timeout_seconds=5.0,
            isolate_transfers=True,
        ),
        observability=ObservabilitySettings(log_level="DEBUG", log_dir=None),
    )
