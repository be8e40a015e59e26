"""Model gateway: the engine's only view of a language model."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Type, runtime_checkable

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from agentrunner.config import Settings
from agentrunner.runtime.state import TokenUsage, ToolCallRequest, dedupe_call_ids, new_call_id
from agentrunner.utils.logging_utils import preview
from agentrunner.utils.message_utils import message_text

LOGGER = logging.getLogger(__name__)

ModelResolver = Callable[[str], BaseChatModel]


@dataclass
class ModelResponse:
    """One model turn: either text (a candidate final answer) or tool calls."""

    text: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)

    def to_message(self) -> AIMessage:
        return AIMessage(content=self.text, tool_calls=[call.to_langchain() for call in self.tool_calls])


@runtime_checkable
class ModelGateway(Protocol):
    async def invoke(
        self,
        *,
        instructions: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[Dict[str, Any]],
        output_schema: Optional[Type[BaseModel]] = None,
        model: Optional[str] = None,
    ) -> ModelResponse:
        ...


def output_schema_hint(output_schema: Type[BaseModel]) -> str:
    schema = json.dumps(output_schema.model_json_schema(), ensure_ascii=False)
    return f"When you give your final answer, respond only with a JSON object matching this schema:\n{schema}"


def response_from_message(message: AIMessage) -> ModelResponse:
    """Convert a LangChain AIMessage into a ModelResponse."""
    tool_calls = [
        ToolCallRequest(tool_name=call["name"], args=dict(call.get("args") or {}), call_id=call.get("id") or new_call_id())
        for call in (message.tool_calls or [])
    ]
    for invalid in getattr(message, "invalid_tool_calls", None) or []:
        name = invalid.get("name") or "unknown"
        raw_args = preview(invalid.get("args") or "", 200)
        reason = invalid.get("error") or "invalid JSON"
        LOGGER.warning(f"Model emitted unparseable tool call {name}: {reason}")
        tool_calls.append(
            ToolCallRequest(
                tool_name=name,
                args={},
                call_id=invalid.get("id") or new_call_id(),
                error=f"Could not parse tool arguments {raw_args}: {reason}",
            )
        )

    usage = TokenUsage()
    usage_metadata = getattr(message, "usage_metadata", None)
    if usage_metadata:
        usage = TokenUsage(
            input_tokens=usage_metadata.get("input_tokens", 0),
            output_tokens=usage_metadata.get("output_tokens", 0),
        )

    return ModelResponse(text=message_text(message), tool_calls=dedupe_call_ids(tool_calls), usage=usage)


class ChatModelGateway:
    """Adapts a LangChain chat model to the ModelGateway protocol.

    Instructions become a leading SystemMessage; tools are bound per call with
    ``bind_tools``. Retries belong to the chat model (e.g. ``max_retries``).
    """

    def __init__(self, chat_model: BaseChatModel, model_resolver: Optional[ModelResolver] = None) -> None:
        self.chat_model = chat_model
        self.model_resolver = model_resolver

    def _resolve(self, model: Optional[str]) -> BaseChatModel:
        if model and self.model_resolver is not None:
            return self.model_resolver(model)
        return self.chat_model

    async def invoke(
        self,
        *,
        instructions: str,
        messages: Sequence[BaseMessage],
        tools: Sequence[Dict[str, Any]],
        output_schema: Optional[Type[BaseModel]] = None,
        model: Optional[str] = None,
    ) -> ModelResponse:
        chat_model = self._resolve(model)

        system_text = instructions or ""
        if output_schema is not None:
            system_text = f"{system_text}\n\n{output_schema_hint(output_schema)}".strip()

        prompt: List[BaseMessage] = []
        if system_text:
            prompt.append(SystemMessage(content=system_text))
        prompt.extend(messages)

        runnable = chat_model.bind_tools(list(tools)) if tools else chat_model
        LOGGER.debug(f"Invoking model with {len(prompt)} message(s) and {len(tools)} tool(s)")
        message = await runnable.ainvoke(prompt)
        if not isinstance(message, AIMessage):
            message = AIMessage(content=getattr(message, "content", str(message)))
        return response_from_message(message)


def _chat_kwargs(settings: Settings, model_id: str) -> Dict[str, Any]:
    api_key = settings.models.api_key
    if not api_key:
        raise RuntimeError(f"Missing API key for model {model_id}; set AGENT_MODEL_API_KEY or OPENAI_API_KEY in .env")
    kwargs: Dict[str, Any] = {"model": model_id, "api_key": api_key, "temperature": settings.models.temperature}
    if settings.models.base_url:
        kwargs["base_url"] = settings.models.base_url
    return kwargs


def build_chat_model(settings: Settings, model_id: Optional[str] = None) -> ChatOpenAI:
    """Build an OpenAI-compatible chat model from settings."""
    return ChatOpenAI(**_chat_kwargs(settings, model_id or settings.models.model_id))


def build_model_resolver(settings: Settings) -> ModelResolver:
    """Resolver returning one cached ChatOpenAI client per model id."""
    catalog: Dict[str, ChatOpenAI] = {}

    def resolver(model_id: str) -> ChatOpenAI:
        if model_id not in catalog:
            catalog[model_id] = build_chat_model(settings, model_id)
        return catalog[model_id]

    return resolver


def build_gateway(settings: Settings) -> ChatModelGateway:
    resolver = build_model_resolver(settings)
    return ChatModelGateway(resolver(settings.models.model_id), model_resolver=resolver)
