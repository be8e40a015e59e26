from .gateway import (
    ChatModelGateway,
    ModelGateway,
    ModelResolver,
    ModelResponse,
    build_chat_model,
    build_gateway,
    build_model_resolver,
    response_from_message,
)

__all__ = [
    "ChatModelGateway",
    "ModelGateway",
    "ModelResolver",
    "ModelResponse",
    "build_chat_model",
    "build_gateway",
    "build_model_resolver",
    "response_from_message",
]
