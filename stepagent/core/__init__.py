from .models import (
    AgentInfo,
    AllModelEnum,
    FakeModelName,
    GroqModelName,
    HuggingFaceModelName,
    OllamaModelName,
    OpenAIModelName,
    Provider,
    is_reasoning_model,
    supports_tools,
)

__all__ = [
    "AgentInfo",
    "AllModelEnum",
    "FakeModelName",
    "GroqModelName",
    "HuggingFaceModelName",
    "OllamaModelName",
    "OpenAIModelName",
    "Provider",
    "is_reasoning_model",
    "supports_tools",
]
