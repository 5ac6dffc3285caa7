from enum import StrEnum, auto
from typing import TypeAlias

from pydantic import BaseModel, Field


class Provider(StrEnum):
    FAKE = auto()
    GROQ = auto()
    HUGGINGFACE = auto()
    OLLAMA = auto()
    OPENAI = auto()


class OpenAIModelName(StrEnum):
    """https://platform.openai.com/docs/models/gpt-4o"""

    GPT_4O_MINI = "gpt-4o-mini"
    GPT_4O = "gpt-4o"


class GroqModelName(StrEnum):
    """https://console.groq.com/docs/models"""

    LLAMA_31_8B = "groq-llama-3.1-8b"
    LLAMA_33_70B = "groq-llama-3.3-70b"


class HuggingFaceModelName(StrEnum):
    """https://huggingface.co/models?inference=warm"""

    DEEPSEEK_R1 = "deepseek-r1-reasoning"
    DEEPSEEK_V3 = "deepseek-v3"


class OllamaModelName(StrEnum):
    """https://ollama.com/search"""

    OLLAMA_GENERIC = "ollama"


class FakeModelName(StrEnum):
    """Fake model for testing."""

    FAKE = "fake"


AllModelEnum: TypeAlias = (
    OpenAIModelName
    | GroqModelName
    | HuggingFaceModelName
    | OllamaModelName
    | FakeModelName
)

# Markers in a model name that select the reasoning-only loop (no tools, no plan).
REASONING_MODEL_MARKERS = ("reasoning", "thinking")


def is_reasoning_model(model_name: str) -> bool:
    """Reasoning-only models run without tools or planning."""
    name = str(model_name).lower()
    return any(marker in name for marker in REASONING_MODEL_MARKERS)


def supports_tools(model_name: str) -> bool:
    return not is_reasoning_model(model_name) and model_name not in FakeModelName


class AgentInfo(BaseModel):
    """Info about an available agent."""

    key: str = Field(description="Agent key.", examples=["research_agent"])
    description: str = Field(description="Description of the agent.")
