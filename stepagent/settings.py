import os
from typing import Any, Literal

from dotenv import find_dotenv
from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stepagent.core import (
    AllModelEnum,
    FakeModelName,
    GroqModelName,
    HuggingFaceModelName,
    OllamaModelName,
    OpenAIModelName,
    Provider,
)

# Smallest model of each provider, used for planning and analysis
FAST_MODELS: dict[Provider, AllModelEnum] = {
    Provider.OPENAI: OpenAIModelName.GPT_4O_MINI,
    Provider.GROQ: GroqModelName.LLAMA_31_8B,
    Provider.HUGGINGFACE: HuggingFaceModelName.DEEPSEEK_V3,
    Provider.OLLAMA: OllamaModelName.OLLAMA_GENERIC,
    Provider.FAKE: FakeModelName.FAKE,
}

# Room for the truncated state header and closing tag
MIN_CONTEXT_CHARS = 256


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=find_dotenv(),
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        validate_default=False,
    )
    MODE: str | None = None

    # API service title and version
    TITLE: str = "stepagent"
    VERSION: str = "0.1.0"

    HOST: str = "0.0.0.0"
    PORT: int = 8080

    OPENAI_API_KEY: SecretStr | None = None
    GROQ_API_KEY: SecretStr | None = None
    HF_API_KEY: SecretStr | None = None
    OLLAMA_MODEL: str | None = None
    OLLAMA_BASE_URL: str | None = None
    USE_FAKE_MODEL: bool = False

    # If DEFAULT_MODEL is None, it will be set in model_post_init
    DEFAULT_MODEL: AllModelEnum | None = None  # type: ignore[assignment]
    AVAILABLE_MODELS: set[AllModelEnum] = set()  # type: ignore[assignment]

    # Fast models for plan generation and content analysis.
    # Unset or unavailable ones fall back to the first provider's fast model.
    PLANNING_MODEL: AllModelEnum | None = None  # type: ignore[assignment]
    ANALYSIS_MODEL: AllModelEnum | None = None  # type: ignore[assignment]

    SEARCH_PROVIDER: Literal["duckduckgo", "tavily"] = "duckduckgo"
    TAVILY_API_KEY: SecretStr | None = None

    # Loop bounds
    MAX_STEPS: int = 5
    MAX_CONTEXT_CHARS: int = Field(default=16000, ge=MIN_CONTEXT_CHARS)
    RESULT_SUMMARY_CHARS: int = 500

    # Timeouts for external calls, in seconds
    PLANNING_TIMEOUT: float = 30.0
    TOOL_TIMEOUT: float = 60.0
    FETCH_TIMEOUT: float = 10.0

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "console"

    def model_post_init(self, __context: Any) -> None:
        api_keys = {
            Provider.OPENAI: self.OPENAI_API_KEY,
            Provider.GROQ: self.GROQ_API_KEY,
            Provider.HUGGINGFACE: self.HF_API_KEY,
            Provider.OLLAMA: self.OLLAMA_MODEL,
            Provider.FAKE: self.USE_FAKE_MODEL,
        }
        active_keys = [k for k, v in api_keys.items() if v]
        if not active_keys:
            raise ValueError("At least one LLM API key must be provided.")

        for provider in active_keys:
            match provider:
                case Provider.OPENAI:
                    if self.DEFAULT_MODEL is None:
                        self.DEFAULT_MODEL = OpenAIModelName.GPT_4O
                    self.AVAILABLE_MODELS.update(set(OpenAIModelName))
                case Provider.GROQ:
                    if self.DEFAULT_MODEL is None:
                        self.DEFAULT_MODEL = GroqModelName.LLAMA_33_70B
                    self.AVAILABLE_MODELS.update(set(GroqModelName))
                case Provider.HUGGINGFACE:
                    if self.DEFAULT_MODEL is None:
                        self.DEFAULT_MODEL = HuggingFaceModelName.DEEPSEEK_V3
                    self.AVAILABLE_MODELS.update(set(HuggingFaceModelName))
                case Provider.OLLAMA:
                    if self.DEFAULT_MODEL is None:
                        self.DEFAULT_MODEL = OllamaModelName.OLLAMA_GENERIC
                    self.AVAILABLE_MODELS.update(set(OllamaModelName))
                case Provider.FAKE:
                    if self.DEFAULT_MODEL is None:
                        self.DEFAULT_MODEL = FakeModelName.FAKE
                    self.AVAILABLE_MODELS.update(set(FakeModelName))
                case _:
                    raise ValueError(f"Unknown provider: {provider}")

        fast_model = FAST_MODELS[active_keys[0]]
        if self.PLANNING_MODEL not in self.AVAILABLE_MODELS:
            self.PLANNING_MODEL = fast_model
        if self.ANALYSIS_MODEL not in self.AVAILABLE_MODELS:
            self.ANALYSIS_MODEL = fast_model

    @computed_field
    @property
    def BASE_URL(self) -> str:
        return f"http://{self.HOST}:{self.PORT}"

    @computed_field
    @property
    def ROOT_PATH(self) -> str:
        return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

    def is_dev(self) -> bool:
        return self.MODE == "dev"


settings = Settings()
