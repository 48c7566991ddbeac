"""Application configuration using pydantic-settings.

Loads settings from environment variables and .env file.
Stage behavior config (temperatures, models, scoring weights) loaded from agents.toml.

Priority: CLI args > Environment variables (.env) > agents.toml > hardcoded defaults
"""

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Stage settings from agents.toml
# ---------------------------------------------------------------------------


class AgentConfig(BaseModel):
    """Base configuration for a single pipeline stage."""

    model: str | None = None
    temperature: float | None = None
    groq_model: str = ""     # Stage-specific Groq model override
    ollama_model: str = ""   # Stage-specific Ollama model override


class QuestionGeneratorConfig(AgentConfig):
    temperature: float = 0.7


class AnswerGeneratorConfig(AgentConfig):
    """The model under test. Point `model` at the LLM whose brand knowledge is probed."""

    temperature: float = 0.3


class ScorerConfig(AgentConfig):
    temperature: float = 0.0


class ReportSynthesizerConfig(AgentConfig):
    temperature: float = 0.4


class AgentsTable(BaseModel):
    """The [agents] table from agents.toml."""

    question_generator: QuestionGeneratorConfig = Field(
        default_factory=QuestionGeneratorConfig
    )
    answer_generator: AnswerGeneratorConfig = Field(
        default_factory=AnswerGeneratorConfig
    )
    scorer: ScorerConfig = Field(default_factory=ScorerConfig)
    report_synthesizer: ReportSynthesizerConfig = Field(
        default_factory=ReportSynthesizerConfig
    )


class DefaultsTable(BaseModel):
    """The [defaults] table from agents.toml."""

    model: str = "google/gemini-2.5-flash"
    timeout: float = 60.0           # seconds per outbound stage call
    min_response_length: int = 2


class RetryConfig(BaseModel):
    """The [retry] table from agents.toml. Applies to UpstreamUnavailable only."""

    max_attempts: int = 3
    initial_interval: float = 1.0
    backoff_factor: float = 2.0


class JsonFixConfig(BaseModel):
    """The [json_fix] table. max_attempts=1 disables the fixer pass."""

    max_attempts: int = Field(default=1, ge=1)
    memory_window: int = Field(default=3, ge=1)


class ScoringConfig(BaseModel):
    """The [scoring] table: geoScore weights."""

    salience_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    relevance_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    specificity_weight: float = Field(default=0.2, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def weights_sum_to_one(self) -> "ScoringConfig":
        total = self.salience_weight + self.relevance_weight + self.specificity_weight
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"scoring weights must sum to 1.0 (got {total:.4f})")
        return self


class ProviderConfig(BaseModel):
    """Configuration for a single fallback provider."""

    enabled: bool = False
    default_model: str = ""
    base_url: str = ""


class ProvidersTable(BaseModel):
    """The [providers] table from agents.toml."""

    groq: ProviderConfig = Field(default_factory=ProviderConfig)
    ollama: ProviderConfig = Field(default_factory=ProviderConfig)


class AgentSettings(BaseModel):
    """Configuration loaded from agents.toml."""

    defaults: DefaultsTable = Field(default_factory=DefaultsTable)
    agents: AgentsTable = Field(default_factory=AgentsTable)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    json_fix: JsonFixConfig = Field(default_factory=JsonFixConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    providers: ProvidersTable = Field(default_factory=ProvidersTable)

    def get_agent_config(self, agent_name: str) -> AgentConfig:
        """Get the config for a specific stage."""
        return getattr(self.agents, agent_name, AgentConfig())

    def get_model(self, agent_name: str) -> str:
        """Get the resolved model for a stage (stage-specific > defaults)."""
        agent_cfg = self.get_agent_config(agent_name)
        return agent_cfg.model or self.defaults.model

    def get_temperature(self, agent_name: str) -> float:
        """Get the resolved temperature for a stage."""
        agent_cfg = self.get_agent_config(agent_name)
        if agent_cfg.temperature is not None:
            return agent_cfg.temperature
        return 0.7  # fallback

    def get_groq_model(self, agent_name: str) -> str:
        """Get Groq model: stage-specific > providers.groq.default_model."""
        agent_cfg = self.get_agent_config(agent_name)
        return agent_cfg.groq_model or self.providers.groq.default_model

    def get_ollama_model(self, agent_name: str) -> str:
        """Get Ollama model: stage-specific > providers.ollama.default_model."""
        agent_cfg = self.get_agent_config(agent_name)
        return agent_cfg.ollama_model or self.providers.ollama.default_model


_AGENT_SETTINGS_CACHE: AgentSettings | None = None


def get_agent_settings() -> AgentSettings:
    """Load and cache stage settings from agents.toml."""
    global _AGENT_SETTINGS_CACHE
    if _AGENT_SETTINGS_CACHE is not None:
        return _AGENT_SETTINGS_CACHE

    toml_path = Path(__file__).parent.parent / "agents.toml"
    if toml_path.exists():
        with open(toml_path, "rb") as f:
            data = tomllib.load(f)
        _AGENT_SETTINGS_CACHE = AgentSettings.model_validate(data)
    else:
        _AGENT_SETTINGS_CACHE = AgentSettings()

    return _AGENT_SETTINGS_CACHE


# ---------------------------------------------------------------------------
# Environment settings from .env (API keys, secrets, env-var overrides)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Keys (checked when a stage builds its LLM, not at startup)
    openrouter_api_key: str = ""
    groq_api_key: str = ""  # Optional Groq fallback provider

    # LangSmith (set LANGCHAIN_TRACING_V2=true to enable)
    langchain_tracing_v2: bool = False
    langchain_api_key: str | None = None
    langchain_project: str = "geo-diagnosis"

    # OpenRouter base URL
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    # Logging
    log_level: str = "INFO"

    # HTTP API
    geo_cors_origins: str = "*"


def get_settings() -> Settings:
    """Create and return a Settings instance.

    Also exports LangSmith env vars so the LangChain SDK
    picks them up automatically for tracing.
    """
    settings = Settings()

    if settings.langchain_tracing_v2:
        os.environ.setdefault("LANGCHAIN_TRACING_V2", "true")
        if settings.langchain_api_key:
            os.environ.setdefault("LANGCHAIN_API_KEY", settings.langchain_api_key)
        os.environ.setdefault("LANGCHAIN_PROJECT", settings.langchain_project)

    return settings
