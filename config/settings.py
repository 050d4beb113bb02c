"""Configuration settings and data models."""

from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, Field, field_validator
import yaml
from pathlib import Path


class ModelConfig(BaseModel):
    """Configuration for a speaker's generation model."""

    name: str = Field(..., description="Model name (e.g., 'llama3.2:3b' for Ollama, 'openai/gpt-4o' for OpenRouter)")
    provider: str = Field(default="openrouter", description="Model provider (ollama, openrouter)")
    persona: Optional[str] = Field(default=None, description="Optional persona description for the speaker")
    max_tokens: int = Field(default=400, description="Maximum tokens per response")
    temperature: float = Field(default=0.7, description="Model temperature")

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        valid_providers = {"ollama", "openrouter"}
        if v not in valid_providers:
            raise ValueError(f"Provider must be one of: {valid_providers}")
        return v


class OrchestratorConfig(BaseModel):
    """Execution settings for the phase/turn orchestrator."""

    max_retries: int = Field(default=3, ge=1, description="Attempts per generation call")
    retry_delay_ms: int = Field(default=1000, ge=0, description="Fixed delay between attempts")
    agent_timeout_ms: int = Field(
        default=30000, gt=0, description="Timeout for each provider request; rate limit waits are not counted"
    )
    validate_utterances: bool = Field(default=True, description="Validate utterances before persisting")
    broadcast_events: bool = Field(default=True, description="Broadcast debate events to listeners")
    flow_mode: Literal["auto", "step"] = Field(
        default="auto", description="'step' waits for an explicit continue after every utterance"
    )
    pause_poll_interval_ms: int = Field(default=1000, gt=0, description="Polling interval while paused")
    step_poll_interval_ms: int = Field(default=500, gt=0, description="Polling interval while awaiting continue")
    history_window: int = Field(default=6, ge=0, description="Prior utterances passed to each speaker")

    model_config = {"frozen": True}


class LivelySettings(BaseModel):
    """Settings for live interruptions."""

    enabled: bool = Field(default=False, description="Evaluate turns for interjections")
    aggression_level: int = Field(default=3, ge=1, le=5, description="1 (polite) to 5 (combative)")
    relevance_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Minimum adjusted relevance")
    contradiction_boost: float = Field(default=0.3, ge=0.0, description="Weight of contradiction in the combined score")
    interrupt_cooldown_ms: int = Field(default=15000, ge=0, description="Minimum time between interjections per speaker")
    max_interrupts_per_minute: int = Field(default=2, ge=0, description="Fired interjections allowed per minute")
    interjection_max_tokens: int = Field(default=60, gt=0, description="Token cap for a generated interjection")
    evaluation_model: str = Field(default="moderator", description="Registered model id used to judge interjections")

    model_config = {"frozen": True}

    @property
    def aggression_multiplier(self) -> float:
        """Level 1-5 maps linearly onto 0.6-1.4."""
        return round(0.6 + (self.aggression_level - 1) * 0.2, 2)


class TierLimits(BaseModel):
    """Default request limits for one model tier."""

    requests_per_minute: int = Field(..., gt=0)
    requests_per_second: int = Field(..., gt=0)
    safety_buffer: float = Field(..., ge=0.7, le=0.9, description="Fraction of the limit actually used")
    backoff_ms: int = Field(..., gt=0, description="Fixed backoff after a quota rejection")


def _default_tiers() -> Dict[str, TierLimits]:
    return {
        "free": TierLimits(requests_per_minute=10, requests_per_second=1, safety_buffer=0.7, backoff_ms=30000),
        "budget": TierLimits(requests_per_minute=30, requests_per_second=3, safety_buffer=0.8, backoff_ms=10000),
        "mid_tier": TierLimits(requests_per_minute=60, requests_per_second=5, safety_buffer=0.85, backoff_ms=5000),
        "frontier": TierLimits(requests_per_minute=100, requests_per_second=10, safety_buffer=0.9, backoff_ms=3000),
        "default": TierLimits(requests_per_minute=20, requests_per_second=2, safety_buffer=0.8, backoff_ms=10000),
    }


def _default_tier_patterns() -> Dict[str, List[str]]:
    # Checked in this order; "free" is matched separately via ':free' / '/free'.
    return {
        "frontier": [
            "claude-3-opus", "claude-3.5-sonnet", "claude-opus",
            "gpt-4-turbo", "gpt-4o", "gpt-4-32k",
            "gemini-1.5-pro", "gemini-ultra",
        ],
        "mid_tier": [
            "claude-3-sonnet", "claude-3-haiku", "claude-3.5-haiku", "claude-haiku",
            "gpt-3.5-turbo", "gpt-4o-mini", "gpt-5-mini",
            "gemini-1.5-flash", "gemini-2.0-flash", "gemini-flash",
            "mistral-large", "mistral-medium",
            "llama-3.1-70b", "llama-3.1-405b", "llama-3.3",
        ],
        "budget": [
            "mistral-7b", "mixtral", "llama-3.1-8b",
            "phi-3", "gemma",
        ],
    }


class RateLimitConfig(BaseModel):
    """Static rate limiting table for generation providers."""

    tiers: Dict[str, TierLimits] = Field(default_factory=_default_tiers)
    tier_patterns: Dict[str, List[str]] = Field(default_factory=_default_tier_patterns)
    global_requests_per_minute: int = Field(default=200, gt=0)
    global_requests_per_second: int = Field(default=20, gt=0)
    header_stale_after_ms: int = Field(default=300000, gt=0, description="Provider-reported limits expire after this long unused")
    cleanup_interval_ms: int = Field(default=60000, gt=0)
    max_rate_limit_retries: int = Field(default=2, ge=0, description="Waits a provider performs on HTTP 429 before failing")

    @field_validator("tiers")
    @classmethod
    def validate_tiers(cls, v: Dict[str, TierLimits]) -> Dict[str, TierLimits]:
        if "default" not in v:
            raise ValueError("Rate limit tiers must include a 'default' tier")
        return v


class OllamaConfig(BaseModel):
    """Ollama-specific configuration."""

    keep_alive: Optional[str] = Field(
        default="5m", description="How long to keep models loaded (e.g., '5m', '1h', '0' for immediate unload)"
    )
    repeat_penalty: Optional[float] = Field(
        default=1.1, description="Penalty for repetition in responses"
    )


class OpenRouterConfig(BaseModel):
    """OpenRouter-specific configuration."""

    api_key: Optional[str] = Field(
        default=None, description="OpenRouter API key (can also be set via OPENROUTER_API_KEY env var)"
    )
    base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="OpenRouter API base URL"
    )
    site_url: Optional[str] = Field(
        default=None, description="Your site URL for OpenRouter referrer tracking"
    )
    app_name: Optional[str] = Field(
        default="Live Debate Engine", description="App name for OpenRouter tracking"
    )
    timeout: int = Field(
        default=60, description="API request timeout in seconds"
    )


class SystemConfig(BaseModel):
    """System-wide configuration."""

    ollama_base_url: str = Field(
        default="http://localhost:11434", description="Ollama API URL"
    )
    ollama: OllamaConfig = Field(
        default_factory=OllamaConfig, description="Ollama-specific settings"
    )
    openrouter: OpenRouterConfig = Field(
        default_factory=OpenRouterConfig, description="OpenRouter-specific settings"
    )
    database_path: str = Field(
        default="debates.db", description="SQLite database for debates, utterances and interruptions"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


class DebateConfig(BaseModel):
    """Per-debate settings."""

    proposition: str = Field(..., description="Raw proposition to debate")
    format: str = Field(default="standard", description="Turn plan format")
    word_limit: int = Field(default=200, description="Word limit per turn")


class AppConfig(BaseModel):
    """Complete application configuration."""

    debate: DebateConfig
    models: Dict[str, ModelConfig]
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    lively: LivelySettings = Field(default_factory=LivelySettings)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    system: SystemConfig = Field(default_factory=SystemConfig)

    @field_validator("models")
    @classmethod
    def validate_models(cls, v: Dict[str, ModelConfig]) -> Dict[str, ModelConfig]:
        missing = {"pro", "con", "moderator"} - set(v)
        if missing:
            raise ValueError(f"Missing model configuration for speakers: {sorted(missing)}")
        return v

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration from JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        import json

        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        required_sections = ["debate", "models"]
        missing_sections = [
            section for section in required_sections if section not in data
        ]
        if missing_sections:
            raise ValueError(f"Missing required config sections: {missing_sections}")

        return cls(**data)

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_unset=True),
                f,
                default_flow_style=False,
                indent=2,
            )


def get_default_config() -> AppConfig:
    """Load default configuration from debate_config.json, creating it if needed."""
    config_path = Path("debate_config.json")
    if not config_path.exists():
        template_config = get_template_config()
        import json
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(template_config.model_dump(exclude_unset=True), f, indent=2)
    return AppConfig.load_from_file(config_path)


def get_template_config() -> AppConfig:
    """Get template configuration for config file generation."""
    return AppConfig(
        debate=DebateConfig(
            proposition="Should artificial intelligence be regulated by government oversight?",
            format="standard",
            word_limit=200,
        ),
        models={
            "pro": ModelConfig(
                name="openai/gpt-4o-mini",
                provider="openrouter",
                max_tokens=400,
                temperature=0.7,
            ),
            "con": ModelConfig(
                name="anthropic/claude-3.5-haiku",
                provider="openrouter",
                max_tokens=400,
                temperature=0.7,
            ),
            "moderator": ModelConfig(
                name="qwen2.5:7b",
                provider="ollama",
                max_tokens=400,
                temperature=0.5,
            ),
        },
        system=SystemConfig(
            ollama_base_url="http://localhost:11434",
            openrouter=OpenRouterConfig(
                api_key=None,  # Set your OpenRouter API key here or use OPENROUTER_API_KEY env var
                base_url="https://openrouter.ai/api/v1",
                app_name="Live Debate Engine",
                timeout=60,
            ),
            database_path="debates.db",
            log_level="INFO",
        ),
    )
