from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from config.settings import LivelySettings, ModelConfig
from debate_engine.types import InterventionType, Speaker


class DebateSetupRequest(BaseModel):
    """Request model for creating a new debate."""

    proposition: str = Field(..., min_length=3)
    proposition_context: dict[str, Any] | None = None
    format: str = "standard"
    word_limit: int = Field(default=200, gt=0)
    models: dict[str, ModelConfig] | None = None
    flow_mode: Literal["auto", "step"] | None = None
    lively: LivelySettings | None = None

    @field_validator("models")
    @classmethod
    def validate_models(cls, v):
        if v is None:
            return v
        missing = {"pro", "con", "moderator"} - set(v)
        if missing:
            raise ValueError(f"Missing model configuration for speakers: {sorted(missing)}")
        return v


class InterventionRequest(BaseModel):
    """A user message injected into a running debate."""

    content: str = Field(..., min_length=1)
    intervention_type: InterventionType = InterventionType.QUESTION
    directed_to: Speaker | None = None


class StopRequest(BaseModel):
    reason: str | None = None
