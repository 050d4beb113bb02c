"""Schema validation for utterances before they are persisted."""

from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from .interfaces import ValidationResult
from .models import Utterance
from .types import DebatePhase, Speaker


class UtteranceSchema(BaseModel):
    debate_id: str = Field(..., min_length=1)
    phase: DebatePhase
    speaker: Speaker
    content: str = Field(..., min_length=1, max_length=20000)
    timestamp_ms: int = Field(..., ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content must not be blank")
        return v

    @field_validator("metadata")
    @classmethod
    def metadata_has_prompt_type(cls, v: dict[str, Any]) -> dict[str, Any]:
        if "promptType" in v and not isinstance(v["promptType"], str):
            raise ValueError("metadata.promptType must be a string")
        return v


class UtteranceSchemaValidator:
    """Checks utterances against ``UtteranceSchema``."""

    def validate_utterance(self, utterance: Utterance) -> ValidationResult:
        try:
            UtteranceSchema(
                debate_id=utterance.debate_id,
                phase=utterance.phase,
                speaker=utterance.speaker,
                content=utterance.content,
                timestamp_ms=utterance.timestamp_ms,
                metadata=utterance.metadata,
            )
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            return ValidationResult(valid=False, errors=errors)
        return ValidationResult(valid=True)
