from typing import Any

from pydantic import BaseModel

from debate_engine.models import Utterance


class MessageResponse(BaseModel):
    """Response model for a recorded utterance."""

    id: int
    speaker: str
    phase: str
    content: str
    timestamp_ms: int
    word_count: int
    metadata: dict[str, Any] = {}

    @classmethod
    def from_utterance(cls, utterance: Utterance) -> "MessageResponse":
        return cls(
            id=utterance.id or 0,
            speaker=utterance.speaker.value,
            phase=utterance.phase.value,
            content=utterance.content,
            timestamp_ms=utterance.timestamp_ms,
            word_count=len(utterance.content.split()),
            metadata=utterance.metadata,
        )
