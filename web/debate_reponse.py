from typing import Any

from pydantic import BaseModel

from debate_engine.models import DebateRecord, Intervention


class DebateResponse(BaseModel):
    """Response model for debate information."""

    id: str
    proposition: str
    status: str
    current_phase: str
    current_speaker: str
    is_awaiting_continue: bool
    flow_mode: str
    utterance_count: int = 0
    started_at: str | None = None
    completed_at: str | None = None

    @classmethod
    def from_record(cls, record: DebateRecord, flow_mode: str, utterance_count: int) -> "DebateResponse":
        return cls(
            id=record.id,
            proposition=record.proposition,
            status=record.status.value,
            current_phase=record.current_phase.value,
            current_speaker=record.current_speaker.value,
            is_awaiting_continue=record.is_awaiting_continue,
            flow_mode=flow_mode,
            utterance_count=utterance_count,
            started_at=record.started_at.isoformat() if record.started_at else None,
            completed_at=record.completed_at.isoformat() if record.completed_at else None,
        )


class InterventionResponse(BaseModel):
    id: int
    intervention_type: str
    content: str
    directed_to: str | None = None
    response: str | None = None
    response_timestamp_ms: int | None = None

    @classmethod
    def from_intervention(cls, intervention: Intervention) -> "InterventionResponse":
        return cls(
            id=intervention.id or 0,
            intervention_type=intervention.intervention_type.value,
            content=intervention.content,
            directed_to=intervention.directed_to.value if intervention.directed_to else None,
            response=intervention.response,
            response_timestamp_ms=intervention.response_timestamp_ms,
        )


class StatusResponse(BaseModel):
    status: str
    debate_id: str
    detail: dict[str, Any] | None = None
