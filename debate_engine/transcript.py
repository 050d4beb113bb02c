"""Final transcript assembly for completed debates."""

from datetime import datetime
from typing import Any, TypedDict
import logging

from .models import DebateRecord, Intervention, Utterance
from .types import DEBATE_PHASES, DebatePhase

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "2.0.0"


class AgentInfo(TypedDict):
    """Model attribution for one speaker."""

    model: str


class TranscriptMeta(TypedDict):
    """Metadata block of a transcript."""

    schema_version: str
    debate_id: str
    proposition: str
    proposition_context: dict[str, Any]
    started_at: str
    completed_at: str
    total_duration_ms: int
    utterance_count: int
    intervention_count: int
    agents: dict[str, AgentInfo]


class TranscriptUtterance(TypedDict):
    id: int | None
    timestamp_ms: int
    phase: str
    speaker: str
    content: str
    metadata: dict[str, Any]


class TranscriptIntervention(TypedDict):
    id: int | None
    timestamp_ms: int
    intervention_type: str
    content: str
    directed_to: str | None
    response: str | None
    response_timestamp_ms: int | None


class PhaseSummary(TypedDict):
    """Timing and participation for one phase."""

    phase: str
    started_at_ms: int
    ended_at_ms: int
    duration_ms: int
    utterance_count: int
    speakers: list[str]


class DebateTranscript(TypedDict):
    meta: TranscriptMeta
    utterances: list[TranscriptUtterance]
    interventions: list[TranscriptIntervention]
    phases: list[PhaseSummary]


def _phase_order(phase: DebatePhase) -> int:
    return DEBATE_PHASES.index(phase) if phase in DEBATE_PHASES else len(DEBATE_PHASES)


def build_phase_summary(utterances: list[Utterance]) -> list[PhaseSummary]:
    """Group utterances by phase, ordered by phase order.

    Start and end are the earliest and latest utterance timestamps of the
    phase; speakers are listed in order of first appearance.
    """
    grouped: dict[DebatePhase, list[Utterance]] = {}
    for utterance in utterances:
        grouped.setdefault(utterance.phase, []).append(utterance)

    summaries: list[PhaseSummary] = []
    for phase in sorted(grouped, key=_phase_order):
        phase_utterances = grouped[phase]
        timestamps = [u.timestamp_ms for u in phase_utterances]
        speakers: list[str] = []
        for u in phase_utterances:
            if u.speaker.value not in speakers:
                speakers.append(u.speaker.value)

        started, ended = min(timestamps), max(timestamps)
        summaries.append(
            {
                "phase": phase.value,
                "started_at_ms": started,
                "ended_at_ms": ended,
                "duration_ms": ended - started,
                "utterance_count": len(phase_utterances),
                "speakers": speakers,
            }
        )
    return summaries


def build_transcript(
    debate: DebateRecord,
    utterances: list[Utterance],
    interventions: list[Intervention],
    total_duration_ms: int,
    agent_models: dict[str, str],
    completed_at: datetime | None = None,
) -> DebateTranscript:
    """Assemble the transcript snapshot saved when a debate completes."""
    completed = completed_at or datetime.now()
    started = debate.started_at or completed

    transcript: DebateTranscript = {
        "meta": {
            "schema_version": SCHEMA_VERSION,
            "debate_id": debate.id,
            "proposition": debate.proposition,
            "proposition_context": debate.proposition_context,
            "started_at": started.isoformat(),
            "completed_at": completed.isoformat(),
            "total_duration_ms": total_duration_ms,
            "utterance_count": len(utterances),
            "intervention_count": len(interventions),
            "agents": {role: {"model": model} for role, model in agent_models.items()},
        },
        "utterances": [
            {
                "id": u.id,
                "timestamp_ms": u.timestamp_ms,
                "phase": u.phase.value,
                "speaker": u.speaker.value,
                "content": u.content,
                "metadata": u.metadata,
            }
            for u in utterances
        ],
        "interventions": [
            {
                "id": i.id,
                "timestamp_ms": i.timestamp_ms,
                "intervention_type": i.intervention_type.value,
                "content": i.content,
                "directed_to": i.directed_to.value if i.directed_to else None,
                "response": i.response,
                "response_timestamp_ms": i.response_timestamp_ms,
            }
            for i in interventions
        ],
        "phases": build_phase_summary(utterances),
    }

    logger.debug(
        f"Built transcript for {debate.id}: {len(utterances)} utterances, "
        f"{len(interventions)} interventions"
    )
    return transcript


def format_transcript_text(transcript: DebateTranscript) -> str:
    """Render a transcript as readable plain text."""
    meta = transcript["meta"]
    lines = [
        f"DEBATE: {meta['proposition']}",
        f"Duration: {meta['total_duration_ms'] / 1000:.1f}s, {meta['utterance_count']} utterances",
        "",
    ]
    current_phase = None
    for u in transcript["utterances"]:
        if u["phase"] != current_phase:
            current_phase = u["phase"]
            lines.append(f"== {current_phase.replace('_', ' ').upper()} ==")
        lines.append(f"[{u['timestamp_ms'] / 1000:7.1f}s] {u['speaker'].upper()}: {u['content']}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
