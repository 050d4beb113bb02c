"""Data models for the debate engine."""

from typing import Any
from dataclasses import dataclass, field
from datetime import datetime

from .types import DebatePhase, DebateStatus, InterruptStatus, InterventionType, Speaker


@dataclass(frozen=True)
class Turn:
    """One scheduled speaking slot within a phase."""

    speaker: Speaker
    prompt_type: str
    turn_number: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PhaseMetadata:
    """Descriptive information about a phase."""

    name: str
    expected_duration_ms: int
    allowed_speakers: tuple[Speaker, ...] = ()


@dataclass(frozen=True)
class PhaseExecutionPlan:
    """Ordered turns for a phase, as produced by a turn plan provider."""

    phase: DebatePhase
    turns: list[Turn]
    metadata: PhaseMetadata


@dataclass(frozen=True)
class Utterance:
    """The text output of one completed turn or fired interruption.

    ``id`` is assigned by persistence; an utterance is never modified after
    it has been stored.
    """

    debate_id: str
    phase: DebatePhase
    speaker: Speaker
    content: str
    timestamp_ms: int
    metadata: dict[str, Any] = field(default_factory=dict)
    id: int | None = None


@dataclass
class Intervention:
    """A user-injected message, optionally directed at one speaker."""

    debate_id: str
    content: str
    timestamp_ms: int
    intervention_type: InterventionType = InterventionType.QUESTION
    directed_to: Speaker | None = None
    response: str | None = None
    response_timestamp_ms: int | None = None
    id: int | None = None


@dataclass(frozen=True)
class InterruptCandidate:
    """An unpersisted interjection opportunity."""

    speaker: Speaker
    relevance_score: float
    contradiction_score: float
    combined_score: float
    trigger_phrase: str
    reason: str = ""


@dataclass
class Interruption:
    """Persisted interruption record (scheduled, fired or cancelled)."""

    id: int
    debate_id: str
    scheduled_at_ms: int
    interrupter: Speaker
    interrupted_speaker: Speaker
    status: InterruptStatus = InterruptStatus.SCHEDULED
    trigger_phrase: str | None = None
    relevance_score: float | None = None
    contradiction_score: float | None = None
    interjection_content: str | None = None
    interrupted_at_token: int | None = None
    fired_at_ms: int | None = None
    cancellation_reason: str | None = None


@dataclass
class DebateRecord:
    """Persisted debate row."""

    id: str
    proposition: str
    status: DebateStatus = DebateStatus.CREATED
    proposition_context: dict[str, Any] = field(default_factory=dict)
    current_phase: DebatePhase = DebatePhase.INITIALIZING
    current_speaker: Speaker = Speaker.SYSTEM
    is_awaiting_continue: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None
    transcript: dict[str, Any] | None = None


@dataclass(frozen=True)
class NormalizedProposition:
    """A proposition rewritten as a neutral, debatable question."""

    normalized_question: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PropositionValidation:
    """Debatability verdict for a proposition."""

    valid: bool
    reason: str | None = None


@dataclass
class AgentContext:
    """Everything a speaker agent needs to produce one turn."""

    debate_id: str
    current_phase: DebatePhase
    speaker: Speaker
    proposition: str
    previous_utterances: list[Utterance] = field(default_factory=list)
    proposition_context: dict[str, Any] = field(default_factory=dict)
    persona: str | None = None
    citations: list[str] = field(default_factory=list)
    word_limit: int = 200
