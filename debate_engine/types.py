"""Shared types and enums for the debate engine."""

from enum import Enum
from typing import Any, TypedDict


class PhaseStartEventData(TypedDict):
    """Data structure for phase_start broadcasts."""

    phase: str
    phase_name: str
    turn_count: int
    expected_duration_ms: int


class PhaseCompleteEventData(TypedDict):
    """Data structure for phase_complete broadcasts."""

    phase: str
    phase_name: str
    turns_executed: int


class UtteranceEventData(TypedDict):
    """Data structure for utterance broadcasts."""

    id: int
    timestamp_ms: int
    phase: str
    speaker: str
    content: str
    metadata: dict[str, Any]


class DebatePhase(Enum):
    """States of the phase state machine.

    The six numbered phases are the speaking phases; the rest are control
    states.
    """

    INITIALIZING = "initializing"
    OPENING = "opening"
    CONSTRUCTIVE = "constructive"
    CROSS_EXAM = "cross_examination"
    REBUTTAL = "rebuttal"
    CLOSING = "closing"
    SYNTHESIS = "synthesis"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_speaking_phase(self) -> bool:
        return self in DEBATE_PHASES

    @property
    def is_terminal(self) -> bool:
        return self in (DebatePhase.COMPLETED, DebatePhase.ERROR)


# Fixed execution order of the speaking phases.
DEBATE_PHASES: tuple[DebatePhase, ...] = (
    DebatePhase.OPENING,
    DebatePhase.CONSTRUCTIVE,
    DebatePhase.CROSS_EXAM,
    DebatePhase.REBUTTAL,
    DebatePhase.CLOSING,
    DebatePhase.SYNTHESIS,
)


def get_next_phase(phase: DebatePhase) -> DebatePhase | None:
    """Return the speaking phase after ``phase``, or None after the last one."""
    if phase == DebatePhase.INITIALIZING:
        return DEBATE_PHASES[0]
    if phase not in DEBATE_PHASES:
        return None
    index = DEBATE_PHASES.index(phase)
    if index + 1 >= len(DEBATE_PHASES):
        return None
    return DEBATE_PHASES[index + 1]


class Speaker(Enum):
    """Debate speakers."""

    PRO = "pro"
    CON = "con"
    MODERATOR = "moderator"
    SYSTEM = "system"

    @property
    def display_name(self) -> str:
        return {
            Speaker.PRO: "Pro Advocate",
            Speaker.CON: "Con Advocate",
            Speaker.MODERATOR: "Moderator",
            Speaker.SYSTEM: "System",
        }[self]


class DebateStatus(Enum):
    """Persisted debate status."""

    CREATED = "created"
    INITIALIZING = "initializing"
    LIVE = "live"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class InterruptStatus(Enum):
    """Lifecycle of a persisted interruption."""

    SCHEDULED = "scheduled"
    FIRED = "fired"
    CANCELLED = "cancelled"


class InterventionType(Enum):
    """Kinds of user intervention."""

    QUESTION = "question"
    CHALLENGE = "challenge"
    EVIDENCE_INJECTION = "evidence_injection"
    PAUSE_REQUEST = "pause_request"
    CLARIFICATION_REQUEST = "clarification_request"
