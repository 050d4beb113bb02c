"""Standard six-phase live debate format."""

from debate_engine.models import PhaseMetadata
from debate_engine.types import DebatePhase, Speaker

from .base import DebateFormat

PRO, CON, MODERATOR = Speaker.PRO, Speaker.CON, Speaker.MODERATOR

_TURNS: dict[DebatePhase, list[tuple[Speaker, str]]] = {
    DebatePhase.OPENING: [
        (MODERATOR, "moderator_introduction"),
        (PRO, "opening_statement"),
        (CON, "opening_statement"),
    ],
    # Three rounds, Pro leading each.
    DebatePhase.CONSTRUCTIVE: [
        (PRO, "constructive_argument"),
        (CON, "constructive_argument"),
    ] * 3,
    DebatePhase.CROSS_EXAM: [
        (PRO, "cross_examination_question"),
        (CON, "cross_examination_response"),
        (CON, "cross_examination_question"),
        (PRO, "cross_examination_response"),
    ],
    # Con goes first so Pro has the last word.
    DebatePhase.REBUTTAL: [
        (CON, "rebuttal"),
        (PRO, "rebuttal"),
    ],
    DebatePhase.CLOSING: [
        (CON, "closing_statement"),
        (PRO, "closing_statement"),
    ],
    DebatePhase.SYNTHESIS: [
        (MODERATOR, "moderator_synthesis"),
    ],
}

_METADATA: dict[DebatePhase, tuple[str, int]] = {
    DebatePhase.OPENING: ("Opening Statements", 4 * 60_000),
    DebatePhase.CONSTRUCTIVE: ("Constructive Arguments", 6 * 60_000),
    DebatePhase.CROSS_EXAM: ("Cross-Examination", 6 * 60_000),
    DebatePhase.REBUTTAL: ("Rebuttals", 4 * 60_000),
    DebatePhase.CLOSING: ("Closing Statements", 4 * 60_000),
    DebatePhase.SYNTHESIS: ("Moderator Synthesis", 3 * 60_000),
}


class StandardFormat(DebateFormat):
    """Moderated Pro/Con debate in six phases."""

    @property
    def name(self) -> str:
        return "standard"

    @property
    def display_name(self) -> str:
        return "Standard"

    @property
    def description(self) -> str:
        return (
            "Moderated debate: openings, three constructive rounds, cross-examination, "
            "rebuttals, closings and a neutral synthesis"
        )

    def get_phase_turns(self, phase: DebatePhase) -> list[tuple[Speaker, str]]:
        return list(_TURNS.get(phase, []))

    def get_phase_metadata(self, phase: DebatePhase) -> PhaseMetadata:
        name, duration_ms = _METADATA[phase]
        speakers = tuple(dict.fromkeys(speaker for speaker, _ in _TURNS[phase]))
        return PhaseMetadata(name=name, expected_duration_ms=duration_ms, allowed_speakers=speakers)
