"""Oxford-style debate format implementation."""

from debate_engine.models import PhaseMetadata
from debate_engine.types import DebatePhase, Speaker

from .base import DebateFormat


class OxfordFormat(DebateFormat):
    """Oxford Union-style debate with a single constructive round and no moderator opening."""

    @property
    def name(self) -> str:
        return "oxford"

    @property
    def display_name(self) -> str:
        return "Oxford"

    @property
    def description(self) -> str:
        return "Oxford Union-style debate with equal time allocation, formal procedure, and structured argument exchange"

    def get_phase_turns(self, phase: DebatePhase) -> list[tuple[Speaker, str]]:
        """Proposition Opening -> Opposition Opening -> Constructive -> Cross-Examination -> Rebuttals -> Closing."""
        if phase == DebatePhase.OPENING:
            return [(Speaker.PRO, "opening_statement"), (Speaker.CON, "opening_statement")]
        if phase == DebatePhase.CONSTRUCTIVE:
            return [(Speaker.PRO, "constructive_argument"), (Speaker.CON, "constructive_argument")]
        if phase == DebatePhase.CROSS_EXAM:
            return [
                (Speaker.CON, "cross_examination_question"),
                (Speaker.PRO, "cross_examination_response"),
            ]
        if phase == DebatePhase.REBUTTAL:
            return [(Speaker.CON, "rebuttal"), (Speaker.PRO, "rebuttal")]
        if phase == DebatePhase.CLOSING:
            return [(Speaker.CON, "closing_statement"), (Speaker.PRO, "closing_statement")]
        if phase == DebatePhase.SYNTHESIS:
            return [(Speaker.MODERATOR, "moderator_synthesis")]
        return []

    def get_phase_metadata(self, phase: DebatePhase) -> PhaseMetadata:
        names = {
            DebatePhase.OPENING: "Proposition and Opposition Openings",
            DebatePhase.CONSTRUCTIVE: "Floor Arguments",
            DebatePhase.CROSS_EXAM: "Opposition Cross-Examination",
            DebatePhase.REBUTTAL: "Rebuttals",
            DebatePhase.CLOSING: "Closing Statements",
            DebatePhase.SYNTHESIS: "Chair's Summary",
        }
        turns = self.get_phase_turns(phase)
        return PhaseMetadata(
            name=names[phase],
            expected_duration_ms=len(turns) * 2 * 60_000,
            allowed_speakers=tuple(dict.fromkeys(speaker for speaker, _ in turns)),
        )
