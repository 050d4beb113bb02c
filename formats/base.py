"""Base classes and interfaces for debate formats."""

from abc import ABC, abstractmethod

from debate_engine.models import PhaseExecutionPlan, PhaseMetadata, Turn
from debate_engine.types import DEBATE_PHASES, DebatePhase, Speaker


class DebateFormat(ABC):
    """Abstract base class for debate formats.

    A format decides, for every speaking phase, which speakers take turns
    and with which prompt type. The orchestrator consumes the turns in the
    order returned here.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Format name."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable format name for display in UI."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Format description."""
        pass

    @abstractmethod
    def get_phase_turns(self, phase: DebatePhase) -> list[tuple[Speaker, str]]:
        """Ordered (speaker, prompt type) pairs for a speaking phase."""
        pass

    @abstractmethod
    def get_phase_metadata(self, phase: DebatePhase) -> PhaseMetadata:
        pass

    def get_phase_execution_plan(self, phase: DebatePhase) -> PhaseExecutionPlan:
        if phase not in DEBATE_PHASES:
            raise ValueError(f"{phase.value} is not a speaking phase")

        turns = [
            Turn(speaker=speaker, prompt_type=prompt_type, turn_number=index + 1)
            for index, (speaker, prompt_type) in enumerate(self.get_phase_turns(phase))
        ]
        return PhaseExecutionPlan(phase=phase, turns=turns, metadata=self.get_phase_metadata(phase))

    def get_total_turns(self) -> int:
        return sum(len(self.get_phase_turns(phase)) for phase in DEBATE_PHASES)
