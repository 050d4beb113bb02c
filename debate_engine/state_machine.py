"""Phase state machine for a single debate."""

import logging
import time
from collections.abc import Callable

from .exceptions import InvalidTransitionError
from .interfaces import DebateRepository
from .types import DEBATE_PHASES, DebatePhase, DebateStatus, Speaker, get_next_phase

logger = logging.getLogger(__name__)

_PHASE_SPEAKERS: dict[DebatePhase, Speaker] = {
    DebatePhase.OPENING: Speaker.MODERATOR,
    DebatePhase.CONSTRUCTIVE: Speaker.PRO,
    DebatePhase.CROSS_EXAM: Speaker.PRO,
    DebatePhase.REBUTTAL: Speaker.CON,
    DebatePhase.CLOSING: Speaker.CON,
    DebatePhase.SYNTHESIS: Speaker.MODERATOR,
}


def _status_for(phase: DebatePhase) -> DebateStatus:
    if phase == DebatePhase.INITIALIZING:
        return DebateStatus.INITIALIZING
    if phase == DebatePhase.PAUSED:
        return DebateStatus.PAUSED
    if phase == DebatePhase.COMPLETED:
        return DebateStatus.COMPLETED
    if phase == DebatePhase.ERROR:
        return DebateStatus.ERROR
    return DebateStatus.LIVE


class DebateStateMachine:
    """Tracks the current phase and enforces legal transitions.

    Speaking phases only advance one step at a time. Any non-terminal state
    may pause, and resuming returns to the phase that was paused. COMPLETED
    and ERROR are terminal.
    """

    def __init__(
        self,
        debate_id: str,
        repository: DebateRepository,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.debate_id = debate_id
        self._repository = repository
        self._clock = clock

        self.current_phase = DebatePhase.INITIALIZING
        self.previous_phase: DebatePhase | None = None
        self.current_speaker = Speaker.SYSTEM
        self.error_message: str | None = None
        self._phase_started_at = clock()
        self._total_elapsed_s = 0.0

    @property
    def is_paused(self) -> bool:
        return self.current_phase == DebatePhase.PAUSED

    def is_valid_transition(self, from_phase: DebatePhase, to_phase: DebatePhase) -> bool:
        if from_phase.is_terminal:
            return False
        if to_phase == DebatePhase.ERROR:
            return True
        if from_phase == DebatePhase.PAUSED:
            return to_phase == self.previous_phase
        if to_phase == DebatePhase.PAUSED:
            return True
        if from_phase == DebatePhase.SYNTHESIS:
            return to_phase == DebatePhase.COMPLETED
        return get_next_phase(from_phase) == to_phase

    def initialize(self) -> None:
        if self.current_phase != DebatePhase.INITIALIZING:
            raise InvalidTransitionError(
                self.current_phase, DEBATE_PHASES[0], "Debate has already been initialized"
            )
        logger.info(f"Initializing debate {self.debate_id}")
        self.transition(DEBATE_PHASES[0])

    def transition(self, to_phase: DebatePhase, speaker: Speaker | None = None) -> None:
        from_phase = self.current_phase
        if to_phase == DebatePhase.PAUSED or not self.is_valid_transition(from_phase, to_phase):
            logger.error(f"Debate {self.debate_id}: invalid transition {from_phase.value} -> {to_phase.value}")
            raise InvalidTransitionError(from_phase, to_phase)

        self._close_phase_timer()
        self.current_phase = to_phase
        self.current_speaker = speaker or _PHASE_SPEAKERS.get(to_phase, Speaker.SYSTEM)
        self._persist()

        logger.info(
            f"Debate {self.debate_id}: {from_phase.value} -> {to_phase.value} "
            f"(elapsed {self.total_elapsed_ms()}ms)"
        )

    def set_speaker(self, speaker: Speaker) -> None:
        """Record who holds the floor within the current phase."""
        if not self.current_phase.is_speaking_phase or speaker == self.current_speaker:
            return
        self.current_speaker = speaker
        self._persist()

    def pause(self) -> None:
        if self.is_paused:
            logger.warning(f"Debate {self.debate_id} is already paused")
            return
        if self.current_phase.is_terminal:
            raise InvalidTransitionError(
                self.current_phase, DebatePhase.PAUSED, "Cannot pause a debate in terminal state"
            )

        self._close_phase_timer()
        self.previous_phase = self.current_phase
        self.current_phase = DebatePhase.PAUSED
        self.current_speaker = Speaker.SYSTEM
        self._persist()
        logger.info(f"Debate {self.debate_id} paused during {self.previous_phase.value}")

    def resume(self) -> None:
        if not self.is_paused or self.previous_phase is None:
            raise InvalidTransitionError(self.current_phase, self.previous_phase, "Debate is not paused")

        resume_to = self.previous_phase
        self.previous_phase = None
        self.current_phase = resume_to
        self.current_speaker = _PHASE_SPEAKERS.get(resume_to, Speaker.SYSTEM)
        # Time spent paused is not counted.
        self._phase_started_at = self._clock()
        self._persist()
        logger.info(f"Debate {self.debate_id} resumed to {resume_to.value}")

    def error(self, message: str) -> None:
        if self.current_phase.is_terminal:
            logger.warning(f"Debate {self.debate_id} already terminal, ignoring error: {message}")
            return
        if not self.is_paused:
            self._close_phase_timer()
        self.current_phase = DebatePhase.ERROR
        self.current_speaker = Speaker.SYSTEM
        self.previous_phase = None
        self.error_message = message
        self._persist()
        logger.error(f"Debate {self.debate_id} errored: {message}")

    def complete(self) -> None:
        if self.current_phase != DebatePhase.SYNTHESIS:
            raise InvalidTransitionError(
                self.current_phase,
                DebatePhase.COMPLETED,
                f"Can only complete debate from {DebatePhase.SYNTHESIS.value}",
            )
        self.transition(DebatePhase.COMPLETED, Speaker.SYSTEM)

    def total_elapsed_ms(self) -> int:
        elapsed = self._total_elapsed_s
        if not self.is_paused and not self.current_phase.is_terminal:
            elapsed += self._clock() - self._phase_started_at
        return int(elapsed * 1000)

    def _close_phase_timer(self) -> None:
        now = self._clock()
        if self.current_phase != DebatePhase.PAUSED:
            self._total_elapsed_s += now - self._phase_started_at
        self._phase_started_at = now

    def _persist(self) -> None:
        self._repository.update_status(
            self.debate_id,
            _status_for(self.current_phase),
            current_phase=self.current_phase,
            current_speaker=self.current_speaker,
        )
