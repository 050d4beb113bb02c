"""Exceptions raised by the debate engine."""

from .types import DebatePhase, Speaker


class DebateEngineError(Exception):
    """Base class for debate engine failures."""


class InvalidPropositionError(DebateEngineError):
    """The proposition could not be normalized or is not debatable."""

    def __init__(self, proposition: str, reason: str):
        self.proposition = proposition
        self.reason = reason
        super().__init__(f"Invalid proposition: {reason}")


class InvalidTransitionError(DebateEngineError):
    """A phase state machine transition is not allowed."""

    def __init__(self, from_phase: DebatePhase, to_phase: DebatePhase | None, message: str | None = None):
        self.from_phase = from_phase
        self.to_phase = to_phase
        target = to_phase.value if to_phase else "?"
        super().__init__(message or f"Invalid transition from {from_phase.value} to {target}")


class AgentCallError(DebateEngineError):
    """A generation call failed on every attempt."""

    def __init__(self, speaker: Speaker, prompt_type: str, attempts: int, cause: BaseException):
        self.speaker = speaker
        self.prompt_type = prompt_type
        self.attempts = attempts
        super().__init__(
            f"Agent call failed for {speaker.value} ({prompt_type}) after {attempts} attempt(s): "
            f"{type(cause).__name__}: {cause}"
        )


class DebateNotFoundError(DebateEngineError):
    """No debate with the given id exists."""

    def __init__(self, debate_id: str):
        self.debate_id = debate_id
        super().__init__(f"Debate not found: {debate_id}")


class InterruptionPendingError(DebateEngineError):
    """An interruption was scheduled while another one is still pending."""

    def __init__(self, debate_id: str, pending_id: int):
        self.debate_id = debate_id
        self.pending_id = pending_id
        super().__init__(f"Debate {debate_id} already has pending interruption {pending_id}")
