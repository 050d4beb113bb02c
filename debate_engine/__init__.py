"""Live debate orchestration engine."""

from .core import DebateOrchestrator
from .exceptions import (
    AgentCallError,
    DebateEngineError,
    DebateNotFoundError,
    InterruptionPendingError,
    InvalidPropositionError,
    InvalidTransitionError,
)
from .interruption import EvaluationContext, InterruptEvent, InterruptionEngine, create_interruption_engine
from .models import AgentContext, Intervention, Interruption, Turn, Utterance
from .state_machine import DebateStateMachine
from .types import DEBATE_PHASES, DebatePhase, DebateStatus, InterventionType, Speaker

__all__ = [
    "DebateOrchestrator",
    "DebateStateMachine",
    "InterruptionEngine",
    "InterruptEvent",
    "EvaluationContext",
    "create_interruption_engine",
    "AgentContext",
    "Intervention",
    "Interruption",
    "Turn",
    "Utterance",
    "DEBATE_PHASES",
    "DebatePhase",
    "DebateStatus",
    "InterventionType",
    "Speaker",
    "DebateEngineError",
    "AgentCallError",
    "DebateNotFoundError",
    "InterruptionPendingError",
    "InvalidPropositionError",
    "InvalidTransitionError",
]
