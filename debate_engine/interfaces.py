"""Contracts for the collaborators the orchestrator depends on."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from models.providers.base_model_provider import GenerationResult

from .models import (
    AgentContext,
    DebateRecord,
    Intervention,
    Interruption,
    NormalizedProposition,
    PhaseExecutionPlan,
    PropositionValidation,
    Utterance,
)
from .types import DebatePhase, DebateStatus, Speaker

MessageList = list[dict[str, str]]


class TurnPlanProvider(Protocol):
    """Enumerates the ordered turns of a phase."""

    def get_phase_execution_plan(self, phase: DebatePhase) -> PhaseExecutionPlan:
        ...


class GenerationClient(Protocol):
    """A text generation provider bound to one model."""

    @property
    def model_name(self) -> str:
        ...

    async def complete(
        self, messages: MessageList, temperature: float, max_tokens: int
    ) -> GenerationResult:
        ...


class SpeakerAgent(Protocol):
    """Produces the content of a turn for one speaker."""

    @property
    def model_name(self) -> str:
        ...

    async def generate(self, prompt_type: str, context: AgentContext) -> str:
        ...

    async def respond_to_intervention(self, content: str, context: AgentContext) -> str:
        ...


class PropositionAgent(Protocol):
    """Normalizes raw propositions and judges whether they are debatable."""

    async def normalize_proposition(
        self, raw_proposition: str, context: dict[str, Any] | None = None
    ) -> NormalizedProposition:
        ...

    async def validate_proposition(self, question: str) -> PropositionValidation:
        ...


class CitationProvider(Protocol):
    """Supplies retrieval citations for a speaker's turn."""

    async def retrieve(self, proposition: str, recent: list[Utterance]) -> list[str]:
        ...


class PersonaProvider(Protocol):
    """Optional speaking persona per speaker."""

    def get_persona(self, speaker: Speaker) -> str | None:
        ...


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


class SchemaValidator(Protocol):
    def validate_utterance(self, utterance: Utterance) -> ValidationResult:
        ...


class Broadcaster(Protocol):
    """Fire-and-forget event delivery to debate listeners."""

    def broadcast(self, debate_id: str, event_type: str, payload: dict[str, Any]) -> None:
        ...


class DebateRepository(Protocol):
    def find_by_id(self, debate_id: str) -> DebateRecord | None:
        ...

    def update_proposition(
        self, debate_id: str, proposition: str, proposition_context: dict[str, Any]
    ) -> None:
        ...

    def mark_started(self, debate_id: str) -> None:
        ...

    def update_status(
        self,
        debate_id: str,
        status: DebateStatus,
        current_phase: DebatePhase | None = None,
        current_speaker: Speaker | None = None,
    ) -> None:
        ...

    def set_awaiting_continue(self, debate_id: str, awaiting: bool) -> None:
        ...

    def save_transcript(self, debate_id: str, transcript: dict[str, Any]) -> None:
        ...

    def complete(self, debate_id: str) -> None:
        ...


class UtteranceRepository(Protocol):
    def create_utterance(self, utterance: Utterance) -> Utterance:
        ...

    def find_utterances(self, debate_id: str) -> list[Utterance]:
        ...


class InterventionRepository(Protocol):
    def create_intervention(self, intervention: Intervention) -> Intervention:
        ...

    def add_intervention_response(
        self, intervention_id: int, response: str, timestamp_ms: int
    ) -> None:
        ...

    def find_interventions(self, debate_id: str) -> list[Intervention]:
        ...


class InterruptionRepository(Protocol):
    def create_interruption(
        self,
        debate_id: str,
        scheduled_at_ms: int,
        interrupter: Speaker,
        interrupted_speaker: Speaker,
        trigger_phrase: str | None = None,
        relevance_score: float | None = None,
        contradiction_score: float | None = None,
    ) -> Interruption:
        ...

    def fire_interruption(
        self, interruption_id: int, content: str, at_token: int, fired_at_ms: int
    ) -> Interruption | None:
        ...

    def cancel_interruption(self, interruption_id: int, reason: str) -> None:
        ...


class DebateStoreProtocol(
    DebateRepository, UtteranceRepository, InterventionRepository, InterruptionRepository, Protocol
):
    """All persistence operations, as implemented by ``DebateStore``."""
