"""In-process stand-ins for models, agents, clocks and listeners used by the tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

from debate_engine.models import AgentContext, NormalizedProposition, PropositionValidation
from debate_engine.types import Speaker
from models.providers.base_model_provider import GenerationResult


class FakeClock:
    """Manually advanced clock; ``sleep`` advances it instead of waiting."""

    def __init__(self, start: float = 1000.0, scale: float = 1.0):
        self.now = start
        self.scale = scale
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds * self.scale

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)


class ScriptedClient:
    """Generation client returning queued responses (str or Exception)."""

    def __init__(self, *responses: str | Exception, model_name: str = "fake-model", default: str | None = None):
        self._responses = list(responses)
        self._default = default
        self._model_name = model_name
        self.calls: list[dict[str, Any]] = []

    @property
    def model_name(self) -> str:
        return self._model_name

    async def complete(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ) -> GenerationResult:
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self._responses:
            item = self._responses.pop(0)
        elif self._default is not None:
            item = self._default
        else:
            raise AssertionError("No fake responses left")
        if isinstance(item, Exception):
            raise item
        return GenerationResult(content=item, finish_reason="stop", model=self._model_name)


def judgment(
    interrupter: str | None = "con_advocate",
    relevance: float = 0.8,
    contradiction: float = 0.5,
    should_interrupt: bool = True,
    trigger: str = "always",
) -> str:
    """A detection model reply in the expected JSON shape."""
    return "Here is my analysis:\n" + json.dumps(
        {
            "shouldInterrupt": should_interrupt,
            "interrupter": interrupter,
            "relevanceScore": relevance,
            "contradictionScore": contradiction,
            "triggerPhrase": trigger,
            "reason": "Overgeneralization",
        }
    )


class FakeSpeakerAgent:
    """Speaker agent producing deterministic text.

    ``fail_times`` makes the first N calls raise; ``on_generate`` runs before
    each reply and can drive pause/stop from inside a turn.
    """

    def __init__(
        self,
        speaker: Speaker,
        model_name: str | None = None,
        fail_times: int = 0,
        on_generate: Callable[[str, AgentContext], None] | None = None,
    ):
        self.speaker = speaker
        self._model_name = model_name or f"{speaker.value}-model"
        self.fail_times = fail_times
        self.on_generate = on_generate
        self.calls: list[tuple[str, AgentContext]] = []
        self.intervention_calls: list[str] = []

    @property
    def model_name(self) -> str:
        return self._model_name

    async def generate(self, prompt_type: str, context: AgentContext) -> str:
        self.calls.append((prompt_type, context))
        if self.on_generate is not None:
            self.on_generate(prompt_type, context)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError(f"{self.speaker.value} model unavailable")
        return f"{self.speaker.display_name} {prompt_type} number {len(self.calls)}"

    async def respond_to_intervention(self, content: str, context: AgentContext) -> str:
        self.intervention_calls.append(content)
        return f"{self.speaker.display_name} answers: {content}"


class StubPropositionAgent:
    def __init__(self, normalized: str | None = None, valid: bool = True, reason: str | None = None):
        self.normalized = normalized
        self.valid = valid
        self.reason = reason

    async def normalize_proposition(
        self, raw_proposition: str, context: dict[str, Any] | None = None
    ) -> NormalizedProposition:
        return NormalizedProposition(
            normalized_question=self.normalized or raw_proposition, context=dict(context or {})
        )

    async def validate_proposition(self, question: str) -> PropositionValidation:
        return PropositionValidation(valid=self.valid, reason=self.reason)


class RecordingBroadcaster:
    def __init__(self, fail: bool = False):
        self.events: list[tuple[str, str, dict[str, Any]]] = []
        self.fail = fail

    def broadcast(self, debate_id: str, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((debate_id, event_type, payload))
        if self.fail:
            raise ConnectionError("listener gone")

    def types(self) -> list[str]:
        return [event_type for _, event_type, _ in self.events]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [payload for _, kind, payload in self.events if kind == event_type]


def speaker_agents(**kwargs: FakeSpeakerAgent) -> dict[Speaker, FakeSpeakerAgent]:
    """Default fake agents for Pro, Con and Moderator, overridable by speaker value."""
    agents = {speaker: FakeSpeakerAgent(speaker) for speaker in (Speaker.PRO, Speaker.CON, Speaker.MODERATOR)}
    for name, agent in kwargs.items():
        agents[Speaker(name)] = agent
    return agents
