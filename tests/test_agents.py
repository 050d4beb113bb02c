"""Tests for LLM-backed speaker and proposition agents."""

import asyncio
import json

import pytest

from debate_engine.agents import (
    LLMPropositionAgent,
    LLMSpeakerAgent,
    SystemAgent,
    clean_model_response,
)
from debate_engine.models import AgentContext, Utterance
from debate_engine.types import DebatePhase, Speaker
from fakes import ScriptedClient


def make_context(**overrides) -> AgentContext:
    values = dict(
        debate_id="d1",
        current_phase=DebatePhase.REBUTTAL,
        speaker=Speaker.CON,
        proposition="Should cities ban cars downtown?",
        previous_utterances=[
            Utterance("d1", DebatePhase.CLOSING, Speaker.PRO, "Streets are for people.", 1000),
            Utterance("d1", DebatePhase.CLOSING, Speaker.CON, "Commerce needs access.", 2000),
        ],
        word_limit=150,
    )
    values.update(overrides)
    return AgentContext(**values)


def test_messages_include_role_history_and_limits() -> None:
    agent = LLMSpeakerAgent(Speaker.CON, ScriptedClient())
    context = make_context(
        persona="A small business owner",
        proposition_context={"category": "urbanism"},
        citations=["City freight report"],
    )

    messages = agent.build_messages("Rebut.", context)

    system = messages[0]["content"]
    assert messages[0]["role"] == "system"
    assert "Should cities ban cars downtown?" in system
    assert "You ARE the Con Advocate" in system
    assert "YOUR PERSONA: A small business owner" in system
    assert '"category": "urbanism"' in system

    assert messages[1] == {"role": "user", "content": "Pro Advocate: Streets are for people."}
    assert messages[2] == {"role": "assistant", "content": "Commerce needs access."}
    assert "City freight report" in messages[-1]["content"]
    assert messages[-1]["content"].endswith("Stay under 150 words.")


def test_generate_cleans_output_and_caps_tokens() -> None:
    client = ScriptedClient("Con Advocate: **Deliveries** would collapse.", model_name="claude")
    agent = LLMSpeakerAgent(Speaker.CON, client, temperature=0.4, max_tokens=400)

    content = asyncio.run(agent.generate("rebuttal", make_context()))

    assert content == "Deliveries would collapse."
    assert agent.model_name == "claude"
    assert client.calls[0]["temperature"] == 0.4
    assert client.calls[0]["max_tokens"] == int(150 * 1.33)
    assert "Address the opponent's arguments" in client.calls[0]["messages"][-1]["content"]


def test_generate_with_unknown_prompt_type_uses_generic_instruction() -> None:
    client = ScriptedClient("Fine.")
    agent = LLMSpeakerAgent(Speaker.PRO, client)

    asyncio.run(agent.generate("lightning_round", make_context(speaker=Speaker.PRO)))

    assert "Participate according to the debate format." in client.calls[0]["messages"][-1]["content"]


def test_generate_rejects_empty_output() -> None:
    agent = LLMSpeakerAgent(Speaker.PRO, ScriptedClient("**  **"))
    with pytest.raises(ValueError, match="empty response"):
        asyncio.run(agent.generate("rebuttal", make_context(speaker=Speaker.PRO)))


def test_respond_to_intervention_quotes_the_audience() -> None:
    client = ScriptedClient("Moderator: Good question.")
    agent = LLMSpeakerAgent(Speaker.MODERATOR, client)

    answer = asyncio.run(agent.respond_to_intervention("Who enforces it?", make_context()))

    assert answer == "Good question."
    assert '"Who enforces it?"' in client.calls[0]["messages"][-1]["content"]


@pytest.mark.parametrize(
    ("raw", "cleaned"),
    [
        ("Pro Advocate: We must act.", "We must act."),
        ("MODERATOR - Welcome all.", "Welcome all."),
        ("Opening statement: Cities change.", "Cities change."),
        ("[Con Advocate]: No.", "No."),
        ("# Heading\n*Emphasis* and **bold**", "Heading\nEmphasis and bold"),
    ],
)
def test_clean_model_response(raw: str, cleaned: str) -> None:
    assert clean_model_response(raw) == cleaned


def test_system_agent_needs_no_model() -> None:
    agent = SystemAgent()
    assert agent.model_name == "system"
    assert asyncio.run(agent.generate("moderator_introduction", make_context())) == "The debate is starting."


def test_normalize_proposition_merges_context() -> None:
    client = ScriptedClient(
        json.dumps(
            {
                "normalizedQuestion": "Should cities ban private cars from downtown areas?",
                "context": {"category": "urbanism"},
            }
        )
    )
    agent = LLMPropositionAgent(client)

    normalized = asyncio.run(agent.normalize_proposition("ban cars downtown", {"region": "EU"}))

    assert normalized.normalized_question == "Should cities ban private cars from downtown areas?"
    assert normalized.context == {"region": "EU", "category": "urbanism"}
    assert '"region": "EU"' in client.calls[0]["messages"][0]["content"]


def test_normalize_proposition_falls_back_to_raw_text() -> None:
    agent = LLMPropositionAgent(ScriptedClient("Sorry, I cannot help with that."))
    normalized = asyncio.run(agent.normalize_proposition("  ban cars downtown "))

    assert normalized.normalized_question == "ban cars downtown"
    assert normalized.context == {}


@pytest.mark.parametrize(
    ("reply", "valid", "reason"),
    [
        ('{"valid": true, "reason": "Two clear sides"}', True, "Two clear sides"),
        ('Verdict: {"valid": false, "reason": "Purely factual"}', False, "Purely factual"),
        ("I am not sure.", False, "Could not assess proposition"),
    ],
)
def test_validate_proposition(reply: str, valid: bool, reason: str) -> None:
    agent = LLMPropositionAgent(ScriptedClient(reply))
    verdict = asyncio.run(agent.validate_proposition("Is water wet?"))

    assert verdict.valid is valid
    assert verdict.reason == reason
