"""Tests for transcript assembly."""

from datetime import datetime

from debate_engine.models import DebateRecord, Intervention, Utterance
from debate_engine.transcript import (
    SCHEMA_VERSION,
    build_phase_summary,
    build_transcript,
    format_transcript_text,
)
from debate_engine.types import DebatePhase, DebateStatus, InterventionType, Speaker


def utterance(phase: DebatePhase, speaker: Speaker, ts: int, content: str = "text") -> Utterance:
    return Utterance("d1", phase, speaker, content, ts, id=ts)


def test_phase_summary_orders_by_phase_and_tracks_speakers() -> None:
    summary = build_phase_summary(
        [
            utterance(DebatePhase.CONSTRUCTIVE, Speaker.PRO, 5000),
            utterance(DebatePhase.OPENING, Speaker.MODERATOR, 0),
            utterance(DebatePhase.OPENING, Speaker.CON, 3000),
            utterance(DebatePhase.OPENING, Speaker.PRO, 1500),
            utterance(DebatePhase.CONSTRUCTIVE, Speaker.CON, 7000),
        ]
    )

    assert [s["phase"] for s in summary] == ["opening", "constructive"]
    opening = summary[0]
    assert opening["started_at_ms"] == 0
    assert opening["ended_at_ms"] == 3000
    assert opening["duration_ms"] == 3000
    assert opening["utterance_count"] == 3
    assert opening["speakers"] == ["moderator", "con", "pro"]
    assert summary[1]["duration_ms"] == 2000


def test_phase_summary_of_nothing_is_empty() -> None:
    assert build_phase_summary([]) == []


def test_build_transcript_meta_and_entries() -> None:
    debate = DebateRecord(
        id="d1",
        proposition="Should cities ban cars downtown?",
        status=DebateStatus.COMPLETED,
        proposition_context={"category": "urbanism"},
        started_at=datetime(2026, 3, 1, 18, 0, 0),
    )
    intervention = Intervention(
        debate_id="d1",
        content="Source?",
        timestamp_ms=2500,
        intervention_type=InterventionType.CHALLENGE,
        directed_to=Speaker.PRO,
        response="A city study.",
        response_timestamp_ms=2600,
        id=1,
    )

    transcript = build_transcript(
        debate,
        [utterance(DebatePhase.OPENING, Speaker.MODERATOR, 0), utterance(DebatePhase.OPENING, Speaker.PRO, 2000)],
        [intervention],
        total_duration_ms=4000,
        agent_models={"pro_advocate": "gpt-4o", "con_advocate": "claude", "moderator": "qwen"},
        completed_at=datetime(2026, 3, 1, 18, 30, 0),
    )

    meta = transcript["meta"]
    assert meta["schema_version"] == SCHEMA_VERSION
    assert meta["started_at"] == "2026-03-01T18:00:00"
    assert meta["completed_at"] == "2026-03-01T18:30:00"
    assert meta["utterance_count"] == 2
    assert meta["intervention_count"] == 1
    assert meta["agents"]["con_advocate"] == {"model": "claude"}
    assert transcript["utterances"][1]["speaker"] == "pro"
    assert transcript["interventions"][0]["directed_to"] == "pro"
    assert transcript["interventions"][0]["intervention_type"] == "challenge"
    assert len(transcript["phases"]) == 1


def test_format_transcript_text_groups_phases() -> None:
    debate = DebateRecord(id="d1", proposition="Should cities ban cars downtown?")
    transcript = build_transcript(
        debate,
        [
            utterance(DebatePhase.OPENING, Speaker.MODERATOR, 0, "Welcome."),
            utterance(DebatePhase.CROSS_EXAM, Speaker.CON, 61_500, "Who pays?"),
        ],
        [],
        total_duration_ms=62_000,
        agent_models={},
    )

    text = format_transcript_text(transcript)

    assert text.startswith("DEBATE: Should cities ban cars downtown?\n")
    assert "== OPENING ==" in text
    assert "== CROSS EXAMINATION ==" in text
    assert "MODERATOR: Welcome." in text
    assert "[   61.5s] CON: Who pays?" in text
