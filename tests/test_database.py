"""Tests for the SQLite debate store."""

import sqlite3

import pytest

from debate_engine.database import DebateStore
from debate_engine.exceptions import DebateNotFoundError
from debate_engine.models import Intervention, Utterance
from debate_engine.types import (
    DebatePhase,
    DebateStatus,
    InterruptStatus,
    InterventionType,
    Speaker,
)


def test_created_debate_has_defaults(store: DebateStore) -> None:
    record = store.create_debate("Ban cars downtown", {"city": "Lyon"}, flow_mode="step")

    found = store.find_by_id(record.id)
    assert found is not None
    assert found.status == DebateStatus.CREATED
    assert found.current_phase == DebatePhase.INITIALIZING
    assert found.current_speaker == Speaker.SYSTEM
    assert found.proposition_context == {"city": "Lyon"}
    assert not found.is_awaiting_continue
    assert found.started_at is None
    assert store.get_flow_mode(record.id) == "step"


def test_status_updates_and_completion(store: DebateStore) -> None:
    debate_id = store.create_debate("Ban cars downtown").id
    store.mark_started(debate_id)
    store.update_status(debate_id, DebateStatus.LIVE, DebatePhase.REBUTTAL, Speaker.CON)
    store.set_awaiting_continue(debate_id, True)

    live = store.find_by_id(debate_id)
    assert live.status == DebateStatus.LIVE
    assert live.current_phase == DebatePhase.REBUTTAL
    assert live.current_speaker == Speaker.CON
    assert live.is_awaiting_continue
    assert live.started_at is not None

    store.save_transcript(debate_id, {"meta": {"utterance_count": 0}})
    store.complete(debate_id)

    done = store.find_by_id(debate_id)
    assert done.status == DebateStatus.COMPLETED
    assert done.completed_at is not None
    assert not done.is_awaiting_continue
    assert done.transcript == {"meta": {"utterance_count": 0}}


def test_updating_unknown_debate_raises(store: DebateStore) -> None:
    with pytest.raises(DebateNotFoundError):
        store.update_status("missing", DebateStatus.LIVE)
    with pytest.raises(DebateNotFoundError):
        store.get_flow_mode("missing")
    assert store.find_by_id("missing") is None


def test_update_proposition(store: DebateStore) -> None:
    debate_id = store.create_debate("cars bad").id
    store.update_proposition(debate_id, "Should cities ban cars downtown?", {"category": "urbanism"})

    found = store.find_by_id(debate_id)
    assert found.proposition == "Should cities ban cars downtown?"
    assert found.proposition_context == {"category": "urbanism"}


def test_utterances_are_returned_in_timeline_order(store: DebateStore) -> None:
    debate_id = store.create_debate("Ban cars downtown").id
    later = store.create_utterance(
        Utterance(debate_id, DebatePhase.OPENING, Speaker.PRO, "Second", 2000, {"promptType": "opening_statement"})
    )
    earlier = store.create_utterance(Utterance(debate_id, DebatePhase.OPENING, Speaker.MODERATOR, "First", 500))

    assert later.id is not None and earlier.id is not None
    found = store.find_utterances(debate_id)
    assert [u.content for u in found] == ["First", "Second"]
    assert found[1].metadata == {"promptType": "opening_statement"}


def test_utterance_for_unknown_debate_is_rejected(store: DebateStore) -> None:
    with pytest.raises(sqlite3.IntegrityError):
        store.create_utterance(Utterance("missing", DebatePhase.OPENING, Speaker.PRO, "Hello", 0))


def test_intervention_response_is_stored(store: DebateStore) -> None:
    debate_id = store.create_debate("Ban cars downtown").id
    intervention = store.create_intervention(
        Intervention(
            debate_id=debate_id,
            content="Source?",
            timestamp_ms=1500,
            intervention_type=InterventionType.CHALLENGE,
            directed_to=Speaker.PRO,
        )
    )
    store.add_intervention_response(intervention.id, "A 2023 transit study.", 1800)

    [found] = store.find_interventions(debate_id)
    assert found.intervention_type == InterventionType.CHALLENGE
    assert found.directed_to == Speaker.PRO
    assert found.response == "A 2023 transit study."
    assert found.response_timestamp_ms == 1800


def test_interruption_fires_once(store: DebateStore) -> None:
    debate_id = store.create_debate("Ban cars downtown").id
    created = store.create_interruption(
        debate_id, 4000, Speaker.CON, Speaker.PRO, trigger_phrase="always", relevance_score=0.9
    )
    assert created.status == InterruptStatus.SCHEDULED

    fired = store.fire_interruption(created.id, "Not always!", at_token=12, fired_at_ms=4200)
    assert fired is not None
    assert fired.status == InterruptStatus.FIRED
    assert fired.interjection_content == "Not always!"

    assert store.fire_interruption(created.id, "Again!", at_token=13, fired_at_ms=4300) is None
    store.cancel_interruption(created.id, "too late")
    assert store.find_interruption(created.id).status == InterruptStatus.FIRED


def test_cancelled_interruption_cannot_fire(store: DebateStore) -> None:
    debate_id = store.create_debate("Ban cars downtown").id
    created = store.create_interruption(debate_id, 100, Speaker.MODERATOR, Speaker.CON)
    store.cancel_interruption(created.id, "Debate stopped")

    assert store.fire_interruption(created.id, "Order!", 1, 200) is None
    found = store.find_interruption(created.id)
    assert found.status == InterruptStatus.CANCELLED
    assert found.cancellation_reason == "Debate stopped"


def test_delete_cascades_to_children(store: DebateStore) -> None:
    debate_id = store.create_debate("Ban cars downtown").id
    store.create_utterance(Utterance(debate_id, DebatePhase.OPENING, Speaker.PRO, "Hi", 0))
    store.create_interruption(debate_id, 0, Speaker.CON, Speaker.PRO)

    assert store.delete_debate(debate_id)
    assert store.find_utterances(debate_id) == []
    assert store.find_interruptions(debate_id) == []
    assert not store.delete_debate(debate_id)


def test_list_debates(store: DebateStore) -> None:
    ids = {store.create_debate(f"Proposition {n}").id for n in range(3)}
    assert {d.id for d in store.list_debates()} == ids
    assert len(store.list_debates(limit=2)) == 2


def test_store_reopens_existing_database(tmp_path) -> None:
    path = tmp_path / "nested" / "debates.db"
    debate_id = DebateStore(path).create_debate("Ban cars downtown").id

    assert DebateStore(path).find_by_id(debate_id) is not None
