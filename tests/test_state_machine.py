"""Tests for the debate phase state machine."""

import pytest

from debate_engine.exceptions import InvalidTransitionError
from debate_engine.state_machine import DebateStateMachine
from debate_engine.types import DEBATE_PHASES, DebatePhase, DebateStatus, Speaker
from fakes import FakeClock


class RecordingRepository:
    """Captures status writes instead of touching a database."""

    def __init__(self):
        self.updates: list[tuple[DebateStatus, DebatePhase | None, Speaker | None]] = []

    def update_status(self, debate_id, status, current_phase=None, current_speaker=None):
        self.updates.append((status, current_phase, current_speaker))

    @property
    def last(self):
        return self.updates[-1]


@pytest.fixture
def repository() -> RecordingRepository:
    return RecordingRepository()


@pytest.fixture
def machine(repository, clock) -> DebateStateMachine:
    return DebateStateMachine("debate-1", repository, clock=clock)


def advance_to(machine: DebateStateMachine, phase: DebatePhase) -> None:
    machine.initialize()
    for next_phase in DEBATE_PHASES[1:]:
        if machine.current_phase == phase:
            return
        machine.transition(next_phase)


def test_initialize_enters_opening_with_moderator(machine, repository) -> None:
    machine.initialize()

    assert machine.current_phase == DebatePhase.OPENING
    assert machine.current_speaker == Speaker.MODERATOR
    assert repository.last == (DebateStatus.LIVE, DebatePhase.OPENING, Speaker.MODERATOR)


def test_initialize_twice_is_rejected(machine) -> None:
    machine.initialize()
    with pytest.raises(InvalidTransitionError):
        machine.initialize()


def test_phases_advance_one_step_at_a_time(machine) -> None:
    machine.initialize()

    with pytest.raises(InvalidTransitionError):
        machine.transition(DebatePhase.REBUTTAL)
    with pytest.raises(InvalidTransitionError):
        machine.transition(DebatePhase.COMPLETED)

    machine.transition(DebatePhase.CONSTRUCTIVE)
    assert machine.current_phase == DebatePhase.CONSTRUCTIVE
    assert machine.current_speaker == Speaker.PRO


def test_full_walk_to_completion(machine, repository) -> None:
    advance_to(machine, DebatePhase.SYNTHESIS)
    machine.complete()

    assert machine.current_phase == DebatePhase.COMPLETED
    assert repository.last[0] == DebateStatus.COMPLETED


def test_complete_only_from_synthesis(machine) -> None:
    advance_to(machine, DebatePhase.CLOSING)
    with pytest.raises(InvalidTransitionError):
        machine.complete()


def test_pause_and_resume_restore_phase(machine, repository) -> None:
    advance_to(machine, DebatePhase.CROSS_EXAM)
    machine.pause()

    assert machine.is_paused
    assert machine.previous_phase == DebatePhase.CROSS_EXAM
    assert repository.last == (DebateStatus.PAUSED, DebatePhase.PAUSED, Speaker.SYSTEM)

    # Paused debates can only go back where they were, or error.
    assert not machine.is_valid_transition(DebatePhase.PAUSED, DebatePhase.REBUTTAL)
    assert machine.is_valid_transition(DebatePhase.PAUSED, DebatePhase.CROSS_EXAM)
    assert machine.is_valid_transition(DebatePhase.PAUSED, DebatePhase.ERROR)

    machine.resume()
    assert machine.current_phase == DebatePhase.CROSS_EXAM
    assert machine.previous_phase is None
    assert repository.last[0] == DebateStatus.LIVE


def test_pause_twice_is_a_noop(machine, repository) -> None:
    machine.initialize()
    machine.pause()
    writes = len(repository.updates)

    machine.pause()

    assert machine.previous_phase == DebatePhase.OPENING
    assert len(repository.updates) == writes


def test_transition_into_paused_is_rejected(machine) -> None:
    machine.initialize()
    with pytest.raises(InvalidTransitionError):
        machine.transition(DebatePhase.PAUSED)


def test_resume_when_not_paused_is_rejected(machine) -> None:
    machine.initialize()
    with pytest.raises(InvalidTransitionError):
        machine.resume()


def test_terminal_states_reject_everything(machine) -> None:
    machine.initialize()
    machine.error("provider exploded")

    assert machine.current_phase == DebatePhase.ERROR
    assert machine.error_message == "provider exploded"
    with pytest.raises(InvalidTransitionError):
        machine.pause()
    with pytest.raises(InvalidTransitionError):
        machine.transition(DebatePhase.CONSTRUCTIVE)

    machine.error("second failure")
    assert machine.error_message == "provider exploded"


def test_error_from_paused(machine) -> None:
    machine.initialize()
    machine.pause()
    machine.error("stopped while paused")

    assert machine.current_phase == DebatePhase.ERROR
    assert machine.previous_phase is None


def test_set_speaker_persists_changes_only(machine, repository) -> None:
    machine.initialize()
    writes = len(repository.updates)

    machine.set_speaker(Speaker.MODERATOR)
    assert len(repository.updates) == writes

    machine.set_speaker(Speaker.CON)
    assert machine.current_speaker == Speaker.CON
    assert repository.last == (DebateStatus.LIVE, DebatePhase.OPENING, Speaker.CON)


def test_elapsed_time_excludes_pauses(machine, clock) -> None:
    machine.initialize()
    clock.advance(2)
    machine.transition(DebatePhase.CONSTRUCTIVE)
    clock.advance(3)
    machine.pause()
    clock.advance(100)
    assert machine.total_elapsed_ms() == 5000

    machine.resume()
    clock.advance(1)
    assert machine.total_elapsed_ms() == 6000


def test_elapsed_time_freezes_when_terminal(machine, clock) -> None:
    advance_to(machine, DebatePhase.SYNTHESIS)
    clock.advance(4)
    machine.complete()
    clock.advance(50)

    assert machine.total_elapsed_ms() == 4000
