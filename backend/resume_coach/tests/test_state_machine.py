import pytest

from resume_coach.services.state_machine import (
    ADVANCE_TRANSITIONS,
    SUBMIT_TRANSITIONS,
    AdvanceState,
    Event,
    InvalidTransition,
    StageMachine,
    StageState,
)


def submit_machine():
    return StageMachine("test.submit", StageState.IDLE, SUBMIT_TRANSITIONS)


def advance_machine():
    return StageMachine("test.advance", AdvanceState.LOCKED, ADVANCE_TRANSITIONS)


def test_submit_lifecycle():
    m = submit_machine()
    assert m.send(Event.SUBMIT) is StageState.SUBMITTING
    assert m.send(Event.RESOLVE) is StageState.SUCCEEDED
    assert m.send(Event.SUBMIT) is StageState.SUBMITTING
    assert m.send(Event.REJECT) is StageState.FAILED
    assert m.send(Event.VALIDATION_FAILED) is StageState.IDLE


def test_no_second_submit_while_submitting():
    m = submit_machine()
    m.send(Event.SUBMIT)

    assert not m.can(Event.SUBMIT)
    with pytest.raises(InvalidTransition) as exc:
        m.send(Event.SUBMIT)
    assert exc.value.state is StageState.SUBMITTING
    assert m.state is StageState.SUBMITTING


def test_advance_requires_unlock():
    m = advance_machine()
    with pytest.raises(InvalidTransition):
        m.send(Event.ADVANCE)

    m.send(Event.UNLOCK)
    assert m.send(Event.ADVANCE) is AdvanceState.ADVANCING
    assert not m.can(Event.ADVANCE)
    assert m.send(Event.REJECT) is AdvanceState.ADVANCE_FAILED
    assert m.send(Event.ADVANCE) is AdvanceState.ADVANCING


@pytest.mark.parametrize("state", list(AdvanceState))
def test_reset_relocks_from_any_state(state):
    m = StageMachine("test.advance", state, ADVANCE_TRANSITIONS)
    assert m.send(Event.RESET) is AdvanceState.LOCKED


def test_events_from_listeners_run_after_the_current_one():
    m = submit_machine()
    seen = []

    def listener(old, event, new):
        seen.append((old, event, new))
        if event is Event.SUBMIT:
            m.send(Event.RESOLVE)
            # the queued event has not been applied yet
            assert m.state is StageState.SUBMITTING

    m.on_transition(listener)
    assert m.send(Event.SUBMIT) is StageState.SUCCEEDED
    assert seen == [
        (StageState.IDLE, Event.SUBMIT, StageState.SUBMITTING),
        (StageState.SUBMITTING, Event.RESOLVE, StageState.SUCCEEDED),
    ]
