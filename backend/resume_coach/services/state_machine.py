"""
Finite-state machines for form stages.

Each machine has an enumerated state set and an explicit transition table
keyed by ``(state, event)``. Events are queued and applied in FIFO order, so
an event sent from a transition listener runs after the current one.
"""
from __future__ import annotations

from collections import deque
from enum import Enum
from typing import Callable, Deque, Dict, Generic, List, Tuple, TypeVar

from resume_coach.log import get_logger

log = get_logger(__name__)


class Event(str, Enum):
    SUBMIT = "submit"
    VALIDATION_FAILED = "validation_failed"
    RESOLVE = "resolve"
    REJECT = "reject"
    UNLOCK = "unlock"
    ADVANCE = "advance"
    RESET = "reset"


class StageState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class AdvanceState(str, Enum):
    LOCKED = "locked"
    READY_TO_ADVANCE = "ready_to_advance"
    ADVANCING = "advancing"
    ADVANCED = "advanced"
    ADVANCE_FAILED = "advance_failed"


S = TypeVar("S", bound=Enum)

Listener = Callable[[S, Event, S], None]


SUBMIT_TRANSITIONS: Dict[Tuple[StageState, Event], StageState] = {
    (StageState.IDLE, Event.SUBMIT): StageState.SUBMITTING,
    (StageState.SUCCEEDED, Event.SUBMIT): StageState.SUBMITTING,
    (StageState.FAILED, Event.SUBMIT): StageState.SUBMITTING,
    (StageState.SUBMITTING, Event.RESOLVE): StageState.SUCCEEDED,
    (StageState.SUBMITTING, Event.REJECT): StageState.FAILED,
    (StageState.IDLE, Event.VALIDATION_FAILED): StageState.IDLE,
    (StageState.SUCCEEDED, Event.VALIDATION_FAILED): StageState.IDLE,
    (StageState.FAILED, Event.VALIDATION_FAILED): StageState.IDLE,
}

ADVANCE_TRANSITIONS: Dict[Tuple[AdvanceState, Event], AdvanceState] = {
    (AdvanceState.LOCKED, Event.UNLOCK): AdvanceState.READY_TO_ADVANCE,
    (AdvanceState.READY_TO_ADVANCE, Event.ADVANCE): AdvanceState.ADVANCING,
    (AdvanceState.ADVANCED, Event.ADVANCE): AdvanceState.ADVANCING,
    (AdvanceState.ADVANCE_FAILED, Event.ADVANCE): AdvanceState.ADVANCING,
    (AdvanceState.ADVANCING, Event.RESOLVE): AdvanceState.ADVANCED,
    (AdvanceState.ADVANCING, Event.REJECT): AdvanceState.ADVANCE_FAILED,
}
# the dependent stage relocks whenever the first stage starts over
ADVANCE_TRANSITIONS.update({(state, Event.RESET): AdvanceState.LOCKED for state in AdvanceState})


class InvalidTransition(RuntimeError):
    def __init__(self, machine: str, state: Enum, event: Event):
        self.machine = machine
        self.state = state
        self.event = event
        super().__init__(f"{machine}: cannot {event.value} while {state.value}")


class StageMachine(Generic[S]):
    def __init__(self, name: str, initial: S, transitions: Dict[Tuple[S, Event], S]):
        self.name = name
        self._state = initial
        self._transitions = transitions
        self._queue: Deque[Event] = deque()
        self._draining = False
        self._listeners: List[Listener] = []

    @property
    def state(self) -> S:
        return self._state

    def can(self, event: Event) -> bool:
        return (self._state, event) in self._transitions

    def on_transition(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def send(self, event: Event) -> S:
        """Queue ``event`` and drain the queue; returns the resulting state."""
        self._queue.append(event)
        if self._draining:
            return self._state

        self._draining = True
        try:
            while self._queue:
                self._apply(self._queue.popleft())
        finally:
            self._draining = False
        return self._state

    def _apply(self, event: Event) -> None:
        old = self._state
        try:
            new = self._transitions[(old, event)]
        except KeyError:
            self._queue.clear()
            raise InvalidTransition(self.name, old, event) from None

        self._state = new
        log.debug("%s: %s --%s--> %s", self.name, old.value, event.value, new.value)
        for listener in list(self._listeners):
            listener(old, event, new)
