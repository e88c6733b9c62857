"""
State machine for the select -> translate -> save-to-vocabulary flow.

Only the transitions in ``TRANSITIONS`` are legal; ``reduce`` leaves the
state unchanged for anything else.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TranslationState(str, Enum):
    IDLE = "IDLE"
    SELECTING = "SELECTING"
    FETCHING_TRANSLATION = "FETCHING_TRANSLATION"
    SHOWING_RESULT = "SHOWING_RESULT"
    SAVING_VOCAB = "SAVING_VOCAB"
    ERROR = "ERROR"


class TranslationEvent(str, Enum):
    SELECT_TEXT = "SELECT_TEXT"
    START_FETCH = "START_FETCH"
    TRANSLATION_RECEIVED = "TRANSLATION_RECEIVED"
    TRANSLATION_ERROR = "TRANSLATION_ERROR"
    START_SAVE = "START_SAVE"
    SAVE_COMPLETE = "SAVE_COMPLETE"
    SAVE_ERROR = "SAVE_ERROR"
    RESET = "RESET"
    CANCEL = "CANCEL"


S = TranslationState
E = TranslationEvent

TRANSITIONS: dict[TranslationState, dict[TranslationEvent, TranslationState]] = {
    S.IDLE: {
        E.SELECT_TEXT: S.SELECTING,
    },
    S.SELECTING: {
        E.START_FETCH: S.FETCHING_TRANSLATION,
        E.CANCEL: S.IDLE,
        E.RESET: S.IDLE,
    },
    S.FETCHING_TRANSLATION: {
        E.TRANSLATION_RECEIVED: S.SHOWING_RESULT,
        E.TRANSLATION_ERROR: S.ERROR,
        E.CANCEL: S.IDLE,
        E.RESET: S.IDLE,
    },
    S.SHOWING_RESULT: {
        E.START_SAVE: S.SAVING_VOCAB,
        E.CANCEL: S.IDLE,
        E.RESET: S.IDLE,
    },
    S.SAVING_VOCAB: {
        E.SAVE_COMPLETE: S.IDLE,
        E.SAVE_ERROR: S.ERROR,
        E.CANCEL: S.IDLE,
        E.RESET: S.IDLE,
    },
    S.ERROR: {
        E.RESET: S.IDLE,
        E.CANCEL: S.IDLE,
        E.SELECT_TEXT: S.SELECTING,
    },
}

_ERROR_EVENTS = {E.TRANSLATION_ERROR, E.SAVE_ERROR}


class InvalidTransitionError(Exception):
    def __init__(self, state: TranslationState, event: TranslationEvent):
        super().__init__(f"{event.value} is not allowed in {state.value}")
        self.state = state
        self.event = event


@dataclass(frozen=True)
class TranslationFlow:
    state: TranslationState = TranslationState.IDLE
    error: str | None = None


INITIAL = TranslationFlow()


def is_valid_transition(state: TranslationState, event: TranslationEvent) -> bool:
    return event in TRANSITIONS[state]


def reduce(
    flow: TranslationFlow, event: TranslationEvent, error: str | None = None
) -> TranslationFlow:
    """Apply ``event``. Illegal events return ``flow`` unchanged."""
    target = TRANSITIONS[flow.state].get(event)
    if target is None:
        return flow
    if event in _ERROR_EVENTS:
        return TranslationFlow(target, error or "Unknown error")
    return TranslationFlow(target, None)


def transition(
    flow: TranslationFlow, event: TranslationEvent, error: str | None = None
) -> TranslationFlow:
    """Like ``reduce`` but raises InvalidTransitionError on an illegal event."""
    if not is_valid_transition(flow.state, event):
        raise InvalidTransitionError(flow.state, event)
    return reduce(flow, event, error)
