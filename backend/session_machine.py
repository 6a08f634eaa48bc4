"""Session lifecycle as a pure transition table.

`transition()` never touches timers, players or the clock: it only says which
state comes next and which effects the caller has to carry out, in order.
"""
from enum import Enum
from typing import Dict, Tuple, Union

from errors import StateError, ValidationError
from timer_registry import TimerKind


class State(str, Enum):
    LOBBY = "LOBBY"
    QUESTION_COUNTDOWN = "QUESTION_COUNTDOWN"
    QUESTION_OPEN = "QUESTION_OPEN"
    QUESTION_CLOSE = "QUESTION_CLOSE"
    ANSWER_SHOW = "ANSWER_SHOW"
    FINAL_RESULTS = "FINAL_RESULTS"
    END = "END"


class Action(str, Enum):
    NEXT_QUESTION = "NEXT_QUESTION"
    SKIP_COUNTDOWN = "SKIP_COUNTDOWN"
    GO_TO_ANSWER = "GO_TO_ANSWER"
    GO_TO_FINAL_RESULTS = "GO_TO_FINAL_RESULTS"
    END = "END"


class Effect(str, Enum):
    ADVANCE_QUESTION = "ADVANCE_QUESTION"
    ARM_COUNTDOWN = "ARM_COUNTDOWN"
    CANCEL_COUNTDOWN = "CANCEL_COUNTDOWN"
    OPEN_QUESTION = "OPEN_QUESTION"
    ARM_DURATION = "ARM_DURATION"
    CANCEL_DURATION = "CANCEL_DURATION"
    SCORE_QUESTION = "SCORE_QUESTION"
    RESET_QUESTION = "RESET_QUESTION"
    AGGREGATE_RESULTS = "AGGREGATE_RESULTS"


# A timer expiring is treated as an event of its own kind.
Event = Union[Action, TimerKind]

_NEXT = (Effect.ADVANCE_QUESTION, Effect.ARM_COUNTDOWN)
_OPEN = (Effect.OPEN_QUESTION, Effect.ARM_DURATION)
_FINAL = (Effect.RESET_QUESTION, Effect.AGGREGATE_RESULTS)
_END_WITH_TIMERS = (Effect.CANCEL_COUNTDOWN, Effect.CANCEL_DURATION, Effect.RESET_QUESTION)

TRANSITIONS: Dict[Tuple[State, Event], Tuple[State, Tuple[Effect, ...]]] = {
    (State.LOBBY, Action.NEXT_QUESTION): (State.QUESTION_COUNTDOWN, _NEXT),
    (State.LOBBY, Action.END): (State.END, _END_WITH_TIMERS),

    (State.QUESTION_COUNTDOWN, Action.SKIP_COUNTDOWN): (State.QUESTION_OPEN, (Effect.CANCEL_COUNTDOWN,) + _OPEN),
    (State.QUESTION_COUNTDOWN, TimerKind.QUESTION_COUNTDOWN): (State.QUESTION_OPEN, _OPEN),
    (State.QUESTION_COUNTDOWN, Action.END): (State.END, _END_WITH_TIMERS),

    (State.QUESTION_OPEN, TimerKind.QUESTION_DURATION): (State.QUESTION_CLOSE, (Effect.SCORE_QUESTION,)),
    (State.QUESTION_OPEN, Action.GO_TO_ANSWER): (State.ANSWER_SHOW, (Effect.CANCEL_DURATION, Effect.SCORE_QUESTION)),
    (State.QUESTION_OPEN, Action.END): (State.END, _END_WITH_TIMERS),

    (State.QUESTION_CLOSE, Action.GO_TO_ANSWER): (State.ANSWER_SHOW, ()),
    (State.QUESTION_CLOSE, Action.NEXT_QUESTION): (State.QUESTION_COUNTDOWN, _NEXT),
    (State.QUESTION_CLOSE, Action.GO_TO_FINAL_RESULTS): (State.FINAL_RESULTS, _FINAL),
    (State.QUESTION_CLOSE, Action.END): (State.END, (Effect.RESET_QUESTION,)),

    (State.ANSWER_SHOW, Action.NEXT_QUESTION): (State.QUESTION_COUNTDOWN, _NEXT),
    (State.ANSWER_SHOW, Action.GO_TO_FINAL_RESULTS): (State.FINAL_RESULTS, _FINAL),
    (State.ANSWER_SHOW, Action.END): (State.END, (Effect.RESET_QUESTION,)),

    (State.FINAL_RESULTS, Action.END): (State.END, ()),
}


def parse_action(value: str) -> Action:
    try:
        return Action(value)
    except ValueError:
        raise ValidationError(f"Action {value!r} is not a valid action") from None


def transition(state: State, event: Event, at_question: int,
               num_questions: int) -> Tuple[State, Tuple[Effect, ...]]:
    entry = TRANSITIONS.get((state, event))
    if entry is None:
        raise StateError(f"Action {event.value} cannot be applied in the current {state.value} state")
    if event == Action.NEXT_QUESTION and at_question >= num_questions:
        raise StateError("Cannot move to the next question as there are no more questions")
    return entry
