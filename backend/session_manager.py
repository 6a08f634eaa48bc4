import copy
import time
import uuid
import logging
from typing import Callable, Dict, List, Optional, Sequence, Union

import config
from answer_collector import QuestionLedger, validate_answer_ids
from errors import NotFoundError, StateError, ValidationError
from player_registry import Player, PlayerRegistry
from results import final_results, question_result, results_csv, total_scores
from session_machine import Action, Effect, Event, State, parse_action, transition
from timer_registry import TimerKind, TimerRegistry

logger = logging.getLogger(__name__)


class Session:
    def __init__(self, session_id: str, metadata: dict, auto_start_num: int = 0):
        self.session_id = session_id
        self.quiz_id = metadata["quiz_id"]
        self.metadata = metadata  # deep copy of the quiz, never mutated
        self.auto_start_num = auto_start_num
        self.state = State.LOBBY
        self.at_question = 0
        self.ledgers: List[QuestionLedger] = [QuestionLedger(q) for q in metadata["questions"]]
        self.messages: List[dict] = []
        self.results: Optional[dict] = None
        self.created_at = time.time()

    @property
    def num_questions(self) -> int:
        return len(self.metadata["questions"])

    def question(self, position: int) -> dict:
        return self.metadata["questions"][position - 1]

    def ledger(self, position: int) -> QuestionLedger:
        return self.ledgers[position - 1]


class SessionManager:
    """Owns every session and player; the single entry point for the engine.

    All methods are synchronous and run to completion on the event loop, so
    requests and timer callbacks never interleave.
    """

    def __init__(self, timers: Optional[TimerRegistry] = None,
                 clock: Callable[[], float] = time.time):
        self.sessions: Dict[str, Session] = {}
        self.players = PlayerRegistry()
        self.timers = timers or TimerRegistry()
        self.clock = clock
        self.countdown_seconds = config.QUESTION_COUNTDOWN_SECONDS

    # ---------- Sessions ----------

    def start_session(self, quiz: dict, auto_start_num: int = 0) -> str:
        if not isinstance(auto_start_num, int) or not 0 <= auto_start_num <= config.MAX_AUTO_START_NUM:
            raise ValidationError(f"auto_start_num must be a number between 0 and {config.MAX_AUTO_START_NUM}")
        if not quiz.get("questions"):
            raise ValidationError("Quiz does not have any questions")
        active = [s for s in self.sessions.values()
                  if s.quiz_id == quiz["quiz_id"] and s.state != State.END]
        if len(active) >= config.MAX_ACTIVE_SESSIONS_PER_QUIZ:
            raise StateError(f"A maximum of {config.MAX_ACTIVE_SESSIONS_PER_QUIZ} sessions "
                             "that are not in END state already exist for this quiz")

        metadata = copy.deepcopy(quiz)
        metadata["num_questions"] = len(metadata["questions"])
        session = Session(str(uuid.uuid4()), metadata, auto_start_num)
        self.sessions[session.session_id] = session
        logger.info("Session %s started for quiz %s ('%s', auto_start_num=%d)",
                    session.session_id, session.quiz_id, metadata.get("name", ""), auto_start_num)
        return session.session_id

    def get_session(self, session_id: str, quiz_id: Optional[str] = None) -> Session:
        session = self.sessions.get(session_id)
        if session is None or (quiz_id is not None and session.quiz_id != quiz_id):
            raise NotFoundError(f"Session {session_id} does not refer to a valid session")
        return session

    def list_sessions(self, quiz_id: str) -> dict:
        sessions = [s for s in self.sessions.values() if s.quiz_id == quiz_id]
        return {
            "active_sessions": sorted(s.session_id for s in sessions if s.state != State.END),
            "inactive_sessions": sorted(s.session_id for s in sessions if s.state == State.END),
        }

    def update_session(self, session_id: str, action: Union[str, Action],
                       quiz_id: Optional[str] = None):
        session = self.get_session(session_id, quiz_id)
        self._apply(session, parse_action(action))

    def get_session_status(self, session_id: str, quiz_id: Optional[str] = None) -> dict:
        session = self.get_session(session_id, quiz_id)
        return {
            "state": session.state.value,
            "at_question": session.at_question,
            "players": [p.name for p in self.players.in_session(session_id)],
            "metadata": copy.deepcopy(session.metadata),
        }

    def get_session_results(self, session_id: str, quiz_id: Optional[str] = None) -> dict:
        session = self.get_session(session_id, quiz_id)
        self._require_final_results(session)
        return copy.deepcopy(session.results)

    def get_session_results_csv(self, session_id: str, quiz_id: Optional[str] = None) -> str:
        session = self.get_session(session_id, quiz_id)
        self._require_final_results(session)
        return results_csv(session.ledgers, self.players.in_session(session_id))

    # ---------- State machine driver ----------

    def _apply(self, session: Session, event: Event):
        new_state, effects = transition(session.state, event, session.at_question, session.num_questions)
        old_state = session.state
        session.state = new_state
        for effect in effects:
            self._run_effect(session, effect)
        logger.info("Session %s: %s -[%s]-> %s (at_question=%d)", session.session_id,
                    old_state.value, event.value, new_state.value, session.at_question)

    def _run_effect(self, session: Session, effect: Effect):
        sid = session.session_id
        if effect == Effect.ADVANCE_QUESTION:
            session.at_question += 1
        elif effect == Effect.ARM_COUNTDOWN:
            self._arm(session, TimerKind.QUESTION_COUNTDOWN, self.countdown_seconds)
        elif effect == Effect.CANCEL_COUNTDOWN:
            self.timers.cancel(sid, TimerKind.QUESTION_COUNTDOWN)
        elif effect == Effect.OPEN_QUESTION:
            session.ledger(session.at_question).open(self.clock())
        elif effect == Effect.ARM_DURATION:
            duration = session.question(session.at_question)["duration"]
            self._arm(session, TimerKind.QUESTION_DURATION, duration)
        elif effect == Effect.CANCEL_DURATION:
            self.timers.cancel(sid, TimerKind.QUESTION_DURATION)
        elif effect == Effect.SCORE_QUESTION:
            session.ledger(session.at_question).score()
        elif effect == Effect.RESET_QUESTION:
            session.at_question = 0
        elif effect == Effect.AGGREGATE_RESULTS:
            players = self.players.in_session(sid)
            totals = total_scores(session.ledgers, players)
            for player in players:
                player.score = totals[player.player_id]
            session.results = final_results(session.ledgers, players)

    def _arm(self, session: Session, kind: TimerKind, delay: float):
        session_id = session.session_id
        self.timers.set(session_id, kind, delay, lambda: self._on_timer(session_id, kind))

    def _on_timer(self, session_id: str, kind: TimerKind):
        session = self.sessions.get(session_id)
        if session is None:
            logger.debug("Timer %s fired for unknown session %s", kind.value, session_id)
            return
        try:
            self._apply(session, kind)
        except StateError:
            logger.debug("Ignoring stale %s timer for session %s in state %s",
                         kind.value, session_id, session.state.value)

    # ---------- Players ----------

    def join_session(self, session_id: str, name: str = "") -> str:
        session = self.get_session(session_id)
        if session.state != State.LOBBY:
            raise StateError("Session is not in LOBBY state")
        player = self.players.add(session_id, name or "")
        if session.auto_start_num > 0 and self.players.count(session_id) == session.auto_start_num:
            logger.info("Session %s reached %d players, auto-starting", session_id, session.auto_start_num)
            self._apply(session, Action.NEXT_QUESTION)
        return player.player_id

    def get_player_status(self, player_id: str) -> dict:
        session = self._player_session(self.players.get(player_id))
        return {
            "state": session.state.value,
            "num_questions": session.num_questions,
            "at_question": session.at_question,
        }

    def get_question_info(self, player_id: str, position: int) -> dict:
        session = self._player_session(self.players.get(player_id))
        self._check_position(session, position)
        if session.state in (State.LOBBY, State.QUESTION_COUNTDOWN, State.FINAL_RESULTS, State.END):
            raise StateError(f"Question info is not available in the {session.state.value} state")
        self._check_at_question(session, position)
        question = session.question(position)
        return {
            "question_id": question["question_id"],
            "question": question["question"],
            "duration": question["duration"],
            "points": question["points"],
            "answers": [
                {"answer_id": a["answer_id"], "answer": a["answer"], "colour": a["colour"]}
                for a in question["answers"]
            ],
        }

    def submit_answer(self, player_id: str, position: int, answer_ids: Sequence[int]):
        player = self.players.get(player_id)
        session = self._player_session(player)
        if session.state != State.QUESTION_OPEN:
            raise StateError(f"Answers cannot be submitted in the {session.state.value} state")
        self._check_position(session, position)
        self._check_at_question(session, position)
        answer_ids = list(answer_ids)
        validate_answer_ids(session.question(position), answer_ids)
        correct = session.ledger(position).submit(player_id, answer_ids, self.clock())
        logger.debug("Player '%s' answered question %d of session %s (correct=%s)",
                     player.name, position, session.session_id, correct)

    def get_question_results(self, player_id: str, position: int) -> dict:
        session = self._player_session(self.players.get(player_id))
        self._check_position(session, position)
        if session.state != State.ANSWER_SHOW:
            raise StateError(f"Question results are not available in the {session.state.value} state")
        self._check_at_question(session, position)
        return question_result(session.ledger(position), self.players.in_session(session.session_id))

    def get_final_results(self, player_id: str) -> dict:
        session = self._player_session(self.players.get(player_id))
        self._require_final_results(session)
        return copy.deepcopy(session.results)

    # ---------- Chat ----------

    def send_chat(self, player_id: str, message_body: str):
        player = self.players.get(player_id)
        session = self._player_session(player)
        if not config.MIN_MESSAGE_LENGTH <= len(message_body) <= config.MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message body must be {config.MIN_MESSAGE_LENGTH}-"
                                  f"{config.MAX_MESSAGE_LENGTH} characters")
        session.messages.append({
            "message_body": message_body,
            "player_id": player.player_id,
            "player_name": player.name,
            "time_sent": int(self.clock()),
        })

    def list_chat(self, player_id: str) -> List[dict]:
        session = self._player_session(self.players.get(player_id))
        return [dict(m) for m in session.messages]

    # ---------- Housekeeping ----------

    def clear(self):
        self.timers.cancel_all()
        self.sessions.clear()
        self.players.clear()
        logger.info("All sessions and players cleared")

    def _player_session(self, player: Player) -> Session:
        return self.sessions[player.session_id]

    @staticmethod
    def _check_position(session: Session, position: int):
        if not isinstance(position, int) or not 1 <= position <= session.num_questions:
            raise ValidationError(f"Question position {position} is not valid for this session")

    @staticmethod
    def _check_at_question(session: Session, position: int):
        if session.at_question != position:
            raise StateError(f"Session is not currently on question {position}")

    @staticmethod
    def _require_final_results(session: Session):
        if session.state != State.FINAL_RESULTS:
            raise StateError(f"Results are not available in the {session.state.value} state")


session_manager = SessionManager()
