import math
import logging
from typing import Dict, FrozenSet, List, Optional, Sequence

from errors import ValidationError

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (7 / 2 -> 4)."""
    return int(math.floor(value + 0.5))


def validate_answer_ids(question: dict, answer_ids: Sequence[int]):
    if not answer_ids:
        raise ValidationError("Less than 1 answer ID was submitted")
    if len(set(answer_ids)) != len(answer_ids):
        raise ValidationError("Duplicate answer IDs were submitted")
    valid_ids = {a["answer_id"] for a in question["answers"]}
    unknown = [a for a in answer_ids if a not in valid_ids]
    if unknown:
        raise ValidationError(f"Answer IDs {unknown} are not valid for this question")


class QuestionLedger:
    """Submissions and scores for one question of one session.

    `correct_players` holds exactly the players whose latest answer set is
    fully correct, in the order they most recently became correct.
    """

    def __init__(self, question: dict):
        self.question_id = question["question_id"]
        self.points: int = question["points"]
        self.correct_ids: FrozenSet[int] = frozenset(
            a["answer_id"] for a in question["answers"] if a["correct"]
        )
        self.opened_at: Optional[float] = None
        self.submissions: Dict[str, float] = {}  # player_id -> seconds since open
        self.answers: Dict[str, FrozenSet[int]] = {}  # player_id -> latest answer set
        self.correct_players: List[str] = []
        self.scores: Dict[str, int] = {}

    def open(self, now: float):
        self.opened_at = now
        self.submissions = {}
        self.answers = {}
        self.correct_players = []
        self.scores = {}

    def submit(self, player_id: str, answer_ids: Sequence[int], now: float) -> bool:
        chosen = frozenset(answer_ids)
        self.submissions[player_id] = max(0.0, now - (self.opened_at or now))
        self.answers[player_id] = chosen
        if player_id in self.correct_players:
            self.correct_players.remove(player_id)
        correct = chosen == self.correct_ids
        if correct:
            self.correct_players.append(player_id)
        return correct

    def score(self) -> Dict[str, int]:
        """Points for the k-th correct player are round(points / k)."""
        self.scores = {
            player_id: round_half_up(self.points / position)
            for position, player_id in enumerate(self.correct_players, start=1)
        }
        logger.debug("Question %s scored: %s", self.question_id, self.scores)
        return self.scores

    def score_for(self, player_id: str) -> int:
        return self.scores.get(player_id, 0)
