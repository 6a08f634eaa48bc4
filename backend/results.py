import csv
import io
from typing import Dict, Iterable, List

from answer_collector import QuestionLedger, round_half_up
from player_registry import Player


def question_result(ledger: QuestionLedger, players: List[Player]) -> dict:
    names = {p.player_id: p.name for p in players}
    correct_names = sorted(names[pid] for pid in ledger.correct_players if pid in names)
    times = list(ledger.submissions.values())
    average_time = round_half_up(sum(times) / len(times)) if times else 0
    percent_correct = round_half_up(100 * len(correct_names) / len(players)) if players else 0
    return {
        "question_id": ledger.question_id,
        "players_correct_list": correct_names,
        "average_answer_time": average_time,
        "percent_correct": percent_correct,
    }


def leaderboard(players: Iterable[Player]) -> List[dict]:
    # sorted() is stable: equal scores keep join order
    ranked = sorted(players, key=lambda p: p.score, reverse=True)
    return [{"name": p.name, "score": p.score} for p in ranked]


def total_scores(ledgers: List[QuestionLedger], players: List[Player]) -> Dict[str, int]:
    return {
        p.player_id: round_half_up(sum(ledger.score_for(p.player_id) for ledger in ledgers))
        for p in players
    }


def final_results(ledgers: List[QuestionLedger], players: List[Player]) -> dict:
    return {
        "users_ranked_by_score": leaderboard(players),
        "question_results": [question_result(ledger, players) for ledger in ledgers],
    }


def results_csv(ledgers: List[QuestionLedger], players: List[Player]) -> str:
    """One row per player (by name) with each question's score and rank.

    Rank is 1 + the number of players who scored strictly more on that question.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    header = ["Player"]
    for position in range(1, len(ledgers) + 1):
        header += [f"question{position}score", f"question{position}rank"]
    writer.writerow(header)

    for player in sorted(players, key=lambda p: p.name):
        row: list = [player.name]
        for ledger in ledgers:
            score = ledger.score_for(player.player_id)
            rank = 1 + sum(1 for other in players if ledger.score_for(other.player_id) > score)
            row += [score, rank]
        writer.writerow(row)
    return buffer.getvalue()
