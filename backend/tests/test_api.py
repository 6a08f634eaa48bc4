"""API endpoint tests using FastAPI TestClient."""
import sys
import os
import csv
import io

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fastapi.testclient import TestClient
from main import app, quizzes
from session_manager import session_manager
from timer_registry import TimerKind
import config


@pytest.fixture(autouse=True)
def clear_state(manual_timers):
    """Clear in-memory state before each test; timers only fire when a test says so."""
    quizzes.clear()
    session_manager.clear()
    saved_timers = session_manager.timers
    session_manager.timers = manual_timers
    yield
    session_manager.clear()
    session_manager.timers = saved_timers
    quizzes.clear()


client = TestClient(app)


def quiz_body(num_questions=1, points=5, duration=10):
    return {
        "name": "Monarchs",
        "description": "Kings and queens",
        "questions": [
            {
                "question": f"Who is monarch number {i + 1}?",
                "duration": duration,
                "points": points,
                "answers": [
                    {"answer": "Prince Charles", "correct": True},
                    {"answer": "Queen Elizabeth", "correct": False},
                    {"answer": "King Arthur", "correct": False},
                ],
            }
            for i in range(num_questions)
        ],
    }


def create_quiz(**kwargs):
    res = client.post("/quiz", json=quiz_body(**kwargs))
    assert res.status_code == 200
    return res.json()["quiz_id"]


def start_session(quiz_id, auto_start_num=0):
    res = client.post(f"/quiz/{quiz_id}/session/start", json={"auto_start_num": auto_start_num})
    assert res.status_code == 200
    return res.json()["session_id"]


def join(session_id, name):
    res = client.post("/player/join", json={"session_id": session_id, "name": name})
    assert res.status_code == 200
    return res.json()["player_id"]


def action(quiz_id, session_id, name):
    return client.put(f"/quiz/{quiz_id}/session/{session_id}", json={"action": name})


def status(quiz_id, session_id):
    return client.get(f"/quiz/{quiz_id}/session/{session_id}").json()


# ---------------------------------------------------------------------------
# Health & Root
# ---------------------------------------------------------------------------

class TestHealthEndpoints:
    def test_root(self):
        res = client.get("/")
        assert res.status_code == 200
        assert "running" in res.json()["message"].lower()

    def test_health(self):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.json()["status"] == "healthy"


# ---------------------------------------------------------------------------
# Quizzes
# ---------------------------------------------------------------------------

class TestQuizCrud:
    def test_create_numbers_questions_and_answers(self):
        res = client.post("/quiz", json=quiz_body(num_questions=2))
        assert res.status_code == 200
        quiz = res.json()["quiz"]
        assert quiz["num_questions"] == 2
        assert [q["question_id"] for q in quiz["questions"]] == [1, 2]
        ids = [a["answer_id"] for q in quiz["questions"] for a in q["answers"]]
        assert ids == list(range(1, 7))
        assert all(a["colour"] in config.ANSWER_COLOURS for q in quiz["questions"] for a in q["answers"])
        assert quiz["duration"] == 20

    def test_get_quiz(self):
        qid = create_quiz()
        res = client.get(f"/quiz/{qid}")
        assert res.status_code == 200
        assert res.json()["name"] == "Monarchs"

    def test_get_unknown_quiz(self):
        assert client.get("/quiz/nonexistent").status_code == 404

    def test_update_quiz(self):
        qid = create_quiz()
        body = quiz_body(num_questions=3)
        body["name"] = "Renamed"
        res = client.put(f"/quiz/{qid}", json=body)
        assert res.status_code == 200
        assert client.get(f"/quiz/{qid}").json()["num_questions"] == 3

    def test_name_sanitized(self):
        body = quiz_body()
        body["name"] = "<b>Bold</b> quiz"
        res = client.post("/quiz", json=body)
        assert res.json()["quiz"]["name"] == "Bold quiz"

    @pytest.mark.parametrize("mutate", [
        lambda b: b.update(name=""),
        lambda b: b.update(name="x" * (config.MAX_QUIZ_NAME_LENGTH + 1)),
        lambda b: b["questions"][0].update(question="Hi?"),
        lambda b: b["questions"][0].update(points=0),
        lambda b: b["questions"][0].update(points=config.MAX_POINTS + 1),
        lambda b: b["questions"][0].update(duration=0),
        lambda b: b["questions"][0].update(duration=config.MAX_QUIZ_DURATION + 1),
        lambda b: b["questions"][0].update(answers=[{"answer": "Only", "correct": True}]),
        lambda b: b["questions"][0]["answers"][1].update(answer="Prince Charles"),
        lambda b: [a.update(correct=False) for a in b["questions"][0]["answers"]],
    ])
    def test_invalid_quiz_rejected(self, mutate):
        body = quiz_body()
        mutate(body)
        assert client.post("/quiz", json=body).status_code == 422


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class TestSessions:
    def test_start_and_status(self):
        qid = create_quiz()
        sid = start_session(qid)
        body = status(qid, sid)
        assert body["state"] == "LOBBY"
        assert body["at_question"] == 0
        assert body["players"] == []
        assert body["metadata"]["name"] == "Monarchs"

    def test_start_unknown_quiz(self):
        res = client.post("/quiz/nope/session/start", json={"auto_start_num": 0})
        assert res.status_code == 404

    def test_start_quiz_without_questions(self):
        res = client.post("/quiz", json={"name": "Empty"})
        qid = res.json()["quiz_id"]
        res = client.post(f"/quiz/{qid}/session/start", json={"auto_start_num": 0})
        assert res.status_code == 400
        assert "questions" in res.json()["error"]

    def test_auto_start_num_out_of_range(self):
        qid = create_quiz()
        res = client.post(f"/quiz/{qid}/session/start",
                          json={"auto_start_num": config.MAX_AUTO_START_NUM + 1})
        assert res.status_code == 400

    def test_session_cap(self):
        qid = create_quiz()
        for _ in range(config.MAX_ACTIVE_SESSIONS_PER_QUIZ):
            start_session(qid)
        res = client.post(f"/quiz/{qid}/session/start", json={"auto_start_num": 0})
        assert res.status_code == 400

    def test_list_sessions(self):
        qid = create_quiz()
        s1 = start_session(qid)
        s2 = start_session(qid)
        action(qid, s1, "END")
        res = client.get(f"/quiz/{qid}/sessions")
        assert res.json() == {"active_sessions": [s2], "inactive_sessions": [s1]}

    def test_session_under_other_quiz_is_404(self):
        q1 = create_quiz()
        q2 = create_quiz()
        sid = start_session(q1)
        res = client.get(f"/quiz/{q2}/session/{sid}")
        assert res.status_code == 404
        assert "error" in res.json()

    def test_metadata_survives_quiz_edit(self):
        qid = create_quiz()
        sid = start_session(qid)
        body = quiz_body(num_questions=4)
        body["name"] = "Changed"
        client.put(f"/quiz/{qid}", json=body)
        metadata = status(qid, sid)["metadata"]
        assert metadata["name"] == "Monarchs"
        assert metadata["num_questions"] == 1

    def test_unknown_action(self):
        qid = create_quiz()
        sid = start_session(qid)
        res = action(qid, sid, "JUMP")
        assert res.status_code == 400
        assert status(qid, sid)["state"] == "LOBBY"

    def test_illegal_action(self):
        qid = create_quiz()
        sid = start_session(qid)
        res = action(qid, sid, "GO_TO_ANSWER")
        assert res.status_code == 400
        assert res.json()["error"]

    def test_results_before_final(self):
        qid = create_quiz()
        sid = start_session(qid)
        assert client.get(f"/quiz/{qid}/session/{sid}/results").status_code == 400
        assert client.get(f"/quiz/{qid}/session/{sid}/results/csv").status_code == 400


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------

class TestPlayers:
    def test_join_and_status(self):
        qid = create_quiz(num_questions=2)
        sid = start_session(qid)
        pid = join(sid, "Tommy")
        assert status(qid, sid)["players"] == ["Tommy"]
        res = client.get(f"/player/{pid}")
        assert res.json() == {"state": "LOBBY", "num_questions": 2, "at_question": 0}

    def test_join_generates_name(self):
        sid = start_session(create_quiz())
        res = client.post("/player/join", json={"session_id": sid})
        assert res.status_code == 200

    def test_duplicate_name(self):
        sid = start_session(create_quiz())
        join(sid, "Tommy")
        res = client.post("/player/join", json={"session_id": sid, "name": "Tommy"})
        assert res.status_code == 400

    def test_join_unknown_session(self):
        res = client.post("/player/join", json={"session_id": "nope", "name": "Tommy"})
        assert res.status_code == 404

    def test_join_after_start(self):
        qid = create_quiz()
        sid = start_session(qid)
        action(qid, sid, "NEXT_QUESTION")
        res = client.post("/player/join", json={"session_id": sid, "name": "Late"})
        assert res.status_code == 400

    def test_unknown_player(self):
        assert client.get("/player/nope").status_code == 404
        assert client.get("/player/nope/chat").status_code == 404

    def test_auto_start(self):
        qid = create_quiz()
        sid = start_session(qid, auto_start_num=2)
        join(sid, "Tommy")
        assert status(qid, sid)["state"] == "LOBBY"
        join(sid, "Mason")
        body = status(qid, sid)
        assert body["state"] == "QUESTION_COUNTDOWN"
        assert body["at_question"] == 1

    def test_answer_body_validated(self):
        qid = create_quiz()
        sid = start_session(qid)
        pid = join(sid, "Tommy")
        res = client.put(f"/player/{pid}/question/1/answer", json={"answer_ids": "abc"})
        assert res.status_code == 422


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class TestChat:
    def test_send_and_list(self):
        sid = start_session(create_quiz())
        pid = join(sid, "Tommy")
        assert client.post(f"/player/{pid}/chat", json={"message_body": "hello"}).status_code == 200
        messages = client.get(f"/player/{pid}/chat").json()["messages"]
        assert len(messages) == 1
        assert messages[0]["message_body"] == "hello"
        assert messages[0]["player_name"] == "Tommy"

    def test_empty_message(self):
        sid = start_session(create_quiz())
        pid = join(sid, "Tommy")
        res = client.post(f"/player/{pid}/chat", json={"message_body": ""})
        assert res.status_code == 400


# ---------------------------------------------------------------------------
# Full flow
# ---------------------------------------------------------------------------

class TestFullFlow:
    def test_two_questions_to_final_results(self):
        qid = create_quiz(num_questions=2, points=5)
        sid = start_session(qid)
        tommy = join(sid, "Tommy")
        mason = join(sid, "Mason")
        quiz = client.get(f"/quiz/{qid}").json()
        correct = [[a["answer_id"] for a in q["answers"] if a["correct"]] for q in quiz["questions"]]
        wrong = [[a["answer_id"] for a in q["answers"] if not a["correct"]][:1] for q in quiz["questions"]]

        # Question 1: countdown skipped, both correct, Tommy first
        assert action(qid, sid, "NEXT_QUESTION").status_code == 200
        assert client.get(f"/player/{tommy}/question/1").status_code == 400
        assert action(qid, sid, "SKIP_COUNTDOWN").status_code == 200
        info = client.get(f"/player/{tommy}/question/1").json()
        assert info["question_id"] == 1
        assert all("correct" not in a for a in info["answers"])
        assert client.put(f"/player/{tommy}/question/1/answer", json={"answer_ids": correct[0]}).status_code == 200
        assert client.put(f"/player/{mason}/question/1/answer", json={"answer_ids": correct[0]}).status_code == 200
        assert client.get(f"/player/{tommy}/question/1/results").status_code == 400
        assert action(qid, sid, "GO_TO_ANSWER").status_code == 200
        results = client.get(f"/player/{mason}/question/1/results").json()
        assert results["players_correct_list"] == ["Mason", "Tommy"]
        assert results["percent_correct"] == 100

        # Question 2: countdown and duration both expire, only Mason correct
        assert action(qid, sid, "NEXT_QUESTION").status_code == 200
        session_manager.timers.fire(sid, TimerKind.QUESTION_COUNTDOWN)
        assert status(qid, sid)["state"] == "QUESTION_OPEN"
        client.put(f"/player/{tommy}/question/2/answer", json={"answer_ids": wrong[1]})
        client.put(f"/player/{mason}/question/2/answer", json={"answer_ids": correct[1]})
        session_manager.timers.fire(sid, TimerKind.QUESTION_DURATION)
        assert status(qid, sid)["state"] == "QUESTION_CLOSE"
        res = client.put(f"/player/{mason}/question/2/answer", json={"answer_ids": correct[1]})
        assert res.status_code == 400
        assert action(qid, sid, "NEXT_QUESTION").status_code == 400

        assert action(qid, sid, "GO_TO_FINAL_RESULTS").status_code == 200
        assert status(qid, sid)["at_question"] == 0
        final = client.get(f"/quiz/{qid}/session/{sid}/results").json()
        assert final["users_ranked_by_score"] == [
            {"name": "Mason", "score": 8},
            {"name": "Tommy", "score": 5},
        ]
        assert [q["percent_correct"] for q in final["question_results"]] == [100, 50]
        assert client.get(f"/player/{tommy}/results").json() == final

        res = client.get(f"/quiz/{qid}/session/{sid}/results/csv")
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/csv")
        rows = list(csv.reader(io.StringIO(res.text)))
        assert rows == [
            ["Player", "question1score", "question1rank", "question2score", "question2rank"],
            ["Mason", "3", "2", "5", "1"],
            ["Tommy", "5", "1", "0", "2"],
        ]

        assert action(qid, sid, "END").status_code == 200
        assert status(qid, sid)["state"] == "END"
        assert client.get(f"/quiz/{qid}/sessions").json()["inactive_sessions"] == [sid]


class TestClear:
    def test_clear_removes_everything(self):
        qid = create_quiz()
        sid = start_session(qid)
        pid = join(sid, "Tommy")
        assert client.delete("/clear").status_code == 200
        assert client.get(f"/quiz/{qid}").status_code == 404
        assert client.get(f"/player/{pid}").status_code == 404
        assert quizzes == {}
