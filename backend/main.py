from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, field_validator
from typing import List, Dict
from contextlib import asynccontextmanager
import re
import time
import uuid
import random
import uvicorn
import logging
import socket as socketlib

import config
config.setup_logging()

from errors import SessionError
from session_manager import session_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting quiz session backend")
    yield
    session_manager.timers.cancel_all()
    logger.info("Shutting down quiz session backend")


app = FastAPI(title="Quiz Session Backend", lifespan=lifespan)


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError):
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def get_local_ip():
    try:
        s = socketlib.socket(socketlib.AF_INET, socketlib.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "127.0.0.1"


# In-memory quiz storage
quizzes: Dict[str, dict] = {}  # quiz_id -> quiz_data


def _clean_text(v: str) -> str:
    v = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', v)
    v = re.sub(r'<[^>]+>', '', v)
    return v.strip()


class AnswerBody(BaseModel):
    answer: str
    correct: bool = False

    @field_validator('answer')
    @classmethod
    def validate_answer(cls, v: str) -> str:
        v = _clean_text(v)
        if not config.MIN_ANSWER_LENGTH <= len(v) <= config.MAX_ANSWER_LENGTH:
            raise ValueError(f'Answer must be {config.MIN_ANSWER_LENGTH}-{config.MAX_ANSWER_LENGTH} characters')
        return v


class QuestionBody(BaseModel):
    question: str
    duration: int
    points: int
    answers: List[AnswerBody]

    @field_validator('question')
    @classmethod
    def validate_question(cls, v: str) -> str:
        v = _clean_text(v)
        if not config.MIN_QUESTION_LENGTH <= len(v) <= config.MAX_QUESTION_LENGTH:
            raise ValueError(f'Question must be {config.MIN_QUESTION_LENGTH}-{config.MAX_QUESTION_LENGTH} characters')
        return v

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, v: int) -> int:
        if v <= 0:
            raise ValueError('Question duration must be a positive number')
        return v

    @field_validator('points')
    @classmethod
    def validate_points(cls, v: int) -> int:
        if not config.MIN_POINTS <= v <= config.MAX_POINTS:
            raise ValueError(f'Points must be between {config.MIN_POINTS} and {config.MAX_POINTS}')
        return v

    @field_validator('answers')
    @classmethod
    def validate_answers(cls, v: List[AnswerBody]) -> List[AnswerBody]:
        if not config.MIN_ANSWERS <= len(v) <= config.MAX_ANSWERS:
            raise ValueError(f'Question must have {config.MIN_ANSWERS}-{config.MAX_ANSWERS} answers')
        texts = [a.answer for a in v]
        if len(set(texts)) != len(texts):
            raise ValueError('Duplicate answers in the question')
        if not any(a.correct for a in v):
            raise ValueError('No correct answers in the question')
        return v


class QuizBody(BaseModel):
    name: str
    description: str = ""
    questions: List[QuestionBody] = []

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = _clean_text(v)
        if not v or len(v) > config.MAX_QUIZ_NAME_LENGTH:
            raise ValueError(f'Name must be 1-{config.MAX_QUIZ_NAME_LENGTH} characters')
        return v

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: str) -> str:
        v = _clean_text(v)
        if len(v) > config.MAX_QUIZ_DESCRIPTION_LENGTH:
            raise ValueError(f'Description must be at most {config.MAX_QUIZ_DESCRIPTION_LENGTH} characters')
        return v

    @field_validator('questions')
    @classmethod
    def validate_total_duration(cls, v: List[QuestionBody]) -> List[QuestionBody]:
        if sum(q.duration for q in v) > config.MAX_QUIZ_DURATION:
            raise ValueError(f'Total question duration exceeds {config.MAX_QUIZ_DURATION} seconds')
        return v


class SessionStartRequest(BaseModel):
    auto_start_num: int = 0


class SessionUpdateRequest(BaseModel):
    action: str


class PlayerJoinRequest(BaseModel):
    session_id: str
    name: str = ""


class AnswerSubmitRequest(BaseModel):
    answer_ids: List[int]


class ChatSendRequest(BaseModel):
    message_body: str


def _build_quiz(quiz_id: str, body: QuizBody, time_created: int) -> dict:
    """Turn a validated request body into the stored quiz shape, numbering questions and answers."""
    questions = []
    answer_id = 1
    for question_id, q in enumerate(body.questions, start=1):
        answers = []
        for a in q.answers:
            answers.append({
                "answer_id": answer_id,
                "answer": a.answer,
                "colour": random.choice(config.ANSWER_COLOURS),
                "correct": a.correct,
            })
            answer_id += 1
        questions.append({
            "question_id": question_id,
            "question": q.question,
            "duration": q.duration,
            "points": q.points,
            "answers": answers,
        })
    return {
        "quiz_id": quiz_id,
        "name": body.name,
        "description": body.description,
        "time_created": time_created,
        "time_last_edited": int(time.time()),
        "num_questions": len(questions),
        "questions": questions,
        "duration": sum(q["duration"] for q in questions),
    }


def _get_quiz(quiz_id: str) -> dict:
    if quiz_id not in quizzes:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quizzes[quiz_id]


# --- Quizzes ---

@app.post("/quiz")
async def create_quiz(request: QuizBody):
    quiz_id = str(uuid.uuid4())
    quizzes[quiz_id] = _build_quiz(quiz_id, request, int(time.time()))
    logger.info("Quiz created: %s ('%s'), %d questions", quiz_id, request.name, len(request.questions))
    return {"quiz_id": quiz_id, "quiz": quizzes[quiz_id]}


@app.get("/quiz/{quiz_id}")
async def get_quiz(quiz_id: str):
    return _get_quiz(quiz_id)


@app.put("/quiz/{quiz_id}")
async def update_quiz(quiz_id: str, request: QuizBody):
    quiz = _get_quiz(quiz_id)
    quizzes[quiz_id] = _build_quiz(quiz_id, request, quiz["time_created"])
    logger.info("Quiz updated: %s ('%s'), %d questions", quiz_id, request.name, len(request.questions))
    return {"quiz_id": quiz_id, "quiz": quizzes[quiz_id]}


# --- Sessions ---

@app.post("/quiz/{quiz_id}/session/start")
async def start_session(quiz_id: str, request: SessionStartRequest):
    session_id = session_manager.start_session(_get_quiz(quiz_id), request.auto_start_num)
    return {"session_id": session_id}


@app.get("/quiz/{quiz_id}/sessions")
async def list_sessions(quiz_id: str):
    _get_quiz(quiz_id)
    return session_manager.list_sessions(quiz_id)


@app.put("/quiz/{quiz_id}/session/{session_id}")
async def update_session(quiz_id: str, session_id: str, request: SessionUpdateRequest):
    session_manager.update_session(session_id, request.action, quiz_id=quiz_id)
    return {}


@app.get("/quiz/{quiz_id}/session/{session_id}")
async def get_session_status(quiz_id: str, session_id: str):
    return session_manager.get_session_status(session_id, quiz_id=quiz_id)


@app.get("/quiz/{quiz_id}/session/{session_id}/results")
async def get_session_results(quiz_id: str, session_id: str):
    return session_manager.get_session_results(session_id, quiz_id=quiz_id)


@app.get("/quiz/{quiz_id}/session/{session_id}/results/csv")
async def get_session_results_csv(quiz_id: str, session_id: str):
    content = session_manager.get_session_results_csv(session_id, quiz_id=quiz_id)
    return Response(content=content, media_type="text/csv")


# --- Players ---

@app.post("/player/join")
async def join_session(request: PlayerJoinRequest):
    player_id = session_manager.join_session(request.session_id, request.name)
    return {"player_id": player_id}


@app.get("/player/{player_id}")
async def get_player_status(player_id: str):
    return session_manager.get_player_status(player_id)


@app.get("/player/{player_id}/question/{position}")
async def get_question_info(player_id: str, position: int):
    return session_manager.get_question_info(player_id, position)


@app.put("/player/{player_id}/question/{position}/answer")
async def submit_answer(player_id: str, position: int, request: AnswerSubmitRequest):
    session_manager.submit_answer(player_id, position, request.answer_ids)
    return {}


@app.get("/player/{player_id}/question/{position}/results")
async def get_question_results(player_id: str, position: int):
    return session_manager.get_question_results(player_id, position)


@app.get("/player/{player_id}/results")
async def get_final_results(player_id: str):
    return session_manager.get_final_results(player_id)


@app.get("/player/{player_id}/chat")
async def list_chat(player_id: str):
    return {"messages": session_manager.list_chat(player_id)}


@app.post("/player/{player_id}/chat")
async def send_chat(player_id: str, request: ChatSendRequest):
    session_manager.send_chat(player_id, request.message_body)
    return {}


@app.delete("/clear")
async def clear():
    quizzes.clear()
    session_manager.clear()
    return {}


# Configure CORS
if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
else:
    local_ip = get_local_ip()
    origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        f"http://{local_ip}:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
)


@app.get("/")
async def root():
    return {"message": "Quiz Session API is running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
