"""Centralized configuration: all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- Sessions ---
QUESTION_COUNTDOWN_SECONDS = float(os.getenv("QUESTION_COUNTDOWN_SECONDS", "3"))
MAX_ACTIVE_SESSIONS_PER_QUIZ = 10
MAX_AUTO_START_NUM = 50

# --- Players ---
MAX_PLAYER_NAME_LENGTH = 20
MAX_NAME_ATTEMPTS = 10
GENERATED_NAME_LETTERS = 5
GENERATED_NAME_DIGITS = 3

# --- Chat ---
MIN_MESSAGE_LENGTH = 1
MAX_MESSAGE_LENGTH = 100

# --- Quizzes ---
MIN_QUESTION_LENGTH = 5
MAX_QUESTION_LENGTH = 50
MIN_ANSWERS = 2
MAX_ANSWERS = 6
MIN_ANSWER_LENGTH = 1
MAX_ANSWER_LENGTH = 30
MIN_POINTS = 1
MAX_POINTS = 10
MAX_QUIZ_DURATION = 180  # seconds, summed over all questions
MAX_QUIZ_NAME_LENGTH = 30
MAX_QUIZ_DESCRIPTION_LENGTH = 100
ANSWER_COLOURS = ("red", "blue", "green", "yellow", "purple", "orange", "pink",
                  "brown", "cyan", "magenta", "teal", "lime", "indigo")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
