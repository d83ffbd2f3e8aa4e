"""Database models and connection management."""

from .db import init_db, get_session
from .models import Base, Quiz, QuizResult, Student
from .loader import import_roster, load_roster_from_yaml, seed_roster
from .store import (
    DatabaseResultStore,
    get_quiz_statistics,
    get_recent_results,
    load_answer_key,
    load_directory,
)

__all__ = [
    "init_db",
    "get_session",
    "Base",
    "Quiz",
    "QuizResult",
    "Student",
    "import_roster",
    "load_roster_from_yaml",
    "seed_roster",
    "DatabaseResultStore",
    "get_quiz_statistics",
    "get_recent_results",
    "load_answer_key",
    "load_directory",
]
