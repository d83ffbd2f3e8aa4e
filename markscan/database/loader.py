"""Load students and quizzes from YAML files."""

import logging
from pathlib import Path
from typing import Optional

import yaml

from ..grading.layout import check_template_compatibility
from .db import get_session
from .models import Quiz, Student

logger = logging.getLogger(__name__)


def load_roster_from_yaml(yaml_path: Path) -> Optional[dict]:
    """
    Load roster data from a YAML file.

    Expected YAML structure:
    ```yaml
    students:
      - external_id: R175069452
        first_name: Salma
        last_name: Asyakher
        level: "6"
        section: A

    quizzes:
      - id: quiz1
        title: Fractions
        subject: Math
        total_questions: 3
        correct_answers: [A, B, C]
        question_points: [1, 1, 2]
    ```
    """
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        return None

    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    return data or {}


def seed_roster(data: dict, session=None) -> dict:
    """
    Create or update students and quizzes from roster data.

    Args:
        data: Dictionary with optional 'students' and 'quizzes' lists
        session: Optional database session

    Returns:
        dict with counts of students and quizzes written, and skipped entries
    """
    if session is None:
        with get_session() as session:
            return seed_roster(data, session)

    counts = {"students": 0, "quizzes": 0, "skipped": []}

    for entry in data.get("students") or []:
        external_id = str(entry.get("external_id") or "").strip()
        if not external_id:
            counts["skipped"].append(f"student without external_id: {entry}")
            continue

        student = session.query(Student).filter(Student.external_id == external_id).first()
        if not student:
            student = Student(external_id=external_id)
            session.add(student)

        student.first_name = entry.get("first_name", student.first_name or "")
        student.last_name = entry.get("last_name", student.last_name or "")
        student.level = str(entry.get("level") or student.level or "")
        student.section = str(entry.get("section") or student.section or "")
        counts["students"] += 1

    for entry in data.get("quizzes") or []:
        quiz_id = str(entry.get("id") or "").strip()
        if not quiz_id:
            counts["skipped"].append(f"quiz without id: {entry}")
            continue
        try:
            total = int(entry.get("total_questions") or 0)
        except (TypeError, ValueError):
            counts["skipped"].append(f"quiz {quiz_id}: total_questions is not a number")
            continue
        fits, reason = check_template_compatibility(total)
        if not fits:
            counts["skipped"].append(f"quiz {quiz_id}: {reason}")
            continue

        correct = [str(a).strip().upper() for a in entry.get("correct_answers") or []]
        points = list(entry.get("question_points") or [1] * total)

        quiz = session.get(Quiz, quiz_id)
        if not quiz:
            quiz = Quiz(id=quiz_id, total_questions=total)
            session.add(quiz)

        quiz.title = entry.get("title", quiz.title or "")
        quiz.subject = entry.get("subject", quiz.subject or "")
        quiz.total_questions = total
        quiz.correct_answers = correct
        quiz.question_points = points
        quiz.max_score = entry.get("max_score", sum(points))
        counts["quizzes"] += 1

    session.commit()

    for reason in counts["skipped"]:
        logger.warning("Skipped roster entry: %s", reason)

    return counts


def import_roster(yaml_path: Path) -> Optional[dict]:
    """Load a roster YAML file and write it to the database."""
    data = load_roster_from_yaml(yaml_path)
    if data is None:
        logger.error("Roster file not found: %s", yaml_path)
        return None
    return seed_roster(data)
