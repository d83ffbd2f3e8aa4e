"""Bridge between the database and the grading pipeline."""

import logging
from typing import Optional

from ..grading.errors import MissingAnswerKey
from ..grading.grader import AnswerKey, round_half_up
from ..grading.qr_scanner import StudentRecord
from ..grading.scanner import ScanResult
from .db import get_session
from .models import Quiz, QuizResult, Student

logger = logging.getLogger(__name__)

PASS_PERCENTAGE = 60
UNASSIGNED = "Unassigned"

# Lowest percentage of each grade band, best first
GRADE_BANDS = (
    ("excellent", 90),
    ("very good", 80),
    ("good", 70),
    ("fair", 60),
    ("weak", 50),
    ("failing", 0),
)


def load_directory(session=None) -> list[StudentRecord]:
    """Read the whole student directory as plain records."""
    if session is None:
        with get_session() as session:
            return load_directory(session)

    return [
        StudentRecord(
            id=s.id,
            external_id=s.external_id,
            first_name=s.first_name or "",
            last_name=s.last_name or "",
        )
        for s in session.query(Student).order_by(Student.id).all()
    ]


def load_answer_key(quiz_id: str, session=None) -> AnswerKey:
    """
    Build the answer key of a stored quiz.

    Raises:
        MissingAnswerKey: If the quiz does not exist.
    """
    if session is None:
        with get_session() as session:
            return load_answer_key(quiz_id, session)

    quiz = session.get(Quiz, quiz_id)
    if quiz is None:
        raise MissingAnswerKey(quiz_id)

    return AnswerKey(
        total_questions=quiz.total_questions,
        correct_answers=tuple(quiz.correct_answers or ()),
        question_points=tuple(quiz.question_points or ()),
        quiz_id=quiz.id,
    )


def get_recent_results(quiz_id: Optional[str] = None, limit: int = 20) -> list[dict]:
    """Most recent scan results, newest first."""
    with get_session() as session:
        query = session.query(QuizResult)
        if quiz_id:
            query = query.filter(QuizResult.quiz_id == quiz_id)
        rows = query.order_by(QuizResult.scanned_at.desc(), QuizResult.id.desc()).limit(limit).all()

        return [
            {
                "id": r.id,
                "quiz_id": r.quiz_id,
                "external_id": r.external_id,
                "student_name": r.student_name,
                "score": r.score,
                "percentage": r.percentage,
                "answers": list(r.answers or []),
                "correct_answers": r.correct_answers,
                "wrong_answers": r.wrong_answers,
                "confidence": r.confidence,
                "strategy": r.strategy,
                "scanned_at": r.scanned_at.isoformat() if r.scanned_at else None,
            }
            for r in rows
        ]


def _summarize(percentages: list) -> dict:
    total = len(percentages)
    passed = sum(1 for p in percentages if p >= PASS_PERCENTAGE)
    return {
        "total": total,
        "passed": passed,
        "failed": total - passed,
        "average_score": round_half_up(sum(percentages) / total) if total else 0,
        "pass_rate": round_half_up(passed / total * 100) if total else 0,
    }


def _grade_band(percentage: int) -> str:
    for name, lowest in GRADE_BANDS:
        if percentage >= lowest:
            return name
    return GRADE_BANDS[-1][0]


def _breakdown(groups: dict, key: str) -> list[dict]:
    return [{key: name, **_summarize(groups[name])} for name in sorted(groups)]


def get_quiz_statistics(quiz_id: Optional[str] = None) -> dict:
    """
    Summarize stored results, for one quiz or for all of them.

    A result passes at PASS_PERCENTAGE or above. Averages and rates are
    whole percentages rounded half up.

    Returns:
        dict with overall totals, average score, pass rate, grade distribution
        and breakdowns by student level and by quiz subject
    """
    with get_session() as session:
        query = session.query(QuizResult)
        if quiz_id:
            query = query.filter(QuizResult.quiz_id == quiz_id)

        percentages = []
        students = set()
        by_level = {}
        by_subject = {}
        distribution = {name: 0 for name, _ in GRADE_BANDS}

        for r in query.all():
            percentage = r.percentage or 0
            percentages.append(percentage)
            students.add(r.student_id)
            distribution[_grade_band(percentage)] += 1

            level = (r.student.level if r.student else "") or UNASSIGNED
            subject = (r.quiz.subject if r.quiz else "") or UNASSIGNED
            by_level.setdefault(level, []).append(percentage)
            by_subject.setdefault(subject, []).append(percentage)

    overall = _summarize(percentages)
    return {
        "quiz_id": quiz_id,
        "total_results": overall["total"],
        "total_students": len(students),
        "passed": overall["passed"],
        "failed": overall["failed"],
        "average_score": overall["average_score"],
        "pass_rate": overall["pass_rate"],
        "grade_distribution": distribution,
        "by_level": _breakdown(by_level, "level"),
        "by_subject": _breakdown(by_subject, "subject"),
    }


class DatabaseResultStore:
    """Result store writing one ``QuizResult`` row per graded sheet."""

    def add(self, result: ScanResult) -> None:
        with get_session() as session:
            row = QuizResult(
                quiz_id=result.quiz_id,
                student_id=result.student_id,
                external_id=result.external_id,
                student_name=result.student_name,
                score=result.score,
                percentage=result.percentage,
                answers=list(result.answers),
                correct_answers=result.correct_answers,
                wrong_answers=result.wrong_answers,
                verified=result.verified,
                confidence=result.confidence,
                strategy=result.strategy,
            )
            session.add(row)
            session.commit()
            logger.debug("Stored result %d for %s", row.id, result.external_id)
