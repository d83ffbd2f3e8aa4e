"""Score extracted answers against a quiz's answer key."""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .errors import MalformedExtraction, MissingAnswerKey
from .extraction import MULTIPLE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnswerKey:
    """Correct options and point values of one quiz."""

    total_questions: int
    correct_answers: tuple = ()
    question_points: tuple = ()
    quiz_id: Optional[str] = None

    def points_for(self, index: int) -> float:
        """Points of question ``index`` (0-based); 1 when the quiz does not say."""
        if index < len(self.question_points) and self.question_points[index] is not None:
            return self.question_points[index]
        return 1

    @property
    def max_score(self) -> float:
        return sum(self.points_for(i) for i in range(self.total_questions))


@dataclass(frozen=True)
class ScoreResult:
    correct_count: int
    wrong_count: int
    total_score: float
    max_score: float
    percentage: int
    total_questions: int
    trace: tuple = field(default=(), repr=False)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _normalize(answer) -> str:
    return str(answer).strip().upper() if answer else ""


def calculate_score(answers: Sequence[str], answer_key: AnswerKey, strict: bool = False) -> ScoreResult:
    """
    Compare extracted answers with the answer key.

    Args:
        answers: One extracted answer per question ("" for blank, MULTIPLE for rejected)
        answer_key: Correct answers and points
        strict: Raise instead of reconciling a missing key or a short answer list

    Returns:
        ScoreResult where correct_count + wrong_count == total_questions

    Raises:
        MissingAnswerKey: In strict mode, when the key has no correct answers.
        MalformedExtraction: In strict mode, when fewer answers than questions were extracted.
    """
    total = answer_key.total_questions
    max_score = answer_key.max_score

    if not answer_key.correct_answers:
        if strict:
            raise MissingAnswerKey(answer_key.quiz_id)
        logger.error("Answer key missing for quiz %s, scoring every question as wrong", answer_key.quiz_id)
        return ScoreResult(
            correct_count=0,
            wrong_count=total,
            total_score=0,
            max_score=max_score,
            percentage=0,
            total_questions=total,
            trace=("Answer key missing from quiz",),
        )

    correct_count = 0
    wrong_count = 0
    total_score = 0
    trace = []

    for i in range(min(len(answers), total)):
        student_answer = _normalize(answers[i])
        correct_answer = _normalize(answer_key.correct_answers[i]) if i < len(answer_key.correct_answers) else ""
        points = answer_key.points_for(i)

        if not correct_answer:
            wrong_count += 1
            trace.append(f"Q{i + 1}: no correct answer defined -> 0")
        elif student_answer == MULTIPLE:
            wrong_count += 1
            trace.append(f"Q{i + 1}: multiple answers -> 0")
        elif not student_answer:
            wrong_count += 1
            trace.append(f"Q{i + 1}: no answer -> 0")
        elif student_answer == correct_answer:
            correct_count += 1
            total_score += points
            trace.append(f"Q{i + 1}: {student_answer} = {correct_answer} -> +{points}")
        else:
            wrong_count += 1
            trace.append(f"Q{i + 1}: {student_answer} != {correct_answer} -> 0")

    if len(answers) > total:
        trace.append(f"Ignored {len(answers) - total} answers beyond question {total}")

    answered = correct_count + wrong_count
    if answered != total:
        if strict:
            raise MalformedExtraction(expected=total, actual=len(answers))
        missing = total - answered
        logger.warning("Answer count mismatch: %d of %d questions scored, counting %d as wrong",
                       answered, total, missing)
        wrong_count += missing
        trace.append(f"Added {missing} missing answers as wrong")

    percentage = round_half_up(total_score / max_score * 100) if max_score > 0 else 0

    logger.debug("Score: %d correct, %d wrong, %s/%s (%d%%)",
                 correct_count, wrong_count, total_score, max_score, percentage)

    return ScoreResult(
        correct_count=correct_count,
        wrong_count=wrong_count,
        total_score=total_score,
        max_score=max_score,
        percentage=percentage,
        total_questions=total,
        trace=tuple(trace),
    )
