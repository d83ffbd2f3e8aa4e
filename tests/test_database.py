"""Tests for the roster loader and the database result store."""

import pytest

from markscan.database import (
    DatabaseResultStore,
    Quiz,
    QuizResult,
    Student,
    get_quiz_statistics,
    get_recent_results,
    get_session,
    import_roster,
    load_answer_key,
    load_directory,
    seed_roster,
)
from markscan.grading.errors import MissingAnswerKey
from markscan.grading.scanner import ScanResult


def test_seed_roster(database, roster_data):
    counts = seed_roster(roster_data)

    assert counts == {"students": 2, "quizzes": 1, "skipped": []}
    with get_session() as session:
        student = session.query(Student).filter(Student.external_id == "R175069452").one()
        assert student.full_name == "Salma Asyakher"
        assert student.section == "A"
        quiz = session.get(Quiz, "quiz1")
        assert quiz.correct_answers == ["A", "B", "C"]
        assert quiz.max_score == 4


def test_seed_roster_updates_existing_entries(database, roster_data):
    seed_roster(roster_data)
    roster_data["students"][0]["last_name"] = "Asyakher-Benali"
    seed_roster(roster_data)

    with get_session() as session:
        assert session.query(Student).count() == 2
        student = session.query(Student).filter(Student.external_id == "R175069452").one()
        assert student.last_name == "Asyakher-Benali"


def test_seed_roster_skips_invalid_entries(database):
    counts = seed_roster({
        "students": [{"first_name": "Anonymous"}],
        "quizzes": [{"id": "big", "total_questions": 30, "correct_answers": ["A"] * 30}],
    })

    assert counts["students"] == 0
    assert counts["quizzes"] == 0
    assert len(counts["skipped"]) == 2


def test_import_roster_from_yaml(database, tmp_path):
    path = tmp_path / "roster.yaml"
    path.write_text(
        "students:\n"
        "  - external_id: R1\n"
        "    first_name: Salma\n"
        "quizzes:\n"
        "  - id: q1\n"
        "    total_questions: 2\n"
        "    correct_answers: [A, D]\n"
    )

    counts = import_roster(path)

    assert counts["students"] == 1
    assert load_answer_key("q1").correct_answers == ("A", "D")


def test_import_missing_file(database, tmp_path):
    assert import_roster(tmp_path / "missing.yaml") is None


def test_load_directory(database, roster_data):
    seed_roster(roster_data)
    directory = load_directory()

    assert [s.external_id for s in directory] == ["R175069452", "R175069453"]
    assert directory[1].display_name == "Youssef Amrani"


def test_load_answer_key(database, roster_data):
    seed_roster(roster_data)
    key = load_answer_key("quiz1")

    assert key.total_questions == 3
    assert key.question_points == (1, 1, 2)
    assert key.max_score == 4
    assert key.quiz_id == "quiz1"


def test_unknown_quiz(database):
    with pytest.raises(MissingAnswerKey):
        load_answer_key("nope")


def test_result_store(database, roster_data):
    seed_roster(roster_data)
    student = load_directory()[0]
    result = ScanResult(
        quiz_id="quiz1",
        student_id=student.id,
        external_id=student.external_id,
        student_name=student.display_name,
        score=3,
        percentage=75,
        answers=("A", "", "C"),
        correct_answers=2,
        wrong_answers=1,
        confidence=88.5,
        strategy="hybrid",
    )

    DatabaseResultStore().add(result)

    with get_session() as session:
        row = session.query(QuizResult).one()
        assert row.answers == ["A", "", "C"]
        assert row.verified
        assert row.student.external_id == "R175069452"

    rows = get_recent_results("quiz1")
    assert rows[0]["percentage"] == 75
    assert get_recent_results("other") == []


def test_seed_roster_skips_quiz_with_non_numeric_question_count(database, roster_data):
    roster_data["quizzes"].insert(0, {"id": "bad", "total_questions": "ten", "correct_answers": ["A"]})

    counts = seed_roster(roster_data)

    assert counts["students"] == 2
    assert counts["quizzes"] == 1
    assert counts["skipped"] == ["quiz bad: total_questions is not a number"]
    with get_session() as session:
        assert session.get(Quiz, "bad") is None
        assert session.get(Quiz, "quiz1") is not None


def _store_result(student, percentage, quiz_id="quiz1"):
    DatabaseResultStore().add(ScanResult(
        quiz_id=quiz_id,
        student_id=student.id,
        external_id=student.external_id,
        student_name=student.display_name,
        score=percentage * 4 / 100,
        percentage=percentage,
        answers=("A", "B", "C"),
        correct_answers=3,
        wrong_answers=0,
        confidence=90.0,
        strategy="hybrid",
    ))


def test_quiz_statistics(database, roster_data):
    seed_roster(roster_data)
    salma, youssef = load_directory()
    _store_result(salma, 100)
    _store_result(youssef, 50)

    summary = get_quiz_statistics("quiz1")

    assert summary["total_results"] == 2
    assert summary["total_students"] == 2
    assert summary["average_score"] == 75
    assert summary["passed"] == 1
    assert summary["failed"] == 1
    assert summary["pass_rate"] == 50
    assert summary["grade_distribution"]["excellent"] == 1
    assert summary["grade_distribution"]["weak"] == 1
    assert summary["grade_distribution"]["good"] == 0

    assert [row["level"] for row in summary["by_level"]] == ["6", "Unassigned"]
    assert summary["by_level"][0] == {
        "level": "6", "total": 1, "passed": 1, "failed": 0, "average_score": 100, "pass_rate": 100,
    }
    assert summary["by_subject"] == [{
        "subject": "Unassigned", "total": 2, "passed": 1, "failed": 1, "average_score": 75, "pass_rate": 50,
    }]


def test_quiz_statistics_pass_threshold_and_rounding(database, roster_data):
    seed_roster(roster_data)
    salma, _ = load_directory()
    for percentage in (60, 59, 60):
        _store_result(salma, percentage)

    summary = get_quiz_statistics()

    assert summary["quiz_id"] is None
    assert summary["total_students"] == 1
    assert summary["passed"] == 2
    # 179 / 3 = 59.67 and 2 / 3 = 66.67
    assert summary["average_score"] == 60
    assert summary["pass_rate"] == 67
    assert summary["grade_distribution"]["fair"] == 2


def test_quiz_statistics_without_results(database, roster_data):
    seed_roster(roster_data)

    summary = get_quiz_statistics("quiz1")

    assert summary["total_results"] == 0
    assert summary["average_score"] == 0
    assert summary["pass_rate"] == 0
    assert summary["by_level"] == []
    assert set(summary["grade_distribution"].values()) == {0}
