"""Tests for the command line interface."""

import pytest
from click.testing import CliRunner

from markscan.database import seed_roster
from markscan.main import cli

from conftest import FakeDecoder, render_sheet


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def seeded(database, roster_data):
    seed_roster(roster_data)
    return database


@pytest.fixture
def fake_qr(monkeypatch):
    """Make every decoding attempt find Salma's marker."""
    decoder = FakeDecoder("R175069452|quiz1|1|Salma|Asyakher")
    monkeypatch.setattr("markscan.grading.qr_scanner.scan_qr_from_image", decoder)
    return decoder


def test_quality(runner, settings_path, tmp_path):
    path = tmp_path / "sheet.png"
    render_sheet(corners=2).save(path)

    result = runner.invoke(cli, ["quality", str(path)])

    assert result.exit_code == 0
    assert "GOOD" in result.output
    assert "2/4 corners" in result.output


def test_import_roster(runner, database, tmp_path):
    path = tmp_path / "roster.yaml"
    path.write_text("students:\n  - external_id: R1\n    first_name: Salma\n")

    result = runner.invoke(cli, ["--database", database, "import-roster", str(path)])

    assert result.exit_code == 0
    assert "Imported 1 students and 0 quizzes" in result.output


def test_scan_and_results(runner, seeded, settings_path, fake_qr, tmp_path):
    path = tmp_path / "salma.png"
    render_sheet(answers={1: "A", 2: "B", 3: "C"}, question_count=3).save(path)

    result = runner.invoke(cli, ["--database", seeded, "scan", "--quiz", "quiz1", str(path)])

    assert result.exit_code == 0, result.output
    assert "Salma Asyakher: 4/4 (100%)" in result.output
    assert "Graded 1 of 1 sheets, 0 failed." in result.output

    result = runner.invoke(cli, ["--database", seeded, "results", "--quiz", "quiz1"])

    assert result.exit_code == 0
    assert "Salma Asyakher" in result.output


def test_scan_dry_run_saves_nothing(runner, seeded, settings_path, fake_qr, tmp_path):
    path = tmp_path / "salma.png"
    render_sheet(question_count=3).save(path)

    result = runner.invoke(cli, ["--database", seeded, "scan", "--dry-run", "-q", "quiz1", str(path)])

    assert result.exit_code == 0
    assert "Dry run" in result.output
    assert "No results yet." in runner.invoke(cli, ["--database", seeded, "results"]).output


def test_scan_unknown_quiz(runner, seeded, settings_path, tmp_path):
    path = tmp_path / "sheet.png"
    render_sheet().save(path)

    result = runner.invoke(cli, ["--database", seeded, "scan", "--quiz", "nope", str(path)])

    assert result.exit_code == 1
    assert "Answer key missing for quiz 'nope'" in result.output


def test_stats(runner, seeded, settings_path, fake_qr, tmp_path):
    path = tmp_path / "salma.png"
    render_sheet(answers={1: "A", 2: "B", 3: "C"}, question_count=3).save(path)
    runner.invoke(cli, ["--database", seeded, "scan", "--quiz", "quiz1", str(path)])

    result = runner.invoke(cli, ["--database", seeded, "stats", "--quiz", "quiz1"])

    assert result.exit_code == 0, result.output
    assert "Results: 1  Students: 1" in result.output
    assert "Average score: 100%" in result.output
    assert "Pass rate: 100% (1 passed, 0 failed)" in result.output
    assert "By level:" in result.output
    assert "Unassigned" in result.output


def test_stats_without_results(runner, seeded):
    result = runner.invoke(cli, ["--database", seeded, "stats"])

    assert result.exit_code == 0
    assert "No results yet." in result.output


def test_stats_unknown_quiz(runner, seeded):
    result = runner.invoke(cli, ["--database", seeded, "stats", "--quiz", "nope"])

    assert result.exit_code == 1
    assert "Answer key missing for quiz 'nope'" in result.output


def test_markers(runner, seeded, tmp_path):
    out = tmp_path / "markers"

    result = runner.invoke(cli, ["--database", seeded, "markers", "--quiz", "quiz1", "-o", str(out)])

    assert result.exit_code == 0
    assert sorted(p.name for p in out.iterdir()) == ["001_R175069452.png", "002_R175069453.png"]


def test_settings_commands(runner, settings_path):
    result = runner.invoke(cli, ["settings", "set", "general.method", "hybrid"])
    assert result.exit_code == 0
    assert settings_path.exists()

    result = runner.invoke(cli, ["settings", "show"])
    assert "method: hybrid" in result.output

    result = runner.invoke(cli, ["settings", "set", "general.method", "ocr"])
    assert result.exit_code == 1

    result = runner.invoke(cli, ["settings", "reset"])
    assert result.exit_code == 0
    assert not settings_path.exists()
