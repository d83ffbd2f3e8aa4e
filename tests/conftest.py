"""
Test configuration and fixtures for the markscan test suite.
"""

import pytest
from PIL import Image, ImageDraw

from markscan.database import init_db
from markscan.grading.frame import Frame
from markscan.grading.grader import AnswerKey
from markscan.grading.layout import SheetLayout
from markscan.grading.qr_scanner import IdentityDecoder, IdentityPayload, StudentRecord

SHEET_SIZE = (900, 1200)


def render_sheet(answers=None, question_count=20, marker=None, corners=4, size=SHEET_SIZE,
                 fill_scale=1.5):
    """
    Draw a synthetic answer sheet.

    Args:
        answers: Question number -> option letter, or list of letters for several marks
        question_count: Questions on the sheet
        marker: Pillow image pasted into the identity marker region
        corners: How many corner alignment squares to draw (0 to 4)
        size: (width, height) in pixels
        fill_scale: Radius of the pen mark relative to the bubble footprint

    Returns:
        RGB Pillow image
    """
    width, height = size
    image = Image.new("RGB", size, "white")
    draw = ImageDraw.Draw(image)

    square = 40
    inset = 10
    positions = [
        (inset, inset),
        (width - inset - square, inset),
        (inset, height - inset - square),
        (width - inset - square, height - inset - square),
    ]
    for x, y in positions[:corners]:
        draw.rectangle([x, y, x + square - 1, y + square - 1], fill="black")

    layout = SheetLayout.for_questions(question_count)
    spots = layout.option_spots(width, height)
    for number, marked in (answers or {}).items():
        options = [marked] if isinstance(marked, str) else list(marked)
        for spot in spots[number - 1]:
            if spot.option in options:
                r = spot.radius * fill_scale
                draw.ellipse([spot.x - r, spot.y - r, spot.x + r, spot.y + r], fill="black")

    if marker is not None:
        region = layout.marker_region(width, height)
        image.paste(marker.convert("RGB"), (region.left + 20, region.top + 20))

    return image


def render_frame(*args, **kwargs) -> Frame:
    return Frame.from_image(render_sheet(*args, **kwargs))


class FakeDecoder:
    """Decoder returning a fixed payload from a given attempt onwards."""

    def __init__(self, payload, succeed_on=1):
        self.payload = payload
        self.succeed_on = succeed_on
        self.calls = []

    def __call__(self, image):
        self.calls.append(image)
        if self.payload is not None and len(self.calls) >= self.succeed_on:
            return self.payload
        return None


class FakeClock:
    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def directory():
    """A small student directory."""
    return [
        StudentRecord(id=1, external_id="R175069452", first_name="Salma", last_name="Asyakher"),
        StudentRecord(id=2, external_id="R175069453", first_name="Youssef", last_name="Amrani"),
        StudentRecord(id=3, external_id="", first_name="No", last_name="Id"),
    ]


@pytest.fixture
def answer_key():
    """Three-question quiz worth 4 points."""
    return AnswerKey(
        total_questions=3,
        correct_answers=("A", "B", "C"),
        question_points=(1, 1, 2),
        quiz_id="quiz1",
    )


@pytest.fixture
def payload():
    return IdentityPayload("R175069452", "quiz1", 1, "Salma", "Asyakher").encode()


@pytest.fixture
def fake_decoder(payload):
    return FakeDecoder(payload)


@pytest.fixture
def identity_decoder(fake_decoder):
    return IdentityDecoder(decoder=fake_decoder)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database(tmp_path):
    """Fresh SQLite database for one test."""
    url = f"sqlite:///{tmp_path / 'test.db'}"
    engine = init_db(url)
    yield url
    engine.dispose()


@pytest.fixture
def settings_path(tmp_path, monkeypatch):
    """Point the settings file at a temporary location."""
    path = tmp_path / "scan_settings.yaml"
    monkeypatch.setattr("markscan.grading.settings.SETTINGS_PATH", path)
    return path


@pytest.fixture
def roster_data():
    return {
        "students": [
            {"external_id": "R175069452", "first_name": "Salma", "last_name": "Asyakher", "level": "6", "section": "A"},
            {"external_id": "R175069453", "first_name": "Youssef", "last_name": "Amrani"},
        ],
        "quizzes": [
            {"id": "quiz1", "title": "Fractions", "total_questions": 3,
             "correct_answers": ["a", "B", "C"], "question_points": [1, 1, 2]},
        ],
    }
