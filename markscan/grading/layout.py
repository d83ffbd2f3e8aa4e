"""Geometry of the fixed 20-question answer sheet.

The answer area is a horizontal band across the sheet, split into three
equal columns that are read right to left. Each question cell holds four
option bubbles on one row. All positions are proportional to the frame size,
so the same layout applies to any capture resolution.
"""

import math
from dataclasses import dataclass
from typing import NamedTuple

from ..config import MAX_QUESTIONS

OPTIONS = ("A", "B", "C", "D")


class LayoutError(ValueError):
    """Raised when a quiz does not fit the fixed sheet template."""
    pass


class OptionSpot(NamedTuple):
    """Center and radius of one option bubble, in pixels."""
    question: int
    option: str
    x: float
    y: float
    radius: float


class Region(NamedTuple):
    """Pixel rectangle ``(left, top, right, bottom)``."""
    left: int
    top: int
    right: int
    bottom: int


@dataclass(frozen=True)
class SheetLayout:
    question_count: int = MAX_QUESTIONS
    columns: int = 3
    options: tuple = OPTIONS

    # Answer band, as fractions of the frame height
    band_top: float = 0.52
    band_bottom: float = 0.85

    # Option row inside a question cell, as fractions of the cell size
    options_row: float = 0.6
    options_offset: float = 0.125
    options_span: float = 0.75

    # Footprint radius: min(pitch * radius_pitch, cell_height * radius_height)
    radius_pitch: float = 0.25
    radius_height: float = 0.1

    # Identity marker region, as fractions of the frame size
    marker_left: float = 0.62
    marker_top: float = 0.08
    marker_width: float = 0.35
    marker_height: float = 0.35

    def __post_init__(self):
        if not 1 <= self.question_count <= MAX_QUESTIONS:
            raise LayoutError(
                f"The fixed template supports 1 to {MAX_QUESTIONS} questions, got {self.question_count}"
            )

    @classmethod
    def for_questions(cls, total_questions: int) -> "SheetLayout":
        """Layout for a quiz with ``total_questions`` questions."""
        return cls(question_count=int(total_questions))

    @property
    def rows(self) -> int:
        return math.ceil(self.question_count / self.columns)

    def option_spots(self, width: int, height: int) -> list[list[OptionSpot]]:
        """Bubble positions for every question, in question order.

        Args:
            width: Frame width in pixels
            height: Frame height in pixels

        Returns:
            One list of option spots per question, options in ``A..D`` order
        """
        band_start = math.floor(height * self.band_top)
        band_end = math.floor(height * self.band_bottom)
        cell_height = (band_end - band_start) / self.rows
        cell_width = width / self.columns
        pitch = cell_width * self.options_span / len(self.options)
        radius = min(pitch * self.radius_pitch, cell_height * self.radius_height)

        spots = []
        for index in range(self.question_count):
            row, col = divmod(index, self.columns)
            # Right-to-left: column 0 is the rightmost one
            cell_x = (self.columns - 1 - col) * cell_width
            cell_y = band_start + row * cell_height
            option_y = cell_y + cell_height * self.options_row
            start_x = cell_x + cell_width * self.options_offset

            spots.append([
                OptionSpot(
                    question=index + 1,
                    option=option,
                    x=start_x + (k + 0.5) * pitch,
                    y=option_y,
                    radius=radius,
                )
                for k, option in enumerate(self.options)
            ])
        return spots

    def marker_region(self, width: int, height: int) -> Region:
        """Pixel rectangle reserved for the identity QR code."""
        left = math.floor(width * self.marker_left)
        top = math.floor(height * self.marker_top)
        right = min(width, left + math.floor(width * self.marker_width))
        bottom = min(height, top + math.floor(height * self.marker_height))
        return Region(left, top, right, bottom)


def check_template_compatibility(total_questions: int) -> tuple[bool, str]:
    """Tell whether a quiz fits the fixed template, with a human-readable reason."""
    if 1 <= total_questions <= MAX_QUESTIONS:
        return True, f"Quiz fits the fixed {MAX_QUESTIONS}-question template"
    if total_questions < 1:
        return False, "Quiz has no questions"
    return False, (
        f"The fixed template supports {MAX_QUESTIONS} questions only, "
        f"this quiz has {total_questions}"
    )
