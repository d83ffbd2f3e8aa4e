"""Answer extraction: infer the marked option of every question on a frame.

Three strategies share the sheet geometry from ``layout.py``:

- ``DarknessStrategy`` counts dark pixels inside each bubble (a filled bubble
  is dark).
- ``VisibilityStrategy`` counts light pixels inside each bubble (the printed
  letter of a filled bubble is no longer visible on a light background).
- ``HybridStrategy`` runs both and fuses their per-question readings.

Each call returns a fresh ``ExtractionResult`` with its own diagnostic trace,
so repeated or concurrent extractions never share state.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

import numpy as np

from .frame import Frame
from .layout import OptionSpot, SheetLayout
from .settings import (
    ConflictPolicy,
    DarknessSettings,
    HybridSettings,
    MultipleAnswerPolicy,
    ScanMethod,
    ScanSettings,
    VisibilitySettings,
)

logger = logging.getLogger(__name__)

MULTIPLE = "MULTIPLE"
BLANK = ""


@dataclass(frozen=True)
class QuestionReading:
    """What a strategy concluded for one question."""

    number: int
    answer: str
    confidence: float
    measurements: dict = field(default_factory=dict)
    rationale: str = ""


@dataclass(frozen=True)
class ExtractionResult:
    strategy: str
    readings: tuple
    trace: tuple = ()

    @property
    def answers(self) -> list[str]:
        return [r.answer for r in self.readings]

    @property
    def confidences(self) -> list[float]:
        return [r.confidence for r in self.readings]

    @property
    def confidence(self) -> float:
        """Mean per-question confidence, 0 to 100."""
        if not self.readings:
            return 0.0
        return _clamp(sum(self.confidences) / len(self.readings))


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


@lru_cache(maxsize=32)
def _disc_offsets(radius: float, step: float) -> tuple[np.ndarray, np.ndarray]:
    """Sub-pixel sample offsets covering a disc of the given radius."""
    count = int(math.floor(2 * radius / step + 1e-9)) + 1
    axis = -radius + step * np.arange(count)
    dx, dy = np.meshgrid(axis, axis)
    inside = dx * dx + dy * dy <= radius * radius
    return dx[inside], dy[inside]


def sample_disc(luminance: np.ndarray, spot: OptionSpot, step: float) -> np.ndarray:
    """Luminance of every in-bounds sample inside an option's circular footprint."""
    height, width = luminance.shape
    dx, dy = _disc_offsets(round(spot.radius, 6), step)
    xs = np.floor(spot.x + dx).astype(np.int64)
    ys = np.floor(spot.y + dy).astype(np.int64)
    valid = (xs >= 0) & (xs < width) & (ys >= 0) & (ys < height)
    return luminance[ys[valid], xs[valid]]


def _format_ratios(values: dict, scale: float = 1.0) -> str:
    return " | ".join(f"{opt}:{value * scale:.1f}%" for opt, value in values.items())


def resolve_darkness(number: int, darkness: dict, settings: DarknessSettings,
                     policy: MultipleAnswerPolicy) -> QuestionReading:
    """
    Pick an answer from per-option darkness ratios (0 to 1, in option order).

    Args:
        number: 1-based question number
        darkness: Option letter -> fraction of dark samples
        settings: Thresholds and confidence factors
        policy: What to do when several options are marked

    Returns:
        QuestionReading with confidence on a 0 to 100 scale
    """
    threshold = settings.darkness_threshold / 100
    marked = [opt for opt, value in darkness.items() if value > threshold]

    best_option, best_value = BLANK, 0.0
    for opt, value in darkness.items():
        if value > best_value:
            best_option, best_value = opt, value

    if not marked:
        if best_value > settings.minimum_fill / 100:
            return QuestionReading(number, best_option, _clamp(best_value * settings.weak_fill_factor * 100),
                                   darkness, f"weak mark: {best_option}")
        return QuestionReading(number, BLANK, 0.0, darkness, "no answer")

    if len(marked) == 1:
        opt = marked[0]
        return QuestionReading(number, opt, _clamp(darkness[opt] * settings.single_mark_factor * 100),
                               darkness, f"clear mark: {opt}")

    if policy == MultipleAnswerPolicy.REJECT:
        return QuestionReading(number, MULTIPLE, 0.0, darkness,
                               f"multiple marks rejected: {', '.join(marked)}")

    if policy == MultipleAnswerPolicy.FIRST:
        chosen = marked[0]
    else:
        chosen = marked[0]
        for opt in marked[1:]:
            if darkness[opt] > darkness[chosen]:
                chosen = opt

    return QuestionReading(number, chosen, _clamp(darkness[chosen] * settings.multiple_mark_factor * 100),
                           darkness, f"{policy.value} of multiple marks: {chosen} from {', '.join(marked)}")


def resolve_visibility(number: int, visibility: dict, settings: VisibilitySettings) -> QuestionReading:
    """Pick an answer from per-option visibility percentages (0 to 100)."""
    hidden = [opt for opt, value in visibility.items() if value < settings.visibility_threshold]

    if not hidden:
        return QuestionReading(number, BLANK, 0.0, visibility, "all letters visible")

    chosen = hidden[0]
    for opt in hidden[1:]:
        if visibility[opt] < visibility[chosen]:
            chosen = opt

    confidence = _clamp(100 - visibility[chosen])
    if len(hidden) == 1:
        return QuestionReading(number, chosen, confidence, visibility, f"hidden letter: {chosen}")
    return QuestionReading(number, chosen, confidence, visibility,
                           f"most hidden: {chosen} from {', '.join(hidden)}")


def fuse_readings(darkness: QuestionReading, visibility: QuestionReading,
                  settings: HybridSettings) -> tuple[QuestionReading, Optional[str]]:
    """
    Combine the darkness and visibility readings of one question.

    Returns:
        (fused reading, disagreement note or None when both strategies agree)
    """
    number = darkness.number
    measurements = {
        **{f"darkness:{k}": v for k, v in darkness.measurements.items()},
        **{f"visibility:{k}": v for k, v in visibility.measurements.items()},
    }

    if darkness.answer == visibility.answer:
        if darkness.answer == BLANK:
            return QuestionReading(number, BLANK, 0.0, measurements, "both blank"), None
        confidence = _clamp(
            darkness.confidence * settings.darkness_weight / 100
            + visibility.confidence * settings.visibility_weight / 100
        )
        return QuestionReading(number, darkness.answer, confidence, measurements,
                               f"agreed: {darkness.answer}"), None

    note = (f"Q{number}: disagreement darkness={darkness.answer or '-'} ({darkness.confidence:.1f}) "
            f"visibility={visibility.answer or '-'} ({visibility.confidence:.1f})")

    policy = settings.conflict_policy
    if policy == ConflictPolicy.DARKNESS:
        winner, damping = darkness, settings.preferred_damping
    elif policy == ConflictPolicy.VISIBILITY:
        winner, damping = visibility, settings.preferred_damping
    elif darkness.confidence > visibility.confidence:
        winner, damping = darkness, settings.confidence_damping
    else:
        winner, damping = visibility, settings.confidence_damping

    source = "darkness" if winner is darkness else "visibility"
    reading = QuestionReading(number, winner.answer, _clamp(winner.confidence * damping), measurements,
                              f"conflict resolved by {policy.value}: {source} {winner.answer or '-'}")
    return reading, note


class ExtractionStrategy(ABC):
    """Reads the answers of every question on a frame."""

    name = ""

    @abstractmethod
    def extract(self, frame: Frame, layout: SheetLayout) -> ExtractionResult:
        """Return one reading per question of ``layout``."""


class DarknessStrategy(ExtractionStrategy):
    name = ScanMethod.DARKNESS.value

    def __init__(self, settings: Optional[DarknessSettings] = None,
                 policy: MultipleAnswerPolicy = MultipleAnswerPolicy.BEST):
        self.settings = settings or DarknessSettings()
        self.policy = policy

    def measure(self, luminance: np.ndarray, spots: list[OptionSpot]) -> dict:
        darkness = {}
        for spot in spots:
            samples = sample_disc(luminance, spot, self.settings.sample_step)
            dark = np.count_nonzero(samples < self.settings.luminance_threshold)
            darkness[spot.option] = dark / samples.size if samples.size else 0.0
        return darkness

    def extract(self, frame: Frame, layout: SheetLayout) -> ExtractionResult:
        luminance = frame.luminance
        readings, trace = [], []

        for spots in layout.option_spots(frame.width, frame.height):
            darkness = self.measure(luminance, spots)
            reading = resolve_darkness(spots[0].question, darkness, self.settings, self.policy)
            readings.append(reading)
            trace.append(f"Q{reading.number} darkness: {_format_ratios(darkness, 100)}")
            trace.append(f"Q{reading.number}: {reading.rationale}")

        return ExtractionResult(self.name, tuple(readings), tuple(trace))


class VisibilityStrategy(ExtractionStrategy):
    name = ScanMethod.VISIBILITY.value

    def __init__(self, settings: Optional[VisibilitySettings] = None):
        self.settings = settings or VisibilitySettings()

    def measure(self, luminance: np.ndarray, spots: list[OptionSpot]) -> dict:
        visibility = {}
        for spot in spots:
            samples = sample_disc(luminance, spot, self.settings.sample_step)
            if samples.size == 0:
                # Nothing to look at: treat the letter as untouched
                visibility[spot.option] = 100.0
                continue
            light = np.count_nonzero(samples >= self.settings.light_threshold)
            visibility[spot.option] = light / samples.size * 100
        return visibility

    def extract(self, frame: Frame, layout: SheetLayout) -> ExtractionResult:
        luminance = frame.luminance
        readings, trace = [], []

        for spots in layout.option_spots(frame.width, frame.height):
            visibility = self.measure(luminance, spots)
            reading = resolve_visibility(spots[0].question, visibility, self.settings)
            readings.append(reading)
            trace.append(f"Q{reading.number} visibility: {_format_ratios(visibility)}")
            trace.append(f"Q{reading.number}: {reading.rationale}")

        return ExtractionResult(self.name, tuple(readings), tuple(trace))


class HybridStrategy(ExtractionStrategy):
    name = ScanMethod.HYBRID.value

    def __init__(self, darkness: DarknessStrategy, visibility: VisibilityStrategy,
                 settings: Optional[HybridSettings] = None):
        self.darkness = darkness
        self.visibility = visibility
        self.settings = settings or HybridSettings()

    def extract(self, frame: Frame, layout: SheetLayout) -> ExtractionResult:
        by_darkness = self.darkness.extract(frame, layout)
        by_visibility = self.visibility.extract(frame, layout)

        readings, trace = [], []
        for a, b in zip(by_darkness.readings, by_visibility.readings):
            reading, disagreement = fuse_readings(a, b, self.settings)
            readings.append(reading)
            if disagreement:
                trace.append(disagreement)
                logger.debug(disagreement)
            trace.append(f"Q{reading.number}: {reading.rationale} ({reading.confidence:.1f})")

        return ExtractionResult(
            self.name,
            tuple(readings),
            tuple(trace) + by_darkness.trace + by_visibility.trace,
        )


def build_strategy(settings: Optional[ScanSettings] = None) -> ExtractionStrategy:
    """Create the strategy selected by ``settings.general.method``."""
    settings = settings or ScanSettings()
    method = settings.general.method

    darkness = DarknessStrategy(settings.darkness, settings.general.multiple_answer_policy)
    if method == ScanMethod.DARKNESS:
        return darkness

    visibility = VisibilityStrategy(settings.visibility)
    if method == ScanMethod.VISIBILITY:
        return visibility

    return HybridStrategy(darkness, visibility, settings.hybrid)
