"""Frame quality: look for the four black alignment squares in the sheet corners."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .frame import Frame
from .settings import QualitySettings

CORNER_NAMES = ("top-left", "top-right", "bottom-left", "bottom-right")


class QualityTier(str, Enum):
    POOR = "poor"
    GOOD = "good"
    EXCELLENT = "excellent"


@dataclass(frozen=True)
class FrameQuality:
    corners_detected: int
    tier: QualityTier
    confidence: float
    corner_ratios: tuple = ()

    @property
    def has_alignment_marks(self) -> bool:
        return self.corners_detected >= 2


def _best_window_ratio(dark: np.ndarray, left: int, top: int, right: int, bottom: int,
                       cfg: QualitySettings) -> float:
    """Highest dark-pixel ratio of any sampling window inside one corner region."""
    height, width = dark.shape
    best = 0.0
    for y in range(top, bottom - cfg.window_size, cfg.window_stride):
        for x in range(left, right - cfg.window_size, cfg.window_stride):
            window = dark[y:min(y + cfg.window_size, height):cfg.sample_stride,
                          x:min(x + cfg.window_size, width):cfg.sample_stride]
            if window.size == 0:
                continue
            ratio = float(window.mean())
            if ratio > best:
                best = ratio
    return best


def assess_frame(frame: Frame, settings: Optional[QualitySettings] = None) -> FrameQuality:
    """
    Score a frame by how many corner alignment marks are visible.

    Args:
        frame: The captured frame
        settings: Window geometry and thresholds (defaults if omitted)

    Returns:
        FrameQuality with the number of detected corners, a tier and the
        average dark ratio of the detected corners
    """
    cfg = settings or QualitySettings()
    width, height = frame.width, frame.height
    dark = frame.luminance < cfg.luminance_threshold

    size = int(min(width, height) * cfg.corner_fraction)
    regions = (
        (0, 0, size, size),
        (width - size, 0, width, size),
        (0, height - size, size, height),
        (width - size, height - size, width, height),
    )

    ratios = tuple(_best_window_ratio(dark, *region, cfg) for region in regions)
    detected = [r for r in ratios if r > cfg.detection_ratio]

    if len(detected) >= 3:
        tier = QualityTier.EXCELLENT
    elif len(detected) == 2:
        tier = QualityTier.GOOD
    else:
        tier = QualityTier.POOR

    confidence = sum(detected) / len(detected) if detected else 0.0

    return FrameQuality(
        corners_detected=len(detected),
        tier=tier,
        confidence=confidence,
        corner_ratios=ratios,
    )


class FrameQualityAssessor:
    """Callable assessor bound to one set of quality settings."""

    def __init__(self, settings: Optional[QualitySettings] = None):
        self.settings = settings or QualitySettings()

    def __call__(self, frame: Frame) -> FrameQuality:
        return assess_frame(frame, self.settings)
