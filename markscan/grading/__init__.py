"""Grading pipeline: frame quality, identity decoding, answer extraction and scoring."""

from .errors import (
    CaptureFailed,
    IdentityNotFound,
    MalformedExtraction,
    MissingAnswerKey,
    PayloadNotFound,
    ScanError,
)
from .extraction import MULTIPLE, ExtractionResult, QuestionReading, build_strategy
from .frame import Frame
from .grader import AnswerKey, ScoreResult, calculate_score
from .layout import LayoutError, SheetLayout
from .qr_scanner import IdentityDecoder, IdentityPayload, ResolvedIdentity, StudentRecord
from .quality import FrameQuality, FrameQualityAssessor, QualityTier, assess_frame
from .settings import ScanSettings, load_settings, reset_settings, save_settings


# ScanSession and ScanWatcher imported lazily to avoid loading watchdog at module import
def get_scan_watcher():
    from .scanner import ScanWatcher
    return ScanWatcher


__all__ = [
    "AnswerKey",
    "CaptureFailed",
    "ExtractionResult",
    "Frame",
    "FrameQuality",
    "FrameQualityAssessor",
    "IdentityDecoder",
    "IdentityNotFound",
    "IdentityPayload",
    "LayoutError",
    "MULTIPLE",
    "MalformedExtraction",
    "MissingAnswerKey",
    "PayloadNotFound",
    "QualityTier",
    "QuestionReading",
    "ResolvedIdentity",
    "ScanError",
    "ScanSettings",
    "ScoreResult",
    "SheetLayout",
    "StudentRecord",
    "assess_frame",
    "build_strategy",
    "calculate_score",
    "get_scan_watcher",
    "load_settings",
    "reset_settings",
    "save_settings",
]
