"""Capture sessions, the frame quality monitor and the scans folder watcher."""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol

from watchdog.events import FileCreatedEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..config import ASSESSOR_INTERVAL, MIN_CAPTURE_INTERVAL, SCAN_SETTLE_DELAY, SCANS_FOLDER
from .errors import CaptureFailed, ScanError
from .extraction import MULTIPLE, ExtractionResult, build_strategy
from .frame import Frame
from .grader import AnswerKey, ScoreResult, calculate_score
from .layout import SheetLayout
from .qr_scanner import IdentityDecoder, IdentityPayload, ResolvedIdentity, StudentRecord
from .quality import FrameQuality, FrameQualityAssessor
from .settings import ScanSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    """One graded sheet, ready for the result store."""

    quiz_id: Optional[str]
    student_id: int
    external_id: str
    student_name: str
    score: float
    percentage: int
    answers: tuple
    correct_answers: int
    wrong_answers: int
    verified: bool = True
    confidence: float = 0.0
    strategy: str = ""


@dataclass(frozen=True)
class CaptureOutcome:
    """What happened to one accepted capture."""

    ok: bool
    result: Optional[ScanResult] = None
    error: Optional[ScanError] = None
    identity: Optional[ResolvedIdentity] = None
    payload: Optional[IdentityPayload] = None
    extraction: Optional[ExtractionResult] = field(default=None, repr=False)
    score: Optional[ScoreResult] = field(default=None, repr=False)

    @property
    def message(self) -> str:
        if not self.ok:
            return str(self.error)
        return f"{self.result.student_name}: {self.result.score:g}/{self.score.max_score:g} ({self.result.percentage}%)"


class ResultStore(Protocol):
    def add(self, result: ScanResult) -> None:
        ...


class MemoryResultStore:
    """Keeps results in a list; used for dry runs and tests."""

    def __init__(self):
        self.results: list[ScanResult] = []

    def add(self, result: ScanResult) -> None:
        self.results.append(result)


class ScanSession:
    """
    One armed capture pipeline for a single quiz.

    A capture runs identity decoding, answer extraction, scoring and storage
    strictly in sequence. Only one capture may be in flight, and accepted
    captures are at least ``min_capture_interval`` seconds apart.
    """

    def __init__(
        self,
        answer_key: AnswerKey,
        directory: Iterable[StudentRecord],
        settings: Optional[ScanSettings] = None,
        store: Optional[ResultStore] = None,
        decoder: Optional[IdentityDecoder] = None,
        clock: Callable[[], float] = time.monotonic,
        min_capture_interval: float = MIN_CAPTURE_INTERVAL,
        on_notification: Optional[Callable[[CaptureOutcome], None]] = None,
    ):
        """
        Arm a session.

        Args:
            answer_key: Answer key of the quiz being scanned
            directory: Student directory used to resolve decoded identities
            settings: Scan settings, fixed for the lifetime of the session
            store: Where successful results go (in-memory list by default)
            decoder: Identity decoder (pyzbar-backed by default)
            clock: Monotonic time source in seconds
            min_capture_interval: Minimum seconds between accepted captures
            on_notification: Called with every capture outcome, failed or not

        Raises:
            LayoutError: If the quiz does not fit the sheet template.
        """
        self.answer_key = answer_key
        self.directory = list(directory)
        self.settings = settings or ScanSettings()
        self.layout = SheetLayout.for_questions(answer_key.total_questions)
        self.strategy = build_strategy(self.settings)
        self.store = store if store is not None else MemoryResultStore()
        self.decoder = decoder or IdentityDecoder(layout=self.layout)
        self.clock = clock
        self.min_capture_interval = min_capture_interval
        self.on_notification = on_notification

        self._state_lock = threading.Lock()
        self._processing = False
        self._last_capture: Optional[float] = None

        self.captured = 0
        self.completed = 0
        self.errors = 0
        self.rejected = 0

    @property
    def quiz_id(self) -> Optional[str]:
        return self.answer_key.quiz_id

    @property
    def is_processing(self) -> bool:
        return self._processing

    def seconds_until_ready(self) -> float:
        """Seconds left before the next capture would be accepted (0 when idle and ready)."""
        with self._state_lock:
            if self._last_capture is None:
                return 0.0
            return max(0.0, self.min_capture_interval - (self.clock() - self._last_capture))

    def when_idle(self, func: Callable, *args):
        """Run ``func`` under the state lock unless a capture is in flight; None when skipped."""
        with self._state_lock:
            if self._processing:
                return None
            return func(*args)

    def _begin(self) -> bool:
        with self._state_lock:
            if self._processing:
                logger.debug("Capture rejected: another capture is being processed")
                self.rejected += 1
                return False
            now = self.clock()
            if self._last_capture is not None and now - self._last_capture < self.min_capture_interval:
                logger.debug("Capture rejected: %.2fs since the last capture",
                             now - self._last_capture)
                self.rejected += 1
                return False
            self._processing = True
            self._last_capture = now
            return True

    def capture(self, frame: Frame) -> Optional[CaptureOutcome]:
        """
        Grade one frame.

        Returns:
            CaptureOutcome, or None when the capture was rejected because
            another one is in flight or the previous one was too recent
        """
        if not self._begin():
            return None

        try:
            outcome = self._process(frame)
        finally:
            with self._state_lock:
                self._processing = False

        if self.on_notification:
            self.on_notification(outcome)
        return outcome

    def _process(self, frame: Frame) -> CaptureOutcome:
        self.captured += 1

        try:
            identity, payload = self.decoder.identify(frame, self.directory)
            if payload.quiz_id and self.quiz_id and payload.quiz_id != self.quiz_id:
                logger.warning("Sheet of %s belongs to quiz '%s', scanning it for quiz '%s'",
                               identity.display_name, payload.quiz_id, self.quiz_id)

            extraction = self.strategy.extract(frame, self.layout)
            score = calculate_score(extraction.answers, self.answer_key,
                                    strict=self.settings.general.strict_scoring)

            result = ScanResult(
                quiz_id=self.quiz_id,
                student_id=identity.id,
                external_id=identity.external_id,
                student_name=identity.display_name,
                score=score.total_score,
                percentage=score.percentage,
                answers=tuple("" if a == MULTIPLE else a for a in extraction.answers),
                correct_answers=score.correct_count,
                wrong_answers=score.wrong_count,
                verified=True,
                confidence=round(extraction.confidence, 1),
                strategy=extraction.strategy,
            )
            self.store.add(result)
        except ScanError as e:
            self.errors += 1
            logger.warning("Capture failed: %s", e)
            return CaptureOutcome(ok=False, error=e)
        except Exception as e:
            # The session stays armed; the next capture starts from scratch
            self.errors += 1
            logger.exception("Unexpected error while processing a capture")
            return CaptureOutcome(ok=False, error=CaptureFailed(e))

        self.completed += 1

        logger.info("Scored %s (%s): %s/%s, %d%%", result.student_name, result.external_id,
                    score.total_score, score.max_score, score.percentage)

        return CaptureOutcome(
            ok=True,
            result=result,
            identity=identity,
            payload=payload,
            extraction=extraction,
            score=score,
        )


class FrameQualityMonitor:
    """Run the quality assessor periodically on the most recent frame."""

    def __init__(
        self,
        session: ScanSession,
        frame_source: Callable[[], Optional[Frame]],
        assessor: Optional[Callable[[Frame], FrameQuality]] = None,
        interval: float = ASSESSOR_INTERVAL,
        on_quality: Optional[Callable[[FrameQuality], None]] = None,
    ):
        self.session = session
        self.frame_source = frame_source
        self.assessor = assessor or FrameQualityAssessor(session.settings.quality)
        self.interval = interval
        self.on_quality = on_quality

        self.latest_quality: Optional[FrameQuality] = None
        self.skipped = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> Optional[FrameQuality]:
        """Assess the current frame once; skipped while a capture is processing."""
        frame = self.frame_source()
        if frame is None:
            return None

        quality = self.session.when_idle(self.assessor, frame)
        if quality is None:
            self.skipped += 1
            return None

        self.latest_quality = quality
        if self.on_quality:
            self.on_quality(quality)
        return quality

    def _run(self):
        while not self._stop.wait(self.interval):
            self.tick()

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="frame-quality", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread:
            self._thread.join()
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class ScanHandler(FileSystemEventHandler):
    """Handle new scan files in the watched folder."""

    SUPPORTED_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.tiff', '.tif', '.bmp'}

    def __init__(self, on_scan_detected: Callable[[Path], None], settle_delay: float = SCAN_SETTLE_DELAY):
        """
        Initialize the handler.

        Args:
            on_scan_detected: Callback function(scan_path) called for each new image
            settle_delay: Seconds to wait for the file to be fully written
        """
        self.on_scan_detected = on_scan_detected
        self.settle_delay = settle_delay

    def on_created(self, event: FileCreatedEvent):
        """Handle file creation event."""
        if event.is_directory:
            return

        file_path = Path(event.src_path)

        if file_path.suffix.lower() not in self.SUPPORTED_EXTENSIONS:
            return

        if self.settle_delay:
            time.sleep(self.settle_delay)

        logger.info("Scan detected: %s", file_path.name)
        self.on_scan_detected(file_path)


class ScanWatcher:
    """Watch a folder for new scans and feed them to a scan session."""

    def __init__(
        self,
        session: ScanSession,
        on_outcome: Optional[Callable[[Path, Optional[CaptureOutcome]], None]] = None,
        on_quality: Optional[Callable[[FrameQuality], None]] = None,
        settle_delay: float = SCAN_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the watcher.

        Args:
            session: Armed session that grades the scans
            on_outcome: Callback(scan_path, outcome) after each scan
            on_quality: Callback for quality assessments of the latest scan
            settle_delay: Seconds to wait after a file appears
            sleep: Used to wait out the inter-capture interval
        """
        self.session = session
        self.on_outcome = on_outcome
        self.settle_delay = settle_delay
        self.sleep = sleep
        self.latest_frame: Optional[Frame] = None
        self.monitor = FrameQualityMonitor(session, lambda: self.latest_frame, on_quality=on_quality)
        self.observer = None

    def handle_scan(self, scan_path: Path) -> Optional[CaptureOutcome]:
        """Load one scan and submit it to the session."""
        try:
            frame = Frame.load(scan_path)
        except (OSError, ValueError) as e:
            logger.error("Could not read scan %s: %s", scan_path, e)
            return None

        self.latest_frame = frame

        wait = self.session.seconds_until_ready()
        if wait > 0:
            logger.debug("Waiting %.2fs before capturing %s", wait, scan_path.name)
            self.sleep(wait)

        outcome = self.session.capture(frame)
        if outcome is None:
            logger.warning("Scan %s was not captured: session busy", scan_path.name)

        if self.on_outcome:
            self.on_outcome(scan_path, outcome)
        return outcome

    def start(self, folder: Path = None):
        """Start watching the folder."""
        folder = Path(folder or SCANS_FOLDER)
        folder.mkdir(parents=True, exist_ok=True)

        handler = ScanHandler(self.handle_scan, self.settle_delay)
        self.observer = Observer()
        self.observer.schedule(handler, str(folder), recursive=False)
        self.observer.start()
        self.monitor.start()

        logger.info("Watching for scans in: %s", folder)

    def stop(self):
        """Stop watching."""
        self.monitor.stop()
        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

    def run_forever(self, folder: Path = None):
        """Run the watcher until interrupted."""
        self.start(folder)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()
