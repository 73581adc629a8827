"""
Live grading session.

One session scans one sheet: it owns the capture device, the per-question
debounce state and a single cancellable tick loop. Every tick runs the whole
pipeline synchronously:

    frame -> anchors -> homography -> fill ratios -> debounce

When every question has been confirmed the session takes two snapshots,
releases the camera and waits for the operator to confirm or retry.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional
import json
import threading
import time
import logging

import numpy as np

from livescan.aligner import Alignment, PerspectiveAligner
from livescan.anchors import AnchorDetector
from livescan.bubbles import BubbleReader
from livescan.config import ScannerConfig, DEFAULT_CONFIG
from livescan.errors import DeviceError, LayoutError, SessionStateError
from livescan.feedback import Snapshots, take_snapshots
from livescan.geometry import Point
from livescan.layout import Layout, gradable_questions, normalize_answer_key
from livescan.stabilizer import QuestionStatus, Stats, Status, TemporalStabilizer, tally

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    SCANNING = "SCANNING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"


@dataclass
class SessionState:
    """What the operator sees while scanning"""
    phase: Phase = Phase.SCANNING
    stats: Stats = field(default_factory=Stats)
    detected_anchors: List[Point] = field(default_factory=list)
    frames_processed: int = 0

    @property
    def sheet_detected(self) -> bool:
        return len(self.detected_anchors) == 4

    @property
    def status_message(self) -> str:
        if self.phase is Phase.AWAITING_CONFIRMATION:
            return "Reading complete - confirm or retry"
        if self.sheet_detected:
            return "Sheet detected - reading answers..."
        return "Position the sheet so that all 4 anchors are visible"


@dataclass(frozen=True)
class QuestionResult:
    correct_answer: Optional[str]
    detected_answer: str
    status: Status
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correctAnswer": self.correct_answer,
            "detectedAnswer": self.detected_answer,
            "status": self.status.value,
            "confidence": self.confidence,
        }


class CorrectionResult(Mapping):
    """Read-only question id -> QuestionResult, built once on confirmation"""

    def __init__(self, results: Mapping[str, QuestionResult]):
        self._results = MappingProxyType(dict(results))

    def __getitem__(self, question_id: str) -> QuestionResult:
        return self._results[question_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __repr__(self):
        return f"CorrectionResult({dict(self._results)!r})"

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {q: r.to_dict() for q, r in self._results.items()}

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class Scheduler:
    """
    Fixed-period tick loop run in the calling thread.

    Ticks never overlap: the next one starts after the previous returns and
    the remaining period has elapsed. cancel() is the only way to stop it
    from outside; the tick itself stops it by returning False.
    """

    def __init__(self, interval: float):
        self.interval = interval
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self):
        self._cancelled.set()

    def run(self, tick: Callable[[], bool]):
        while not self._cancelled.is_set():
            started = time.monotonic()
            if not tick():
                break

            remaining = self.interval - (time.monotonic() - started)
            if remaining > 0:
                self._cancelled.wait(remaining)


ResultCallback = Callable[[CorrectionResult, Snapshots], None]
FrameCallback = Callable[[np.ndarray, SessionState], None]


class SessionController:
    """Drive the capture loop for one sheet and emit its confirmed grading"""

    def __init__(self, layout: Layout, answer_key: Mapping[str, Optional[str]], source,
                 config: ScannerConfig = DEFAULT_CONFIG,
                 on_result: Optional[ResultCallback] = None,
                 on_frame: Optional[FrameCallback] = None):
        self.layout = layout
        self.answer_key = normalize_answer_key(answer_key)
        self.source = source
        self.config = config
        self.on_result = on_result
        self.on_frame = on_frame

        self.question_ids = gradable_questions(layout, self.answer_key)
        if not self.question_ids:
            raise LayoutError("No question is both on the sheet layout and in the answer key")

        self.detector = AnchorDetector(config)
        self.aligner = PerspectiveAligner(config)
        self.reader = BubbleReader(config)
        self.stabilizer = TemporalStabilizer(config)

        # Allocated once; mutated only by the stabilizer
        self.statuses: Dict[str, QuestionStatus] = {q: QuestionStatus() for q in self.question_ids}
        self.state = SessionState()

        self.snapshots: Optional[Snapshots] = None
        self.result: Optional[CorrectionResult] = None
        self.closed = False
        self._scheduler: Optional[Scheduler] = None

    # Loop

    def scan(self) -> Optional[Snapshots]:
        """
        Acquire the camera and tick until every question is confirmed.

        Returns the snapshots, or None when stop() was called or the source
        ran out of frames first. The camera is released however this returns.
        """
        if self.closed:
            raise SessionStateError("Session is closed")
        if self.state.phase is not Phase.SCANNING:
            raise SessionStateError(f"Cannot scan while {self.state.phase.value}")

        scheduler = Scheduler(self.config.tick_interval)
        self._scheduler = scheduler
        try:
            self.source.open()
            logger.info(f"Scanning {len(self.question_ids)} questions")
            scheduler.run(self.tick)
        finally:
            self._scheduler = None
            self.source.release()

        return self.snapshots

    def tick(self) -> bool:
        frame = self.source.read()
        if frame is None:
            logger.info("Frame source exhausted before grading completed")
            return False

        self.process_frame(frame)
        if self.on_frame is not None:
            self.on_frame(frame, self.state)

        return self.state.phase is Phase.SCANNING

    def stop(self):
        """
        Cancel the loop; safe to call from another thread.

        A running loop releases the camera itself once the tick in flight
        returns. With no loop running the camera is released here.
        """
        scheduler = self._scheduler
        if scheduler is not None:
            scheduler.cancel()
            return
        self.source.release()

    # Pipeline

    def locate(self, frame: np.ndarray) -> Optional[Alignment]:
        anchors = self.detector.find_anchors(frame)
        if anchors is None:
            return None
        return self.aligner.align(anchors, self.layout)

    def process_frame(self, frame: np.ndarray) -> SessionState:
        """Run one frame through the pipeline and advance the debounce state"""
        if self.state.phase is not Phase.SCANNING:
            return self.state

        self.state.frames_processed += 1

        try:
            alignment = self.locate(frame)
            filling = None
            if alignment is not None:
                filling = self.reader.read(
                    alignment.warp(frame), self.layout, alignment.content_offset,
                    scale=alignment.scale, questions=self.question_ids,
                )
        except DeviceError:
            raise
        except Exception:
            logger.debug("Frame analysis failed, treating as no signal", exc_info=True)
            alignment, filling = None, None

        if alignment is None:
            self.lose_alignment()
            return self.state

        self.state.detected_anchors = list(alignment.detected)
        self.stabilizer.update(self.statuses, filling, self.answer_key)
        self.state.stats = tally(self.statuses)

        if all(not s.pending for s in self.statuses.values()):
            self.complete(frame, alignment)

        return self.state

    def lose_alignment(self):
        """Anchors not visible: every question starts its window again"""
        self.stabilizer.reset(self.statuses)
        self.state.stats = Stats()
        self.state.detected_anchors = []

    def complete(self, frame: np.ndarray, alignment: Alignment):
        self.snapshots = take_snapshots(
            frame, self.layout, self.statuses, self.answer_key,
            self.state.stats, self.state.detected_anchors, alignment,
        )
        self.state.phase = Phase.AWAITING_CONFIRMATION
        stats = self.state.stats
        logger.info(
            f"Reading stabilized after {self.state.frames_processed} frames: "
            f"{stats.correct} correct, {stats.incorrect} incorrect, {stats.nullified} nullified"
        )

    # Operator actions

    def reset(self):
        """Discard partial readings while scanning"""
        if self.state.phase is not Phase.SCANNING:
            raise SessionStateError("Reset is only possible while scanning")
        self.lose_alignment()

    def confirm(self) -> CorrectionResult:
        if self.state.phase is not Phase.AWAITING_CONFIRMATION:
            raise SessionStateError("Nothing to confirm yet")

        frames = self.config.confirmation_frames
        results = {}
        for question_id, state in self.statuses.items():
            results[question_id] = QuestionResult(
                correct_answer=self.answer_key.get(question_id),
                detected_answer=state.stable_reading or "",
                status=state.status,
                confidence=min(state.stable_count, frames) / frames,
            )

        self.result = CorrectionResult(results)
        logger.info(f"Correction confirmed for {len(results)} questions")

        if self.on_result is not None:
            self.on_result(self.result, self.snapshots)

        self.stop()
        self.closed = True
        return self.result

    def retry(self):
        if self.state.phase is not Phase.AWAITING_CONFIRMATION:
            raise SessionStateError("Nothing to retry yet")

        self.snapshots = None
        self.lose_alignment()
        self.state.phase = Phase.SCANNING
        logger.info("Correction discarded, scanning again")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
