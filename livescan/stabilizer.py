"""
Per-question debounce of noisy frame readings.

A question stays PENDING until the same reading has been seen on
confirmation_frames consecutive aligned frames, then it is graded once and
never changes again until the whole session is reset.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Mapping, Optional
import logging

from livescan.config import ScannerConfig, DEFAULT_CONFIG

logger = logging.getLogger(__name__)


class Status(str, Enum):
    PENDING = "PENDING"
    CORRECT = "CORRECT"
    INCORRECT = "INCORRECT"
    NULLIFIED = "NULLIFIED"


@dataclass
class QuestionStatus:
    """Debounce state of one question"""
    stable_reading: Optional[str] = None
    stable_count: int = 0
    status: Status = Status.PENDING

    @property
    def pending(self) -> bool:
        return self.status is Status.PENDING

    def reset(self):
        self.stable_reading = None
        self.stable_count = 0
        self.status = Status.PENDING


def detect_answer(options: Mapping[str, float], threshold: float) -> str:
    """Concatenate the options filled above threshold, in layout order"""
    return "".join(value for value, ratio in options.items() if ratio > threshold)


def grade_reading(reading: str, correct_answer: Optional[str]) -> Status:
    if len(reading) == 0:
        return Status.INCORRECT
    if len(reading) > 1:
        return Status.NULLIFIED
    if reading == correct_answer:
        return Status.CORRECT
    return Status.INCORRECT


class TemporalStabilizer:
    """Advance every pending question by one frame's reading"""

    def __init__(self, config: ScannerConfig = DEFAULT_CONFIG):
        self.config = config

    def update(self, statuses: Mapping[str, QuestionStatus],
               filling: Mapping[str, Mapping[str, float]],
               answer_key: Mapping[str, Optional[str]]) -> List[str]:
        """
        Feed one frame. Returns the ids confirmed on this frame.

        A question missing from filling reads as blank.
        """
        confirmed = []

        for question_id, state in statuses.items():
            if not state.pending:
                continue

            reading = detect_answer(filling.get(question_id, {}), self.config.marking_threshold)

            if reading == state.stable_reading:
                state.stable_count += 1
            else:
                state.stable_reading = reading
                state.stable_count = 1

            if state.stable_count >= self.config.confirmation_frames:
                state.status = grade_reading(reading, answer_key.get(question_id))
                confirmed.append(question_id)
                logger.info(f"{question_id} confirmed {state.status.value} ({reading!r})")

        return confirmed

    @staticmethod
    def reset(statuses: Mapping[str, QuestionStatus]):
        """Restart every debounce window from scratch"""
        for state in statuses.values():
            state.reset()


@dataclass
class Stats:
    correct: int = 0
    incorrect: int = 0
    nullified: int = 0


def tally(statuses: Mapping[str, QuestionStatus]) -> Stats:
    stats = Stats()
    for state in statuses.values():
        if state.status is Status.CORRECT:
            stats.correct += 1
        elif state.status is Status.INCORRECT:
            stats.incorrect += 1
        elif state.status is Status.NULLIFIED:
            stats.nullified += 1
    return stats
