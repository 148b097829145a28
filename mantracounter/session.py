"""Frame loop that drives a detector from an audio source."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

import logging
import time

import numpy as np

from .constants import FRAME_SIZE, SAMPLE_RATE
from .detectors import Detector

logger = logging.getLogger(__name__)

MatchSink = Callable[[float], None]


class AudioSource(Protocol):
    """Supplier of fixed-size mono frames."""

    sample_rate: int
    frame_size: int

    def get_frame(self) -> Optional[np.ndarray]:
        """Return the next frame, or ``None`` once the source is exhausted."""
        ...


class ArraySource:
    """Replay a recorded buffer frame by frame.

    The source keeps a virtual clock advanced by the duration of each frame
    handed out, so offline replays see the same timing as live capture.
    """

    def __init__(
        self,
        samples: np.ndarray,
        sample_rate: int = SAMPLE_RATE,
        frame_size: int = FRAME_SIZE,
    ) -> None:
        if frame_size < 1:
            raise ValueError(f"frame_size must be positive, got {frame_size}")
        self.samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self._pos = 0

    def get_frame(self) -> Optional[np.ndarray]:
        if self._pos >= self.samples.size:
            return None
        frame = self.samples[self._pos:self._pos + self.frame_size]
        self._pos += self.frame_size
        return frame

    def clock(self) -> float:
        """Milliseconds of audio handed out so far."""
        return min(self._pos, self.samples.size) * 1000.0 / self.sample_rate


class MatchCounter:
    """Simple match sink that keeps a running count."""

    def __init__(self) -> None:
        self.count = 0
        self.scores: list[float] = []

    def __call__(self, score: float) -> None:
        self.count += 1
        self.scores.append(score)
        logger.info("Count: %d (score %.2f)", self.count, score)

    def increment(self) -> None:
        """Count a repetition by hand."""
        self(1.0)

    def reset(self) -> None:
        self.count = 0
        self.scores.clear()


def monotonic_ms() -> float:
    """Default clock for live sessions."""
    return time.monotonic() * 1000.0


def run_detection(
    detector: Detector,
    source: AudioSource,
    on_match: MatchSink,
    is_listening: Callable[[], bool],
    *,
    clock: Callable[[], float] = monotonic_ms,
) -> int:
    """Step ``detector`` with frames from ``source`` until told to stop.

    ``is_listening`` is polled before every frame; the loop also ends when
    the source runs dry.  Exceptions raised by ``on_match`` are logged and
    swallowed so a faulty sink never interrupts detection.

    Returns:
        Number of matches delivered to ``on_match``.
    """

    matches = 0
    while is_listening():
        frame = source.get_frame()
        if frame is None:
            break
        event = detector.step(frame, clock())
        if event is None:
            continue
        matches += 1
        try:
            on_match(event.score)
        except Exception:
            logger.exception("Match handler failed")
    return matches


__all__ = [
    "AudioSource",
    "ArraySource",
    "MatchCounter",
    "MatchSink",
    "monotonic_ms",
    "run_detection",
]
