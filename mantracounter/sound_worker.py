"""Qt worker thread that counts repetitions from the microphone."""

from __future__ import annotations

import threading
from typing import Optional

import logging

from PySide6 import QtCore

from .constants import FRAME_SIZE, HP_FILTER_CUTOFF, MIC_SENSITIVITY, SAMPLE_RATE
from .detectors import Detector
from .session import monotonic_ms, run_detection
from .streams import SoundDeviceSource

logger = logging.getLogger(__name__)


class SoundWorker(QtCore.QThread):
    """Capture audio and feed it to a detector off the GUI thread.

    Detector state (streak, cooldown, timestamps) is only touched with
    ``_detector_lock`` held, so :meth:`reset` may be called from the GUI
    thread while the worker is running.  Listening stops when
    :meth:`stop` sets the internal event, which the frame loop polls before
    every frame.
    """

    # Emit the confidence of each counted repetition
    mantraDetected = QtCore.Signal(float)
    amplitudeChanged = QtCore.Signal(float)
    errorOccurred = QtCore.Signal(str)

    def __init__(
        self,
        detector: Detector,
        device_index: Optional[int] = None,
        *,
        channels: int = 1,
        parent: Optional[QtCore.QObject] = None,
        sample_rate: int = SAMPLE_RATE,
        frame_size: int = FRAME_SIZE,
        gain: float = MIC_SENSITIVITY,
        hp_cutoff: Optional[float] = HP_FILTER_CUTOFF,
    ) -> None:
        """Initialise the worker thread.

        Args:
            detector: Energy or pattern detector to run.
            device_index: Index of the input device to capture audio from.
            channels: Number of audio channels.
            parent: Optional Qt parent.
            sample_rate: Sampling frequency of the audio stream.
            frame_size: Number of samples per detector step.
            gain: Microphone sensitivity multiplier.
            hp_cutoff: High-pass filter cutoff frequency.
        """
        super().__init__(parent)
        self.detector = detector
        self.device_index = device_index
        self.channels = channels
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.gain = gain
        self.hp_cutoff = hp_cutoff
        self.count = 0
        self._stop_event = threading.Event()
        self._detector_lock = threading.Lock()

    # --------------------------------------------------------------
    def is_listening(self) -> bool:
        return not self._stop_event.is_set()

    def step(self, frame, now_ms: float):
        """Step the detector and report the frame level."""
        with self._detector_lock:
            event = self.detector.step(frame, now_ms)
        self.amplitudeChanged.emit(float(getattr(self.detector, "last_rms", 0.0)))
        return event

    def _on_match(self, score: float) -> None:
        self.count += 1
        self.mantraDetected.emit(score)

    # --------------------------------------------------------------
    def run(self) -> None:  # noqa: D401
        try:
            source = SoundDeviceSource(
                self.device_index,
                sample_rate=self.sample_rate,
                frame_size=self.frame_size,
                channels=self.channels,
                gain=self.gain,
                hp_cutoff=self.hp_cutoff,
            )
            with source:
                run_detection(
                    self,
                    source,
                    self._on_match,
                    self.is_listening,
                    clock=monotonic_ms,
                )
        except Exception as exc:
            logger.exception("Worker error")
            self.errorOccurred.emit(str(exc))

    def stop(self) -> None:
        self._stop_event.set()
        self.wait(2000)

    def reset(self) -> None:
        self.count = 0
        with self._detector_lock:
            self.detector.reset()


__all__ = ["SoundWorker"]
