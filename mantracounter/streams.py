"""Live microphone input for the detectors."""

from __future__ import annotations

from typing import Optional

import logging

import numpy as np
import sounddevice as sd
from scipy.signal import butter, sosfilt

from .constants import FRAME_SIZE, HP_FILTER_CUTOFF, MIC_SENSITIVITY, SAMPLE_RATE

logger = logging.getLogger(__name__)


class SoundDeviceSource:
    """Blocking frame source backed by a ``sounddevice`` input stream.

    Frames are down-mixed to mono, optionally high-pass filtered to strip
    rumble and mains hum, and scaled by ``gain``.  Use as a context manager
    or call :meth:`open` and :meth:`close` explicitly.

    Args:
        device: Input device index, ``None`` for the system default.
        sample_rate: Sampling frequency in hertz.
        frame_size: Samples per frame.
        channels: Number of channels to capture.
        gain: Multiplier applied to every sample (mic sensitivity).
        hp_cutoff: High-pass cutoff in hertz, ``None`` to disable.
    """

    def __init__(
        self,
        device: Optional[int] = None,
        *,
        sample_rate: int = SAMPLE_RATE,
        frame_size: int = FRAME_SIZE,
        channels: int = 1,
        gain: float = MIC_SENSITIVITY,
        hp_cutoff: Optional[float] = HP_FILTER_CUTOFF,
    ) -> None:
        self.device = device
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.channels = channels
        self.gain = gain
        self.stream: Optional[sd.InputStream] = None
        self.hp_sos = None
        self.hp_zi = None
        if hp_cutoff:
            self.hp_sos = butter(2, hp_cutoff, "hp", fs=sample_rate, output="sos")
            self.hp_zi = np.zeros((self.hp_sos.shape[0], 2))

    def open(self) -> "SoundDeviceSource":
        self.stream = sd.InputStream(
            device=self.device,
            channels=self.channels,
            samplerate=self.sample_rate,
            blocksize=self.frame_size,
            dtype="float32",
        )
        self.stream.start()
        return self

    def close(self) -> None:
        if self.stream is None:
            return
        try:
            self.stream.stop()
        finally:
            self.stream.close()
            self.stream = None

    def __enter__(self) -> "SoundDeviceSource":
        return self.open()

    def __exit__(self, *_) -> None:
        self.close()

    def get_frame(self) -> Optional[np.ndarray]:
        if self.stream is None:
            return None
        data, overflowed = self.stream.read(self.frame_size)
        if overflowed:
            logger.warning("Input overflow, frames were dropped")
        return self.process(data)

    def process(self, data: np.ndarray) -> np.ndarray:
        """Turn a raw ``(frames, channels)`` block into a mono frame."""
        if data.ndim == 2 and data.shape[1] > 1:
            samples = data.mean(axis=1)
        else:
            samples = data.reshape(-1)
        samples = samples.astype(np.float32)
        if self.hp_sos is not None:
            samples, self.hp_zi = sosfilt(self.hp_sos, samples, zi=self.hp_zi)
        return (samples * self.gain).astype(np.float32)


__all__ = ["SoundDeviceSource"]
