"""Reference recording of the mantra used by pattern detection."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

import logging

import numpy as np

from .constants import TRIM_THRESHOLD, WINDOW_SIZE
from .envelope import extract_envelope
from .noise_gate import TrimResult, trim_silence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Template:
    """A trimmed recording of the mantra and its envelope.

    The envelope is always derived from ``buffer`` so it can never describe
    the untrimmed recording.

    Attributes:
        buffer: Trimmed mono samples.
        sample_rate: Sampling rate of ``buffer`` in hertz.
        envelope: Windowed RMS of ``buffer``.
        duration: Length of ``buffer`` in seconds.
    """

    buffer: np.ndarray
    sample_rate: int
    envelope: np.ndarray = field(init=False, repr=False)
    duration: float = field(init=False)

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        buffer = np.asarray(self.buffer, dtype=np.float32).reshape(-1)
        object.__setattr__(self, "buffer", buffer)
        object.__setattr__(self, "envelope", extract_envelope(buffer, WINDOW_SIZE))
        object.__setattr__(self, "duration", buffer.size / self.sample_rate)

    def __len__(self) -> int:
        return int(self.buffer.size)

    @classmethod
    def from_recording(
        cls,
        samples: np.ndarray,
        sample_rate: int,
        *,
        threshold: float = TRIM_THRESHOLD,
    ) -> tuple["Template", TrimResult]:
        """Trim ``samples`` and build a template from what remains.

        Returns:
            The template and the trim report, whose durations are useful for
            telling the user how much silence was removed.
        """

        trimmed = trim_silence(np.asarray(samples), sample_rate, threshold=threshold)
        template = cls(trimmed.data, sample_rate)
        logger.info(
            "Template: %.2fs -> %.2fs (%d windows)",
            trimmed.original_duration,
            trimmed.trimmed_duration,
            template.envelope.size,
        )
        return template, trimmed

    def save(self, path: Union[str, Path]) -> Path:
        """Store the trimmed samples as ``.npy`` alongside the sample rate."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as fh:
            np.save(fh, self.buffer)
            np.save(fh, np.array([self.sample_rate], dtype=np.int64))
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Template":
        """Load a template written by :meth:`save`."""
        with Path(path).open("rb") as fh:
            buffer = np.load(fh)
            sample_rate = int(np.load(fh)[0])
        return cls(buffer, sample_rate)


__all__ = ["Template"]
