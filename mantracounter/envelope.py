"""Amplitude envelopes and the helpers used to compare them.

An envelope is the sequence of RMS levels of consecutive, non-overlapping
windows of an audio buffer.  It is a coarse signature of how loudness
evolves over a phrase and is the basis for every comparison made by
:mod:`mantracounter.sample_matcher`.
"""

from __future__ import annotations

import numpy as np

from .constants import WINDOW_SIZE


def frame_rms(samples: np.ndarray) -> float:
    """Return the RMS level of ``samples`` (``0.0`` when empty)."""
    samples = np.asarray(samples, dtype=np.float64).reshape(-1)
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples**2)))


def extract_envelope(samples: np.ndarray, window_size: int = WINDOW_SIZE) -> np.ndarray:
    """Reduce ``samples`` to one RMS value per window.

    Args:
        samples: One-dimensional array of audio samples.
        window_size: Number of samples per window.  The final window may be
            shorter when the buffer length is not a multiple of it.

    Returns:
        Array of ``ceil(len(samples) / window_size)`` non-negative floats.
        An empty input yields an empty envelope.
    """

    if window_size < 1:
        raise ValueError(f"window_size must be positive, got {window_size}")
    samples = np.asarray(samples, dtype=np.float64).reshape(-1)
    if samples.size == 0:
        return np.zeros(0, dtype=np.float64)

    starts = np.arange(0, samples.size, window_size)
    counts = np.diff(np.append(starts, samples.size))
    sums = np.add.reduceat(samples**2, starts)
    return np.sqrt(sums / counts)


def resample(seq: np.ndarray, target_length: int) -> np.ndarray:
    """Linearly interpolate ``seq`` to exactly ``target_length`` points.

    The first and last values are preserved and a sequence that already
    has the requested length is returned unchanged.
    """

    seq = np.asarray(seq, dtype=np.float64).reshape(-1)
    if target_length < 0:
        raise ValueError(f"target_length must not be negative, got {target_length}")
    if seq.size == target_length:
        return seq
    if target_length == 0:
        return np.zeros(0, dtype=np.float64)
    if seq.size == 0:
        return np.zeros(target_length, dtype=np.float64)
    if target_length == 1:
        return seq[:1].copy()

    ratio = (seq.size - 1) / (target_length - 1)
    positions = np.arange(target_length) * ratio
    # np.interp clamps positions past the end to the last element
    return np.interp(positions, np.arange(seq.size), seq)


def normalize(seq: np.ndarray) -> np.ndarray:
    """Rescale ``seq`` linearly so its minimum is 0 and its maximum 1.

    A constant sequence has no range to stretch and maps to all zeros.
    """

    seq = np.asarray(seq, dtype=np.float64).reshape(-1)
    if seq.size == 0:
        return seq
    lo = float(seq.min())
    span = float(seq.max()) - lo
    if span == 0.0:
        return np.zeros_like(seq)
    return (seq - lo) / span


__all__ = ["frame_rms", "extract_envelope", "resample", "normalize"]
