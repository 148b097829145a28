"""Silence trimming and noise-floor estimation for recordings.

:func:`trim_silence` strips the quiet lead-in and tail from a template
recording so that only the chanted phrase is kept.  :func:`calculate_noise_floor`
estimates the ambient level of a stretch of background audio and feeds
:meth:`~mantracounter.device_profile.DeviceProfile.from_noise_floor`.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .constants import (
    TRIM_LEAD_WINDOWS,
    TRIM_TAIL_WINDOWS,
    TRIM_THRESHOLD,
    WINDOW_SIZE,
)
from .envelope import extract_envelope


@dataclass(frozen=True)
class TrimResult:
    """Outcome of :func:`trim_silence`.

    Attributes:
        data: The trimmed samples.
        original_duration: Length of the input in seconds.
        trimmed_duration: Length of ``data`` in seconds.
        silence_removed: ``original_duration - trimmed_duration``.
    """

    data: np.ndarray
    original_duration: float
    trimmed_duration: float
    silence_removed: float


def calculate_noise_floor(samples: np.ndarray, window_size: int = WINDOW_SIZE) -> float:
    """Estimate the ambient noise floor of a background recording.

    The median windowed RMS is used so that the odd cough or click during
    calibration does not raise the floor.

    Parameters
    ----------
    samples:
        Audio captured while nobody is chanting.
    window_size:
        Number of samples per analysis window.

    Returns
    -------
    float
        Estimated noise floor or ``0.0`` if ``samples`` is empty.
    """

    levels = extract_envelope(np.asarray(samples).reshape(-1), window_size)
    if levels.size == 0:
        return 0.0
    return float(np.median(levels))


def trim_silence(
    samples: np.ndarray,
    sample_rate: int,
    *,
    threshold: float = TRIM_THRESHOLD,
    window_size: int = WINDOW_SIZE,
) -> TrimResult:
    """Remove leading and trailing silence from ``samples``.

    The buffer is scanned in windows of ``window_size`` samples.  The kept
    region starts one window before the first window whose RMS exceeds
    ``threshold`` and ends two windows after the start of the last such
    window, clamped to the buffer.  When no window is loud enough the
    input is returned whole.

    Parameters
    ----------
    samples:
        One-dimensional array of audio samples.
    sample_rate:
        Sampling rate in hertz, used to report durations.
    threshold:
        RMS level a window must exceed to count as active.
    window_size:
        Number of samples per analysis window.

    Returns
    -------
    TrimResult
        Trimmed samples with original, trimmed and removed durations.
    """

    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    if samples.ndim != 1:
        samples = samples.reshape(-1)

    rms_vals = extract_envelope(samples, window_size)
    active = np.flatnonzero(rms_vals > threshold)

    start_idx = 0
    end_idx = samples.size
    if active.size:
        start_idx = max(0, (int(active[0]) - TRIM_LEAD_WINDOWS) * window_size)
        end_idx = min(samples.size, (int(active[-1]) + TRIM_TAIL_WINDOWS) * window_size)

    trimmed = samples[start_idx:end_idx]
    original_duration = samples.size / sample_rate
    trimmed_duration = trimmed.size / sample_rate
    return TrimResult(
        data=trimmed,
        original_duration=original_duration,
        trimmed_duration=trimmed_duration,
        silence_removed=original_duration - trimmed_duration,
    )


__all__ = ["TrimResult", "calculate_noise_floor", "trim_silence"]
