"""Envelope similarity scoring and template capture."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import logging
import threading

import numpy as np

from .constants import (
    ENERGY_FLOOR,
    FRAME_SIZE,
    MIN_ENVELOPE_WINDOWS,
    SAMPLE_RATE,
    SHAPE_LENGTH,
)
from .device_profile import DESKTOP
from .envelope import frame_rms, normalize, resample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimilarityDiagnostics:
    """Breakdown of a similarity score for calibration tooling.

    Attributes:
        similarity: The score :func:`compute_similarity` returns.
        shape: ``1 - mean(|a - b|)`` over the normalised fixed-length shapes.
        cosine: Cosine similarity of the resampled, unnormalised envelopes.
        correlation: Pearson correlation of both envelopes stretched to the
            longer of the two lengths.
        energy_ratio: Ratio of the smaller to the larger mean level.
        duration_ratio: Ratio of the shorter to the longer envelope length.
        template_length: Number of windows in the first envelope.
        sample_length: Number of windows in the second envelope.
        error: Set when the comparison could not be made.
    """

    similarity: float
    shape: float = 0.0
    cosine: float = 0.0
    correlation: float = 0.0
    energy_ratio: float = 0.0
    duration_ratio: float = 0.0
    template_length: int = 0
    sample_length: int = 0
    error: Optional[str] = None


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Return the cosine similarity between ``a`` and ``b``."""
    if a.size == 0 or b.size == 0:
        return 0.0
    n = min(len(a), len(b))
    a = a[:n]
    b = b[:n]
    a_norm = float(np.linalg.norm(a))
    b_norm = float(np.linalg.norm(b))
    if a_norm == 0.0 or b_norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / (a_norm * b_norm))


def _shape_cosine(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of the normalised fixed-length shapes."""
    shape_a = normalize(resample(a, SHAPE_LENGTH))
    shape_b = normalize(resample(b, SHAPE_LENGTH))
    flat_a = not shape_a.any()
    flat_b = not shape_b.any()
    # Two constant envelopes share the same (flat) shape.
    if flat_a and flat_b:
        return 1.0
    return cosine_similarity(shape_a, shape_b)


def energy_ratio(a: np.ndarray, b: np.ndarray) -> float:
    """Return ``min(mean_a, mean_b) / max(mean_a, mean_b)``.

    The mean of ``b`` is floored at :data:`~mantracounter.constants.ENERGY_FLOOR`
    in the denominator so silence on both sides yields ``0.0``.
    """

    mean_a = float(np.mean(a)) if a.size else 0.0
    mean_b = float(np.mean(b)) if b.size else 0.0
    denominator = max(mean_a, mean_b or ENERGY_FLOOR)
    if denominator <= 0.0:
        return 0.0
    return min(mean_a, mean_b) / denominator


def _score(a: np.ndarray, b: np.ndarray, energy_gate: float) -> tuple[float, float, float]:
    """Return ``(similarity, shape_cosine, energy_ratio)``."""
    ratio = energy_ratio(a, b)
    # Quiet noise can mimic the template's shape; treat large level
    # differences as noise and report the ratio itself.
    if ratio < energy_gate:
        return ratio, 0.0, ratio
    shape = _shape_cosine(a, b)
    similarity = shape * (0.7 + 0.3 * ratio)
    return float(min(1.0, max(0.0, similarity))), shape, ratio


def compute_similarity(
    envelope_a: np.ndarray,
    envelope_b: np.ndarray,
    *,
    energy_gate: float = DESKTOP.energy_gate_threshold,
) -> float:
    """Return a confidence in ``[0, 1]`` that two envelopes match.

    Both envelopes are stretched to a fixed length and normalised so the
    shape comparison ignores pace and absolute level.  The cosine of the
    shapes is then weighted by how close the two mean levels are, and
    comparisons whose energy ratio falls below ``energy_gate`` score the
    ratio itself.

    Args:
        envelope_a: Reference envelope, usually the template's.
        envelope_b: Envelope of the audio under test.
        energy_gate: Energy ratio below which the comparison is treated as
            noise.

    Returns:
        Similarity score.  ``0.0`` when either envelope has fewer than
        three windows.
    """

    a = np.asarray(envelope_a, dtype=np.float64).reshape(-1)
    b = np.asarray(envelope_b, dtype=np.float64).reshape(-1)
    if a.size < MIN_ENVELOPE_WINDOWS or b.size < MIN_ENVELOPE_WINDOWS:
        return 0.0
    similarity, _, _ = _score(a, b, energy_gate)
    return similarity


def _shape_difference(a: np.ndarray, b: np.ndarray) -> float:
    shape_a = normalize(resample(a, SHAPE_LENGTH))
    shape_b = normalize(resample(b, SHAPE_LENGTH))
    return max(0.0, 1.0 - float(np.mean(np.abs(shape_a - shape_b))))


def _resampled_correlation(a: np.ndarray, b: np.ndarray) -> float:
    length = max(a.size, b.size)
    norm_a = normalize(resample(a, length))
    norm_b = normalize(resample(b, length))
    diff_a = norm_a - norm_a.mean()
    diff_b = norm_b - norm_b.mean()
    denom = float(np.sqrt(np.sum(diff_a**2) * np.sum(diff_b**2)))
    if denom == 0.0:
        return 0.0
    return float(np.sum(diff_a * diff_b) / denom)


def similarity_diagnostics(
    envelope_a: np.ndarray,
    envelope_b: np.ndarray,
    *,
    energy_gate: float = DESKTOP.energy_gate_threshold,
) -> SimilarityDiagnostics:
    """Return :func:`compute_similarity` along with its component scores."""

    a = np.asarray(envelope_a, dtype=np.float64).reshape(-1)
    b = np.asarray(envelope_b, dtype=np.float64).reshape(-1)
    if a.size < MIN_ENVELOPE_WINDOWS or b.size < MIN_ENVELOPE_WINDOWS:
        return SimilarityDiagnostics(
            similarity=0.0,
            template_length=int(a.size),
            sample_length=int(b.size),
            error="Audio too short",
        )

    similarity, _, ratio = _score(a, b, energy_gate)
    return SimilarityDiagnostics(
        similarity=similarity,
        shape=_shape_difference(a, b),
        cosine=cosine_similarity(resample(a, SHAPE_LENGTH), resample(b, SHAPE_LENGTH)),
        correlation=_resampled_correlation(a, b),
        energy_ratio=ratio,
        duration_ratio=min(a.size, b.size) / max(a.size, b.size),
        template_length=int(a.size),
        sample_length=int(b.size),
    )


def record_until_silence(
    device_index: Optional[int] = None,
    *,
    sample_rate: int = SAMPLE_RATE,
    hop_size: int = FRAME_SIZE,
    threshold: float = 0.01,
    silence_duration: float = 1.0,
    max_duration: float = 10.0,
    channels: int = 1,
    stop_event: Optional["threading.Event"] = None,
) -> np.ndarray:
    """Record audio until a period of silence follows the phrase.

    Leading silence does not stop the recording; only silence after some
    audio above ``threshold`` has been heard does.

    Args:
        device_index: Index of the audio input device, ``None`` for the
            system default.
        sample_rate: Sampling rate of the device in Hertz.
        hop_size: Number of samples read per iteration.
        threshold: RMS amplitude below which audio is considered silent.
        silence_duration: Consecutive seconds of silence required to stop.
        max_duration: Maximum length of the recording in seconds.
        channels: Number of input channels to record.
        stop_event: Optional event that, when set, aborts recording early.

    Returns:
        Recorded mono samples.  An empty array is returned if no audio was
        captured.
    """
    import sounddevice as sd

    frames: list[np.ndarray] = []
    recorded = 0
    silent = 0
    heard = False
    required = int(silence_duration * sample_rate)
    limit = int(max_duration * sample_rate)
    with sd.InputStream(
        device=device_index,
        channels=channels,
        samplerate=sample_rate,
        blocksize=hop_size,
        dtype="float32",
    ) as stream:
        while recorded < limit:
            if stop_event and stop_event.is_set():
                break
            data, overflowed = stream.read(hop_size)
            if overflowed:
                logger.warning("Input overflow while recording")
            if data.ndim == 2 and data.shape[1] > 1:
                block = data.mean(axis=1)
            else:
                block = data.reshape(-1)
            frames.append(block)
            recorded += len(block)
            if frame_rms(block) < threshold:
                silent += len(block)
                if heard and silent >= required:
                    break
            else:
                heard = True
                silent = 0
    if frames:
        return np.concatenate(frames)
    return np.array([], dtype=np.float32)


__all__ = [
    "SimilarityDiagnostics",
    "cosine_similarity",
    "energy_ratio",
    "compute_similarity",
    "similarity_diagnostics",
    "record_until_silence",
]
