"""Real-time repetition detectors.

Both detectors expose the same pull-based interface: the host calls
:meth:`Detector.step` once per captured audio frame with the current
wall-clock time in milliseconds, and receives a :class:`MatchEvent` when a
repetition has been confirmed.  All timing (debounce, cooldown, silence
durations) is derived from the timestamps passed in, so a detector's
behaviour is a pure function of its state, the frame and the time.

A detector instance is not thread-safe.  It must be stepped from a single
thread, which is what :func:`mantracounter.session.run_detection` and
:class:`mantracounter.sound_worker.SoundWorker` do.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

import logging

import numpy as np

from .constants import (
    CHECK_INTERVAL,
    DEBOUNCE_TIME_MS,
    ENERGY_DEBOUNCE_MS,
    ENERGY_HISTORY_SIZE,
    MATCH_COOLDOWN_MS,
    MIN_CHANT_DURATION_MS,
    MIN_ENVELOPE_WINDOWS,
    MIN_SILENCE_DURATION_MS,
    SIMILARITY_THRESHOLD,
    TRANSITION_DROP,
    TRANSITION_MIN_HISTORY,
)
from .device_profile import DESKTOP, DeviceProfile
from .envelope import extract_envelope, frame_rms
from .ring_buffer import SlidingAudioBuffer
from .sample_matcher import compute_similarity
from .template import Template

logger = logging.getLogger(__name__)

ListeningPredicate = Callable[[], bool]


@dataclass(frozen=True)
class MatchEvent:
    """A confirmed repetition.

    Attributes:
        score: Confidence in ``[0, 1]``.
        timestamp_ms: Time of the frame that confirmed the match.
    """

    score: float
    timestamp_ms: float


@dataclass(frozen=True)
class DetectionSettings:
    """User tunable settings for pattern detection.

    Attributes:
        similarity_threshold: Minimum score for a check to extend the streak.
        debounce_time: Minimum gap between counted matches in milliseconds.
        match_cooldown: Lockout after a counted match in milliseconds.
    """

    similarity_threshold: float = SIMILARITY_THRESHOLD
    debounce_time: float = DEBOUNCE_TIME_MS
    match_cooldown: float = MATCH_COOLDOWN_MS

    def __post_init__(self) -> None:
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError(
                f"similarity_threshold must be within [0, 1], got {self.similarity_threshold}"
            )
        if self.debounce_time < 0:
            raise ValueError(f"debounce_time must not be negative, got {self.debounce_time}")
        if self.match_cooldown < 0:
            raise ValueError(f"match_cooldown must not be negative, got {self.match_cooldown}")


class Detector(Protocol):
    """Interface shared by the detection modes."""

    def step(self, frame: np.ndarray, now_ms: float) -> Optional[MatchEvent]:
        """Consume one audio frame and return a match if one was confirmed."""
        ...

    def reset(self) -> None:
        """Return to the initial state."""
        ...


class EnergyState(Enum):
    """States of :class:`EnergyDetector`."""

    WAITING = "waiting"
    CHANTING = "chanting"


class EnergyDetector:
    """Count a repetition each time chanting is followed by a breath.

    The detector waits for a loud frame, then follows the chant until the
    level drops to near silence.  A repetition is counted once the silence
    has lasted ``min_silence_ms``, provided the chant itself lasted at least
    ``min_chant_ms`` and contained at least one genuinely loud frame.
    Frames that are merely quieter (above ``transition_threshold``) keep
    the chant going; frames between the transition and silence thresholds
    start the silence timer without being able to complete it.

    No template is needed, so any sound followed by a pause is counted.

    Args:
        profile: Device thresholds.
        min_chant_ms: Minimum chant length before a pause counts.
        min_silence_ms: Length of the pause that ends a repetition.
        debounce_ms: Time after a count during which frames are ignored.
        is_listening: Optional predicate polled at the start of every step;
            when it returns ``False`` the step does nothing.
    """

    def __init__(
        self,
        profile: DeviceProfile = DESKTOP,
        *,
        min_chant_ms: float = MIN_CHANT_DURATION_MS,
        min_silence_ms: float = MIN_SILENCE_DURATION_MS,
        debounce_ms: float = ENERGY_DEBOUNCE_MS,
        is_listening: Optional[ListeningPredicate] = None,
    ) -> None:
        self.profile = profile
        self.min_chant_ms = min_chant_ms
        self.min_silence_ms = min_silence_ms
        self.debounce_ms = debounce_ms
        self.is_listening = is_listening
        self.last_rms = 0.0
        self.reset()

    def reset(self) -> None:
        self.state = EnergyState.WAITING
        self._chant_start: Optional[float] = None
        self._silence_start: Optional[float] = None
        self._last_count: Optional[float] = None
        self._had_loud = False

    def step(self, frame: np.ndarray, now_ms: float) -> Optional[MatchEvent]:
        if self.is_listening is not None and not self.is_listening():
            return None

        rms = frame_rms(frame)
        self.last_rms = rms

        if self._last_count is not None and now_ms - self._last_count < self.debounce_ms:
            return None

        profile = self.profile
        if self.state is EnergyState.WAITING:
            if rms > profile.loud_threshold:
                self.state = EnergyState.CHANTING
                self._chant_start = now_ms
                self._silence_start = None
                self._had_loud = True
                logger.debug("Chant started (rms: %.4f)", rms)
            return None

        if rms > profile.loud_threshold:
            self._silence_start = None
            self._had_loud = True
            return None
        if rms > profile.transition_threshold:
            self._silence_start = None
            return None
        if self._silence_start is None:
            self._silence_start = now_ms
        if rms > profile.silence_threshold:
            return None

        silence_ms = now_ms - self._silence_start
        chant_ms = self._silence_start - self._chant_start
        if (
            silence_ms >= self.min_silence_ms
            and chant_ms >= self.min_chant_ms
            and self._had_loud
        ):
            logger.info(
                "Chant completed (%.0fms chant, %.0fms silence)", chant_ms, silence_ms
            )
            self.reset()
            self._last_count = now_ms
            return MatchEvent(score=1.0, timestamp_ms=now_ms)
        return None


class PatternDetector:
    """Count repetitions that sound like a recorded template.

    Live audio is kept in a ring buffer twice as long as the template.
    Every ``check_interval`` frames, if the current frame is loud enough and
    the voice is not trailing off, the trailing window as long as the
    template is reduced to an envelope and scored against the template's.

    A score at or above the threshold extends the match streak; a lower
    score shortens it by one.  Once the streak reaches the profile's
    ``min_match_streak`` and at least ``debounce_time`` has passed since the
    previous match, a :class:`MatchEvent` is returned, the streak is cleared
    and checks are ignored for ``match_cooldown`` milliseconds.

    Args:
        template: Reference recording.
        settings: Threshold, debounce and cooldown.
        profile: Device thresholds.
        check_interval: Frames between similarity checks.
        history_size: Number of recent frame levels kept for transition
            detection.
        is_listening: Optional predicate polled at the start of every step.
    """

    def __init__(
        self,
        template: Template,
        settings: Optional[DetectionSettings] = None,
        profile: DeviceProfile = DESKTOP,
        *,
        check_interval: int = CHECK_INTERVAL,
        history_size: int = ENERGY_HISTORY_SIZE,
        is_listening: Optional[ListeningPredicate] = None,
    ) -> None:
        if template.envelope.size < MIN_ENVELOPE_WINDOWS:
            raise ValueError(
                f"Pattern detection needs a template of at least {MIN_ENVELOPE_WINDOWS} "
                f"windows, got {template.envelope.size}"
            )
        if check_interval < 1:
            raise ValueError(f"check_interval must be positive, got {check_interval}")
        self.template = template
        self.settings = settings or DetectionSettings()
        self.profile = profile
        self.check_interval = check_interval
        self.is_listening = is_listening
        self.buffer = SlidingAudioBuffer(len(template) * 2)
        self._energies: deque[float] = deque(maxlen=history_size)
        self.last_rms = 0.0
        self.last_score: Optional[float] = None
        self.reset()

    @property
    def streak(self) -> int:
        """Current number of consecutive successful checks."""
        return self._streak

    def in_cooldown(self, now_ms: float) -> bool:
        return self._cooldown_until is not None and now_ms < self._cooldown_until

    def reset(self) -> None:
        self.buffer.clear()
        self._energies.clear()
        self._frame_count = 0
        self._streak = 0
        self._last_match: Optional[float] = None
        self._cooldown_until: Optional[float] = None

    def _is_transitioning(self) -> bool:
        """Return ``True`` when the recent level has dropped off its peak."""
        if len(self._energies) < TRANSITION_MIN_HISTORY:
            return False
        recent_max = max(self._energies)
        if recent_max <= 0.0:
            return False
        average = sum(self._energies) / len(self._energies)
        return (recent_max - average) / recent_max > TRANSITION_DROP

    def step(self, frame: np.ndarray, now_ms: float) -> Optional[MatchEvent]:
        if self.is_listening is not None and not self.is_listening():
            return None

        samples = np.asarray(frame, dtype=np.float32).reshape(-1)
        rms = frame_rms(samples)
        self.last_rms = rms
        self._energies.append(rms)
        transitioning = self._is_transitioning()
        self.buffer.push(samples)
        self._frame_count += 1

        if (
            self._frame_count % self.check_interval != 0
            or rms <= self.profile.min_energy_threshold
            or transitioning
        ):
            return None

        if self.in_cooldown(now_ms):
            self._streak = 0
            return None

        window = len(self.template)
        if len(self.buffer) < window:
            return None

        segment = self.buffer.read_window(window)
        score = compute_similarity(
            self.template.envelope,
            extract_envelope(segment),
            energy_gate=self.profile.energy_gate_threshold,
        )
        self.last_score = score

        if score < self.settings.similarity_threshold:
            self._streak = max(0, self._streak - 1)
            return None

        self._streak += 1
        if self._streak < self.profile.min_match_streak:
            return None
        if self._last_match is not None and now_ms - self._last_match < self.settings.debounce_time:
            return None

        logger.info("Match detected! Similarity: %.1f%%, Streak: %d", score * 100, self._streak)
        self._last_match = now_ms
        self._streak = 0
        self._cooldown_until = now_ms + self.settings.match_cooldown
        return MatchEvent(score=score, timestamp_ms=now_ms)


__all__ = [
    "MatchEvent",
    "DetectionSettings",
    "Detector",
    "EnergyState",
    "EnergyDetector",
    "PatternDetector",
]
