"""Per-device detection thresholds.

Microphones differ widely in gain and background noise.  Rather than
branching on the device type inside the detectors, a :class:`DeviceProfile`
is built once at the start of a listening session and handed to whichever
detector runs.  Two fixed presets reproduce the desktop and mobile
behaviour; :meth:`DeviceProfile.from_noise_floor` derives a profile from a
measured ambient level instead.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from .constants import NOISE_GATE_MARGIN

# Lowest silence threshold a calibrated profile will use.  Digital silence
# would otherwise make every other threshold zero.
_MIN_SILENCE_THRESHOLD = 1e-4


@dataclass(frozen=True)
class DeviceProfile:
    """Thresholds for one class of input device.

    Attributes:
        name: Human readable label.
        loud_threshold: RMS above which a frame is genuinely loud chanting.
        transition_threshold: RMS above which a frame still counts as part
            of the chant (trailing off, soft consonants).
        silence_threshold: RMS below which a frame is near silence.
        min_energy_threshold: RMS a frame needs before pattern matching is
            attempted on it.
        min_match_streak: Consecutive successful checks needed to count a
            pattern match.
        energy_gate_threshold: Energy ratio below which a similarity
            comparison is treated as noise.
    """

    name: str
    loud_threshold: float
    transition_threshold: float
    silence_threshold: float
    min_energy_threshold: float
    min_match_streak: int
    energy_gate_threshold: float

    def __post_init__(self) -> None:
        if not (
            self.loud_threshold >= self.transition_threshold >= self.silence_threshold >= 0.0
        ):
            raise ValueError(
                "Thresholds must satisfy loud >= transition >= silence >= 0, got "
                f"{self.loud_threshold}, {self.transition_threshold}, {self.silence_threshold}"
            )
        if self.min_match_streak < 1:
            raise ValueError(f"min_match_streak must be at least 1, got {self.min_match_streak}")
        if not 0.0 <= self.energy_gate_threshold <= 1.0:
            raise ValueError(
                f"energy_gate_threshold must be within [0, 1], got {self.energy_gate_threshold}"
            )

    @classmethod
    def from_noise_floor(
        cls,
        noise_floor: float,
        margin: float = NOISE_GATE_MARGIN,
        *,
        base: "DeviceProfile | None" = None,
    ) -> "DeviceProfile":
        """Build a profile scaled to a measured ambient noise level.

        The silence threshold becomes ``noise_floor * margin``.  The other
        level thresholds keep the ratios they have in ``base`` (the desktop
        preset by default) relative to its silence threshold, while the
        streak length and energy gate are copied unchanged.
        """

        base = base or DESKTOP
        silence = max(float(noise_floor) * margin, _MIN_SILENCE_THRESHOLD)
        scale = silence / base.silence_threshold
        return replace(
            base,
            name="calibrated",
            loud_threshold=base.loud_threshold * scale,
            transition_threshold=base.transition_threshold * scale,
            silence_threshold=silence,
            min_energy_threshold=base.min_energy_threshold * scale,
        )


DESKTOP = DeviceProfile(
    name="desktop",
    loud_threshold=0.012,
    transition_threshold=0.003,
    silence_threshold=0.001,
    min_energy_threshold=0.005,
    min_match_streak=8,
    energy_gate_threshold=0.3,
)

# Phone microphones apply their own gain control and noise suppression and
# deliver quieter signals.
MOBILE = DeviceProfile(
    name="mobile",
    loud_threshold=0.008,
    transition_threshold=0.002,
    silence_threshold=0.0008,
    min_energy_threshold=0.002,
    min_match_streak=6,
    energy_gate_threshold=0.25,
)

PROFILES = {profile.name: profile for profile in (DESKTOP, MOBILE)}


__all__ = ["DeviceProfile", "DESKTOP", "MOBILE", "PROFILES"]
