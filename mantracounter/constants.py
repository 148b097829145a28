"""Application-wide constants used for mantra detection.

The values in this module configure the audio pipeline, the envelope
comparison and both detection modes.  Centralising the configuration
avoids magic numbers spread throughout the code base and makes it easy
to tune behaviour in one place.  Device-dependent thresholds live in
:mod:`mantracounter.device_profile`.
"""

from __future__ import annotations

# ─── Audio configuration ────────────────────────────────────────────────────

# Sampling frequency requested from the input device.  48 kHz is the
# native rate of most laptop and phone microphones.
SAMPLE_RATE: int = 48_000

# Number of samples delivered per frame.  Each frame feeds one detector
# step, so this also sets the rate at which detectors are polled.
FRAME_SIZE: int = 2048

# Gain applied to captured samples before detection.
MIC_SENSITIVITY: float = 1.0

# Cutoff frequency for the high‑pass filter used to remove low‑frequency
# rumble and hum (e.g. mains hum at 50/60 Hz).
HP_FILTER_CUTOFF: float = 60.0

# ─── Envelope comparison ────────────────────────────────────────────────────

# Samples per RMS window when reducing audio to an envelope.
WINDOW_SIZE: int = 1024

# Both envelopes are stretched to this many points before their shapes
# are compared.
SHAPE_LENGTH: int = 50

# Envelopes shorter than this carry too little shape to judge.
MIN_ENVELOPE_WINDOWS: int = 3

# Floor used for the second envelope's mean when computing the energy
# ratio.
ENERGY_FLOOR: float = 0.001

# ─── Template trimming and noise floor ──────────────────────────────────────

# RMS level above which a window of a recording counts as active.
TRIM_THRESHOLD: float = 0.02

# Windows kept before the first and after the last active window.
TRIM_LEAD_WINDOWS: int = 1
TRIM_TAIL_WINDOWS: int = 2

# Seconds of ambient audio sampled when calibrating a device profile.
CALIBRATION_TIME: float = 1.0

# Multiplier applied to the measured noise floor to obtain the silence
# threshold of a calibrated profile.
NOISE_GATE_MARGIN: float = 1.5

# ─── Pattern mode defaults ──────────────────────────────────────────────────

# Minimum similarity score for a periodic check to extend the streak.
SIMILARITY_THRESHOLD: float = 0.75

# Minimum gap between two counted matches in milliseconds.
DEBOUNCE_TIME_MS: int = 3000

# Lockout after a counted match in milliseconds.
MATCH_COOLDOWN_MS: int = 4000

# Similarity is evaluated on every Nth frame only.
CHECK_INTERVAL: int = 10

# Number of recent frame RMS values used to spot trailing-off vocals.
ENERGY_HISTORY_SIZE: int = 20

# A frame is treated as a transition when the recent average sits more
# than this fraction below the recent maximum.
TRANSITION_DROP: float = 0.3
TRANSITION_MIN_HISTORY: int = 10

# ─── Energy (breath) mode defaults ──────────────────────────────────────────

MIN_CHANT_DURATION_MS: int = 500
MIN_SILENCE_DURATION_MS: int = 600

# Detection is suspended for this long after a count to absorb echo.
ENERGY_DEBOUNCE_MS: int = 800

# ─── Test mode ──────────────────────────────────────────────────────────────

TEST_REPETITIONS: int = 5

# Fraction of repetitions that must pass for a test run to succeed
# (4 out of 5).
TEST_PASS_RATIO: float = 0.8

FIXTURE_VERSION: int = 1
FIXTURE_FILENAME: str = "mantra-test-fixtures.json"

__all__ = [
    "SAMPLE_RATE",
    "FRAME_SIZE",
    "MIC_SENSITIVITY",
    "HP_FILTER_CUTOFF",
    "WINDOW_SIZE",
    "SHAPE_LENGTH",
    "MIN_ENVELOPE_WINDOWS",
    "ENERGY_FLOOR",
    "TRIM_THRESHOLD",
    "TRIM_LEAD_WINDOWS",
    "TRIM_TAIL_WINDOWS",
    "CALIBRATION_TIME",
    "NOISE_GATE_MARGIN",
    "SIMILARITY_THRESHOLD",
    "DEBOUNCE_TIME_MS",
    "MATCH_COOLDOWN_MS",
    "CHECK_INTERVAL",
    "ENERGY_HISTORY_SIZE",
    "TRANSITION_DROP",
    "TRANSITION_MIN_HISTORY",
    "MIN_CHANT_DURATION_MS",
    "MIN_SILENCE_DURATION_MS",
    "ENERGY_DEBOUNCE_MS",
    "TEST_REPETITIONS",
    "TEST_PASS_RATIO",
    "FIXTURE_VERSION",
    "FIXTURE_FILENAME",
]
