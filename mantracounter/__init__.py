"""Mantra counter package."""

from .detectors import DetectionSettings, EnergyDetector, MatchEvent, PatternDetector
from .device_profile import DESKTOP, MOBILE, DeviceProfile
from .envelope import extract_envelope, normalize, resample
from .noise_gate import trim_silence
from .sample_matcher import compute_similarity, similarity_diagnostics
from .session import MatchCounter, run_detection
from .template import Template

try:  # sounddevice and PySide6 may be missing in test environments
    from .sound_worker import SoundWorker
except Exception:  # pragma: no cover - optional dependency
    SoundWorker = None  # type: ignore

__all__ = [
    "DetectionSettings",
    "EnergyDetector",
    "MatchEvent",
    "PatternDetector",
    "DeviceProfile",
    "DESKTOP",
    "MOBILE",
    "extract_envelope",
    "normalize",
    "resample",
    "trim_silence",
    "compute_similarity",
    "similarity_diagnostics",
    "MatchCounter",
    "run_detection",
    "Template",
    "SoundWorker",
]
