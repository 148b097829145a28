"""Test-mode recordings and the fixture files they export.

A test run records a template and a handful of repetitions, scores every
repetition against the template and can export the envelopes as JSON so
the comparison can be replayed later without a microphone::

    {
      "version": 1,
      "sampleRate": 48000,
      "createdAt": "2024-05-01T12:00:00+00:00",
      "template": {"envelope": [...], "duration": 2.1},
      "repetitions": [
        {"index": 1, "envelope": [...], "duration": 2.0, "expectedMatch": true}
      ]
    }
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

import numpy as np

from .constants import (
    FIXTURE_FILENAME,
    FIXTURE_VERSION,
    SIMILARITY_THRESHOLD,
    TEST_PASS_RATIO,
    TRIM_THRESHOLD,
)
from .device_profile import DESKTOP
from .envelope import extract_envelope
from .noise_gate import trim_silence
from .sample_matcher import SimilarityDiagnostics, similarity_diagnostics
from .template import Template
from .utils import data_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepetitionFixture:
    index: int
    envelope: np.ndarray
    duration: float
    expected_match: bool = True


@dataclass(frozen=True)
class FixtureSet:
    """Template and repetition envelopes captured during a test run."""

    sample_rate: int
    template_envelope: np.ndarray
    template_duration: float
    repetitions: list[RepetitionFixture] = field(default_factory=list)
    created_at: str = ""
    version: int = FIXTURE_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "sampleRate": self.sample_rate,
            "createdAt": self.created_at,
            "template": {
                "envelope": [float(x) for x in self.template_envelope],
                "duration": self.template_duration,
            },
            "repetitions": [
                {
                    "index": rep.index,
                    "envelope": [float(x) for x in rep.envelope],
                    "duration": rep.duration,
                    "expectedMatch": rep.expected_match,
                }
                for rep in self.repetitions
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FixtureSet":
        try:
            version = int(data["version"])
            if version != FIXTURE_VERSION:
                raise ValueError(f"Unsupported fixture version: {version}")
            template = data["template"]
            repetitions = [
                RepetitionFixture(
                    index=int(rep["index"]),
                    envelope=np.asarray(rep["envelope"], dtype=np.float64),
                    duration=float(rep["duration"]),
                    expected_match=bool(rep.get("expectedMatch", True)),
                )
                for rep in data["repetitions"]
            ]
            return cls(
                sample_rate=int(data["sampleRate"]),
                template_envelope=np.asarray(template["envelope"], dtype=np.float64),
                template_duration=float(template["duration"]),
                repetitions=repetitions,
                created_at=str(data.get("createdAt", "")),
                version=version,
            )
        except KeyError as exc:
            raise ValueError(f"Fixture is missing required key {exc}") from exc


@dataclass(frozen=True)
class RepetitionResult:
    index: int
    similarity: float
    passed: bool
    expected_match: bool
    duration: float
    diagnostics: SimilarityDiagnostics

    @property
    def agrees(self) -> bool:
        """Whether the verdict matches what the fixture expected."""
        return self.passed == self.expected_match


@dataclass(frozen=True)
class RunReport:
    threshold: float
    results: list[RepetitionResult]

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def required(self) -> int:
        return math.ceil(round(TEST_PASS_RATIO * len(self.results), 9))

    @property
    def success(self) -> bool:
        return bool(self.results) and self.passed >= self.required


def save_fixtures(fixtures: FixtureSet, path: Union[str, Path, None] = None) -> Path:
    """Write ``fixtures`` as JSON, by default into the user data directory."""
    path = Path(path) if path is not None else data_dir() / FIXTURE_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(fixtures.to_dict(), indent=2), encoding="utf-8")
    logger.info("Exported %d repetitions to %s", len(fixtures.repetitions), path)
    return path


def load_fixtures(path: Union[str, Path]) -> FixtureSet:
    """Read a fixture file written by :func:`save_fixtures`."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return FixtureSet.from_dict(data)


def _evaluate(
    template_envelope: np.ndarray,
    repetitions: Sequence[RepetitionFixture],
    threshold: float,
    energy_gate: float,
) -> RunReport:
    results = []
    for rep in repetitions:
        diag = similarity_diagnostics(template_envelope, rep.envelope, energy_gate=energy_gate)
        results.append(
            RepetitionResult(
                index=rep.index,
                similarity=diag.similarity,
                passed=diag.similarity >= threshold,
                expected_match=rep.expected_match,
                duration=rep.duration,
                diagnostics=diag,
            )
        )
        logger.debug("Rep %d: %.1f%%", rep.index, diag.similarity * 100)
    return RunReport(threshold=threshold, results=results)


def evaluate_fixtures(
    fixtures: FixtureSet,
    *,
    threshold: float = SIMILARITY_THRESHOLD,
    energy_gate: float = DESKTOP.energy_gate_threshold,
) -> RunReport:
    """Replay the envelope comparisons stored in ``fixtures``."""
    return _evaluate(fixtures.template_envelope, fixtures.repetitions, threshold, energy_gate)


def run_test(
    template: Template,
    recordings: Sequence[np.ndarray],
    *,
    threshold: float = SIMILARITY_THRESHOLD,
    energy_gate: float = DESKTOP.energy_gate_threshold,
    trim_threshold: float = TRIM_THRESHOLD,
    created_at: Optional[str] = None,
) -> tuple[RunReport, FixtureSet]:
    """Score raw repetition recordings against ``template``.

    Each recording is trimmed the same way as the template before its
    envelope is compared.

    Returns:
        The report and a fixture set ready for :func:`save_fixtures`.
    """

    repetitions = []
    for i, raw in enumerate(recordings, start=1):
        trimmed = trim_silence(np.asarray(raw), template.sample_rate, threshold=trim_threshold)
        repetitions.append(
            RepetitionFixture(
                index=i,
                envelope=extract_envelope(trimmed.data),
                duration=trimmed.trimmed_duration,
            )
        )
    fixtures = FixtureSet(
        sample_rate=template.sample_rate,
        template_envelope=template.envelope,
        template_duration=template.duration,
        repetitions=repetitions,
        created_at=created_at or datetime.now(timezone.utc).isoformat(),
    )
    report = _evaluate(template.envelope, repetitions, threshold, energy_gate)
    return report, fixtures


__all__ = [
    "RepetitionFixture",
    "FixtureSet",
    "RepetitionResult",
    "RunReport",
    "save_fixtures",
    "load_fixtures",
    "evaluate_fixtures",
    "run_test",
]
