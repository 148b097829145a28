import sys
from pathlib import Path

import numpy as np
import pytest
import threading
import types

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mantracounter.sample_matcher import (
    compute_similarity,
    cosine_similarity,
    energy_ratio,
    record_until_silence,
    similarity_diagnostics,
)


def _chant_envelope(n: int = 40, level: float = 0.1) -> np.ndarray:
    """Envelope of a phrase that swells and fades."""
    x = np.linspace(0, np.pi, n)
    return level * (0.2 + np.sin(x) + 0.3 * np.sin(3 * x) ** 2)


def test_cosine_similarity_identical() -> None:
    a = np.array([1.0, 2.0, 3.0])
    b = np.array([1.0, 2.0, 3.0])
    assert cosine_similarity(a, b) == pytest.approx(1.0)


def test_cosine_similarity_zero_vector() -> None:
    assert cosine_similarity(np.zeros(3), np.ones(3)) == 0.0


def test_self_similarity_is_one() -> None:
    rng = np.random.default_rng(1)
    for env in (_chant_envelope(), rng.uniform(0.0, 0.5, size=17), np.full(5, 0.2)):
        assert compute_similarity(env, env) == pytest.approx(1.0, abs=1e-3)


def test_similarity_is_bounded() -> None:
    rng = np.random.default_rng(2)
    for _ in range(50):
        a = rng.uniform(0.0, 1.0, size=int(rng.integers(3, 80)))
        b = rng.uniform(0.0, 1.0, size=int(rng.integers(3, 80)))
        score = compute_similarity(a, b)
        assert 0.0 <= score <= 1.0


def test_similarity_is_deterministic() -> None:
    a = _chant_envelope(33)
    b = _chant_envelope(45) * 0.8
    assert compute_similarity(a, b) == compute_similarity(a, b)


def test_similarity_tolerates_pace_and_volume() -> None:
    template = _chant_envelope(40, 0.1)
    slower_softer = _chant_envelope(55, 0.08)
    assert compute_similarity(template, slower_softer) > 0.9


def test_short_envelope_scores_zero() -> None:
    env = _chant_envelope()
    assert compute_similarity(env, np.array([0.5, 0.5])) == 0.0
    assert compute_similarity(np.array([0.1, 0.9]), env) == 0.0


def test_energy_gate_rejects_quiet_noise() -> None:
    template = _chant_envelope(40, 0.1)
    rng = np.random.default_rng(3)
    noise = rng.uniform(0.0, 1e-4, size=template.size)
    score = compute_similarity(template, noise)
    assert score < 0.5
    assert score == pytest.approx(energy_ratio(template, noise))


def test_energy_gate_with_quiet_copy_of_template() -> None:
    template = _chant_envelope(40, 0.1)
    whisper = template * 0.1
    assert compute_similarity(template, whisper) == pytest.approx(0.1)


def test_energy_ratio_silence_on_both_sides() -> None:
    assert energy_ratio(np.zeros(5), np.zeros(5)) == 0.0


def test_unrelated_shape_scores_lower_than_match() -> None:
    template = _chant_envelope(40, 0.1)
    ramp = np.linspace(0.2, 0.02, 40)
    assert compute_similarity(template, ramp) < compute_similarity(template, template * 0.9)


def test_diagnostics_components() -> None:
    a = _chant_envelope(40)
    b = _chant_envelope(50)
    diag = similarity_diagnostics(a, b)
    assert diag.similarity == pytest.approx(compute_similarity(a, b))
    assert diag.template_length == 40
    assert diag.sample_length == 50
    assert diag.duration_ratio == pytest.approx(0.8)
    assert 0.0 <= diag.shape <= 1.0
    assert diag.cosine > 0.9
    assert diag.correlation > 0.9
    assert diag.error is None


def test_diagnostics_short_input() -> None:
    diag = similarity_diagnostics(np.ones(2), _chant_envelope())
    assert diag.similarity == 0.0
    assert diag.error == "Audio too short"


def test_record_until_silence_stop(monkeypatch: pytest.MonkeyPatch) -> None:
    class DummyStream:
        def __enter__(self) -> "DummyStream":
            return self

        def __exit__(self, *_) -> None:
            return None

        def read(self, hop: int):
            return np.zeros((hop, 1), dtype=np.float32), False

    dummy_sd = types.SimpleNamespace(InputStream=lambda **_: DummyStream())
    monkeypatch.setitem(sys.modules, "sounddevice", dummy_sd)

    stop = threading.Event()
    stop.set()
    data = record_until_silence(0, stop_event=stop)
    assert data.size == 0


def test_record_until_silence_waits_for_phrase(monkeypatch: pytest.MonkeyPatch) -> None:
    hop = 512
    blocks = [0.0] * 4 + [0.3] * 6 + [0.0] * 100

    class DummyStream:
        def __init__(self) -> None:
            self.reads = 0

        def __enter__(self) -> "DummyStream":
            return self

        def __exit__(self, *_) -> None:
            return None

        def read(self, n: int):
            level = blocks[self.reads]
            self.reads += 1
            return np.full((n, 1), level, dtype=np.float32), False

    dummy_sd = types.SimpleNamespace(InputStream=lambda **_: DummyStream())
    monkeypatch.setitem(sys.modules, "sounddevice", dummy_sd)

    data = record_until_silence(
        0, sample_rate=8000, hop_size=hop, silence_duration=0.256, max_duration=10.0
    )
    # 4 leading, 6 loud and 4 trailing silent blocks
    assert data.size == hop * 14
