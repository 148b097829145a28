"""Tests for :class:`mantracounter.sound_worker.SoundWorker`."""

from __future__ import annotations

import numpy as np

import pytest
import sys
import types
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

sys.modules.setdefault("sounddevice", types.SimpleNamespace())


class _DummySignal:
    def __init__(self, *_, **__):
        self._subs: list[object] = []

    def connect(self, func):
        self._subs.append(func)

    def emit(self, *args, **kwargs):
        for func in self._subs:
            func(*args, **kwargs)


class _DummyQThread:
    def __init__(self, *_, **__):
        pass

    def start(self) -> None:  # pragma: no cover - unused
        pass

    def wait(self, *_: object) -> None:
        pass


qt_core = types.SimpleNamespace(QThread=_DummyQThread, Signal=_DummySignal, QObject=object)
sys.modules.setdefault("PySide6", types.SimpleNamespace(QtCore=qt_core))
sys.modules.setdefault("PySide6.QtCore", qt_core)

from mantracounter import sound_worker  # noqa: E402
from mantracounter.detectors import EnergyDetector, MatchEvent  # noqa: E402
from mantracounter.session import ArraySource  # noqa: E402


class ScriptedDetector:
    """Detector replacement that matches on chosen steps."""

    def __init__(self, match_on: set[int]) -> None:
        self.match_on = match_on
        self.steps = 0
        self.resets = 0
        self.last_rms = 0.0

    def step(self, frame, now_ms):
        self.steps += 1
        self.last_rms = float(np.max(np.abs(frame)))
        if self.steps in self.match_on:
            return MatchEvent(0.9, now_ms)
        return None

    def reset(self) -> None:
        self.resets += 1


def _collect(signal) -> list:
    received: list = []
    signal.connect(received.append)
    return received


def test_step_reports_amplitude() -> None:
    worker = sound_worker.SoundWorker(ScriptedDetector(set()))
    levels = _collect(worker.amplitudeChanged)
    worker.step(np.array([0.0, -0.25, 0.1], dtype=np.float32), 0.0)
    assert levels == [pytest.approx(0.25)]


def test_match_counts_and_signals() -> None:
    worker = sound_worker.SoundWorker(ScriptedDetector(set()))
    detected = _collect(worker.mantraDetected)
    worker._on_match(0.82)
    worker._on_match(0.9)
    assert worker.count == 2
    assert detected == [0.82, 0.9]

    worker.reset()
    assert worker.count == 0
    assert worker.detector.resets == 1


def test_run_counts_from_source(monkeypatch: pytest.MonkeyPatch) -> None:
    class FakeSource(ArraySource):
        def __init__(self, *_: object, **__: object) -> None:
            super().__init__(np.full(20 * 4, 0.1), sample_rate=1000, frame_size=4)

        def __enter__(self):
            return self

        def __exit__(self, *_: object) -> None:
            return None

    monkeypatch.setattr(sound_worker, "SoundDeviceSource", FakeSource)
    worker = sound_worker.SoundWorker(ScriptedDetector({3, 7}))
    detected = _collect(worker.mantraDetected)
    worker.run()
    assert detected == [0.9, 0.9]
    assert worker.count == 2
    assert worker.detector.steps == 20


def test_run_reports_device_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(*_: object, **__: object):
        raise RuntimeError("no input device")

    monkeypatch.setattr(sound_worker, "SoundDeviceSource", broken)
    worker = sound_worker.SoundWorker(EnergyDetector())
    errors = _collect(worker.errorOccurred)
    worker.run()
    assert errors == ["no input device"]


def test_stop_ends_listening() -> None:
    worker = sound_worker.SoundWorker(EnergyDetector())
    assert worker.is_listening()
    worker.stop()
    assert not worker.is_listening()
