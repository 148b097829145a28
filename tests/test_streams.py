"""Tests for :class:`mantracounter.streams.SoundDeviceSource` frame processing."""

from __future__ import annotations

import numpy as np

import logging
import pytest
import sys
import types
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

sys.modules.setdefault("sounddevice", types.SimpleNamespace())

from mantracounter.streams import SoundDeviceSource  # noqa: E402

SR = 48_000
FRAME = 2048


class _FakeStream:
    def __init__(self, blocks, overflowed: bool = False) -> None:
        self.blocks = list(blocks)
        self.overflowed = overflowed

    def read(self, frames: int):
        return self.blocks.pop(0), self.overflowed


def test_stereo_block_downmixes_to_channel_mean() -> None:
    source = SoundDeviceSource(sample_rate=SR, frame_size=4, hp_cutoff=None)
    block = np.array([[0.2, 0.4], [-0.1, 0.3], [0.0, 0.0], [1.0, -1.0]], dtype=np.float32)
    out = source.process(block)
    assert out.shape == (4,)
    assert out.dtype == np.float32
    assert out == pytest.approx([0.3, 0.1, 0.0, 0.0])


def test_gain_scales_samples() -> None:
    rng = np.random.default_rng(3)
    block = rng.uniform(-0.2, 0.2, size=(FRAME, 1)).astype(np.float32)
    source = SoundDeviceSource(sample_rate=SR, gain=2.0, hp_cutoff=None)
    assert source.process(block) == pytest.approx(2.0 * block.reshape(-1))


def test_high_pass_removes_dc_across_frames() -> None:
    dc = np.full((FRAME, 1), 0.5, dtype=np.float32)
    filtered = SoundDeviceSource(sample_rate=SR, hp_cutoff=60.0)
    frames = [filtered.process(dc) for _ in range(3)]
    # the step response starts near the input level
    assert frames[0][0] == pytest.approx(0.5, abs=0.01)
    # filter state carries over, so later frames do not restart the step
    assert np.max(np.abs(frames[2])) < 1e-3

    unfiltered = SoundDeviceSource(sample_rate=SR, hp_cutoff=None)
    assert unfiltered.process(dc) == pytest.approx(np.full(FRAME, 0.5))


def test_get_frame_reads_processes_and_logs_overflow(caplog: pytest.LogCaptureFixture) -> None:
    source = SoundDeviceSource(sample_rate=SR, frame_size=3, gain=0.5, hp_cutoff=None)
    assert source.get_frame() is None

    source.stream = _FakeStream([np.array([[0.2], [0.4], [-0.6]], dtype=np.float32)], True)
    with caplog.at_level(logging.WARNING, logger="mantracounter.streams"):
        frame = source.get_frame()
    assert frame == pytest.approx([0.1, 0.2, -0.3])
    assert "overflow" in caplog.text
