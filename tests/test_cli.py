import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mantracounter import cli
from mantracounter.fixtures import FixtureSet, RepetitionFixture, RunReport, save_fixtures
from mantracounter.template import Template


def test_parser_defaults() -> None:
    args = cli.build_parser().parse_args(["listen", "--mode", "pattern", "--template", "om.npy"])
    assert args.func is cli.cmd_listen
    assert args.threshold == pytest.approx(0.75)
    assert args.debounce == 3000
    assert args.cooldown == 4000
    assert args.profile == "desktop"


def test_export_flag_without_path() -> None:
    parser = cli.build_parser()
    assert parser.parse_args(["test"]).export is None
    assert parser.parse_args(["test", "--export"]).export == ""
    assert parser.parse_args(["test", "--export", "out.json"]).export == "out.json"


def test_evaluate_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    env = np.array([0.1, 0.3, 0.6, 0.3, 0.1])
    path = save_fixtures(
        FixtureSet(44_100, env, 0.1, [RepetitionFixture(1, env, 0.1)]),
        tmp_path / "fx.json",
    )
    assert cli.main(["evaluate", str(path)]) == 0
    out = capsys.readouterr().out
    assert "Rep 1: 100.0%" in out
    assert "Passed: 1/1" in out


def test_listen_pattern_needs_template(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["listen", "--mode", "pattern"]) == 2
    assert "Record one first" in capsys.readouterr().err


def _quiet_fixture(tmp_path: Path) -> Path:
    env = np.array([0.1, 0.3, 0.6, 0.3, 0.1])
    # same shape at 28% of the level: between the mobile and desktop gates
    return save_fixtures(
        FixtureSet(48_000, env, 0.1, [RepetitionFixture(1, env * 0.28, 0.1)]),
        tmp_path / "quiet.json",
    )


def test_evaluate_uses_profile_energy_gate(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = _quiet_fixture(tmp_path)
    assert cli.main(["evaluate", str(path)]) == 1
    assert "Passed: 0/1" in capsys.readouterr().out

    assert cli.main(["evaluate", str(path), "--profile", "mobile"]) == 0
    assert "Passed: 1/1" in capsys.readouterr().out


def test_test_command_uses_profile_energy_gate(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = {}

    def fake_run_test(template, recordings, **kwargs):
        seen.update(kwargs)
        return RunReport(kwargs["threshold"], []), None

    monkeypatch.setattr("builtins.input", lambda *_: "")
    monkeypatch.setattr(cli, "_record", lambda *_: Template(np.full(4096, 0.3), 48_000))
    monkeypatch.setattr(cli, "record_until_silence", lambda *_, **__: np.zeros(4096))
    monkeypatch.setattr(cli, "run_test", fake_run_test)

    cli.main(["test", "--reps", "2", "--profile", "mobile"])
    assert seen["energy_gate"] == pytest.approx(0.25)


def test_record_refuses_empty_recording(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr("builtins.input", lambda *_: "")
    monkeypatch.setattr(
        cli, "record_until_silence", lambda *_, **__: np.array([], dtype=np.float32)
    )
    assert cli.main(["record", "om", "--out", str(tmp_path)]) == 2
    assert "too short" in capsys.readouterr().err
    assert list(tmp_path.glob("*.npy")) == []


def test_listen_rejects_unusable_template(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = Template(np.full(2048, 0.3), 48_000).save(tmp_path / "short.npy")
    assert cli.main(["listen", "--mode", "pattern", "--template", str(path)]) == 2
    assert "Cannot use template" in capsys.readouterr().err
