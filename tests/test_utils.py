import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mantracounter import utils
from mantracounter.utils import generate_template_id


def test_generate_template_id_unique() -> None:
    assert generate_template_id("om", []) == "om_1"
    assert generate_template_id("om", ["om_1", "om_2"]) == "om_3"
    assert generate_template_id("om", ["om_2"]) == "om_1"


def test_generate_template_id_sanitises_name() -> None:
    assert generate_template_id(" om namah shivaya ", []) == "om_namah_shivaya_1"
    assert generate_template_id("   ", ["mantra_1"]) == "mantra_2"


def test_data_dir_created(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "share" / "mantracounter"
    monkeypatch.setattr(utils, "user_data_dir", lambda name: str(target))
    assert utils.data_dir() == target
    assert target.is_dir()
