from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from appdirs import user_data_dir

APP_NAME = "mantracounter"


def data_dir() -> Path:
    """Return the per-user directory for templates and fixtures.

    The directory is created on first use.
    """
    path = Path(user_data_dir(APP_NAME))
    path.mkdir(parents=True, exist_ok=True)
    return path


def generate_template_id(base: str, existing: Iterable[str]) -> str:
    """Return a unique template identifier.

    The identifier takes the form ``"{base}_{n}"`` where ``n`` is the lowest
    positive integer that does not collide with ``existing``.

    Parameters
    ----------
    base:
        Name provided by the user, e.g. ``"om namah"``.
    existing:
        Identifiers already in use.

    Returns
    -------
    str
        A unique identifier incorporating ``base``.
    """

    # Keep saved ``.npy`` file names free of spaces
    safe_base = base.strip().replace(" ", "_") or "mantra"
    existing_set = set(existing)
    index = 1
    while f"{safe_base}_{index}" in existing_set:
        index += 1
    return f"{safe_base}_{index}"


__all__ = ["APP_NAME", "data_dir", "generate_template_id"]
