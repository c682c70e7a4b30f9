"""Shared fixtures for the test suite."""

from __future__ import annotations

from pathlib import Path

SPEC_TEXT = """[workspace]
name = "env1"
channels = ["conda-forge"]
platforms = ["linux-64"]

[dependencies]
python = "3.12.*"
"""

LOCK_TEXT = "version: 6\nenvironments: {}\npackages: []\n"


def write_lockspec(directory: Path, spec_text: str = SPEC_TEXT) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "pixi.toml").write_text(spec_text, encoding="utf-8")
    (directory / "pixi.lock").write_text(LOCK_TEXT, encoding="utf-8")
    return directory
