"""Pytest configuration: in-repo src package on the path plus shared fixtures."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

SRC_PATH = Path(__file__).resolve().parent / "src"
if SRC_PATH.exists():
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture(autouse=True)
def quiet_progress(monkeypatch):
    """Keep progress bars out of test output; restored after each test."""
    monkeypatch.setenv("MAYBENOT_VERBOSITY", "0")


@pytest.fixture
def write_trace(tmp_path):
    """Factory writing a reference trace file from a list of lines."""

    def _write(lines, name="trace.txt"):
        path = tmp_path / name
        path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
        return path

    return _write
