"""Shared fixtures for CLI execution tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest


@pytest.fixture()
def cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Isolate the CLI from the caller's SHIPTRACK_* variables and any .env file."""
    for key in list(os.environ):
        if key.startswith("SHIPTRACK_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return tmp_path
