# tests/conftest.py

"""Shared pytest fixtures for all marketplace tests."""

from collections.abc import Generator
from pathlib import Path

import pytest

from src.config.settings import Settings


@pytest.fixture(autouse=True)
def isolated_logs_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
) -> Generator[None, None, None]:
    """Send per-run log files to a temp dir instead of the repo."""
    monkeypatch.setattr(Settings, "LOGS_DIR", tmp_path / "logs")
    yield
