# tests/conftest.py

"""Shared pytest fixtures for all marketlens tests."""

from collections.abc import Generator
from pathlib import Path

import pytest

from marketlens.config.settings import Settings


@pytest.fixture(autouse=True)
def isolated_paths(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
) -> Generator[None, None, None]:
    """Keep caches, databases and logs out of the project tree."""
    monkeypatch.setattr(Settings, "CACHE_DIR", tmp_path / "cache")
    monkeypatch.setattr(
        Settings, "LISTING_DB_PATH", tmp_path / "data" / "listings.db"
    )
    monkeypatch.setattr(Settings, "LOGS_DIR", tmp_path / "logs")
    yield
