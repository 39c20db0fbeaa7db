"""Shared fixtures for the viberated test suite."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from builders import RecordingSleep

from viberated.accrual_store import AccrualStore


@pytest.fixture
def store(tmp_path: Path) -> Iterator[AccrualStore]:
    db = AccrualStore(tmp_path / "viberated.db")
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
