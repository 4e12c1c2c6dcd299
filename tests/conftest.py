from __future__ import annotations

from pathlib import Path

import pytest

from accessgate.core.database import SqliteDatabase
from tests.support import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db(tmp_path: Path):
    database = SqliteDatabase(tmp_path / "state.db")
    yield database
    database.close()
