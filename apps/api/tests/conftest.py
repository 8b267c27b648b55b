"""Shared fixtures; the database path must be set before babycare is imported."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TEST_DB_DIR = tempfile.mkdtemp(prefix="babycare-tests-")
os.environ["BABYCARE_DATABASE_PATH"] = str(Path(_TEST_DB_DIR) / "babycare-test.db")
os.environ["BABYCARE_OVERRIDE_STORE"] = "sqlite"

import pytest  # noqa: E402

from babycare.db import get_connection, initialize_db  # noqa: E402
from babycare.schemas import LabelProvider  # noqa: E402


def make_labels() -> LabelProvider:
    return LabelProvider(
        eat="Eat",
        activity="Activity",
        sleep=lambda number: f"Sleep {number}",
        your_time="Your time",
    )


@pytest.fixture
def labels() -> LabelProvider:
    return make_labels()


@pytest.fixture
def clean_db():
    initialize_db()
    with get_connection() as conn:
        for table in ["day_overrides", "children"]:
            conn.execute(f"DELETE FROM {table}")
        conn.commit()
    yield
