"""SQLite helpers."""
from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Sequence

from uuid import uuid4

from .config import CONFIG
from .schemas import ChildScheduleProfile, DayOverride, ScheduleItem

_DB_PATH = CONFIG.resolved_database_path
_DB_PATH.parent.mkdir(parents=True, exist_ok=True)

_UNSET = object()


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, ddl: str) -> None:
    cursor = conn.execute(f"PRAGMA table_info({table})")
    existing = {row[1] for row in cursor.fetchall()}
    if column not in existing:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")


def initialize_db() -> None:
    with sqlite3.connect(_DB_PATH) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS children (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                first_name TEXT,
                birth_date TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )
        _ensure_column(conn, "children", "first_wake_time", "TEXT")
        _ensure_column(conn, "children", "selected_formula_id", "TEXT")

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS day_overrides (
                id TEXT PRIMARY KEY,
                baby_id INTEGER NOT NULL,
                date TEXT NOT NULL,
                source_rule_id TEXT NOT NULL,
                schedule_items TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (baby_id, date),
                FOREIGN KEY (baby_id) REFERENCES children(id)
            );
            """
        )
        conn.commit()


@contextmanager
def get_connection() -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(_DB_PATH)
    try:
        yield conn
    finally:
        conn.close()


def _row_to_child(row: sqlite3.Row) -> ChildScheduleProfile:
    return ChildScheduleProfile(
        id=row["id"],
        first_name=row["first_name"],
        birth_date=row["birth_date"] or None,
        first_wake_time=row["first_wake_time"] or CONFIG.default_first_wake_time,
        selected_formula_id=row["selected_formula_id"] or None,
    )


def create_child(
    *,
    first_name: str,
    birth_date: Optional[str] = None,
    first_wake_time: Optional[str] = None,
    selected_formula_id: Optional[str] = None,
) -> ChildScheduleProfile:
    now = datetime.utcnow().isoformat()
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO children (first_name, birth_date, first_wake_time, selected_formula_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                first_name,
                birth_date or "",
                first_wake_time or CONFIG.default_first_wake_time,
                selected_formula_id,
                now,
                now,
            ),
        )
        conn.commit()
        child_id = cursor.lastrowid
    child = get_child_profile(child_id)
    if child is None:
        raise ValueError(f"Child {child_id} not found")
    return child


def get_child_profile(child_id: int) -> Optional[ChildScheduleProfile]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        row = conn.execute("SELECT * FROM children WHERE id = ?", (child_id,)).fetchone()
    if not row:
        return None
    return _row_to_child(row)


def update_child_schedule_settings(
    child_id: int,
    *,
    first_wake_time: object = _UNSET,
    selected_formula_id: object = _UNSET,
) -> ChildScheduleProfile:
    fields: List[str] = []
    values: List[object] = []
    if first_wake_time is not _UNSET:
        fields.append("first_wake_time = ?")
        values.append(first_wake_time)
    if selected_formula_id is not _UNSET:
        fields.append("selected_formula_id = ?")
        values.append(selected_formula_id)
    fields.append("updated_at = ?")
    values.append(datetime.utcnow().isoformat())
    with get_connection() as conn:
        cursor = conn.execute(
            f"UPDATE children SET {', '.join(fields)} WHERE id = ?",
            (*values, child_id),
        )
        conn.commit()
        updated = cursor.rowcount
    child = get_child_profile(child_id) if updated else None
    if child is None:
        raise ValueError(f"Child {child_id} not found")
    return child


def _row_to_override(row: sqlite3.Row) -> DayOverride:
    items = json.loads(row["schedule_items"])
    return DayOverride(
        id=row["id"],
        baby_id=row["baby_id"],
        date=row["date"],
        source_rule_id=row["source_rule_id"],
        schedule_items=[ScheduleItem.model_validate(item) for item in items],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _dump_items(items: Sequence[ScheduleItem]) -> str:
    return json.dumps([item.model_dump(mode="json") for item in items])


def new_override_id(baby_id: int, date: str) -> str:
    return f"day_{baby_id}_{date.replace('-', '')}_{uuid4().hex[:8]}"


def get_day_override(baby_id: int, date: str) -> Optional[DayOverride]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        row = conn.execute(
            "SELECT * FROM day_overrides WHERE baby_id = ? AND date = ?",
            (baby_id, date),
        ).fetchone()
    if not row:
        return None
    return _row_to_override(row)


def upsert_day_override(
    *,
    baby_id: int,
    date: str,
    source_rule_id: str,
    schedule_items: Sequence[ScheduleItem],
) -> DayOverride:
    """Create the day's override or patch the existing one in place.

    A concurrent writer for the same day is resolved by the unique
    ``(baby_id, date)`` key: the later write replaces the items and keeps
    the row's ``id`` and ``created_at``.
    """
    now = datetime.utcnow().isoformat()
    with get_connection() as conn:
        conn.execute(
            """
            INSERT INTO day_overrides (id, baby_id, date, source_rule_id, schedule_items, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (baby_id, date) DO UPDATE SET
                source_rule_id = excluded.source_rule_id,
                schedule_items = excluded.schedule_items,
                updated_at = excluded.updated_at
            """,
            (new_override_id(baby_id, date), baby_id, date, source_rule_id, _dump_items(schedule_items), now, now),
        )
        conn.commit()
    saved = get_day_override(baby_id, date)
    if saved is None:
        raise ValueError(f"Day override for child {baby_id} on {date} not found")
    return saved


def delete_day_override(baby_id: int, date: str) -> bool:
    with get_connection() as conn:
        cursor = conn.execute(
            "DELETE FROM day_overrides WHERE baby_id = ? AND date = ?",
            (baby_id, date),
        )
        conn.commit()
        return cursor.rowcount > 0


def delete_overrides_before(cutoff_date: str) -> int:
    with get_connection() as conn:
        cursor = conn.execute("DELETE FROM day_overrides WHERE date < ?", (cutoff_date,))
        conn.commit()
        return cursor.rowcount


class SqliteOverrideStore:
    """Day override store backed by the local SQLite database."""

    def get(self, baby_id: int, date: str) -> Optional[DayOverride]:
        return get_day_override(baby_id, date)

    def save(self, baby_id: int, date: str, source_rule_id: str, items: Sequence[ScheduleItem]) -> DayOverride:
        return upsert_day_override(
            baby_id=baby_id,
            date=date,
            source_rule_id=source_rule_id,
            schedule_items=items,
        )

    def delete(self, baby_id: int, date: str) -> bool:
        return delete_day_override(baby_id, date)

    def delete_before(self, cutoff_date: str) -> int:
        return delete_overrides_before(cutoff_date)
