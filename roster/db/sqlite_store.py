from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Union

from ..errors import PersistenceError
from ..schemas import PERSON_ATTRIBUTES, ChangeEvent, ExtractionAttempt, StoredMember
from .base import RosterStore


DDL_STATEMENTS = [
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    """
    CREATE TABLE IF NOT EXISTS members (
      id TEXT PRIMARY KEY,
      target_id TEXT NOT NULL,
      identity_key TEXT NOT NULL,
      name TEXT NOT NULL,
      normalized_name TEXT NOT NULL,
      title TEXT,
      bio TEXT,
      image_url TEXT,
      profile_url TEXT,
      linkedin_url TEXT,
      twitter_url TEXT,
      github_url TEXT,
      personal_website TEXT,
      email TEXT,
      phone TEXT,
      location TEXT,
      seniority TEXT,
      department TEXT,
      category TEXT,
      order_index INTEGER,
      is_active INTEGER NOT NULL DEFAULT 1,
      first_seen TEXT NOT NULL,
      last_seen TEXT NOT NULL
    )
    """.strip(),
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_members_active_identity
      ON members (target_id, identity_key) WHERE is_active = 1
    """.strip(),
    """
    CREATE TABLE IF NOT EXISTS change_events (
      id TEXT PRIMARY KEY,
      target_id TEXT NOT NULL,
      member_id TEXT,
      change_type TEXT NOT NULL CHECK (change_type IN ('added','removed','updated')),
      member_name TEXT NOT NULL,
      previous_data TEXT,
      new_data TEXT,
      detected_at TEXT NOT NULL
    )
    """.strip(),
    """
    CREATE INDEX IF NOT EXISTS idx_events_target_time ON change_events (target_id, detected_at DESC)
    """.strip(),
    """
    CREATE TABLE IF NOT EXISTS extraction_attempts (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      target_id TEXT NOT NULL,
      method TEXT NOT NULL CHECK (method IN ('static','dynamic')),
      status TEXT NOT NULL CHECK (status IN ('success','error')),
      record_count INTEGER NOT NULL,
      duration_ms INTEGER NOT NULL,
      error_message TEXT,
      artifact_refs TEXT NOT NULL,
      started_at TEXT NOT NULL
    )
    """.strip(),
]

_MEMBER_COLUMNS = (
    ["id", "target_id", "identity_key", "name", "normalized_name"]
    + list(PERSON_ATTRIBUTES)
    + ["is_active", "first_seen", "last_seen"]
)

UPSERT_MEMBER_SQL = (
    "INSERT INTO members (" + ", ".join(_MEMBER_COLUMNS) + ") VALUES ("
    + ", ".join(":" + c for c in _MEMBER_COLUMNS) + ") "
    + "ON CONFLICT(id) DO UPDATE SET "
    + ", ".join(f"{c} = excluded.{c}" for c in _MEMBER_COLUMNS if c != "id")
)

INSERT_EVENT_SQL = (
    """
    INSERT INTO change_events (
      id, target_id, member_id, change_type, member_name, previous_data, new_data, detected_at
    ) VALUES (
      :id, :target_id, :member_id, :change_type, :member_name, :previous_data, :new_data, :detected_at
    )
    """
).strip()

INSERT_ATTEMPT_SQL = (
    """
    INSERT INTO extraction_attempts (
      target_id, method, status, record_count, duration_ms, error_message, artifact_refs, started_at
    ) VALUES (
      :target_id, :method, :status, :record_count, :duration_ms, :error_message, :artifact_refs, :started_at
    )
    """
).strip()


def ensure_schema(conn: sqlite3.Connection) -> None:
    for stmt in DDL_STATEMENTS:
        conn.execute(stmt)


def _dumps(data: Any) -> str | None:
    if data is None:
        return None
    return json.dumps(data, ensure_ascii=False, default=str)


class SQLiteStore(RosterStore):
    """RosterStore on a single SQLite file; sqlite3 errors surface as PersistenceError."""

    def __init__(self, db_path: Union[str, Path]) -> None:
        self.db_path = str(db_path)
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
            ensure_schema(self._conn)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"cannot open {self.db_path}: {e}") from e

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _write(self, sql: str, params: Dict[str, Any]) -> int:
        try:
            with self._conn:  # one transaction per write
                cur = self._conn.execute(sql, params)
                return cur.rowcount
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e

    @staticmethod
    def _member_from_row(row: sqlite3.Row) -> StoredMember:
        data = dict(row)
        data["is_active"] = bool(data["is_active"])
        data["first_seen"] = datetime.fromisoformat(data["first_seen"])
        data["last_seen"] = datetime.fromisoformat(data["last_seen"])
        return StoredMember(**data)

    def get_active_roster(self, target_id: str) -> List[StoredMember]:
        try:
            rows = self._conn.execute(
                "SELECT * FROM members WHERE target_id = ? AND is_active = 1 ORDER BY first_seen, id",
                (target_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        return [self._member_from_row(r) for r in rows]

    def upsert_member(self, member: StoredMember) -> None:
        row = {c: getattr(member, c) for c in _MEMBER_COLUMNS}
        row["is_active"] = 1 if member.is_active else 0
        row["first_seen"] = member.first_seen.isoformat()
        row["last_seen"] = member.last_seen.isoformat()
        self._write(UPSERT_MEMBER_SQL, row)

    def deactivate_member(self, member_id: str) -> None:
        n = self._write("UPDATE members SET is_active = 0 WHERE id = :id", {"id": member_id})
        if n == 0:
            raise PersistenceError(f"unknown member id: {member_id}")

    def append_change_event(self, event: ChangeEvent) -> None:
        self._write(INSERT_EVENT_SQL, {
            "id": event.id,
            "target_id": event.target_id,
            "member_id": event.member_id,
            "change_type": event.change_type.value,
            "member_name": event.member_name,
            "previous_data": _dumps(event.previous_data),
            "new_data": _dumps(event.new_data),
            "detected_at": event.detected_at.isoformat(),
        })

    def append_extraction_attempt(self, attempt: ExtractionAttempt) -> None:
        self._write(INSERT_ATTEMPT_SQL, {
            "target_id": attempt.target_id,
            "method": attempt.method.value,
            "status": attempt.status.value,
            "record_count": attempt.record_count,
            "duration_ms": attempt.duration_ms,
            "error_message": attempt.error_message,
            "artifact_refs": json.dumps(list(attempt.artifact_refs)),
            "started_at": attempt.started_at.isoformat(),
        })

    # read helpers for exports and inspection
    def change_events(self, target_id: str) -> List[ChangeEvent]:
        try:
            rows = self._conn.execute(
                "SELECT * FROM change_events WHERE target_id = ? ORDER BY detected_at, change_type, id",
                (target_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        out: List[ChangeEvent] = []
        for r in rows:
            d = dict(r)
            d["previous_data"] = json.loads(d["previous_data"]) if d["previous_data"] else None
            d["new_data"] = json.loads(d["new_data"]) if d["new_data"] else None
            d["detected_at"] = datetime.fromisoformat(d["detected_at"])
            out.append(ChangeEvent(**d))
        return out

    def attempt_count(self, target_id: str) -> int:
        try:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM extraction_attempts WHERE target_id = ?", (target_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e
        return int(row[0])
