from __future__ import annotations

import json
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ramadan_clock.core.models import PrayerTimeEntry


@dataclass(frozen=True)
class UpsertResult:
    created: int
    updated: int

    @property
    def total(self) -> int:
        return self.created + self.updated


@dataclass(frozen=True)
class FetchRunResult:
    status: str
    entries_fetched: int = 0
    error_type: str | None = None
    error_message: str | None = None


def _entry_row(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": int(row["id"]),
        "date": str(row["date"]),
        "sehri": str(row["sehri"]),
        "iftar": str(row["iftar"]),
        "location": str(row["location"]),
        "updatedAt": str(row["updated_at_utc"]),
    }


class ScheduleRepository:
    def __init__(self, database_path: str) -> None:
        self.database_path = database_path
        self._lock = threading.Lock()
        self._ensure_parent_dir()

    def _ensure_parent_dir(self) -> None:
        path = Path(self.database_path)
        path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self.database_path)
        connection.row_factory = sqlite3.Row
        return connection

    def init_db(self) -> None:
        with self._lock, self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS time_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    date TEXT NOT NULL,
                    sehri TEXT NOT NULL,
                    iftar TEXT NOT NULL,
                    location TEXT NOT NULL,
                    created_at_utc TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL,
                    UNIQUE(date, location)
                );

                CREATE INDEX IF NOT EXISTS idx_time_entries_location_date
                    ON time_entries(location, date);

                CREATE TABLE IF NOT EXISTS upload_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    file_name TEXT NOT NULL,
                    row_count INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    error_message TEXT,
                    uploaded_at_utc TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS fetch_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    mode TEXT NOT NULL,
                    request_json TEXT NOT NULL,
                    started_at_utc TEXT NOT NULL,
                    finished_at_utc TEXT NOT NULL,
                    status TEXT NOT NULL,
                    entries_fetched INTEGER NOT NULL,
                    error_type TEXT,
                    error_message TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_fetch_runs_started
                    ON fetch_runs(started_at_utc DESC);
                """
            )
            conn.commit()

    def ping(self) -> bool:
        with self._lock, self._connect() as conn:
            conn.execute("SELECT 1")
        return True

    def upsert_entries(self, entries: list[PrayerTimeEntry], *, batch_size: int = 50) -> UpsertResult:
        """Insert or update by (date, location), committing every ``batch_size`` rows."""
        now = datetime.now(tz=timezone.utc).isoformat()
        created = 0
        updated = 0
        batch_size = max(batch_size, 1)

        with self._lock, self._connect() as conn:
            for index, entry in enumerate(entries, start=1):
                existing = conn.execute(
                    "SELECT id FROM time_entries WHERE date = ? AND location = ?",
                    (entry.date, entry.location),
                ).fetchone()
                if existing is None:
                    conn.execute(
                        """
                        INSERT INTO time_entries(
                            date, sehri, iftar, location, created_at_utc, updated_at_utc
                        ) VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (entry.date, entry.sehri, entry.iftar, entry.location, now, now),
                    )
                    created += 1
                else:
                    conn.execute(
                        """
                        UPDATE time_entries
                        SET sehri = ?, iftar = ?, updated_at_utc = ?
                        WHERE id = ?
                        """,
                        (entry.sehri, entry.iftar, now, int(existing["id"])),
                    )
                    updated += 1
                if index % batch_size == 0:
                    conn.commit()
            conn.commit()

        return UpsertResult(created=created, updated=updated)

    def get_entries(
        self,
        location: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict[str, Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if location:
            clauses.append("location = ?")
            params.append(location)
        if start_date:
            clauses.append("date >= ?")
            params.append(start_date)
        if end_date:
            clauses.append("date <= ?")
            params.append(end_date)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._lock, self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT id, date, sehri, iftar, location, updated_at_utc
                FROM time_entries
                {where}
                ORDER BY location ASC, date ASC
                """,
                params,
            ).fetchall()
        return [_entry_row(row) for row in rows]

    def get_entry(self, entry_id: int) -> dict[str, Any] | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                SELECT id, date, sehri, iftar, location, updated_at_utc
                FROM time_entries
                WHERE id = ?
                """,
                (entry_id,),
            ).fetchone()
        if row is None:
            return None
        return _entry_row(row)

    def get_locations(self) -> list[str]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT DISTINCT location FROM time_entries ORDER BY location ASC"
            ).fetchall()
        return [str(row["location"]) for row in rows]

    def update_entry(self, entry_id: int, *, sehri: str | None = None, iftar: str | None = None) -> bool:
        now = datetime.now(tz=timezone.utc).isoformat()
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE time_entries
                SET sehri = COALESCE(?, sehri),
                    iftar = COALESCE(?, iftar),
                    updated_at_utc = ?
                WHERE id = ?
                """,
                (sehri, iftar, now, entry_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete_entry(self, entry_id: int) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute("DELETE FROM time_entries WHERE id = ?", (entry_id,))
            conn.commit()
            return cursor.rowcount > 0

    def record_upload(
        self,
        *,
        file_name: str,
        row_count: int,
        status: str,
        error_message: str | None = None,
    ) -> int:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO upload_logs(
                    file_name, row_count, status, error_message, uploaded_at_utc
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    file_name,
                    row_count,
                    status,
                    error_message,
                    datetime.now(tz=timezone.utc).isoformat(),
                ),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def recent_uploads(self, limit: int = 5) -> list[dict[str, Any]]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT id, file_name, row_count, status, error_message, uploaded_at_utc
                FROM upload_logs
                ORDER BY uploaded_at_utc DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            {
                "id": int(row["id"]),
                "fileName": str(row["file_name"]),
                "rowCount": int(row["row_count"]),
                "status": str(row["status"]),
                "errorMessage": row["error_message"],
                "uploadedAt": str(row["uploaded_at_utc"]),
            }
            for row in rows
        ]

    def record_fetch_run(
        self,
        *,
        mode: str,
        request: dict[str, Any],
        started_at_utc: datetime,
        finished_at_utc: datetime,
        result: FetchRunResult,
    ) -> int:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO fetch_runs(
                    mode,
                    request_json,
                    started_at_utc,
                    finished_at_utc,
                    status,
                    entries_fetched,
                    error_type,
                    error_message
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    mode,
                    json.dumps(request, ensure_ascii=False),
                    started_at_utc.astimezone(timezone.utc).isoformat(),
                    finished_at_utc.astimezone(timezone.utc).isoformat(),
                    result.status,
                    result.entries_fetched,
                    result.error_type,
                    result.error_message,
                ),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def recent_fetch_runs(self, limit: int = 10) -> list[dict[str, Any]]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    id,
                    mode,
                    request_json,
                    started_at_utc,
                    finished_at_utc,
                    status,
                    entries_fetched,
                    error_type,
                    error_message
                FROM fetch_runs
                ORDER BY started_at_utc DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()

        return [
            {
                "id": int(row["id"]),
                "mode": str(row["mode"]),
                "request": json.loads(str(row["request_json"])),
                "startedAt": str(row["started_at_utc"]),
                "finishedAt": str(row["finished_at_utc"]),
                "status": str(row["status"]),
                "entriesFetched": int(row["entries_fetched"]),
                "errorType": row["error_type"],
                "errorMessage": row["error_message"],
            }
            for row in rows
        ]
