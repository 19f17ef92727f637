"""SQLite storage for live sessions, calls, profiles, notes, and research."""

from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Iterable, List, Optional

from .models import (
    Call,
    CallFeedback,
    FeedbackEntry,
    LiveSession,
    Note,
    NoteType,
    Research,
    ResearchStatus,
    SessionStatus,
    UserProfile,
)

_SESSION_COLUMNS = (
    "id, owner, status, started_at, ended_at, transcript_so_far, feedback_given, "
    "last_note_timestamp, version"
)
_CALL_COLUMNS = (
    "id, owner, transcript, duration_seconds, talk_ratio, interruption_count, "
    "overall_score, feedback, tags, created_at"
)
_PROFILE_COLUMNS = (
    "owner, talk_ratio_avg, score_avg, close_rate, bad_habits, strengths, "
    "areas_improving, summary, total_calls_analyzed, updated_at"
)
_PROFILE_LIST_FIELDS = {"bad_habits", "strengths", "areas_improving"}
_PROFILE_WRITABLE = {
    "talk_ratio_avg",
    "score_avg",
    "close_rate",
    "bad_habits",
    "strengths",
    "areas_improving",
    "summary",
}


def _dump_list(values: Iterable[Any]) -> str:
    return json.dumps(list(values))


class CoachStore:
    """Persistent storage built on SQLite."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=30)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    status TEXT NOT NULL,
                    started_at REAL NOT NULL,
                    ended_at REAL,
                    transcript_so_far TEXT NOT NULL DEFAULT '',
                    feedback_given TEXT NOT NULL DEFAULT '[]',
                    last_note_timestamp REAL,
                    version INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS sessions_one_active_per_owner
                ON sessions(owner) WHERE status = 'active'
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS calls (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    transcript TEXT NOT NULL,
                    duration_seconds INTEGER NOT NULL,
                    talk_ratio REAL NOT NULL,
                    interruption_count INTEGER NOT NULL,
                    overall_score REAL NOT NULL,
                    feedback TEXT NOT NULL,
                    tags TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS calls_owner_recency ON calls(owner, created_at)"
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS profiles (
                    owner TEXT PRIMARY KEY,
                    talk_ratio_avg REAL NOT NULL DEFAULT 0,
                    score_avg REAL,
                    close_rate REAL,
                    bad_habits TEXT NOT NULL DEFAULT '[]',
                    strengths TEXT NOT NULL DEFAULT '[]',
                    areas_improving TEXT NOT NULL DEFAULT '[]',
                    summary TEXT NOT NULL DEFAULT '',
                    total_calls_analyzed INTEGER NOT NULL DEFAULT 0,
                    updated_at REAL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    owner TEXT NOT NULL,
                    content TEXT NOT NULL,
                    type TEXT NOT NULL,
                    timestamp REAL NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS research (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    session_id TEXT,
                    query TEXT NOT NULL,
                    status TEXT NOT NULL,
                    results TEXT,
                    requested_at REAL NOT NULL,
                    completed_at REAL
                )
                """
            )
            conn.commit()

    # Sessions

    @staticmethod
    def _row_to_session(row: tuple) -> LiveSession:
        return LiveSession(
            id=row[0],
            owner=row[1],
            status=SessionStatus(row[2]),
            started_at=row[3],
            ended_at=row[4],
            transcript_so_far=row[5],
            feedback_given=[FeedbackEntry(**entry) for entry in json.loads(row[6] or "[]")],
            last_note_timestamp=row[7],
            version=row[8],
        )

    def start_session(self, session: LiveSession) -> LiveSession:
        """Insert ``session`` after cancelling any active session of the same owner."""

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                "UPDATE sessions SET status = ?, ended_at = ?, version = version + 1 "
                "WHERE owner = ? AND status = ?",
                (
                    SessionStatus.CANCELLED.value,
                    session.started_at,
                    session.owner,
                    SessionStatus.ACTIVE.value,
                ),
            )
            conn.execute(
                f"INSERT INTO sessions ({_SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    session.id,
                    session.owner,
                    session.status.value,
                    session.started_at,
                    session.ended_at,
                    session.transcript_so_far,
                    json.dumps([entry.model_dump(mode="json") for entry in session.feedback_given]),
                    session.last_note_timestamp,
                    session.version,
                ),
            )
            conn.commit()
        return session

    def fetch_session(self, session_id: str) -> Optional[LiveSession]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
        return self._row_to_session(row) if row else None

    def find_active_session(
        self, owner: str, session_id: Optional[str] = None
    ) -> Optional[LiveSession]:
        query = f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE owner = ? AND status = ?"
        params: List[Any] = [owner, SessionStatus.ACTIVE.value]
        if session_id is not None:
            query += " AND id = ?"
            params.append(session_id)
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return self._row_to_session(row) if row else None

    def save_session_state(self, session: LiveSession) -> bool:
        """Persist transcript, feedback, and note state with a compare-and-set on ``version``.

        The write only lands if the stored row is still active and still at
        ``session.version``. On success ``session.version`` is advanced.
        """

        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE sessions
                SET transcript_so_far = ?, feedback_given = ?, last_note_timestamp = ?,
                    version = version + 1
                WHERE id = ? AND owner = ? AND status = ? AND version = ?
                """,
                (
                    session.transcript_so_far,
                    json.dumps([entry.model_dump(mode="json") for entry in session.feedback_given]),
                    session.last_note_timestamp,
                    session.id,
                    session.owner,
                    SessionStatus.ACTIVE.value,
                    session.version,
                ),
            )
            conn.commit()
        if cursor.rowcount != 1:
            return False
        session.version += 1
        return True

    def finish_session(
        self,
        session_id: str,
        owner: str,
        status: SessionStatus,
        ended_at: float,
    ) -> bool:
        """Move an active session to a terminal ``status``; ``False`` if it was not active."""

        if status is SessionStatus.ACTIVE:
            raise ValueError("finish_session requires a terminal status")
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE sessions SET status = ?, ended_at = ?, version = version + 1 "
                "WHERE id = ? AND owner = ? AND status = ?",
                (status.value, ended_at, session_id, owner, SessionStatus.ACTIVE.value),
            )
            conn.commit()
        return cursor.rowcount == 1

    # Calls

    @staticmethod
    def _row_to_call(row: tuple) -> Call:
        return Call(
            id=row[0],
            owner=row[1],
            transcript=row[2],
            duration_seconds=row[3],
            talk_ratio=row[4],
            interruption_count=row[5],
            overall_score=row[6],
            feedback=[CallFeedback(**item) for item in json.loads(row[7] or "[]")],
            tags=json.loads(row[8] or "[]"),
            created_at=row[9],
        )

    def _insert_call(self, conn: sqlite3.Connection, call: Call) -> None:
        conn.execute(
            f"INSERT INTO calls ({_CALL_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                call.id,
                call.owner,
                call.transcript,
                call.duration_seconds,
                call.talk_ratio,
                call.interruption_count,
                call.overall_score,
                json.dumps([item.model_dump() for item in call.feedback]),
                _dump_list(sorted(call.tags)),
                call.created_at,
            ),
        )

    def create_call(self, call: Call) -> Call:
        """Insert ``call`` and bump the owner's ``total_calls_analyzed`` atomically."""

        with self._connect() as conn:
            self._insert_call(conn, call)
            self._adjust_call_counter(conn, call.owner, 1)
            conn.commit()
        return call

    def complete_session(self, session_id: str, call: Call, ended_at: float) -> bool:
        """Complete an active session and insert its call in one transaction.

        Returns ``False`` and writes nothing when the session is no longer
        active for ``call.owner``.
        """

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            cursor = conn.execute(
                "UPDATE sessions SET status = ?, ended_at = ?, version = version + 1 "
                "WHERE id = ? AND owner = ? AND status = ?",
                (
                    SessionStatus.COMPLETED.value,
                    ended_at,
                    session_id,
                    call.owner,
                    SessionStatus.ACTIVE.value,
                ),
            )
            if cursor.rowcount != 1:
                conn.rollback()
                return False
            self._insert_call(conn, call)
            self._adjust_call_counter(conn, call.owner, 1)
            conn.commit()
        return True

    def delete_call(self, owner: str, call_id: str) -> bool:
        """Delete a call owned by ``owner`` and decrement the counter in the same transaction."""

        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM calls WHERE id = ? AND owner = ?",
                (call_id, owner),
            )
            if cursor.rowcount != 1:
                conn.rollback()
                return False
            self._adjust_call_counter(conn, owner, -1)
            conn.commit()
        return True

    def _adjust_call_counter(self, conn: sqlite3.Connection, owner: str, delta: int) -> None:
        conn.execute(
            """
            INSERT INTO profiles (owner, total_calls_analyzed, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(owner) DO UPDATE SET
                total_calls_analyzed = MAX(profiles.total_calls_analyzed + ?, 0),
                updated_at = excluded.updated_at
            """,
            (owner, max(delta, 0), time.time(), delta),
        )

    def fetch_call(self, owner: str, call_id: str) -> Optional[Call]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_CALL_COLUMNS} FROM calls WHERE id = ? AND owner = ?",
                (call_id, owner),
            ).fetchone()
        return self._row_to_call(row) if row else None

    def list_calls(
        self,
        owner: str,
        limit: Optional[int] = None,
        offset: int = 0,
        tag: Optional[str] = None,
        since: Optional[float] = None,
    ) -> List[Call]:
        """Return the owner's calls, newest first.

        ``since`` keeps calls created at or after that timestamp.
        """

        query = f"SELECT {_CALL_COLUMNS} FROM calls WHERE owner = ?"
        params: List[Any] = [owner]
        if since is not None:
            query += " AND created_at >= ?"
            params.append(since)
        if tag:
            query += " AND EXISTS (SELECT 1 FROM json_each(calls.tags) WHERE json_each.value = ?)"
            params.append(tag)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([-1 if limit is None else limit, offset])
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_call(row) for row in rows]

    def count_calls(self, owner: str) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM calls WHERE owner = ?", (owner,)).fetchone()[0]

    # Profiles

    @staticmethod
    def _row_to_profile(row: tuple) -> UserProfile:
        return UserProfile(
            owner=row[0],
            talk_ratio_avg=row[1],
            score_avg=row[2],
            close_rate=row[3],
            bad_habits=json.loads(row[4] or "[]"),
            strengths=json.loads(row[5] or "[]"),
            areas_improving=json.loads(row[6] or "[]"),
            summary=row[7],
            total_calls_analyzed=row[8],
            updated_at=row[9],
        )

    def fetch_profile(self, owner: str) -> Optional[UserProfile]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE owner = ?",
                (owner,),
            ).fetchone()
        return self._row_to_profile(row) if row else None

    def update_profile(self, owner: str, **fields: Any) -> UserProfile:
        """Upsert the given profile fields; the call counter is never touched here."""

        unknown = set(fields) - _PROFILE_WRITABLE
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        values = {
            name: _dump_list(value) if name in _PROFILE_LIST_FIELDS else value
            for name, value in fields.items()
        }
        values["updated_at"] = time.time()
        columns = ", ".join(["owner", *values])
        placeholders = ", ".join("?" for _ in range(len(values) + 1))
        assignments = ", ".join(f"{name} = excluded.{name}" for name in values)
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO profiles ({columns}) VALUES ({placeholders}) "
                f"ON CONFLICT(owner) DO UPDATE SET {assignments}",
                (owner, *values.values()),
            )
            conn.commit()
        profile = self.fetch_profile(owner)
        assert profile is not None
        return profile

    def reconcile_call_count(self, owner: str) -> int:
        """Reset ``total_calls_analyzed`` to the number of stored calls."""

        with self._connect() as conn:
            count = conn.execute(
                "SELECT COUNT(*) FROM calls WHERE owner = ?", (owner,)
            ).fetchone()[0]
            conn.execute(
                """
                INSERT INTO profiles (owner, total_calls_analyzed, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(owner) DO UPDATE SET
                    total_calls_analyzed = excluded.total_calls_analyzed,
                    updated_at = excluded.updated_at
                """,
                (owner, count, time.time()),
            )
            conn.commit()
        return count

    # Notes

    def save_note(self, note: Note) -> Note:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO notes (id, session_id, owner, content, type, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (note.id, note.session_id, note.owner, note.content, note.type.value, note.timestamp),
            )
            conn.commit()
        return note

    def list_notes(self, owner: str, session_id: Optional[str] = None) -> List[Note]:
        """Return notes oldest first for a session, newest first across sessions."""

        query = "SELECT id, session_id, owner, content, type, timestamp FROM notes WHERE owner = ?"
        params: List[Any] = [owner]
        if session_id is not None:
            query += " AND session_id = ? ORDER BY timestamp ASC, rowid ASC"
            params.append(session_id)
        else:
            query += " ORDER BY timestamp DESC, rowid DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            Note(
                id=row[0],
                session_id=row[1],
                owner=row[2],
                content=row[3],
                type=NoteType(row[4]),
                timestamp=row[5],
            )
            for row in rows
        ]

    def delete_note(self, owner: str, note_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM notes WHERE id = ? AND owner = ?", (note_id, owner))
            conn.commit()
        return cursor.rowcount == 1

    # Research

    @staticmethod
    def _row_to_research(row: tuple) -> Research:
        return Research(
            id=row[0],
            owner=row[1],
            session_id=row[2],
            query=row[3],
            status=ResearchStatus(row[4]),
            results=row[5],
            requested_at=row[6],
            completed_at=row[7],
        )

    def save_research(self, research: Research) -> Research:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO research (
                    id, owner, session_id, query, status, results, requested_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    research.id,
                    research.owner,
                    research.session_id,
                    research.query,
                    research.status.value,
                    research.results,
                    research.requested_at,
                    research.completed_at,
                ),
            )
            conn.commit()
        return research

    def fetch_research(self, owner: str, research_id: str) -> Optional[Research]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, owner, session_id, query, status, results, requested_at, completed_at "
                "FROM research WHERE id = ? AND owner = ?",
                (research_id, owner),
            ).fetchone()
        return self._row_to_research(row) if row else None

    def list_research(
        self,
        owner: str,
        session_id: Optional[str] = None,
        status: Optional[ResearchStatus] = None,
    ) -> List[Research]:
        query = (
            "SELECT id, owner, session_id, query, status, results, requested_at, completed_at "
            "FROM research WHERE owner = ?"
        )
        params: List[Any] = [owner]
        if session_id is not None:
            query += " AND session_id = ?"
            params.append(session_id)
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY requested_at DESC, rowid DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_research(row) for row in rows]

    def delete_research(self, owner: str, research_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM research WHERE id = ? AND owner = ?", (research_id, owner)
            )
            conn.commit()
        return cursor.rowcount == 1


__all__ = ["CoachStore"]
