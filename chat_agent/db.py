"""SQLite persistence layer."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Sequence

from chat_agent.models import Message

SCHEMA_VERSION = 1


class Database:
    """Small SQLite wrapper with explicit schema management."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS conversations (
                conversation_id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                conversation_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                message_id TEXT NOT NULL,
                role TEXT NOT NULL,
                message_json TEXT NOT NULL,
                PRIMARY KEY(conversation_id, position),
                FOREIGN KEY(conversation_id) REFERENCES conversations(conversation_id)
            );

            CREATE TABLE IF NOT EXISTS tool_executions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL,
                tool_name TEXT NOT NULL,
                input_json TEXT NOT NULL,
                output_json TEXT NOT NULL,
                succeeded INTEGER NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS scheduled_tasks (
                id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL,
                callback TEXT NOT NULL,
                payload TEXT NOT NULL,
                trigger_type TEXT NOT NULL,
                trigger_value TEXT NOT NULL,
                next_run_at TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )

    def load_messages(self, conversation_id: str) -> list[Message]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT message_json FROM messages WHERE conversation_id = ? ORDER BY position ASC",
                (conversation_id,),
            ).fetchall()
        return [Message.model_validate_json(row["message_json"]) for row in rows]

    def replace_messages(self, conversation_id: str, messages: Sequence[Message]) -> None:
        """Atomically replace the whole transcript of a conversation."""

        now = _utc_now_iso()
        with self._connect() as conn:
            _touch_conversation(conn, conversation_id, now)
            conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
            conn.executemany(
                """
                INSERT INTO messages(conversation_id, position, message_id, role, message_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (conversation_id, position, message.id, message.role, json.dumps(message.dump()))
                    for position, message in enumerate(messages)
                ],
            )

    def append_message(self, conversation_id: str, message: Message) -> None:
        now = _utc_now_iso()
        with self._connect() as conn:
            _touch_conversation(conn, conversation_id, now)
            row = conn.execute(
                "SELECT COALESCE(MAX(position), -1) AS last FROM messages WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
            conn.execute(
                """
                INSERT INTO messages(conversation_id, position, message_id, role, message_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                (conversation_id, int(row["last"]) + 1, message.id, message.role, json.dumps(message.dump())),
            )

    def clear_messages(self, conversation_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
            conn.execute("DELETE FROM conversations WHERE conversation_id = ?", (conversation_id,))

    def count_messages(self, conversation_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM messages WHERE conversation_id = ?", (conversation_id,)
            ).fetchone()
        return int(row["n"])

    def list_conversations(self) -> list[dict[str, Any]]:
        """Return conversations with at least one message, most recent first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT c.conversation_id, c.updated_at,
                    (
                        SELECT m.message_json FROM messages m
                        WHERE m.conversation_id = c.conversation_id AND m.role = 'user'
                        ORDER BY m.position ASC LIMIT 1
                    ) AS first_user_json
                FROM conversations c
                WHERE EXISTS (SELECT 1 FROM messages m WHERE m.conversation_id = c.conversation_id)
                ORDER BY c.updated_at DESC
                """
            ).fetchall()
        conversations = []
        for row in rows:
            first_user = (
                Message.model_validate_json(row["first_user_json"]) if row["first_user_json"] else None
            )
            conversations.append(
                {
                    "conversation_id": row["conversation_id"],
                    "first_user_text": first_user.text if first_user else "",
                    "updated_at": row["updated_at"],
                }
            )
        return conversations

    def log_tool_execution(
        self,
        conversation_id: str,
        tool_name: str,
        tool_input: dict[str, Any],
        tool_output: Any,
        succeeded: bool,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tool_executions(conversation_id, tool_name, input_json, output_json, succeeded, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    conversation_id,
                    tool_name,
                    json.dumps(tool_input, default=str),
                    json.dumps(tool_output, default=str),
                    int(succeeded),
                    _utc_now_iso(),
                ),
            )

    def list_tool_executions(self, conversation_id: str) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT tool_name, input_json, output_json, succeeded, created_at
                FROM tool_executions WHERE conversation_id = ? ORDER BY id ASC
                """,
                (conversation_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def create_scheduled_task(
        self,
        task_id: str,
        conversation_id: str,
        callback: str,
        payload: str,
        trigger_type: str,
        trigger_value: str,
        next_run_at: datetime,
    ) -> None:
        now = _utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO scheduled_tasks(
                    id, conversation_id, callback, payload, trigger_type, trigger_value,
                    next_run_at, status, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
                """,
                (
                    task_id,
                    conversation_id,
                    callback,
                    payload,
                    trigger_type,
                    trigger_value,
                    _to_utc_iso(next_run_at),
                    now,
                    now,
                ),
            )

    def get_scheduled_task(self, task_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM scheduled_tasks WHERE id = ?", (task_id,)).fetchone()
        return dict(row) if row else None

    def list_scheduled_tasks(self, conversation_id: str | None = None) -> list[dict[str, Any]]:
        query = "SELECT * FROM scheduled_tasks WHERE status IN ('pending', 'running')"
        params: tuple[Any, ...] = ()
        if conversation_id is not None:
            query += " AND conversation_id = ?"
            params = (conversation_id,)
        with self._connect() as conn:
            rows = conn.execute(query + " ORDER BY next_run_at ASC", params).fetchall()
        return [dict(row) for row in rows]

    def get_due_tasks(self, now: datetime) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM scheduled_tasks
                WHERE status = 'pending' AND next_run_at <= ?
                ORDER BY next_run_at ASC
                """,
                (_to_utc_iso(now),),
            ).fetchall()
        return [dict(row) for row in rows]

    def mark_task_status(self, task_id: str, status: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE scheduled_tasks SET status = ?, updated_at = ? WHERE id = ?",
                (status, _utc_now_iso(), task_id),
            )

    def requeue_running_tasks(self) -> int:
        """Return tasks left `running` by an interrupted process to `pending`."""

        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE scheduled_tasks SET status = 'pending', updated_at = ? WHERE status = 'running'",
                (_utc_now_iso(),),
            )
            return cur.rowcount

    def reschedule_task(self, task_id: str, next_run_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE scheduled_tasks SET next_run_at = ?, status = 'pending', updated_at = ? WHERE id = ?",
                (_to_utc_iso(next_run_at), _utc_now_iso(), task_id),
            )

    def delete_scheduled_task(self, task_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM scheduled_tasks WHERE id = ?", (task_id,))
            return cur.rowcount > 0


def _touch_conversation(conn: sqlite3.Connection, conversation_id: str, now: str) -> None:
    conn.execute(
        """
        INSERT INTO conversations(conversation_id, created_at, updated_at)
        VALUES(?, ?, ?)
        ON CONFLICT(conversation_id) DO UPDATE SET updated_at=excluded.updated_at
        """,
        (conversation_id, now, now),
    )


def _to_utc_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
