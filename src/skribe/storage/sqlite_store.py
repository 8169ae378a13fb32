"""SQLite storage for projects, agents, documents and conversation messages."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path


def new_id() -> str:
    return uuid.uuid4().hex


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteStore:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        # One store per request; asyncio.to_thread may run calls on any worker thread
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

    def init_db(self) -> None:
        """Create all tables and indexes."""
        cur = self._conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_projects_owner ON projects(owner_id);

            CREATE TABLE IF NOT EXISTS agents (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                type TEXT NOT NULL,
                title TEXT NOT NULL,
                system_prompt TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_agents_project ON agents(project_id);

            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                title TEXT NOT NULL,
                content TEXT NOT NULL DEFAULT '',
                type TEXT NOT NULL DEFAULT 'custom',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_documents_project ON documents(project_id);

            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                agent_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (agent_id) REFERENCES agents(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_messages_agent ON messages(agent_id, created_at);
            """
        )
        self._conn.commit()

    # ── Projects ──

    def insert_project(self, owner_id: str, name: str, description: str | None = None) -> str:
        """Insert a project and return its id."""
        project_id = new_id()
        now = _now()
        self._conn.execute(
            """INSERT INTO projects (id, owner_id, name, description, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (project_id, owner_id, name, description, now, now),
        )
        self._conn.commit()
        return project_id

    def get_project(self, project_id: str) -> dict | None:
        cur = self._conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,))
        row = cur.fetchone()
        return dict(row) if row else None

    def list_projects(self, owner_id: str) -> list[dict]:
        """List a user's projects, most recently updated first."""
        cur = self._conn.execute(
            "SELECT * FROM projects WHERE owner_id = ? ORDER BY updated_at DESC, rowid DESC", (owner_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    # ── Agents ──

    def insert_agent(
        self, project_id: str, agent_type: str, title: str, system_prompt: str | None = None,
    ) -> str:
        """Insert an agent conversation and return its id."""
        agent_id = new_id()
        self._conn.execute(
            """INSERT INTO agents (id, project_id, type, title, system_prompt, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (agent_id, project_id, agent_type, title, system_prompt, _now()),
        )
        self._conn.commit()
        return agent_id

    def get_agent(self, agent_id: str) -> dict | None:
        cur = self._conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,))
        row = cur.fetchone()
        return dict(row) if row else None

    def list_agents(self, project_id: str) -> list[dict]:
        cur = self._conn.execute(
            "SELECT * FROM agents WHERE project_id = ? ORDER BY created_at, rowid", (project_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    # ── Documents ──

    def insert_document(self, project_id: str, title: str, content: str, doc_type: str = "custom") -> str:
        """Insert a document and return its id."""
        document_id = new_id()
        now = _now()
        self._conn.execute(
            """INSERT INTO documents (id, project_id, title, content, type, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (document_id, project_id, title, content, doc_type, now, now),
        )
        self._conn.execute("UPDATE projects SET updated_at = ? WHERE id = ?", (now, project_id))
        self._conn.commit()
        return document_id

    def get_document(self, document_id: str) -> dict | None:
        cur = self._conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,))
        row = cur.fetchone()
        return dict(row) if row else None

    def list_documents(self, project_id: str) -> list[dict]:
        """List a project's documents, most recently updated first."""
        cur = self._conn.execute(
            "SELECT * FROM documents WHERE project_id = ? ORDER BY updated_at DESC, rowid DESC", (project_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def update_document(
        self, document_id: str, content: str | None = None, title: str | None = None,
    ) -> bool:
        """Update content and/or title. Returns False if the document does not exist."""
        fields: dict[str, str] = {}
        if content is not None:
            fields["content"] = content
        if title is not None:
            fields["title"] = title
        fields["updated_at"] = _now()
        set_clause = ", ".join(f"{k} = ?" for k in fields)
        values = list(fields.values()) + [document_id]
        cur = self._conn.execute(
            f"UPDATE documents SET {set_clause} WHERE id = ?", values  # noqa: S608
        )
        self._conn.commit()
        return cur.rowcount > 0

    # ── Messages ──

    def insert_message(self, agent_id: str, role: str, content: str) -> str:
        """Append a message to an agent conversation and return its id."""
        message_id = new_id()
        self._conn.execute(
            "INSERT INTO messages (id, agent_id, role, content, created_at) VALUES (?, ?, ?, ?, ?)",
            (message_id, agent_id, role, content, _now()),
        )
        self._conn.commit()
        return message_id

    def list_messages(self, agent_id: str, limit: int | None = None) -> list[dict]:
        """Messages in conversation order. ``limit`` keeps the most recent N."""
        if limit is not None:
            cur = self._conn.execute(
                """SELECT * FROM (
                       SELECT rowid AS seq, * FROM messages WHERE agent_id = ?
                       ORDER BY seq DESC LIMIT ?
                   ) ORDER BY seq""",
                (agent_id, limit),
            )
        else:
            cur = self._conn.execute(
                "SELECT rowid AS seq, * FROM messages WHERE agent_id = ? ORDER BY seq", (agent_id,),
            )
        rows = [dict(row) for row in cur.fetchall()]
        for row in rows:
            row.pop("seq", None)
        return rows

    def count(self, table: str) -> int:
        cur = self._conn.execute(f"SELECT count(*) FROM {table}")  # noqa: S608
        return cur.fetchone()[0]

    def close(self) -> None:
        self._conn.close()
