"""SQLite-backed key-value state store."""

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import (
    Agent,
    Allowance,
    BusMessage,
    Task,
    Topic,
    TraceEvent,
)
from ..models.common import from_iso

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

TABLES = (
    "agents",
    "agent_index",
    "tasks",
    "task_index",
    "allowances",
    "bus_messages",
    "trace_events",
)


class IStorage(Protocol):
    """Shared state store for task and agent records (SQLite)."""

    async def init(self) -> None:
        ...

    async def close(self) -> None:
        ...

    # Agents
    async def save_agent(self, agent: Agent) -> None:
        """Upsert an agent and add it to the agent index if absent."""
        ...

    async def get_agent(self, address: str) -> Agent | None:
        """Get an agent by address (case-insensitive)."""
        ...

    async def compare_and_set_agent(self, agent: Agent, expected_version: int | None) -> bool:
        """Insert (expected_version None) or overwrite only if the version matches."""
        ...

    async def adjust_agent_reputation(self, address: str, delta: int) -> Agent | None:
        """Add `delta` to the stored reputation in one statement, floored at zero."""
        ...

    async def delete_agent(self, address: str) -> bool:
        """Delete an agent record and its index entry."""
        ...

    async def list_agent_addresses(self) -> list[str]:
        """Addresses in the agent index, in registration order."""
        ...

    # Tasks
    async def insert_task(self, task: Task) -> bool:
        """Insert a new task. Returns False if the id already exists."""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """Get a task by id."""
        ...

    async def compare_and_set_task(
        self, task: Task, expected_status: str, expected_version: int
    ) -> bool:
        """Overwrite a task only if status and version still match."""
        ...

    async def list_task_ids(self) -> list[str]:
        """Task ids in the task index, in creation order."""
        ...

    # Allowances
    async def save_allowance(self, allowance: Allowance) -> None:
        """Upsert a (user, agent) allowance."""
        ...

    async def get_allowances(self, user_id: str) -> list[Allowance]:
        """All allowances a user granted."""
        ...

    # BusMessages
    async def save_bus_message(self, message: BusMessage) -> None:
        ...

    async def get_bus_messages(self, limit: int = 100) -> list[BusMessage]:
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
        task_id: str | None = None,
    ) -> list[TraceEvent]:
        """Newest first, filtered on any of the given fields."""
        ...

    async def clear(self) -> None:
        """Delete every record; the schema stays."""
        ...


class Storage:
    """aiosqlite implementation of IStorage. One connection per instance."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the connection and apply schema.sql (idempotent)."""
        self._conn = await aiosqlite.connect(self._db_path)
        await self._conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _db(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Agents
    async def save_agent(self, agent: Agent) -> None:
        """Upsert an agent and add it to the agent index if absent."""
        conn = self._db()
        await conn.execute(
            """
            INSERT INTO agents (address, version, data, updated_at)
            VALUES (?, 0, ?, CURRENT_TIMESTAMP)
            ON CONFLICT (address) DO UPDATE SET
                data = excluded.data,
                version = agents.version + 1,
                updated_at = CURRENT_TIMESTAMP
            """,
            (agent.key, json.dumps(agent.to_dict())),
        )
        await conn.execute(
            "INSERT OR IGNORE INTO agent_index (address) VALUES (?)",
            (agent.key,),
        )
        await conn.commit()

    async def get_agent(self, address: str) -> Agent | None:
        """Get an agent by address (case-insensitive)."""
        cursor = await self._db().execute(
            "SELECT data, version FROM agents WHERE address = ?",
            (address.lower(),),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        agent = Agent.from_dict(json.loads(row[0]))
        agent.version = row[1]
        return agent

    async def compare_and_set_agent(self, agent: Agent, expected_version: int | None) -> bool:
        """Insert (expected_version None) or overwrite only if the version matches.

        On success the stored version is 0 for an insert, else
        ``expected_version + 1``.
        """
        conn = self._db()
        data = json.dumps(agent.to_dict())
        if expected_version is None:
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO agents (address, version, data, updated_at)
                VALUES (?, 0, ?, CURRENT_TIMESTAMP)
                """,
                (agent.key, data),
            )
        else:
            cursor = await conn.execute(
                """
                UPDATE agents
                SET data = ?, version = version + 1, updated_at = CURRENT_TIMESTAMP
                WHERE address = ? AND version = ?
                """,
                (data, agent.key, expected_version),
            )
        written = cursor.rowcount == 1
        if written:
            await conn.execute(
                "INSERT OR IGNORE INTO agent_index (address) VALUES (?)", (agent.key,)
            )
        await conn.commit()
        return written

    async def adjust_agent_reputation(self, address: str, delta: int) -> Agent | None:
        """Add `delta` to the stored reputation in one statement, floored at zero."""
        conn = self._db()
        cursor = await conn.execute(
            """
            UPDATE agents
            SET data = json_set(
                    data, '$.reputation', max(0, json_extract(data, '$.reputation') + ?)
                ),
                version = version + 1,
                updated_at = CURRENT_TIMESTAMP
            WHERE address = ?
            """,
            (int(delta), address.lower()),
        )
        updated = cursor.rowcount == 1
        await conn.commit()
        if not updated:
            return None
        return await self.get_agent(address)

    async def delete_agent(self, address: str) -> bool:
        """Delete an agent record and its index entry."""
        conn = self._db()
        cursor = await conn.execute(
            "DELETE FROM agents WHERE address = ?", (address.lower(),)
        )
        deleted = cursor.rowcount > 0
        await conn.execute(
            "DELETE FROM agent_index WHERE address = ?", (address.lower(),)
        )
        await conn.commit()
        return deleted

    async def list_agent_addresses(self) -> list[str]:
        """Addresses in the agent index, in registration order."""
        cursor = await self._db().execute(
            "SELECT address FROM agent_index ORDER BY position ASC"
        )
        return [row[0] for row in await cursor.fetchall()]

    # Tasks
    async def insert_task(self, task: Task) -> bool:
        """Insert a new task. Returns False if the id already exists."""
        conn = self._db()
        cursor = await conn.execute(
            """
            INSERT OR IGNORE INTO tasks (id, status, version, data, updated_at)
            VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
            """,
            (task.id, task.status.value, task.version, json.dumps(task.to_dict())),
        )
        inserted = cursor.rowcount == 1
        if inserted:
            await conn.execute(
                "INSERT OR IGNORE INTO task_index (task_id) VALUES (?)", (task.id,)
            )
        await conn.commit()
        return inserted

    async def get_task(self, task_id: str) -> Task | None:
        """Get a task by id."""
        cursor = await self._db().execute(
            "SELECT data, version FROM tasks WHERE id = ?", (task_id,)
        )
        row = await cursor.fetchone()
        if not row:
            return None
        data = json.loads(row[0])
        # The column is authoritative for the version
        data["version"] = row[1]
        return Task.from_dict(data)

    async def compare_and_set_task(
        self, task: Task, expected_status: str, expected_version: int
    ) -> bool:
        """Overwrite a task only if status and version still match.

        On success the stored version is ``expected_version + 1``.
        """
        conn = self._db()
        data = task.to_dict()
        data["version"] = expected_version + 1
        cursor = await conn.execute(
            """
            UPDATE tasks
            SET status = ?, version = ?, data = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status = ? AND version = ?
            """,
            (
                task.status.value,
                expected_version + 1,
                json.dumps(data),
                task.id,
                expected_status,
                expected_version,
            ),
        )
        updated = cursor.rowcount == 1
        await conn.commit()
        return updated

    async def list_task_ids(self) -> list[str]:
        """Task ids in the task index, in creation order."""
        cursor = await self._db().execute(
            "SELECT task_id FROM task_index ORDER BY position ASC"
        )
        return [row[0] for row in await cursor.fetchall()]

    # Allowances
    async def save_allowance(self, allowance: Allowance) -> None:
        """Upsert a (user, agent) allowance. Last write wins."""
        conn = self._db()
        await conn.execute(
            """
            INSERT OR REPLACE INTO allowances (user_id, agent_id, allowance, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            """,
            (allowance.user_id, allowance.agent_id.lower(), str(allowance.allowance)),
        )
        await conn.commit()

    async def get_allowances(self, user_id: str) -> list[Allowance]:
        """All allowances a user granted."""
        cursor = await self._db().execute(
            """
            SELECT user_id, agent_id, allowance
            FROM allowances
            WHERE user_id = ?
            ORDER BY agent_id ASC
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [
            Allowance(user_id=row[0], agent_id=row[1], allowance=row[2])
            for row in rows
        ]

    # BusMessages
    async def save_bus_message(self, message: BusMessage) -> None:
        conn = self._db()
        await conn.execute(
            "INSERT INTO bus_messages (id, topic, payload, source, timestamp) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                message.id or uuid.uuid4().hex,
                message.topic.value,
                json.dumps(message.payload, default=str),
                message.source,
                message.timestamp.isoformat(),
            ),
        )
        await conn.commit()

    async def get_bus_messages(self, limit: int = 100) -> list[BusMessage]:
        """Most recent ledger events first."""
        cursor = await self._db().execute(
            "SELECT id, topic, payload, source, timestamp FROM bus_messages "
            "ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        return [
            BusMessage(
                id=message_id,
                topic=Topic(topic),
                payload=json.loads(payload),
                source=source,
                timestamp=from_iso(timestamp),
            )
            for message_id, topic, payload, source, timestamp in await cursor.fetchall()
        ]

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        conn = self._db()
        await conn.execute(
            "INSERT INTO trace_events (id, event_type, actor, data, timestamp) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                event.id or uuid.uuid4().hex,
                event.event_type,
                event.actor,
                json.dumps(event.data, default=str),
                event.timestamp.isoformat(),
            ),
        )
        await conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
        task_id: str | None = None,
    ) -> list[TraceEvent]:
        """Newest first, filtered on any of the given fields."""
        filters: list[tuple[str, list]] = []
        if after:
            filters.append(("timestamp > ?", [after.isoformat()]))
        if event_types:
            marks = ", ".join("?" for _ in event_types)
            filters.append((f"event_type IN ({marks})", list(event_types)))
        if actor:
            filters.append(("actor = ?", [actor]))
        if task_id is not None:
            filters.append(("json_extract(data, '$.task_id') = ?", [str(task_id)]))

        where = " AND ".join(clause for clause, _ in filters) or "1 = 1"
        params = [value for _, values in filters for value in values]
        cursor = await self._db().execute(
            "SELECT id, event_type, actor, data, timestamp FROM trace_events "
            f"WHERE {where} ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            [*params, limit],
        )
        return [
            TraceEvent(
                id=event_id,
                event_type=event_type,
                actor=actor_name,
                data=json.loads(data),
                timestamp=from_iso(timestamp),
            )
            for event_id, event_type, actor_name, data, timestamp in await cursor.fetchall()
        ]

    async def clear(self) -> None:
        conn = self._db()
        for table in TABLES:
            await conn.execute(f"DELETE FROM {table}")
        await conn.commit()
