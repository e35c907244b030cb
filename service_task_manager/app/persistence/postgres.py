"""
PostgreSQL persistence layer for the Task Manager service.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Set

import asyncpg

from shared.errors import ServiceError
from shared.logging import get_logger

from ..models import TASK_FIELDS, Role, Task, TaskFilters, TaskStatus, User
from .base import TaskRepository, TaskStore

TASK_COLUMNS = "id, title, description, status, assignee_id, due_date, created_at, updated_at"
USER_COLUMNS = "id, name, email, password_hash, role, created_at"
QUALIFIED_TASK_COLUMNS = ", ".join("t." + column.strip() for column in TASK_COLUMNS.split(","))

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        email VARCHAR(255) NOT NULL UNIQUE,
        password_hash VARCHAR(255) NOT NULL,
        role VARCHAR(20) NOT NULL CHECK (role IN ('manager', 'user')),
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id SERIAL PRIMARY KEY,
        title VARCHAR(255) NOT NULL,
        description TEXT,
        status VARCHAR(20) NOT NULL DEFAULT 'pending',
        assignee_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
        due_date DATE NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS task_dependencies (
        task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        depends_on_task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        PRIMARY KEY (task_id, depends_on_task_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS revoked_tokens (
        token_id VARCHAR(64) PRIMARY KEY,
        expires_at TIMESTAMP WITH TIME ZONE NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assignee_id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks(due_date);",
    "CREATE INDEX IF NOT EXISTS idx_task_dependencies_depends_on ON task_dependencies(depends_on_task_id);",
)


def _row_to_task(row: Mapping[str, Any]) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        status=TaskStatus(row["status"]),
        assignee_id=row["assignee_id"],
        due_date=row["due_date"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_user(row: Mapping[str, Any]) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=Role(row["role"]),
        created_at=row["created_at"],
    )


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, (TaskStatus, Role)) else value


class PostgresTaskRepository(TaskRepository):
    """Repository bound to one connection inside an open transaction."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def add_user(self, name: str, email: str, password_hash: str, role: Role) -> User:
        row = await self.conn.fetchrow(
            f"""
            INSERT INTO users (name, email, password_hash, role)
            VALUES ($1, $2, $3, $4)
            RETURNING {USER_COLUMNS}
            """,
            name, email.strip().lower(), password_hash, role.value,
        )
        return _row_to_user(row)

    async def get_user(self, user_id: int) -> Optional[User]:
        row = await self.conn.fetchrow(f"SELECT {USER_COLUMNS} FROM users WHERE id = $1", user_id)
        return _row_to_user(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        row = await self.conn.fetchrow(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = $1",
            email.strip().lower(),
        )
        return _row_to_user(row) if row else None

    async def get_users(self, user_ids: Iterable[int]) -> Dict[int, User]:
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        rows = await self.conn.fetch(f"SELECT {USER_COLUMNS} FROM users WHERE id = ANY($1::int[])", ids)
        return {row["id"]: _row_to_user(row) for row in rows}

    async def add_task(
        self,
        title: str,
        due_date: date,
        status: TaskStatus,
        description: Optional[str] = None,
        assignee_id: Optional[int] = None,
    ) -> Task:
        row = await self.conn.fetchrow(
            f"""
            INSERT INTO tasks (title, description, status, assignee_id, due_date)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING {TASK_COLUMNS}
            """,
            title, description, status.value, assignee_id, due_date,
        )
        return _row_to_task(row)

    async def get_task(self, task_id: int, for_update: bool = False) -> Optional[Task]:
        query = f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = $1"
        if for_update:
            query += " FOR UPDATE"
        row = await self.conn.fetchrow(query, task_id)
        return _row_to_task(row) if row else None

    async def list_tasks(self, filters: TaskFilters) -> List[Task]:
        clauses: List[str] = []
        args: List[Any] = []

        def bind(clause: str, value: Any):
            args.append(value)
            clauses.append(clause.format(f"${len(args)}"))

        if filters.status is not None:
            bind("status = {}", filters.status.value)
        if filters.assignee_id is not None:
            bind("assignee_id = {}", filters.assignee_id)
        if filters.due_date_from is not None:
            bind("due_date >= {}", filters.due_date_from)
        if filters.due_date_to is not None:
            bind("due_date <= {}", filters.due_date_to)

        query = f"SELECT {TASK_COLUMNS} FROM tasks"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id"
        rows = await self.conn.fetch(query, *args)
        return [_row_to_task(row) for row in rows]

    async def update_task(self, task_id: int, changes: Mapping[str, Any]) -> Task:
        columns = [name for name in TASK_FIELDS if name in changes]
        assignments = [f"{name} = ${index}" for index, name in enumerate(columns, start=2)]
        assignments.append("updated_at = NOW()")
        row = await self.conn.fetchrow(
            f"UPDATE tasks SET {', '.join(assignments)} WHERE id = $1 RETURNING {TASK_COLUMNS}",
            task_id, *[_column_value(changes[name]) for name in columns],
        )
        return _row_to_task(row)

    async def existing_task_ids(self, task_ids: Iterable[int]) -> Set[int]:
        ids = sorted(set(task_ids))
        if not ids:
            return set()
        rows = await self.conn.fetch("SELECT id FROM tasks WHERE id = ANY($1::int[])", ids)
        return {row["id"] for row in rows}

    async def dependency_ids_of(self, task_id: int) -> Set[int]:
        rows = await self.conn.fetch(
            "SELECT depends_on_task_id FROM task_dependencies WHERE task_id = $1",
            task_id,
        )
        return {row["depends_on_task_id"] for row in rows}

    async def dependencies_of(self, task_id: int, lock: bool = False) -> List[Task]:
        query = f"""
            SELECT {QUALIFIED_TASK_COLUMNS}
            FROM tasks t
            JOIN task_dependencies d ON d.depends_on_task_id = t.id
            WHERE d.task_id = $1
            ORDER BY t.id
        """
        if lock:
            query += " FOR SHARE OF t"
        rows = await self.conn.fetch(query, task_id)
        return [_row_to_task(row) for row in rows]

    async def dependencies_for(self, task_ids: Iterable[int]) -> Dict[int, List[Task]]:
        ids = sorted(set(task_ids))
        result: Dict[int, List[Task]] = {tid: [] for tid in ids}
        if not ids:
            return result
        rows = await self.conn.fetch(
            f"""
            SELECT d.task_id AS owner_id, {QUALIFIED_TASK_COLUMNS}
            FROM task_dependencies d
            JOIN tasks t ON t.id = d.depends_on_task_id
            WHERE d.task_id = ANY($1::int[])
            ORDER BY d.task_id, t.id
            """,
            ids,
        )
        for row in rows:
            result[row["owner_id"]].append(_row_to_task(row))
        return result

    async def add_dependencies(self, task_id: int, depends_on_ids: Iterable[int]) -> None:
        records = [(task_id, dep) for dep in sorted(set(depends_on_ids))]
        if records:
            await self.conn.executemany(
                """
                INSERT INTO task_dependencies (task_id, depends_on_task_id)
                VALUES ($1, $2)
                ON CONFLICT DO NOTHING
                """,
                records,
            )

    async def remove_dependencies(self, task_id: int, depends_on_ids: Iterable[int]) -> None:
        ids = sorted(set(depends_on_ids))
        if ids:
            await self.conn.execute(
                "DELETE FROM task_dependencies WHERE task_id = $1 AND depends_on_task_id = ANY($2::int[])",
                task_id, ids,
            )

    async def revoke_token(self, token_id: str, expires_at: datetime) -> None:
        await self.conn.execute("DELETE FROM revoked_tokens WHERE expires_at <= NOW()")
        await self.conn.execute(
            """
            INSERT INTO revoked_tokens (token_id, expires_at) VALUES ($1, $2)
            ON CONFLICT (token_id) DO NOTHING
            """,
            token_id, expires_at,
        )

    async def is_token_revoked(self, token_id: str) -> bool:
        value = await self.conn.fetchval("SELECT 1 FROM revoked_tokens WHERE token_id = $1", token_id)
        return value is not None


class PostgresTaskStore(TaskStore):
    """PostgreSQL-backed store; each unit of work is one transaction."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10, command_timeout: int = 30):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("task-manager.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self) -> None:
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
            )
            await self._create_tables()
            self.logger.info("PostgreSQL persistence started")
        except (OSError, asyncpg.PostgresError) as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise ServiceError("PostgreSQL persistence failed to start", details={"error": str(e)}) from e

    async def stop(self) -> None:
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self) -> None:
        async with self.pool.acquire() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
            await conn.execute("DELETE FROM revoked_tokens WHERE expires_at < NOW()")

    async def ping(self) -> bool:
        if not self.pool:
            return False
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1

    @asynccontextmanager
    async def unit_of_work(self, readonly: bool = False) -> AsyncIterator[TaskRepository]:
        if not self.pool:
            raise ServiceError("PostgreSQL persistence is not started")
        async with self.pool.acquire() as conn:
            async with conn.transaction(readonly=readonly):
                yield PostgresTaskRepository(conn)
