"""
In-memory task store.

Used for local runs and tests. A single ``asyncio.Lock`` serializes units of
work; writers operate on a clone of the state which replaces the live state
only when the block exits cleanly, so a failure part-way leaves nothing behind.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from shared.logging import get_logger

from ..models import Role, Task, TaskFilters, TaskStatus, User, utcnow
from .base import TaskRepository, TaskStore


@dataclass
class _State:
    users: Dict[int, User] = field(default_factory=dict)
    tasks: Dict[int, Task] = field(default_factory=dict)
    edges: Set[Tuple[int, int]] = field(default_factory=set)
    revoked_tokens: Dict[str, datetime] = field(default_factory=dict)
    next_user_id: int = 1
    next_task_id: int = 1

    def clone(self) -> "_State":
        # Records are frozen dataclasses, so copying the containers is enough.
        return _State(
            users=dict(self.users),
            tasks=dict(self.tasks),
            edges=set(self.edges),
            revoked_tokens=dict(self.revoked_tokens),
            next_user_id=self.next_user_id,
            next_task_id=self.next_task_id,
        )


class MemoryTaskRepository(TaskRepository):
    """Repository over one working copy of the in-memory state."""

    def __init__(self, state: _State, readonly: bool = False):
        self._state = state
        self._readonly = readonly

    def _check_writable(self):
        if self._readonly:
            raise RuntimeError("Write attempted in a read-only unit of work")

    async def add_user(self, name: str, email: str, password_hash: str, role: Role) -> User:
        self._check_writable()
        user = User(
            id=self._state.next_user_id,
            name=name,
            email=email.strip().lower(),
            password_hash=password_hash,
            role=role,
        )
        self._state.users[user.id] = user
        self._state.next_user_id += 1
        return user

    async def get_user(self, user_id: int) -> Optional[User]:
        return self._state.users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        needle = email.strip().lower()
        for user in self._state.users.values():
            if user.email == needle:
                return user
        return None

    async def get_users(self, user_ids: Iterable[int]) -> Dict[int, User]:
        return {uid: self._state.users[uid] for uid in set(user_ids) if uid in self._state.users}

    async def add_task(
        self,
        title: str,
        due_date: date,
        status: TaskStatus,
        description: Optional[str] = None,
        assignee_id: Optional[int] = None,
    ) -> Task:
        self._check_writable()
        now = utcnow()
        task = Task(
            id=self._state.next_task_id,
            title=title,
            due_date=due_date,
            status=status,
            description=description,
            assignee_id=assignee_id,
            created_at=now,
            updated_at=now,
        )
        self._state.tasks[task.id] = task
        self._state.next_task_id += 1
        return task

    async def get_task(self, task_id: int, for_update: bool = False) -> Optional[Task]:
        # The store lock already serializes every unit of work.
        return self._state.tasks.get(task_id)

    async def list_tasks(self, filters: TaskFilters) -> List[Task]:
        return [
            task for _, task in sorted(self._state.tasks.items())
            if filters.matches(task)
        ]

    async def update_task(self, task_id: int, changes: Mapping[str, Any]) -> Task:
        self._check_writable()
        task = self._state.tasks[task_id]
        updated = replace(task, updated_at=utcnow(), **dict(changes))
        self._state.tasks[task_id] = updated
        return updated

    async def existing_task_ids(self, task_ids: Iterable[int]) -> Set[int]:
        return {tid for tid in task_ids if tid in self._state.tasks}

    async def dependency_ids_of(self, task_id: int) -> Set[int]:
        return {dep for src, dep in self._state.edges if src == task_id}

    async def dependencies_of(self, task_id: int, lock: bool = False) -> List[Task]:
        ids = await self.dependency_ids_of(task_id)
        return [self._state.tasks[tid] for tid in sorted(ids)]

    async def dependencies_for(self, task_ids: Iterable[int]) -> Dict[int, List[Task]]:
        return {tid: await self.dependencies_of(tid) for tid in task_ids}

    async def add_dependencies(self, task_id: int, depends_on_ids: Iterable[int]) -> None:
        self._check_writable()
        for dep in depends_on_ids:
            self._state.edges.add((task_id, dep))

    async def remove_dependencies(self, task_id: int, depends_on_ids: Iterable[int]) -> None:
        self._check_writable()
        for dep in depends_on_ids:
            self._state.edges.discard((task_id, dep))

    async def revoke_token(self, token_id: str, expires_at: datetime) -> None:
        self._check_writable()
        now = utcnow()
        revoked = self._state.revoked_tokens
        for expired in [key for key, until in revoked.items() if until <= now]:
            del revoked[expired]
        if expires_at > now:
            revoked[token_id] = expires_at

    async def is_token_revoked(self, token_id: str) -> bool:
        return token_id in self._state.revoked_tokens


class MemoryTaskStore(TaskStore):
    """Process-local store."""

    def __init__(self):
        self.logger = get_logger("task-manager.persistence.memory")
        self._state = _State()
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        self.logger.info("In-memory persistence started")

    async def ping(self) -> bool:
        return True

    @asynccontextmanager
    async def unit_of_work(self, readonly: bool = False) -> AsyncIterator[TaskRepository]:
        async with self._lock:
            if readonly:
                yield MemoryTaskRepository(self._state, readonly=True)
                return

            working = self._state.clone()
            yield MemoryTaskRepository(working)
            # Only reached when the block did not raise.
            self._state = working
