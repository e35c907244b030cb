"""
Storage interfaces for the Task Manager service.

A ``TaskStore`` hands out units of work. Each unit of work yields a
``TaskRepository`` whose operations all commit together when the block exits
normally and are discarded when it raises.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import AsyncContextManager, Dict, Iterable, List, Mapping, Optional, Set, Any

from ..models import Role, Task, TaskFilters, TaskStatus, User


class TaskRepository(ABC):
    """Operations available inside one unit of work."""

    # ---- users ----

    @abstractmethod
    async def add_user(self, name: str, email: str, password_hash: str, role: Role) -> User:
        """Insert a user; emails are stored lower-case."""

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[User]:
        """Fetch a user by id."""

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Fetch a user by (case-insensitive) email."""

    @abstractmethod
    async def get_users(self, user_ids: Iterable[int]) -> Dict[int, User]:
        """Fetch several users keyed by id; unknown ids are absent."""

    # ---- tasks ----

    @abstractmethod
    async def add_task(
        self,
        title: str,
        due_date: date,
        status: TaskStatus,
        description: Optional[str] = None,
        assignee_id: Optional[int] = None,
    ) -> Task:
        """Insert a task."""

    @abstractmethod
    async def get_task(self, task_id: int, for_update: bool = False) -> Optional[Task]:
        """Fetch a task; ``for_update`` locks it until the unit of work ends."""

    @abstractmethod
    async def list_tasks(self, filters: TaskFilters) -> List[Task]:
        """Tasks matching every filter, ordered by id."""

    @abstractmethod
    async def update_task(self, task_id: int, changes: Mapping[str, Any]) -> Task:
        """Apply column changes and bump ``updated_at``."""

    @abstractmethod
    async def existing_task_ids(self, task_ids: Iterable[int]) -> Set[int]:
        """The subset of ``task_ids`` that exist."""

    # ---- dependency edges ----

    @abstractmethod
    async def dependency_ids_of(self, task_id: int) -> Set[int]:
        """Ids of the tasks ``task_id`` depends on."""

    @abstractmethod
    async def dependencies_of(self, task_id: int, lock: bool = False) -> List[Task]:
        """Dependency records ordered by id; ``lock`` share-locks them."""

    @abstractmethod
    async def dependencies_for(self, task_ids: Iterable[int]) -> Dict[int, List[Task]]:
        """Dependency records for several tasks at once."""

    @abstractmethod
    async def add_dependencies(self, task_id: int, depends_on_ids: Iterable[int]) -> None:
        """Insert edges ``task_id -> each id``."""

    @abstractmethod
    async def remove_dependencies(self, task_id: int, depends_on_ids: Iterable[int]) -> None:
        """Delete edges ``task_id -> each id``."""

    # ---- token revocation ----

    @abstractmethod
    async def revoke_token(self, token_id: str, expires_at: datetime) -> None:
        """Remember a token id as revoked until it expires."""

    @abstractmethod
    async def is_token_revoked(self, token_id: str) -> bool:
        """Whether a token id was revoked."""


class TaskStore(ABC):
    """Owner of all persisted task, user, edge and token records."""

    async def start(self) -> None:
        """Open connections and prepare the schema."""

    async def stop(self) -> None:
        """Release connections."""

    @abstractmethod
    async def ping(self) -> bool:
        """Cheap liveness check."""

    @abstractmethod
    def unit_of_work(self, readonly: bool = False) -> AsyncContextManager[TaskRepository]:
        """Transactional scope yielding a repository."""
