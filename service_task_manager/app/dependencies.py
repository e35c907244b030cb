"""
Dependency graph accessor.

Edges are read from the repository on every call and never cached, so the
completion precondition always sees what is currently persisted.
"""

from typing import Iterable, List

from shared.errors import InvalidReferenceError
from shared.logging import get_logger

from .models import Task
from .persistence import TaskRepository


class DependencyGraph:
    """Reads and replaces a task's outgoing dependency edges."""

    def __init__(self, repository: TaskRepository):
        self.repository = repository
        self.logger = get_logger("task-manager.dependencies")

    async def dependencies_of(self, task_id: int, lock: bool = False) -> List[Task]:
        """Full records of the tasks ``task_id`` depends on, ordered by id."""
        return await self.repository.dependencies_of(task_id, lock=lock)

    async def incomplete_dependencies(self, task_id: int) -> List[Task]:
        """Dependencies whose status is not ``completed``."""
        return [dep for dep in await self.dependencies_of(task_id) if not dep.is_completed]

    async def replace_dependencies(self, task_id: int, dependency_ids: Iterable[int]) -> None:
        """Make the outgoing edge set of ``task_id`` exactly ``dependency_ids``.

        Duplicates collapse. Every id must name an existing task, otherwise
        ``InvalidReferenceError`` is raised before any edge changes.
        """
        wanted = set(dependency_ids)
        existing = await self.repository.existing_task_ids(wanted)
        missing = wanted - existing
        if missing:
            raise InvalidReferenceError("dependency_ids", missing)

        current = await self.repository.dependency_ids_of(task_id)
        to_remove = current - wanted
        to_add = wanted - current

        if to_remove:
            await self.repository.remove_dependencies(task_id, to_remove)
        if to_add:
            await self.repository.add_dependencies(task_id, to_add)

        self.logger.info(
            "Dependencies replaced",
            task_id=task_id,
            added=sorted(to_add),
            removed=sorted(to_remove),
        )
