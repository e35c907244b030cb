"""
Task service: business rules and authorization around the task store.

Every operation runs inside one unit of work, so validation, authorization,
the dependency-completion check and the write are atomic together.
"""

from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

from shared.errors import (
    AuthorizationError,
    DependenciesIncompleteError,
    InvalidReferenceError,
    NotFoundError,
    ValidationError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .dependencies import DependencyGraph
from .models import TASK_FIELDS, Actor, Role, Task, TaskFilters, TaskStatus, TaskView
from .persistence import TaskRepository, TaskStore
from .policy import Action, TaskPolicy

UPDATABLE_KEYS = frozenset(TASK_FIELDS) | {"dependency_ids"}
DEFAULT_STATUSES = (TaskStatus.PENDING, TaskStatus.COMPLETED, TaskStatus.CANCELED)


@dataclass(frozen=True)
class TaskListing:
    """One page of hydrated tasks plus the unpaged total."""
    items: List[TaskView]
    total: int


class TaskService:
    """Orchestrates task reads and writes for an authenticated actor."""

    def __init__(
        self,
        store: TaskStore,
        policy: Optional[TaskPolicy] = None,
        allowed_statuses: Iterable[Any] = DEFAULT_STATUSES,
        clock: Callable[[], date] = date.today,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.policy = policy or TaskPolicy()
        self.allowed_statuses = frozenset(TaskStatus(value) for value in allowed_statuses)
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("task-manager.service")

    # ---- queries ----

    async def list_tasks(
        self,
        actor: Actor,
        filters: Optional[TaskFilters] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> TaskListing:
        """Tasks matching ``filters``; regular users only ever see their own."""
        if not self._authorize(actor, Action.VIEW_ANY):
            raise AuthorizationError()

        filters = filters or TaskFilters()
        if actor.role == Role.USER:
            filters = replace(filters, assignee_id=actor.user_id)

        async with self.store.unit_of_work(readonly=True) as repo:
            tasks = await repo.list_tasks(filters)
            page = tasks[offset:offset + limit] if limit is not None else tasks[offset:]
            items = await self._hydrate_many(repo, page)

        return TaskListing(items=items, total=len(tasks))

    async def get_task(self, actor: Actor, task_id: int) -> TaskView:
        async with self.store.unit_of_work(readonly=True) as repo:
            task = await repo.get_task(task_id)
            if task is None:
                raise NotFoundError("Task")
            if not self._authorize(actor, Action.VIEW, task):
                raise AuthorizationError()
            return await self._hydrate(repo, task)

    # ---- commands ----

    async def create_task(self, actor: Actor, fields: Mapping[str, Any]) -> TaskView:
        """Create a task and its dependency edges in one transaction."""
        if not self._authorize(actor, Action.CREATE):
            raise AuthorizationError()

        for required in ("title", "due_date", "status"):
            if fields.get(required) is None:
                raise ValidationError.for_field(required, f"The {required} field is required.")

        status = self._validate_status(fields["status"])
        self._validate_title(fields["title"])
        due_date = fields["due_date"]
        if due_date < self.clock():
            raise ValidationError.for_field(
                "due_date", "The due date must be a date after or equal to today."
            )
        dependency_ids = list(fields.get("dependency_ids") or [])
        self._validate_distinct(dependency_ids)

        async with self.store.unit_of_work() as repo:
            await self._ensure_assignee(repo, fields.get("assignee_id"))
            task = await repo.add_task(
                title=fields["title"],
                due_date=due_date,
                status=status,
                description=fields.get("description"),
                assignee_id=fields.get("assignee_id"),
            )
            await DependencyGraph(repo).replace_dependencies(task.id, dependency_ids)
            view = await self._hydrate(repo, task)

        self.logger.info(
            "Task created",
            task_id=view.id,
            actor_id=actor.user_id,
            assignee_id=fields.get("assignee_id"),
            dependency_ids=sorted(dependency_ids),
        )
        self._event("task_created")
        return view

    async def update_task(self, actor: Actor, task_id: int, fields: Mapping[str, Any]) -> TaskView:
        """Apply a partial update; the keys of ``fields`` are the proposed changes."""
        changes = dict(fields)
        self._validate_update(task_id, changes)
        completing = changes.get("status") == TaskStatus.COMPLETED

        async with self.store.unit_of_work() as repo:
            task = await repo.get_task(task_id, for_update=True)
            if task is None:
                raise NotFoundError("Task")

            graph = DependencyGraph(repo)
            dependencies = await graph.dependencies_of(task_id, lock=True)

            # Counted separately from the policy so a blocked completion reports
            # which dependencies are open instead of a bare denial.
            incomplete = await graph.incomplete_dependencies(task_id) if completing else []

            if not self._authorize(actor, Action.UPDATE, task, changes, dependencies):
                if incomplete and self.policy.can(actor, Action.UPDATE, task, changes):
                    self._reject_incomplete(task, actor, incomplete)
                raise AuthorizationError()

            if incomplete:
                self._reject_incomplete(task, actor, incomplete)

            if "assignee_id" in changes:
                await self._ensure_assignee(repo, changes["assignee_id"])

            columns = {name: changes[name] for name in TASK_FIELDS if name in changes}
            if columns:
                task = await repo.update_task(task_id, columns)

            if changes.get("dependency_ids") is not None:
                await graph.replace_dependencies(task_id, changes["dependency_ids"])

            view = await self._hydrate(repo, task)

        self.logger.info(
            "Task updated",
            task_id=task_id,
            actor_id=actor.user_id,
            fields=sorted(changes),
        )
        self._event("task_completed" if completing else "task_updated")
        return view

    # ---- helpers ----

    def _authorize(
        self,
        actor: Actor,
        action: Action,
        task: Optional[Task] = None,
        changes: Optional[Mapping[str, Any]] = None,
        dependencies: Sequence[Task] = (),
    ) -> bool:
        decision = self.policy.evaluate(actor, action, task, changes, dependencies)
        if self.metrics:
            self.metrics.record_policy_decision(action.value, decision.allowed)
        if not decision.allowed:
            self.logger.info(
                "Policy denied",
                action=action.value,
                actor_id=actor.user_id,
                role=actor.role.value,
                task_id=task.id if task else None,
                reason=decision.reason.value if decision.reason else None,
            )
        return decision.allowed

    def _reject_incomplete(self, task: Task, actor: Actor, incomplete: Sequence[Task]):
        ids = [dep.id for dep in incomplete]
        self.logger.info(
            "Completion blocked by dependencies",
            task_id=task.id,
            actor_id=actor.user_id,
            incomplete_dependency_ids=ids,
        )
        self._event("task_completion_blocked")
        raise DependenciesIncompleteError(ids)

    def _validate_status(self, value: Any) -> TaskStatus:
        try:
            status = TaskStatus(value)
        except ValueError:
            status = None
        if status is None or status not in self.allowed_statuses:
            raise ValidationError.for_field("status", "The selected status is invalid.")
        return status

    @staticmethod
    def _validate_title(value: Any):
        if not isinstance(value, str) or not value.strip() or len(value) > 255:
            raise ValidationError.for_field(
                "title", "The title must be a non-empty string of at most 255 characters."
            )

    @staticmethod
    def _validate_distinct(dependency_ids: Sequence[int]):
        if len(set(dependency_ids)) != len(dependency_ids):
            raise ValidationError.for_field("dependency_ids", "The dependency_ids field has a duplicate value.")

    def _validate_update(self, task_id: int, changes: Mapping[str, Any]):
        unknown = sorted(set(changes) - UPDATABLE_KEYS)
        if unknown:
            raise ValidationError(
                f"Unknown field: {unknown[0]}",
                errors={name: ["This field is not recognised."] for name in unknown},
            )
        for required in ("title", "status", "due_date"):
            if required in changes and changes[required] is None:
                raise ValidationError.for_field(required, f"The {required} field may not be null.")
        if "title" in changes:
            self._validate_title(changes["title"])
        if "status" in changes:
            changes["status"] = self._validate_status(changes["status"])

        dependency_ids = changes.get("dependency_ids")
        if dependency_ids is not None:
            self._validate_distinct(list(dependency_ids))
            if task_id in dependency_ids:
                raise ValidationError.for_field(
                    "dependency_ids", "A task cannot depend on itself."
                )

    @staticmethod
    async def _ensure_assignee(repo: TaskRepository, assignee_id: Optional[int]):
        if assignee_id is not None and await repo.get_user(assignee_id) is None:
            raise InvalidReferenceError("assignee_id", [assignee_id])

    async def _hydrate(self, repo: TaskRepository, task: Task) -> TaskView:
        return (await self._hydrate_many(repo, [task]))[0]

    @staticmethod
    async def _hydrate_many(repo: TaskRepository, tasks: Sequence[Task]) -> List[TaskView]:
        if not tasks:
            return []
        users = await repo.get_users(t.assignee_id for t in tasks if t.assignee_id is not None)
        dependencies = await repo.dependencies_for(t.id for t in tasks)
        return [
            TaskView.build(task, users.get(task.assignee_id), dependencies.get(task.id, []))
            for task in tasks
        ]

    def _event(self, event_type: str):
        if self.metrics:
            self.metrics.record_business_event(event_type)
