"""
Authorization policy for tasks.

The policy is a pure function of (actor, action, task, proposed changes,
dependency snapshot). The caller is resolved to one of three variants:

- ``ManagerPolicy``: role ``manager``; may do anything.
- ``AssignedUserPolicy``: role ``user`` and the task is assigned to them;
  may view it and change its ``status`` only. Completing it requires every
  dependency in the supplied snapshot to be completed.
- ``OtherUserPolicy``: role ``user`` with no claim on the task.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Sequence

from .models import Actor, Task, TaskStatus


class Action(str, Enum):
    """Actions the policy decides on."""
    VIEW_ANY = "view_any"
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"


class DenialReason(str, Enum):
    """Why a decision came out as deny."""
    ROLE = "role"
    NOT_ASSIGNEE = "not_assignee"
    FIELD_NOT_ALLOWED = "field_not_allowed"
    DEPENDENCIES_INCOMPLETE = "dependencies_incomplete"
    NO_TASK = "no_task"


@dataclass(frozen=True)
class PolicyDecision:
    """Outcome of a policy evaluation."""
    allowed: bool
    reason: Optional[DenialReason] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = PolicyDecision(True)


def deny(reason: DenialReason) -> PolicyDecision:
    return PolicyDecision(False, reason)


class ActorPolicy:
    """Decisions for one kind of actor. Every action denies unless overridden."""

    def view_any(self) -> PolicyDecision:
        return ALLOW

    def view(self, task: Task) -> PolicyDecision:
        return deny(DenialReason.NOT_ASSIGNEE)

    def create(self) -> PolicyDecision:
        return deny(DenialReason.ROLE)

    def update(self, task: Task, changes: Mapping[str, Any], dependencies: Sequence[Task]) -> PolicyDecision:
        return deny(DenialReason.NOT_ASSIGNEE)


class ManagerPolicy(ActorPolicy):
    """Managers are unrestricted."""

    def view(self, task: Task) -> PolicyDecision:
        return ALLOW

    def create(self) -> PolicyDecision:
        return ALLOW

    def update(self, task: Task, changes: Mapping[str, Any], dependencies: Sequence[Task]) -> PolicyDecision:
        return ALLOW


class AssignedUserPolicy(ActorPolicy):
    """A regular user acting on a task assigned to them."""

    def __init__(self, allowed_fields: FrozenSet[str]):
        self.allowed_fields = allowed_fields

    def view(self, task: Task) -> PolicyDecision:
        return ALLOW

    def update(self, task: Task, changes: Mapping[str, Any], dependencies: Sequence[Task]) -> PolicyDecision:
        if any(key not in self.allowed_fields for key in changes):
            return deny(DenialReason.FIELD_NOT_ALLOWED)

        if changes.get("status") == TaskStatus.COMPLETED:
            if any(not dependency.is_completed for dependency in dependencies):
                return deny(DenialReason.DEPENDENCIES_INCOMPLETE)

        return ALLOW


class OtherUserPolicy(ActorPolicy):
    """A regular user with no claim on the task."""


class TaskPolicy:
    """Entry point: resolves the actor variant and dispatches the action."""

    def __init__(self, user_editable_fields: Iterable[str] = ("status",)):
        self.user_editable_fields = frozenset(user_editable_fields)

    def resolve(self, actor: Actor, task: Optional[Task] = None) -> ActorPolicy:
        """Pick the policy variant for ``actor`` relative to ``task``."""
        if actor.is_manager:
            return ManagerPolicy()
        if task is not None and task.assignee_id == actor.user_id:
            return AssignedUserPolicy(self.user_editable_fields)
        return OtherUserPolicy()

    def evaluate(
        self,
        actor: Actor,
        action: Action,
        task: Optional[Task] = None,
        proposed_changes: Optional[Mapping[str, Any]] = None,
        dependencies: Sequence[Task] = (),
    ) -> PolicyDecision:
        """Evaluate an action and keep the denial reason."""
        variant = self.resolve(actor, task)

        if action == Action.VIEW_ANY:
            return variant.view_any()
        if action == Action.CREATE:
            return variant.create()
        if task is None:
            return deny(DenialReason.NO_TASK)
        if action == Action.VIEW:
            return variant.view(task)
        return variant.update(task, proposed_changes or {}, dependencies)

    def can(
        self,
        actor: Actor,
        action: Action,
        task: Optional[Task] = None,
        proposed_changes: Optional[Mapping[str, Any]] = None,
        dependencies: Sequence[Task] = (),
    ) -> bool:
        """Boolean form of :meth:`evaluate`."""
        return self.evaluate(actor, action, task, proposed_changes, dependencies).allowed
