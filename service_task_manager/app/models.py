"""
Domain records and API models for the Task Manager service.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """User roles."""
    MANAGER = "manager"
    USER = "user"


class TaskStatus(str, Enum):
    """Every status value a task may carry."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"


# Columns a caller may change directly; dependency_ids is handled separately.
TASK_FIELDS = ("title", "description", "status", "due_date", "assignee_id")

# Identifiers are stored as PostgreSQL INTEGER columns.
MAX_ID = 2**31 - 1
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

RecordId = Annotated[int, Field(gt=0, le=MAX_ID)]


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as seen by the policy."""
    user_id: int
    role: Role

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER


@dataclass(frozen=True)
class User:
    """Persisted user record."""
    id: int
    name: str
    email: str
    password_hash: str
    role: Role
    created_at: datetime = field(default_factory=utcnow)

    def as_actor(self) -> Actor:
        return Actor(user_id=self.id, role=self.role)


@dataclass(frozen=True)
class Task:
    """Persisted task record."""
    id: int
    title: str
    due_date: date
    status: TaskStatus = TaskStatus.PENDING
    description: Optional[str] = None
    assignee_id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED


@dataclass(frozen=True)
class TaskFilters:
    """Conjunctive listing filters; ``None`` means unconstrained."""
    status: Optional[TaskStatus] = None
    assignee_id: Optional[int] = None
    due_date_from: Optional[date] = None
    due_date_to: Optional[date] = None

    def matches(self, task: Task) -> bool:
        if self.status is not None and task.status != self.status:
            return False
        if self.assignee_id is not None and task.assignee_id != self.assignee_id:
            return False
        if self.due_date_from is not None and task.due_date < self.due_date_from:
            return False
        if self.due_date_to is not None and task.due_date > self.due_date_to:
            return False
        return True


# ---- API request models ----

class LoginRequest(BaseModel):
    """Credentials for ``POST /auth/login``."""
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN, description="Account email")
    password: str = Field(..., min_length=1, description="Account password")


def _ensure_distinct(values: Optional[List[int]]) -> Optional[List[int]]:
    if values is not None and len(set(values)) != len(values):
        raise ValueError("dependency_ids must not contain duplicates")
    return values


class TaskCreateRequest(BaseModel):
    """Body of ``POST /tasks``."""
    title: str = Field(..., min_length=1, max_length=255, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    due_date: date = Field(..., description="Due date, today or later")
    status: TaskStatus = Field(..., description="Initial status")
    assignee_id: Optional[RecordId] = Field(None, description="Assigned user ID")
    dependency_ids: Optional[List[RecordId]] = Field(None, description="Tasks this task depends on")

    check_distinct = field_validator("dependency_ids")(_ensure_distinct)


class TaskUpdateRequest(BaseModel):
    """Body of ``PUT /tasks/{id}``; only the keys sent are proposed changes."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[date] = None
    assignee_id: Optional[RecordId] = None
    dependency_ids: Optional[List[RecordId]] = None

    check_distinct = field_validator("dependency_ids")(_ensure_distinct)

    @model_validator(mode="after")
    def reject_null_required(self) -> "TaskUpdateRequest":
        for name in ("title", "status", "due_date"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} may not be null")
        return self

    def proposed_changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# ---- API response models ----

class UserView(BaseModel):
    """Public projection of a user."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "UserView":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role)


class DependencyView(BaseModel):
    """A dependency as shown inside a hydrated task."""
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    status: TaskStatus
    due_date: date

    @classmethod
    def from_task(cls, task: Task) -> "DependencyView":
        return cls(id=task.id, title=task.title, status=task.status, due_date=task.due_date)


class TaskView(BaseModel):
    """Hydrated task: assignee and dependencies resolved to records."""
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    due_date: date
    assignee: Optional[UserView] = None
    dependencies: List[DependencyView] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def build(cls, task: Task, assignee: Optional[User], dependencies: List[Task]) -> "TaskView":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            status=task.status,
            due_date=task.due_date,
            assignee=UserView.from_user(assignee) if assignee else None,
            dependencies=[DependencyView.from_task(dep) for dep in dependencies],
            created_at=task.created_at,
            updated_at=task.updated_at,
        )
