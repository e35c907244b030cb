"""
Task Manager service.

Authenticated users list, inspect, create and update tasks. Tasks carry
dependencies, and role-based permissions decide which fields a user may change.
"""

from datetime import date
from typing import Callable, Dict, Optional

from fastapi import Depends, Header, Path, Query, Request

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import ServiceError
from shared import responses
from shared.responses import Pagination

from .auth import AuthContext, Authenticator, PasswordHasher, TokenManager, seed_demo_users
from .models import (
    LoginRequest,
    MAX_ID,
    TaskCreateRequest,
    TaskFilters,
    TaskStatus,
    TaskUpdateRequest,
    UserView,
)
from .persistence import TaskStore, create_store
from .policy import TaskPolicy
from .service import TaskService


class TaskManagerService(BaseService):
    """Task Manager service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[TaskStore] = None,
        clock: Callable[[], date] = date.today,
    ):
        super().__init__("task-manager", 8000, config=config)

        self.store = store or create_store(self.config)
        self.hasher = PasswordHasher(self.config.password_hash_iterations)
        self.tokens = TokenManager(
            self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            issuer=self.config.jwt_issuer,
            ttl_seconds=self.config.token_ttl_seconds,
        )
        self.authenticator = Authenticator(self.store, self.tokens, self.hasher, self.metrics)
        self.task_service = TaskService(
            self.store,
            policy=TaskPolicy(),
            allowed_statuses=self.config.task_statuses,
            clock=clock,
            metrics=self.metrics,
        )

        self._setup_task_routes()

    async def on_startup(self) -> None:
        await self.store.start()
        if self.config.seed_demo_users:
            created = await seed_demo_users(self.store, self.hasher, self.config.demo_user_password)
            self.logger.info("Demo users seeded", created=created)

    async def on_shutdown(self) -> None:
        await self.store.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        if not await self.store.ping():
            raise ServiceError("Task store unavailable")
        return {"store": "ok"}

    async def _authenticate(self, authorization: Optional[str] = Header(None)) -> AuthContext:
        """Authentication dependency."""
        return await self.authenticator.authenticate(authorization)

    def _setup_task_routes(self):
        """Set up API routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "task-manager",
                "message": "Task Manager API",
                "version": "1.0.0",
            }

        @self.app.post("/auth/login")
        async def login(credentials: LoginRequest):
            """Exchange email and password for an access token."""
            issued, user = await self.authenticator.login(credentials.email, credentials.password)
            self.metrics.record_business_event("user_logged_in")
            return responses.success(
                {
                    "token": issued.token,
                    "token_type": issued.token_type,
                    "expires_at": issued.expires_at.isoformat(),
                    "user": UserView.from_user(user).model_dump(mode="json"),
                },
                "User logged in successfully",
            )

        @self.app.post("/auth/logout")
        async def logout(auth: AuthContext = Depends(self._authenticate)):
            """Revoke the current token."""
            await self.authenticator.logout(auth)
            self.metrics.record_business_event("user_logged_out")
            return responses.success(None, "User logged out successfully")

        @self.app.get("/tasks")
        async def list_tasks(
            request: Request,
            status: Optional[TaskStatus] = Query(None, description="Filter by status"),
            assignee_id: Optional[int] = Query(None, gt=0, le=MAX_ID, description="Filter by assigned user"),
            due_date_from: Optional[date] = Query(None, description="Earliest due date (inclusive)"),
            due_date_to: Optional[date] = Query(None, description="Latest due date (inclusive)"),
            page: Optional[int] = Query(None, ge=1, description="Page number; omit for all tasks"),
            per_page: Optional[int] = Query(None, ge=1, description="Items per page"),
            auth: AuthContext = Depends(self._authenticate),
        ):
            """List tasks with optional filters."""
            filters = TaskFilters(
                status=status,
                assignee_id=assignee_id,
                due_date_from=due_date_from,
                due_date_to=due_date_to,
            )

            pagination = None
            if page is None:
                listing = await self.task_service.list_tasks(auth.actor, filters)
            else:
                size = min(per_page or self.config.default_page_size, self.config.max_page_size)
                listing = await self.task_service.list_tasks(
                    auth.actor, filters, offset=(page - 1) * size, limit=size
                )
                pagination = Pagination.build(page, size, listing.total, url=request.url)

            return responses.success(
                [item.model_dump(mode="json") for item in listing.items],
                "Tasks retrieved successfully.",
                pagination=pagination,
            )

        @self.app.get("/tasks/{task_id}")
        async def get_task(
            task_id: int = Path(..., gt=0, le=MAX_ID),
            auth: AuthContext = Depends(self._authenticate),
        ):
            """Get task by ID."""
            view = await self.task_service.get_task(auth.actor, task_id)
            return responses.success(view.model_dump(mode="json"), "Task details retrieved successfully.")

        @self.app.post("/tasks")
        async def create_task(body: TaskCreateRequest, auth: AuthContext = Depends(self._authenticate)):
            """Create a task (managers only)."""
            view = await self.task_service.create_task(auth.actor, body.model_dump())
            return responses.success(view.model_dump(mode="json"), "Task created successfully.", status_code=201)

        @self.app.put("/tasks/{task_id}")
        async def update_task(
            body: TaskUpdateRequest,
            task_id: int = Path(..., gt=0, le=MAX_ID),
            auth: AuthContext = Depends(self._authenticate),
        ):
            """Update a task with any subset of its fields."""
            view = await self.task_service.update_task(auth.actor, task_id, body.proposed_changes())
            return responses.success(view.model_dump(mode="json"), "Task updated successfully.")


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = TaskManagerService(config=config)
    return service.app


if __name__ == "__main__":
    service = TaskManagerService()
    service.run()
