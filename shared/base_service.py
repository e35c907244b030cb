"""
Base service class for Task Manager services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Dict, List, Optional
from time import perf_counter
import time
import os

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import TaskManagerException
from shared import responses

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred."


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level)

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()
        self._setup_lifecycle()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.replace('-', ' ').title()} Service",
            description=f"Task Manager API - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def request_context(request: Request, call_next):
            start_time = perf_counter()
            request_id = set_request_id(
                request.headers.get("x-request-id")
                or request.headers.get("x-correlation-id")
            )

            try:
                response = await call_next(request)
            except Exception as exc:
                duration = perf_counter() - start_time
                self.logger.error(
                    "Unhandled exception",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=round(duration * 1000, 2),
                    error=str(exc),
                )
                raise
            else:
                duration = perf_counter() - start_time
                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration=duration
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )
                response.headers["X-Process-Time"] = f"{duration:.6f}"
                response.headers["X-Request-Id"] = request_id
                return response
            finally:
                clear_context()

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                dependencies = await self._check_dependencies()
                self.metrics.record_health_check("ok")
                return {
                    "service": self.service_name,
                    "status": "ok",
                    "uptime_seconds": self._get_uptime(),
                    "dependencies": dependencies,
                    "version": "1.0.0",
                    "commit": os.getenv("GIT_COMMIT", "unknown")
                }
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return responses.error("Service unhealthy", status_code=503, data={
                    "service": self.service_name,
                    "status": "error",
                })

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

        @self.app.exception_handler(TaskManagerException)
        async def task_manager_exception_handler(request: Request, exc: TaskManagerException):
            """Render domain errors into the response envelope."""
            self.metrics.record_error(exc.code)
            if exc.status_code >= 500:
                self.logger.error(
                    "Service error",
                    code=exc.code,
                    message=exc.message,
                    details=exc.details,
                )
                return responses.error(UNEXPECTED_ERROR_MESSAGE, status_code=exc.status_code)

            self.logger.info(
                "Request rejected",
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
            )
            return responses.error(
                exc.message,
                status_code=exc.status_code,
                data=exc.details or None,
            )

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            """Render request validation failures with field-level detail."""
            errors = _collect_field_errors(exc.errors())
            first = next(iter(errors.values()), ["Validation failed"])[0]
            self.metrics.record_error("VALIDATION_ERROR")
            return responses.error(first, status_code=422, data={"errors": errors})

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            """Render framework HTTP errors (unknown route, bad method) in the envelope."""
            return responses.error(str(exc.detail), status_code=exc.status_code)

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error(type(exc).__name__)
            return responses.error(UNEXPECTED_ERROR_MESSAGE, status_code=500)

    def _setup_lifecycle(self):
        """Wire startup and shutdown hooks."""

        @self.app.on_event("startup")
        async def _startup():
            await self.on_startup()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.on_shutdown()

    async def on_startup(self) -> None:
        """Startup hook. Override in subclasses."""

    async def on_shutdown(self) -> None:
        """Shutdown hook. Override in subclasses."""

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )


def _collect_field_errors(raw_errors) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for item in raw_errors:
        location = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "request"
        errors.setdefault(field, []).append(item.get("msg", "Invalid value"))
    return errors
