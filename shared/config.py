"""
Shared configuration management for the Task Manager API.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TASKS_",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Storage
    storage_backend: str = Field(default="memory", description="memory | postgres")
    postgres_dsn: str = Field(default="postgres://localhost:5432/tasks")
    postgres_min_pool_size: int = Field(default=2, ge=1)
    postgres_max_pool_size: int = Field(default=10, ge=1)
    postgres_command_timeout: int = Field(default=30, ge=1)

    # Security
    jwt_secret: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_issuer: str = Field(default="task-manager")
    token_ttl_seconds: int = Field(default=3600, ge=60)
    password_hash_iterations: int = Field(default=120_000, ge=1)

    # Task rules
    task_statuses: List[str] = Field(default_factory=lambda: ["pending", "completed", "canceled"])
    default_page_size: int = Field(default=15, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    # Bootstrap
    seed_demo_users: bool = Field(default=False)
    demo_user_password: str = Field(default="123456")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
