"""
Persistence backends for the Task Manager service.
"""

from .base import TaskRepository, TaskStore
from .memory import MemoryTaskStore
from .postgres import PostgresTaskStore


def create_store(config) -> TaskStore:
    """Build the store selected by ``config.storage_backend``."""
    backend = config.storage_backend.lower()
    if backend == "memory":
        return MemoryTaskStore()
    if backend == "postgres":
        return PostgresTaskStore(
            config.postgres_dsn,
            min_size=config.postgres_min_pool_size,
            max_size=config.postgres_max_pool_size,
            command_timeout=config.postgres_command_timeout,
        )
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")


__all__ = ["TaskRepository", "TaskStore", "MemoryTaskStore", "PostgresTaskStore", "create_store"]
