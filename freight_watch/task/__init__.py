"""Task tracking module for freight-watch.

Watch sessions consume their streams in long running background tasks while
refetches run as short lived tasks that callers may wait on.
"""

from .context import task_service_context, get_task_service
from .service import TaskService

__all__ = ["get_task_service", "task_service_context", "TaskService"]
