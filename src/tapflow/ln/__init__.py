from .concurrency import *

__all__ = (
    "CancelScope",
    "CancelToken",
    "TaskGroup",
    "create_task_group",
    "Debouncer",
    "Timer",
)
