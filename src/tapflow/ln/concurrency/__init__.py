from .cancel import CancelScope, CancelToken
from .task import TaskGroup, create_task_group
from .timer import Debouncer, Timer

__all__ = (
    "CancelScope",
    "CancelToken",
    "TaskGroup",
    "create_task_group",
    "Debouncer",
    "Timer",
)
