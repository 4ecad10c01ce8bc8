from fast_depends import Depends

from .config import Config
from .executor import Executor, LocalExecutor
from .pipeline import FileItem, FilePipeline
from .plan import ExecutionPlan
from .registry import TaskRegistry
from .reload import ReloadHub
from .resolver import resolve
from .run import Run, TaskStatus
from .scheduler import Scheduler, WatchTrigger
from .task import Task, TaskRunner

__all__ = [
    "Depends",
    "Config",
    "Executor",
    "LocalExecutor",
    "FileItem",
    "FilePipeline",
    "ExecutionPlan",
    "TaskRegistry",
    "ReloadHub",
    "resolve",
    "Run",
    "TaskStatus",
    "Scheduler",
    "WatchTrigger",
    "Task",
    "TaskRunner",
]
