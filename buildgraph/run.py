from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import anyio

if TYPE_CHECKING:  # pragma: no cover
    from .plan import ExecutionPlan


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(kw_only=True, slots=True)
class TaskState:
    name: str
    status: TaskStatus = TaskStatus.PENDING
    started_at: float | None = None
    finished_at: float | None = None
    error: BaseException | None = None

    @property
    def resolved(self) -> bool:
        return self.status in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)


@dataclass
class Run:
    """One invocation of a requested task. Runs are never persisted."""

    plan: "ExecutionPlan"
    tasks: dict[str, TaskState] = field(default_factory=dict)
    status: TaskStatus = TaskStatus.PENDING
    error: BaseException | None = None

    def __post_init__(self) -> None:
        for name in self.plan.order:
            self.tasks.setdefault(name, TaskState(name=name))

    @property
    def requested(self) -> str:
        return self.plan.requested

    @property
    def exit_status(self) -> int:
        return 0 if self.status is TaskStatus.SUCCEEDED else 1

    def started(self, name: str) -> None:
        state = self.tasks[name]
        state.status = TaskStatus.RUNNING
        state.started_at = anyio.current_time()

        if self.status is TaskStatus.PENDING:
            self.status = TaskStatus.RUNNING

    def succeeded(self, name: str) -> None:
        state = self.tasks[name]
        state.status = TaskStatus.SUCCEEDED
        state.finished_at = anyio.current_time()

    def failed(self, name: str, error: BaseException) -> None:
        state = self.tasks[name]
        state.status = TaskStatus.FAILED
        state.finished_at = anyio.current_time()
        state.error = error

    def first_failure(self, names: "list[str] | None" = None) -> TaskState | None:
        """The earliest-finishing failed task, optionally among `names`."""
        failures = [
            state
            for state in self.tasks.values()
            if state.status is TaskStatus.FAILED
            and (names is None or state.name in names)
        ]
        return min(failures, key=lambda s: s.finished_at or 0.0, default=None)

    def finish(self, error: BaseException | None = None) -> None:
        self.error = error
        self.status = TaskStatus.FAILED if error else TaskStatus.SUCCEEDED
