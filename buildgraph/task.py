import inspect
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

import anyio
from fast_depends import inject
from fast_depends.dependencies import model
from pydantic import BaseModel, ConfigDict, field_validator

from .exceptions import DefinitionError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Awaitable, Callable, Iterable
    from typing import Any

    ActionFn = Callable[..., Any | Awaitable[Any] | Iterator[Any] | AsyncIterator[Any]]


class Task(BaseModel):
    name: str
    prerequisites: tuple[str, ...] = ()
    description: str | None = None
    threaded: bool = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("name")
    @classmethod
    def _non_empty(cls, name: str) -> str:
        if not name.strip():
            raise ValueError("task names must be non-empty")

        return name

    @field_validator("prerequisites", mode="before")
    @classmethod
    def _dedupe(cls, prerequisites: "Iterable[str] | str") -> tuple[str, ...]:
        if isinstance(prerequisites, str):
            prerequisites = (prerequisites,)

        # declaration order is kept for diagnostics
        return tuple(dict.fromkeys(prerequisites))


@lru_cache
def _get_available_parameters(fn) -> dict[str, dict[str, "Any"]]:
    init_signature = inspect.signature(fn)
    parameters = init_signature.parameters.values()
    return {
        param.name: {
            "annotation": param.annotation,
            "optional": param.default is not inspect.Parameter.empty,
        }
        for param in parameters
        if param.name != "self"
    }


@lru_cache(maxsize=None)
def _get_resolved_fn(fn: "ActionFn") -> "ActionFn":
    # only actions asking for injected values go through fast_depends
    if not _get_available_parameters(fn):
        return fn

    return inject(fn)


def _drain(iterator: "Iterator[Any]") -> None:
    for _ in iterator:
        pass


@dataclass
class TaskRunner:
    task: Task
    fn: "ActionFn | None" = None

    def __post_init__(self) -> None:
        self.__name__ = self.task.name

    @property
    def name(self) -> str:
        return self.task.name

    @property
    def prerequisites(self) -> tuple[str, ...]:
        return self.task.prerequisites

    def _check_parameters(self) -> None:
        parameters = _get_available_parameters(self.fn)
        resolved_optional_args: set[str] = {
            name
            for name, param in parameters.items()
            if (
                # optional also captures dependencies defined as `a = Depends(_a)`
                param["optional"]
                or (
                    (meta := getattr(param["annotation"], "__metadata__", None))
                    and any(isinstance(m, model.Depends) for m in meta)
                )
            )
        }

        if missing_args := parameters.keys() - resolved_optional_args:
            raise DefinitionError(
                f"Task {self.task.name} has unresolvable parameters: {missing_args}"
            )

    async def run(self) -> None:
        """
        Run the action to completion. Returning, resolving an awaitable and
        exhausting a stream are all the same completion signal.
        """
        if self.fn is None:
            return

        self._check_parameters()
        action_fn = _get_resolved_fn(self.fn)

        if self.task.threaded and not inspect.iscoroutinefunction(self.fn):
            result = await anyio.to_thread.run_sync(action_fn)
        else:
            result = action_fn()

        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, AsyncIterator):
            async for _ in result:
                await anyio.lowlevel.checkpoint()
        elif isinstance(result, Iterator):
            if self.task.threaded:
                await anyio.to_thread.run_sync(_drain, result)
            else:
                for _ in result:
                    await anyio.lowlevel.checkpoint()
