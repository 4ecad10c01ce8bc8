import logging
import warnings
from typing import TYPE_CHECKING

from .exceptions import (
    DuplicateDefinitionWarning,
    FrozenRegistryError,
    UnknownTaskError,
)
from .task import Task, TaskRunner

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Iterable, Iterator

    from .task import ActionFn

logger = logging.getLogger(__name__)


class TaskRegistry:
    """
    Mapping of task names to their definitions. Registries are explicit objects:
    build files receive one and define tasks on it, and the scheduler freezes it
    when the first run begins.

    Defining a name twice replaces the earlier definition (last one wins) and
    emits a `DuplicateDefinitionWarning`.
    """

    def __init__(self) -> None:
        self._runners: dict[str, TaskRunner] = {}
        self._frozen = False

    def define(
        self,
        name: str,
        prerequisites: "Iterable[str] | str" = (),
        action: "ActionFn | None" = None,
        *,
        description: str | None = None,
        threaded: bool = False,
    ) -> TaskRunner:
        if self._frozen:
            raise FrozenRegistryError(name)

        task = Task(
            name=name,
            prerequisites=prerequisites,
            description=description,
            threaded=threaded,
        )

        if name in self._runners:
            message = (
                f"Task '{name}' is already defined. This will override that definition."
            )
            logger.warning(message)
            warnings.warn(message, DuplicateDefinitionWarning, stacklevel=2)

        runner = TaskRunner(task=task, fn=action)
        self._runners[name] = runner
        return runner

    def task(
        self,
        name: str,
        prerequisites: "Iterable[str] | str" = (),
        *,
        description: str | None = None,
        threaded: bool = False,
    ) -> "Callable[[ActionFn], TaskRunner]":
        """Decorator form of `define`."""

        def register(fn: "ActionFn") -> TaskRunner:
            return self.define(
                name,
                prerequisites,
                fn,
                description=description or (fn.__doc__ or "").strip() or None,
                threaded=threaded,
            )

        return register

    def get(self, name: str) -> TaskRunner:
        if runner := self._runners.get(name):
            return runner

        raise UnknownTaskError(name)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> list[str]:
        return list(self._runners)

    def __contains__(self, name: object) -> bool:
        return name in self._runners

    def __iter__(self) -> "Iterator[TaskRunner]":
        return iter(self._runners.values())

    def __len__(self) -> int:
        return len(self._runners)
