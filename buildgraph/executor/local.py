from typing import TYPE_CHECKING

import anyio

from .base import Executor

if TYPE_CHECKING:  # pragma: no cover
    from buildgraph.run import Run
    from buildgraph.task import TaskRunner


class LocalExecutor(Executor):
    """
    An Executor running every task of a wave concurrently in the current event
    loop. Tasks already started in a wave always run to their own completion, even
    when a sibling fails.
    """

    async def dispatch(self, run: "Run", runners: list["TaskRunner"]) -> None:
        async with anyio.create_task_group() as tg:
            for runner in runners:
                tg.start_soon(self.execute, run, runner, name=runner.name)
