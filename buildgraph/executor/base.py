import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from buildgraph.exceptions import ActionFailure

if TYPE_CHECKING:  # pragma: no cover
    from buildgraph.registry import TaskRegistry
    from buildgraph.run import Run
    from buildgraph.task import TaskRunner

logger = logging.getLogger(__name__)


class Executor(ABC):
    async def start(self, run: "Run", registry: "TaskRegistry") -> "Run":
        """
        Drive a Run's plan wave by wave. A wave only starts once every task of the
        previous wave has succeeded; the first failure stops the run after its own
        wave has finished.
        """
        while not run.plan.complete:
            await self.advance(run, registry)

            if failure := run.first_failure(run.plan.waves[run.plan.current_wave]):
                error = ActionFailure(failure.name, failure.error)
                run.finish(error)
                raise error from failure.error

        run.finish()
        return run

    async def advance(self, run: "Run", registry: "TaskRegistry") -> None:
        """Run the next wave of the plan to completion."""
        wave = run.plan.proceed()
        logger.debug(
            "Run %s wave %d: %s", run.plan.uuid, run.plan.current_wave, ", ".join(wave)
        )
        await self.dispatch(run, [registry.get(name) for name in wave])

    async def execute(self, run: "Run", runner: "TaskRunner") -> None:
        """Run one task, recording its outcome on the Run rather than raising."""
        run.started(runner.name)
        logger.info("Starting '%s'", runner.name)

        try:
            await runner.run()
        except Exception as e:
            run.failed(runner.name, e)
            logger.error("'%s' failed: %s", runner.name, e)
        else:
            run.succeeded(runner.name)
            state = run.tasks[runner.name]
            logger.info(
                "Finished '%s' after %.2fs",
                runner.name,
                state.finished_at - state.started_at,
            )

    @abstractmethod
    async def dispatch(self, run: "Run", runners: list["TaskRunner"]) -> None:
        raise NotImplementedError()
