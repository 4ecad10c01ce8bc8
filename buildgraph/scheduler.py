import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import anyio
import sniffio
from watchfiles import awatch

from .config import Config
from .exceptions import BuildGraphError
from .executor import LocalExecutor
from .globs import matches, split_patterns
from .reload import ReloadHub
from .resolver import resolve
from .run import Run

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Awaitable, Callable, Iterable
    from typing import Any

    from anyio.abc import TaskGroup

    from .executor import Executor
    from .registry import TaskRegistry

    WatchAction = Callable[[list[str]], Awaitable[Any] | Any]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchTrigger:
    """A standing subscription: changes matching `patterns` fire `target`."""

    patterns: tuple[str, ...]
    target: "str | WatchAction"
    session: str | None = None
    """Served task this trigger belongs to; unscoped triggers are always live."""

    def matching(self, paths: "Iterable[str]") -> list[str]:
        return [path for path in paths if matches(path, self.patterns)]

    @property
    def label(self) -> str:
        if isinstance(self.target, str):
            return self.target

        return getattr(self.target, "__name__", repr(self.target))


class Scheduler:
    def __init__(
        self,
        registry: "TaskRegistry",
        config: Config | None = None,
        executor: "Executor | None" = None,
        reload: ReloadHub | None = None,
        async_backend: str = "asyncio",
    ) -> None:
        self.registry = registry
        self.config = config or Config()
        self.executor: "Executor" = executor or LocalExecutor()
        self.reload = reload or ReloadHub(self.config.reload_buffer)
        self.async_backend = async_backend
        self._triggers: list[WatchTrigger] = []

    async def run(self, name: str) -> Run:
        """
        Run `name` and its prerequisites. Definition and cycle errors are raised
        before anything executes; a failing action raises `ActionFailure`.
        """
        plan = resolve(self.registry, name)
        self.registry.freeze()

        logger.info(
            "Running '%s' in %d wave(s): %s",
            name,
            len(plan.waves),
            " | ".join(", ".join(wave) for wave in plan.waves),
        )
        return await self.executor.start(Run(plan=plan), self.registry)

    def invoke(self, name: str) -> int:
        """Synchronous entry point. Returns the process exit status."""
        try:
            sniffio.current_async_library()
            raise RuntimeError(
                "Scheduler.invoke cannot be called from within an event loop."
                " Await `Scheduler.run` instead."
            )
        except sniffio.AsyncLibraryNotFoundError:
            pass

        try:
            run = anyio.run(self.run, name, backend=self.async_backend)
        except BuildGraphError as e:
            logger.error("'%s' failed: %s", name, e)
            return 1

        return run.exit_status

    ##
    ## WATCH
    ##

    def watch(
        self,
        patterns: "Iterable[str] | str",
        target: "str | WatchAction",
        *,
        session: str | None = None,
    ) -> WatchTrigger:
        positive, _ = split_patterns(patterns)
        if not positive:
            raise ValueError("watch needs at least one non-negated pattern")

        trigger = WatchTrigger(
            patterns=(patterns,) if isinstance(patterns, str) else tuple(patterns),
            target=target,
            session=session,
        )
        self._triggers.append(trigger)
        return trigger

    @property
    def triggers(self) -> list[WatchTrigger]:
        return list(self._triggers)

    def live_triggers(self, session: str | None = None) -> list[WatchTrigger]:
        return [t for t in self._triggers if t.session in (None, session)]

    async def _fire(self, trigger: WatchTrigger, paths: list[str]) -> None:
        logger.info("Change in %s, triggering '%s'", ", ".join(paths), trigger.label)

        try:
            if isinstance(trigger.target, str):
                await self.run(trigger.target)
            else:
                result = trigger.target(paths)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            # a failing rebuild is reported, the watch session keeps going
            logger.error("Triggered '%s' failed: %s", trigger.label, e)

    def handle_changes(
        self,
        paths: "Iterable[str]",
        task_group: "TaskGroup",
        session: str | None = None,
    ) -> int:
        """
        Start one independent run per trigger matching `paths`. Runs for the same
        trigger are neither coalesced nor queued. Returns the number fired.
        """
        changed = list(paths)
        fired = 0
        for trigger in self.live_triggers(session):
            if matched := trigger.matching(changed):
                task_group.start_soon(self._fire, trigger, matched)
                fired += 1

        return fired

    def _relative(self, path: str) -> str:
        root = self.config.root.resolve()
        try:
            return Path(path).resolve().relative_to(root).as_posix()
        except ValueError:
            return Path(path).as_posix()

    async def serve_watches(
        self, stop_event: anyio.Event | None = None, session: str | None = None
    ) -> None:
        """
        Watch the project root until cancelled or `stop_event` is set. Only
        unscoped triggers and those of `session` fire.
        """
        logger.info(
            "Watching %s for %d trigger(s)",
            self.config.root,
            len(self.live_triggers(session)),
        )
        self.reload.active = True

        try:
            async with anyio.create_task_group() as tg:
                async for changes in awatch(
                    self.config.root,
                    debounce=self.config.watch_debounce_ms,
                    stop_event=stop_event,
                ):
                    paths = sorted({self._relative(path) for _, path in changes})
                    self.handle_changes(paths, tg, session)
        finally:
            self.reload.active = False

    async def serve(self, name: str, stop_event: anyio.Event | None = None) -> None:
        """Run `name` once, then keep the watch subscriptions alive."""
        self.reload.active = True
        try:
            await self.run(name)
        finally:
            self.reload.active = False

        await self.serve_watches(stop_event, session=name)
