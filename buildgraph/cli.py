import importlib.util
import logging
from pathlib import Path

import anyio
import typer

from .config import Config
from .exceptions import BuildGraphError
from .recipes import define_site_tasks
from .registry import TaskRegistry
from .resolver import resolve_topology
from .scheduler import Scheduler

app = typer.Typer(
    add_completion=False, help="Run named build tasks and their prerequisites."
)
log = logging.getLogger("buildgraph.cli")

BUILDFILE = typer.Option(
    None,
    "--buildfile",
    "-f",
    help="Python module exposing `define(scheduler)`. Defaults to the site recipe.",
)


def _configure_logging(config: Config) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )


def load_scheduler(buildfile: Path | None) -> Scheduler:
    config = Config()
    _configure_logging(config)
    scheduler = Scheduler(TaskRegistry(), config)

    if buildfile is None:
        define_site_tasks(scheduler)
        return scheduler

    spec = importlib.util.spec_from_file_location("buildfile", buildfile)
    if spec is None or spec.loader is None:
        raise typer.BadParameter(f"Cannot load build file {buildfile}")

    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    define = getattr(module, "define", None)
    if not callable(define):
        raise typer.BadParameter(f"{buildfile} does not define `define(scheduler)`")

    define(scheduler)
    return scheduler


@app.command("list")
def list_tasks(buildfile: Path | None = BUILDFILE):
    """List defined tasks and their prerequisites."""
    scheduler = load_scheduler(buildfile)
    for runner in sorted(scheduler.registry, key=lambda r: r.name):
        prerequisites = ", ".join(runner.prerequisites)
        line = f"- {runner.name}" + (f" <- [{prerequisites}]" if prerequisites else "")
        if runner.task.description:
            line += f"  {runner.task.description}"
        typer.echo(line)


@app.command()
def plan(
    name: str = typer.Argument(..., help="Task name to plan"),
    buildfile: Path | None = BUILDFILE,
):
    """Show the waves a task would run in, without running anything."""
    scheduler = load_scheduler(buildfile)
    try:
        topology = resolve_topology(scheduler.registry, name)
    except BuildGraphError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1) from e

    for i, wave in enumerate(topology.waves()):
        typer.echo(f"wave {i}: {', '.join(wave)}")
    typer.echo(str(topology))


@app.command()
def run(
    name: str = typer.Argument("default", help="Task name to run"),
    buildfile: Path | None = BUILDFILE,
):
    """Run a task and its prerequisites."""
    scheduler = load_scheduler(buildfile)
    raise typer.Exit(code=scheduler.invoke(name))


@app.command()
def serve(
    name: str = typer.Argument("serve", help="Task to run before watching"),
    buildfile: Path | None = BUILDFILE,
):
    """Run a task, then re-run tasks as watched files change."""
    scheduler = load_scheduler(buildfile)
    try:
        anyio.run(scheduler.serve, name, backend=scheduler.async_backend)
    except KeyboardInterrupt:
        log.info("Stopped watching")
    except BuildGraphError as e:
        log.error("'%s' failed: %s", name, e)
        raise typer.Exit(code=1) from e


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
