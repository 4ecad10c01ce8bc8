import anyio
import pytest

from buildgraph import Scheduler, TaskRegistry, WatchTrigger
from buildgraph.exceptions import ActionFailure


def test_invoke_exit_status(tmp_path):
    registry = TaskRegistry()
    registry.define("ok")
    registry.define("broken", action=lambda: 1 / 0)

    assert Scheduler(registry).invoke("ok") == 0
    assert Scheduler(registry).invoke("broken") == 1
    assert Scheduler(registry).invoke("missing") == 1


@pytest.mark.anyio
async def test_invoke_within_event_loop(scheduler):
    with pytest.raises(RuntimeError, match="within an event loop"):
        scheduler.invoke("anything")


def test_trigger_matching():
    trigger = WatchTrigger(
        patterns=("app/scripts/**/*.js", "!app/scripts/polyfills-generated.js"),
        target="lint",
    )

    assert trigger.matching(
        [
            "app/scripts/main.js",
            "app/scripts/vendor/x.js",
            "app/scripts/polyfills-generated.js",
            "app/styles/main.scss",
        ]
    ) == ["app/scripts/main.js", "app/scripts/vendor/x.js"]
    assert trigger.label == "lint"


def test_watch_requires_positive_pattern(scheduler):
    with pytest.raises(ValueError):
        scheduler.watch("!app/**", "lint")


@pytest.mark.anyio
async def test_changes_fire_matching_triggers(scheduler, registry, calls):
    registry.define("styles", action=lambda: calls.append("styles"))
    registry.define("templates", action=lambda: calls.append("templates"))

    scheduler.watch("app/styles/**/*.scss", "styles")
    scheduler.watch("app/jade/**/*.jade", "templates")
    scheduler.watch("app/**/*", lambda paths: calls.append(tuple(paths)))

    with anyio.fail_after(1):
        async with anyio.create_task_group() as tg:
            fired = scheduler.handle_changes(["app/styles/main.scss"], tg)

    assert fired == 2
    assert sorted(calls, key=str) == sorted(
        ["styles", ("app/styles/main.scss",)], key=str
    )


@pytest.mark.anyio
async def test_overlapping_triggers_run_independently(scheduler, registry, calls):
    started = anyio.Event()

    async def slow():
        calls.append("slow:start")
        started.set()
        await anyio.sleep(0.05)
        calls.append("slow:end")

    registry.define("slow", action=slow)
    scheduler.watch("app/**/*", "slow")

    with anyio.fail_after(1):
        async with anyio.create_task_group() as tg:
            scheduler.handle_changes(["app/a.js"], tg)
            await started.wait()
            # a second change while the first run is in flight starts a new run
            scheduler.handle_changes(["app/b.js"], tg)

    assert calls.count("slow:start") == 2
    assert calls.count("slow:end") == 2


@pytest.mark.anyio
async def test_failing_trigger_does_not_stop_watching(scheduler, registry, calls):
    def broken():
        raise RuntimeError("lint exploded")

    registry.define("lint", action=broken)
    scheduler.watch("app/**/*.js", "lint")

    async def action(paths):
        calls.extend(paths)

    scheduler.watch("app/**/*.js", action)

    with anyio.fail_after(1):
        async with anyio.create_task_group() as tg:
            assert scheduler.handle_changes(["app/main.js"], tg) == 2

    assert calls == ["app/main.js"]


@pytest.mark.anyio
async def test_serve_watches_filesystem(scheduler, registry, tmp_path, calls):
    changed = anyio.Event()
    stop = anyio.Event()

    def styles():
        calls.append("styles")
        changed.set()

    registry.define("styles", action=styles)
    scheduler.watch("app/styles/*.scss", "styles")
    (tmp_path / "app" / "styles").mkdir(parents=True)

    with anyio.fail_after(10):
        async with anyio.create_task_group() as tg:
            tg.start_soon(scheduler.serve_watches, stop)
            await anyio.sleep(0.3)
            assert scheduler.reload.active

            (tmp_path / "app" / "styles" / "main.scss").write_text("a { b: c }")
            await changed.wait()
            stop.set()

    assert calls[0] == "styles"
    assert not scheduler.reload.active


@pytest.mark.anyio
async def test_session_triggers(scheduler, registry, calls):
    registry.define("lint", action=lambda: calls.append("lint"))
    registry.define("lint:test", action=lambda: calls.append("lint:test"))

    scheduler.watch("**/*.js", "lint", session="serve")
    scheduler.watch("test/spec/**/*.js", "lint:test", session="serve:test")
    scheduler.watch("**/*.js", lambda paths: calls.append("any"))

    assert [t.label for t in scheduler.live_triggers("serve:test")] == [
        "lint:test",
        "<lambda>",
    ]

    with anyio.fail_after(1):
        async with anyio.create_task_group() as tg:
            fired = scheduler.handle_changes(["test/spec/a.js"], tg, "serve:test")

    assert fired == 2
    assert sorted(calls) == ["any", "lint:test"]


@pytest.mark.anyio
async def test_failed_serve_leaves_reload_inactive(scheduler, registry):
    registry.define("serve", action=lambda: 1 / 0)

    with pytest.raises(ActionFailure):
        await scheduler.serve("serve")

    assert not scheduler.reload.active
