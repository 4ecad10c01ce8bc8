from typing import Annotated

import pytest

from buildgraph import Config, Depends
from buildgraph.exceptions import ActionFailure, DefinitionError


def _config() -> Config:
    return Config(dist_dir="public")


@pytest.mark.anyio
async def test_action_dependency_injection(scheduler, registry, calls):
    def build(config: Config = Depends(_config)):
        calls.append(config.dist_dir)

    registry.define("build", action=build)
    await scheduler.run("build")

    assert calls == ["public"]


@pytest.mark.anyio
async def test_annotated_dependency(scheduler, registry, calls):
    def build(config: Annotated[Config, Depends(_config)]):
        calls.append(config.dist_dir)

    registry.define("build", action=build)
    await scheduler.run("build")

    assert calls == ["public"]


@pytest.mark.anyio
async def test_unresolvable_parameters(scheduler, registry):
    def build(target): ...

    registry.define("build", action=build)

    with pytest.raises(ActionFailure) as exc_info:
        await scheduler.run("build")

    assert isinstance(exc_info.value.cause, DefinitionError)
    assert "unresolvable parameters" in str(exc_info.value)
