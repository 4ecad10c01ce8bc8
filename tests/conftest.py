import pytest

from buildgraph import Config, Scheduler, TaskRegistry


@pytest.fixture
def registry():
    return TaskRegistry()


@pytest.fixture
def scheduler(registry, tmp_path):
    return Scheduler(registry, Config(root=tmp_path))


@pytest.fixture
def calls():
    """Records action invocations in order."""
    return []


@pytest.fixture(
    params=[
        pytest.param(("asyncio", {"use_uvloop": False}), id="asyncio"),
        pytest.param(
            ("trio", {"restrict_keyboard_interrupt_to_checkpoints": True}), id="trio"
        ),
    ],
    scope="session",
)
def anyio_backend(request):
    return request.param
