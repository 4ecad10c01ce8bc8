import anyio
import pytest

from buildgraph import ReloadHub


@pytest.mark.anyio
async def test_broadcast_to_subscribers():
    hub = ReloadHub()

    with anyio.fail_after(1):
        async with hub.subscribe() as first, hub.subscribe() as second:
            assert hub.subscribers == 2
            assert hub.notify(["a.css", "b.css"]) == 4

            assert [await first.receive(), await first.receive()] == [
                ("a.css",),
                ("b.css",),
            ]
            assert await second.receive() == ("a.css",)

    assert hub.subscribers == 0


@pytest.mark.anyio
async def test_notify_once_collapses_batch():
    hub = ReloadHub()

    async with hub.subscribe() as changes:
        assert hub.notify(["a.js", "b.js"], once=True) == 1
        assert changes.receive_nowait() == ("a.js", "b.js")


@pytest.mark.anyio
async def test_full_buffer_drops_without_blocking():
    hub = ReloadHub(buffer=1)

    async with hub.subscribe() as changes:
        assert hub.notify(["a", "b", "c"]) == 1
        assert changes.receive_nowait() == ("a",)

        with pytest.raises(anyio.WouldBlock):
            changes.receive_nowait()


def test_notify_without_subscribers():
    assert ReloadHub().notify(["a"]) == 0
    assert ReloadHub().notify([]) == 0
