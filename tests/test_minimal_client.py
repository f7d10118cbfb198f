import pytest


@pytest.mark.asyncio
async def test_send_once_returns_echo(echo_server, wait_for):
    from client.client import send_once

    reply = await send_once(echo_server.url, "Hello from Python client!")

    assert reply == "Hello from Python client!"
    assert await wait_for(lambda: echo_server.active_count == 0)


@pytest.mark.asyncio
async def test_send_once_propagates_refused_connection(free_port):
    from client.client import send_once

    with pytest.raises(OSError):
        await send_once(f"ws://127.0.0.1:{free_port}", "hi", timeout=1.0)


@pytest.mark.asyncio
async def test_send_once_returns_none_without_reply(free_port):
    import websockets
    from client.client import send_once

    async def silent(websocket):
        async for _ in websocket:
            pass

    async with websockets.serve(silent, "127.0.0.1", free_port):
        reply = await send_once(f"ws://127.0.0.1:{free_port}", "hi", reply_timeout=0.1)

    assert reply is None
