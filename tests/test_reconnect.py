import asyncio
import os
import signal
import sys

import pytest


def _config(port, **overrides):
    from shared.config import ClientConfig

    values = dict(
        url=f"ws://127.0.0.1:{port}",
        connect_timeout=2.0,
        reconnect_delay=0.01,
        close_grace=0.01,
    )
    values.update(overrides)
    return ClientConfig(**values)


def _count_connects(client):
    calls = []
    original = client.connect

    async def counting_connect():
        calls.append(client.reconnect.attempts)
        await original()

    client.connect = counting_connect
    return calls


@pytest.mark.asyncio
async def test_exits_with_status_1_after_three_retries(free_port):
    from client.ws_client import EchoClient

    client = EchoClient(_config(free_port, reconnect_delay=0.05))
    calls = _count_connects(client)

    loop = asyncio.get_running_loop()
    started = loop.time()
    status = await asyncio.wait_for(client.run(), timeout=5.0)
    elapsed = loop.time() - started

    assert status == 1
    # initial attempt + 3 retries, counter value seen before each connect
    assert calls == [0, 1, 2, 3]
    assert client.reconnect.attempts == 3
    assert client.connections_made == 0
    assert elapsed >= 3 * 0.05


@pytest.mark.asyncio
async def test_zero_max_attempts_gives_up_immediately(free_port):
    from client.ws_client import EchoClient

    client = EchoClient(_config(free_port, max_attempts=0))
    calls = _count_connects(client)

    assert await client.run() == 1
    assert calls == [0]


@pytest.mark.asyncio
async def test_successful_connection_resets_counter(echo_server):
    from client.ws_client import EchoClient

    client = EchoClient(_config(echo_server.port))
    client.reconnect.attempts = 2

    await client.connect()
    try:
        assert client.reconnect.attempts == 0
        assert client.connections_made == 1
    finally:
        await client.websocket.close()


@pytest.mark.asyncio
async def test_greeting_is_sent_once_and_echoed(echo_server, wait_for):
    from client.ws_client import EchoClient

    client = EchoClient(_config(echo_server.port))
    task = asyncio.create_task(client.run())

    assert await wait_for(lambda: list(client.received) == [client.config.greeting])
    assert list(client.sent) == [client.config.greeting]

    await client.shutdown()
    assert await asyncio.wait_for(task, timeout=2.0) == 0
    assert client.lifecycle.is_terminated
    assert client.connections_made == 1


@pytest.mark.asyncio
async def test_connects_once_server_comes_up(free_port, wait_for):
    from client.ws_client import EchoClient
    from server.server import EchoServer
    from shared.config import ServerConfig

    client = EchoClient(_config(free_port, reconnect_delay=0.3))
    task = asyncio.create_task(client.run())
    await asyncio.sleep(0.1)

    server = EchoServer(ServerConfig(port=free_port, drain_delay=0.01))
    await server.start()
    try:
        assert await wait_for(lambda: len(client.received) == 1)
        assert client.reconnect.attempts == 0
        await client.shutdown()
        assert await asyncio.wait_for(task, timeout=2.0) == 0
    finally:
        await server.shutdown()


@pytest.mark.asyncio
async def test_lost_connection_is_retried_then_gives_up(echo_server, wait_for):
    from client.ws_client import EchoClient

    # Longer than the server's drain delay, so retries only start once the listener is gone
    client = EchoClient(_config(echo_server.port, reconnect_delay=0.1))
    task = asyncio.create_task(client.run())
    assert await wait_for(lambda: len(client.received) == 1)

    # Server goes away for good: every reconnect is refused
    await echo_server.shutdown()

    assert await asyncio.wait_for(task, timeout=5.0) == 1
    assert client.reconnect.attempts == 3
    assert client.connections_made == 1


@pytest.mark.asyncio
async def test_lost_connection_reconnects_and_greets_again(free_port, wait_for):
    from client.ws_client import EchoClient
    from server.server import EchoServer
    from shared.config import ServerConfig

    server = EchoServer(ServerConfig(port=free_port, drain_delay=0.01))
    await server.start()
    client = EchoClient(_config(free_port, reconnect_delay=0.2))
    task = asyncio.create_task(client.run())
    assert await wait_for(lambda: len(client.received) == 1)

    for link in server.connections:
        await link.close()

    assert await wait_for(lambda: len(client.received) == 2)
    assert client.connections_made == 2
    assert client.reconnect.attempts == 0

    await client.shutdown()
    assert await asyncio.wait_for(task, timeout=2.0) == 0
    await server.shutdown()


@pytest.mark.asyncio
async def test_shutdown_during_reconnect_delay_abandons_retry(free_port):
    from client.ws_client import EchoClient

    client = EchoClient(_config(free_port, reconnect_delay=0.3))
    calls = _count_connects(client)
    task = asyncio.create_task(client.run())
    await asyncio.sleep(0.1)

    await client.shutdown()

    assert await asyncio.wait_for(task, timeout=2.0) == 0
    assert calls == [0]
    assert client.reconnect.attempts == 1


@pytest.mark.asyncio
async def test_shutdown_twice_runs_once(dummy_websocket):
    from client.ws_client import EchoClient
    from shared.config import ClientConfig

    client = EchoClient(ClientConfig(close_grace=0.01))
    client.websocket = dummy_websocket

    await asyncio.gather(client.shutdown(), client.shutdown())
    await client.shutdown()

    assert dummy_websocket.close_calls == 1
    assert client.lifecycle.is_terminated


@pytest.mark.asyncio
async def test_periodic_sender_adds_timestamped_messages(echo_server, wait_for):
    from client.ws_client import EchoClient

    client = EchoClient(_config(echo_server.port, send_interval=0.05))
    task = asyncio.create_task(client.run())

    assert await wait_for(lambda: len(client.received) >= 3)
    assert client.sent[0] == client.config.greeting
    assert all(" Time: " in text for text in list(client.sent)[1:])

    await client.shutdown()
    assert await asyncio.wait_for(task, timeout=2.0) == 0


@pytest.mark.asyncio
async def test_unanswered_handshake_times_out_and_is_retried(silent_port):
    from client.ws_client import EchoClient
    from shared.errors import ConnectTimeoutError

    client = EchoClient(_config(silent_port, connect_timeout=0.1))
    failures = []
    original = client.connect

    async def recording_connect():
        try:
            await original()
        except Exception as exc:
            failures.append(type(exc))
            raise

    client.connect = recording_connect

    assert await asyncio.wait_for(client.run(), timeout=5.0) == 1
    assert failures == [ConnectTimeoutError] * 4
    assert client.reconnect.attempts == 3
    assert client.connections_made == 0


@pytest.mark.asyncio
async def test_shutdown_during_handshake_exits_with_status_0(silent_port):
    from client.ws_client import EchoClient

    client = EchoClient(_config(silent_port, connect_timeout=1.5, reconnect_delay=1.0, close_grace=0.05))
    calls = _count_connects(client)
    task = asyncio.create_task(client.run())
    await asyncio.sleep(0.2)

    loop = asyncio.get_running_loop()
    await client.shutdown()
    stopped = loop.time()

    assert await asyncio.wait_for(task, timeout=2.0) == 0
    # Neither the handshake timeout nor a reconnect delay is waited out
    assert loop.time() - stopped < 0.5
    assert calls == [0]
    assert client.websocket is None


@pytest.mark.asyncio
async def test_shutdown_during_last_handshake_still_exits_with_status_0(silent_port):
    from client.ws_client import EchoClient

    client = EchoClient(_config(silent_port, connect_timeout=1.5, reconnect_delay=1.0, close_grace=0.05))
    # Retries are already used up; a failure here would otherwise mean status 1
    client.reconnect.attempts = 3
    task = asyncio.create_task(client.run())
    await asyncio.sleep(0.2)

    await client.shutdown()

    assert await asyncio.wait_for(task, timeout=1.0) == 0
    assert client.lifecycle.is_terminated


@pytest.mark.asyncio
async def test_session_requires_open_connection():
    from client.ws_client import EchoClient

    client = EchoClient()

    with pytest.raises(RuntimeError):
        await client._session()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
@pytest.mark.asyncio
async def test_run_client_exits_with_status_0_on_sigint(echo_server, wait_for):
    from client.ws_client import run_client
    from shared.lifecycle import Lifecycle

    lifecycle = Lifecycle()
    task = asyncio.create_task(run_client(_config(echo_server.port), lifecycle))
    assert await wait_for(lambda: echo_server.get_status()["connections"] and
                          echo_server.get_status()["connections"][0]["messages_echoed"] == 1)

    os.kill(os.getpid(), signal.SIGINT)

    assert await asyncio.wait_for(task, timeout=2.0) == 0
    assert lifecycle.is_terminated
