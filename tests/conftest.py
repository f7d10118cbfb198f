import asyncio
import socket

import pytest
import pytest_asyncio


class DummyWebSocket:
    def __init__(self, remote_address=("127.0.0.1", 50000)) -> None:
        self.remote_address = remote_address
        self.sent_messages: list = []
        self.closed = False
        self.close_calls = 0
        self.close_code: int | None = None
        self.close_reason: str | None = None

    async def send(self, data) -> None:
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = True
        self.close_calls += 1
        self.close_code = code
        self.close_reason = reason


@pytest.fixture
def dummy_websocket():
    return DummyWebSocket()


@pytest.fixture
def free_port() -> int:
    # Nothing listens here once the socket is closed, so connects are refused
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def wait_for():
    async def _wait_for(predicate, timeout=3.0):
        loop = asyncio.get_running_loop()
        end = loop.time() + timeout
        while loop.time() < end:
            if predicate():
                return True
            await asyncio.sleep(0.02)
        return predicate()

    return _wait_for


@pytest_asyncio.fixture
async def echo_server(free_port):
    from server.server import EchoServer
    from shared.config import ServerConfig

    server = EchoServer(ServerConfig(host="127.0.0.1", port=free_port, drain_delay=0.05))
    await server.start()
    yield server
    await server.shutdown()


@pytest_asyncio.fixture
async def silent_port():
    """Port of a TCP listener that accepts connections but never answers the handshake."""
    writers = []

    async def _hold_open(reader, writer):
        writers.append(writer)
        await reader.read()

    server = await asyncio.start_server(_hold_open, "127.0.0.1", 0)
    yield server.sockets[0].getsockname()[1]
    for writer in writers:
        writer.close()
    server.close()
    await server.wait_closed()
