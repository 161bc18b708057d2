import asyncio
from typing import Callable

import pytest

from chatline.config import ServerConfig
from chatline.server import ChatServer


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true, failing the test after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met in time")
        await asyncio.sleep(0.005)


async def yield_to_event_loop(seconds: float = 0.01) -> None:
    """Let the event loop process pending tasks and callbacks."""
    await asyncio.sleep(seconds)


@pytest.fixture
def yield_loop():
    """Helper to yield to event loop in tests."""
    return yield_to_event_loop


class ChatClient:
    """Minimal line-based client for talking to a running server."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer

    @classmethod
    async def connect(cls, port: int, name: str | None = None) -> "ChatClient":
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        client = cls(reader, writer)
        if name is not None:
            await client.read_prompt()
            await client.send(name)
        return client

    async def read_prompt(self, timeout: float = 2.0) -> str:
        data = await asyncio.wait_for(
            self.reader.readexactly(len("Enter a user name: ")), timeout
        )
        return data.decode("utf-8")

    async def send(self, line: str) -> None:
        self.writer.write((line + "\n").encode("utf-8"))
        await self.writer.drain()

    async def read_line(self, timeout: float = 2.0) -> str | None:
        """Next line from the server, or None once the server closed."""
        data = await asyncio.wait_for(self.reader.readline(), timeout)
        if not data:
            return None
        return data.decode("utf-8").rstrip("\n")

    async def close(self) -> None:
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass


@pytest.fixture
def server_config():
    """Config for a throwaway server on a free local port."""
    return ServerConfig(host="127.0.0.1", port=0, idle_timeout=5)


@pytest.fixture
async def chat_server(server_config):
    """Running ChatServer with automatic cleanup."""
    server = ChatServer(server_config)
    await server.start()
    yield server
    await server.close()


@pytest.fixture
async def connect(chat_server):
    """Factory for clients connected to the running server, closed on teardown."""
    clients: list[ChatClient] = []

    async def _connect(name: str | None = None) -> ChatClient:
        client = await ChatClient.connect(chat_server.port, name)
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        await client.close()
