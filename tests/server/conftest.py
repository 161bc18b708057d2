import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatline.server.broadcaster import Broadcaster
from chatline.server.client import Client
from chatline.server.outbound import OutboundSink


def received(client: Client) -> list[str]:
    """Lines waiting in a client's sink, without consuming them."""
    return [item for item in client.outbound._queue._queue if isinstance(item, str)]


def make_stream_pair(
    limit: int = 2**16,
) -> tuple[asyncio.StreamReader, MagicMock]:
    """A real StreamReader plus a mock writer whose close() ends the reader.

    Mirrors a socket: once the server closes the connection, pending reads
    see EOF.
    """
    reader = asyncio.StreamReader(limit=limit)
    writer = MagicMock()
    writer.write = MagicMock()
    writer.drain = AsyncMock()
    writer.wait_closed = AsyncMock()
    writer.is_closing = MagicMock(return_value=False)
    writer.close = MagicMock(side_effect=reader.feed_eof)
    writer.get_extra_info = MagicMock(return_value=("127.0.0.1", 50000))
    return reader, writer


def written(writer: MagicMock) -> bytes:
    """Everything the code under test wrote to a mock writer."""
    return b"".join(call.args[0] for call in writer.write.call_args_list)


@pytest.fixture
def make_client():
    """Factory for clients with their own sinks."""

    def _make(name: str, capacity: int = 100) -> Client:
        return Client(name=name, outbound=OutboundSink(capacity, label=name))

    return _make


@pytest.fixture
async def broadcaster():
    """Running Broadcaster with automatic cleanup."""
    b = Broadcaster()
    await b.start()
    yield b
    if b.running:
        await b.stop()
