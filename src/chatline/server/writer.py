import asyncio
import logging

from chatline.server.outbound import OutboundSink
from chatline.server.protocol import encode_line

logger = logging.getLogger(__name__)


async def write_lines(sink: OutboundSink, writer: asyncio.StreamWriter) -> None:
    """Drain a client's sink onto its connection until the sink is closed.

    Write failures are logged and otherwise ignored. The loop keeps consuming
    so the sink never backs up behind a dead connection.
    """
    async for line in sink.lines():
        if writer.is_closing():
            continue
        try:
            writer.write(encode_line(line))
            await writer.drain()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Write to {sink.label!r} failed: {e}")
