"""Lifecycle of a single chat participant.

One ``ConnectionHandler`` runs per accepted connection. It asks for a name,
registers the client with the broadcaster, forwards every line the client
sends, and tears the client down when the connection ends or goes idle.
"""

import asyncio
import logging

from chatline.server.broadcaster import Broadcaster
from chatline.server.client import Client
from chatline.server.idle import IdleTimer, monitor_idle
from chatline.server.outbound import DEFAULT_CAPACITY, OutboundSink
from chatline.server.protocol import (
    NAME_PROMPT,
    arrival_line,
    chat_line,
    decode_line,
    departure_line,
    welcome_line,
)
from chatline.server.writer import write_lines

logger = logging.getLogger(__name__)

# How long a departing client's writer gets to flush its remaining lines.
FLUSH_TIMEOUT = 1.0

READ_ERRORS = (ConnectionError, OSError, ValueError, asyncio.IncompleteReadError)


class ConnectionHandler:
    """Owns one accepted connection end to end.

    Departure can be triggered from two places: the read loop ending and the
    idle monitor firing. Both go through ``depart()``, which runs the
    teardown once; a second caller waits for the first one to finish.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        broadcaster: Broadcaster,
        idle_timeout: float,
        sink_capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.broadcaster = broadcaster
        self.idle_timeout = idle_timeout
        self.sink_capacity = sink_capacity
        self.peer = writer.get_extra_info("peername")

        self.client: Client | None = None
        self._timer: IdleTimer | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._monitor_task: asyncio.Task[None] | None = None
        self._departing = False
        self._departed = asyncio.Event()

    @property
    def departed(self) -> bool:
        """True once teardown has started."""
        return self._departing

    # ================================
    # Lifecycle
    # ================================

    async def run(self) -> None:
        """Serve the connection until the client goes away."""
        logger.info(f"Accepted connection from {self.peer}")

        name = await self._read_name()
        if name is None:
            logger.info(f"{self.peer} disconnected before choosing a name")
            await self._close_connection()
            return

        sink = OutboundSink(self.sink_capacity, label=name)
        self.client = Client(name=name, outbound=sink)
        self._writer_task = asyncio.create_task(
            write_lines(sink, self.writer), name=f"writer_{name}"
        )

        try:
            sink.send(welcome_line(name))
            await self.broadcaster.publish(arrival_line(name))
            await self.broadcaster.join(self.client)
            logger.info(f"{name!r} joined from {self.peer}")

            self._timer = IdleTimer(self.idle_timeout)
            self._monitor_task = asyncio.create_task(
                monitor_idle(self._timer, self.depart, name), name=f"idle_{name}"
            )

            await self._read_loop()
        finally:
            await self.depart()
            if self._monitor_task is not None:
                self._monitor_task.cancel()

    async def depart(self) -> None:
        """Announce the client's departure and close the connection.

        Runs at most once per connection. Later callers wait for the first
        teardown to complete and then return.
        """
        if self._departing:
            await self._departed.wait()
            return
        self._departing = True

        try:
            if self.client is not None:
                await self.broadcaster.leave(self.client)
                await self.broadcaster.publish(departure_line(self.client.name))
                logger.info(f"{self.client.name!r} left")
            await self._flush_writer()
            await self._close_connection()
        finally:
            self._departed.set()

    # ================================
    # Input
    # ================================

    async def _read_name(self) -> str | None:
        """Prompt for a display name and read it.

        Returns None if the connection ends, fails, or stays silent for the
        idle timeout before a full line arrives.
        """
        try:
            self.writer.write(NAME_PROMPT.encode("utf-8"))
            await self.writer.drain()
            line_bytes = await asyncio.wait_for(
                self.reader.readline(), self.idle_timeout
            )
        except asyncio.TimeoutError:
            return None
        except READ_ERRORS as e:
            logger.debug(f"Reading name from {self.peer} failed: {e}")
            return None

        if not line_bytes.endswith(b"\n"):
            return None
        return decode_line(line_bytes)

    async def _read_loop(self) -> None:
        """Forward each received line as a chat message until reading fails."""
        assert self.client is not None and self._timer is not None
        name = self.client.name

        while True:
            try:
                line_bytes = await self.reader.readline()
            except READ_ERRORS as e:
                logger.debug(f"Read from {name!r} failed: {e}")
                return

            if not line_bytes or self._departing:
                return

            await self.broadcaster.publish(chat_line(name, decode_line(line_bytes)))
            self._timer.reset()

    # ================================
    # Teardown
    # ================================

    async def _flush_writer(self) -> None:
        """Give the writer a moment to send what the broadcaster queued."""
        if self._writer_task is None:
            return
        try:
            await asyncio.wait_for(self._writer_task, FLUSH_TIMEOUT)
        except asyncio.TimeoutError:
            logger.debug(f"Writer for {self.peer} did not flush in time")

    async def _close_connection(self) -> None:
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass
