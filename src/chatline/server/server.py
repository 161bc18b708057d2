import asyncio
import logging

from chatline.config import ServerConfig
from chatline.server.broadcaster import Broadcaster
from chatline.server.connection import ConnectionHandler

logger = logging.getLogger(__name__)


class ChatServer:
    """TCP listener that hands every connection to its own handler task.

    The broadcaster is started with the listener and shared by all handlers.
    """

    def __init__(self, config: ServerConfig) -> None:
        self.config = config
        self.broadcaster = Broadcaster()
        self._server: asyncio.Server | None = None
        self._handlers: set[asyncio.Task[None]] = set()

    @property
    def is_open(self) -> bool:
        """True if the listener is bound and accepting connections."""
        return self._server is not None and self._server.is_serving()

    @property
    def port(self) -> int:
        """Port the listener is bound to.

        Raises:
            RuntimeError: If the server has not been started
        """
        if self._server is None or not self._server.sockets:
            raise RuntimeError("Server is not started")
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        """Bind the listener and start the broadcaster.

        Raises:
            OSError: If the address cannot be bound
        """
        if self._server is not None:
            return

        await self.broadcaster.start()
        try:
            self._server = await asyncio.start_server(
                self._on_connection,
                host=self.config.host,
                port=self.config.port,
                limit=self.config.stream_limit,
            )
        except OSError:
            await self.broadcaster.stop()
            raise

        logger.info(
            f"Listening on {self.config.host}:{self.port} "
            f"(idle timeout {self.config.idle_timeout}s)"
        )

    async def serve_forever(self) -> None:
        await self.start()
        assert self._server is not None
        await self._server.serve_forever()

    async def close(self) -> None:
        """Stop accepting, end every open connection, then stop the broadcaster."""
        if self._server is not None:
            self._server.close()

        handlers = list(self._handlers)
        for task in handlers:
            task.cancel()
        await asyncio.gather(*handlers, return_exceptions=True)

        if self._server is not None:
            await self._server.wait_closed()
            self._server = None

        await self.broadcaster.stop()

    async def _on_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        handler = ConnectionHandler(
            reader,
            writer,
            self.broadcaster,
            idle_timeout=self.config.idle_timeout,
            sink_capacity=self.config.outbound_queue_size,
        )
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)
        try:
            await handler.run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Connection handler for {handler.peer} failed")
            writer.close()
        finally:
            if task is not None:
                self._handlers.discard(task)
