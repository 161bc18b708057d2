"""Single coordinator for chat membership and message fan-out.

The broadcaster owns the set of active clients. Nothing else reads or
mutates it: connection handlers submit join, leave and message events
through three queues and the broadcaster's loop task applies them one at a
time, so no lock is needed.
"""

import asyncio
import logging
import random
from typing import Any

from chatline.server.client import Client
from chatline.server.protocol import roster_line

logger = logging.getLogger(__name__)

JOINS = "joins"
LEAVES = "leaves"
MESSAGES = "messages"


class BroadcasterStoppedError(RuntimeError):
    """Raised to submitters whose event was still queued when the loop stopped."""


class Broadcaster:
    """Serializes joins, leaves and broadcasts through one selection loop.

    Each submission waits until the loop has handled it. A handler that
    publishes its arrival line and then joins can rely on the arrival being
    fanned out before the join is applied, so the newcomer never sees its own
    arrival.

    When several queues have events waiting, the loop picks one of them at
    random. Interleaving across queues is therefore not FIFO; within one
    queue it is.
    """

    def __init__(self) -> None:
        self._queues: dict[str, asyncio.Queue[tuple[Any, asyncio.Future[None]]]] = {
            JOINS: asyncio.Queue(),
            LEAVES: asyncio.Queue(),
            MESSAGES: asyncio.Queue(),
        }
        self._clients: dict[Client, bool] = {}
        self._loop_task: asyncio.Task[None] | None = None

    # ================================
    # Lifecycle
    # ================================

    @property
    def running(self) -> bool:
        """True if the selection loop is actively processing events."""
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        """Start the selection loop.

        Safe to call multiple times - subsequent calls are ignored if already
        running.
        """
        if self.running:
            return

        self._loop_task = asyncio.create_task(self._run(), name="broadcaster")
        self._loop_task.add_done_callback(self._on_loop_done)

    async def stop(self) -> None:
        """Stop the selection loop.

        Remaining clients have their sinks closed and events still waiting in
        the queues are failed with ``BroadcasterStoppedError``. Safe to call
        multiple times.
        """
        if not self.running:
            return

        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

    def _on_loop_done(self, task: asyncio.Task[None]) -> None:
        """Report an unexpected loop exit and fail stranded submissions."""
        self._loop_task = None
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Broadcaster loop crashed: {task.exception()!r}")
        self._fail_pending()

    def _fail_pending(self) -> None:
        for queue in self._queues.values():
            while not queue.empty():
                _, done = queue.get_nowait()
                if not done.done():
                    done.set_exception(BroadcasterStoppedError("Broadcaster stopped"))

    # ================================
    # Submit events
    # ================================

    async def join(self, client: Client) -> None:
        """Add a client to the active set and send it the roster."""
        await self._submit(JOINS, client)

    async def leave(self, client: Client) -> None:
        """Remove a client and close its sink. No-op if it is not a member."""
        await self._submit(LEAVES, client)

    async def publish(self, text: str) -> None:
        """Deliver a line to every active client."""
        await self._submit(MESSAGES, text)

    async def _submit(self, kind: str, payload: Any) -> None:
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        await self._queues[kind].put((payload, done))
        await done

    # ================================
    # Selection loop
    # ================================

    async def _run(self) -> None:
        """Wait on all three queues and handle one ready event per iteration.

        Errors while handling a single event are logged and don't interrupt
        the loop.
        """
        getters: dict[str, asyncio.Task[tuple[Any, asyncio.Future[None]]]] = {}
        try:
            while True:
                for kind, queue in self._queues.items():
                    if kind not in getters:
                        getters[kind] = asyncio.create_task(queue.get())

                await asyncio.wait(
                    getters.values(), return_when=asyncio.FIRST_COMPLETED
                )
                ready = [kind for kind, task in getters.items() if task.done()]
                kind = random.choice(ready)
                payload, done = getters.pop(kind).result()

                try:
                    self._dispatch(kind, payload)
                except Exception:
                    logger.exception(f"Error handling {kind} event")
                finally:
                    if not done.done():
                        done.set_result(None)
        finally:
            for kind, task in getters.items():
                if task.done() and not task.cancelled():
                    # Taken off its queue but never handled.
                    _, done = task.result()
                    if not done.done():
                        done.set_exception(
                            BroadcasterStoppedError("Broadcaster stopped")
                        )
                else:
                    task.cancel()
            self._close_all()

    def _dispatch(self, kind: str, payload: Any) -> None:
        if kind == MESSAGES:
            self._handle_message(payload)
        elif kind == JOINS:
            self._handle_join(payload)
        else:
            self._handle_leave(payload)

    # ================================
    # Handle events
    # ================================

    def _handle_message(self, text: str) -> None:
        for client in self._clients:
            client.outbound.send(text)

    def _handle_join(self, client: Client) -> None:
        self._clients[client] = True
        client.outbound.send(roster_line([c.name for c in self._clients]))
        logger.debug(f"{client.name!r} joined, {len(self._clients)} active")

    def _handle_leave(self, client: Client) -> None:
        if self._clients.pop(client, None) is None:
            logger.debug(f"Ignoring leave for non-member {client.name!r}")
            return

        client.outbound.close()
        logger.debug(f"{client.name!r} left, {len(self._clients)} active")

    def _close_all(self) -> None:
        for client in list(self._clients):
            del self._clients[client]
            client.outbound.close()
