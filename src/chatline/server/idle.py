import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class IdleTimer:
    """Rearmable inactivity deadline for one connection.

    The connection's read loop calls ``reset()`` after every line; the idle
    monitor awaits ``expired()``. Resetting only moves the deadline, so the
    waiter re-checks it when it wakes instead of being cancelled and
    restarted.
    """

    def __init__(self, timeout: float) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self._loop = asyncio.get_running_loop()
        self._deadline = self._loop.time() + timeout

    @property
    def remaining(self) -> float:
        """Seconds left before expiry, never negative."""
        return max(0.0, self._deadline - self._loop.time())

    def reset(self) -> None:
        """Push the deadline a full timeout into the future."""
        self._deadline = self._loop.time() + self.timeout

    async def expired(self) -> None:
        """Return once the deadline passes without a reset."""
        while True:
            remaining = self._deadline - self._loop.time()
            if remaining <= 0:
                return
            await asyncio.sleep(remaining)


async def monitor_idle(
    timer: IdleTimer, on_expired: Callable[[], Awaitable[None]], label: str = ""
) -> None:
    """Wait for the timer to run out, then evict the connection.

    Args:
        timer: The connection's idle timer
        on_expired: Async callback that tears the connection down
        label: Name used in log messages
    """
    await timer.expired()
    logger.info(f"Idle timeout for {label!r} after {timer.timeout}s")
    await on_expired()
