import asyncio
from typing import Callable

from ..core.ports import Scheduler, TimerHandle


class AsyncioScheduler(Scheduler):
    """
    Timers on an asyncio event loop; the clock is ``loop.time()``.

    Without an explicit loop the running loop is looked up on every call,
    so a session created before the server starts binds to the server's
    loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)
