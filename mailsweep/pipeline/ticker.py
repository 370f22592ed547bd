from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable


class Ticker:
    """
    Calls `callback` every `interval_s` seconds on the running loop until
    stopped. An exception from the callback ends the ticker task and is
    surfaced to whoever awaits `task`.
    """

    def __init__(self, interval_s: float, callback: Callable[[], None], *, name: str) -> None:
        self.interval_s = float(interval_s)
        self.callback = callback
        self.name = name
        self.task: asyncio.Task[None] | None = None

    def start(self) -> asyncio.Task[None]:
        if self.task is None:
            self.task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)
        return self.task

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            self.callback()

    async def stop(self) -> None:
        if self.task is None or self.task.done():
            return
        self.task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self.task


__all__ = ["Ticker"]
