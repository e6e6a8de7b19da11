"""Re-entrancy guarded periodic task.

Runs a coroutine function immediately on start and then every
``interval_sec``. A tick that arrives while the previous run is still in
flight is skipped. Exceptions from a run are logged and never stop the loop.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger as default_logger


class PeriodicTask:
    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_sec: float,
        *,
        logger: Any = default_logger,
    ) -> None:
        self.name = name
        self._func = func
        self._interval = interval_sec
        self._log = logger
        self._loop_task: asyncio.Task | None = None
        self._run_task: asyncio.Task | None = None
        self._busy = False
        self.runs = 0
        self.skipped = 0
        self.errors = 0

    @property
    def busy(self) -> bool:
        return self._busy

    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def run_once(self) -> Any:
        """Run the function now unless a run is already in flight.

        Returns the function's result, or None when skipped or failed.
        """
        if self._busy:
            self.skipped += 1
            self._log.debug(f"[{self.name}] Previous run still in progress, skipping")
            return None
        self._busy = True
        try:
            result = await self._func()
            self.runs += 1
            return result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.errors += 1
            self._log.error(f"[{self.name}] Run failed: {type(e).__name__}: {e}")
            return None
        finally:
            self._busy = False

    async def _loop(self) -> None:
        while True:
            if self._run_task is None or self._run_task.done():
                self._run_task = asyncio.create_task(self.run_once())
            else:
                self.skipped += 1
                self._log.debug(f"[{self.name}] Tick skipped, previous run in flight")
            await asyncio.sleep(self._interval)

    def start(self) -> bool:
        """Start the loop. Returns False if it was already running."""
        if self.is_running():
            return False
        self._loop_task = asyncio.create_task(self._loop())
        return True

    async def stop(self) -> None:
        tasks = [t for t in (self._loop_task, self._run_task) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._loop_task = None
        self._run_task = None
