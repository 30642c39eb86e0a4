# gamify/services/background.py
import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Deque, Set, Tuple

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """
    Supervised fire-and-forget. Work submitted here never blocks or fails the caller,
    but every failure is logged and kept in ``failures`` so it can be inspected.
    """

    def __init__(self, max_failures: int = 100):
        self._tasks: Set[asyncio.Task] = set()
        self.failures: Deque[Tuple[str, BaseException]] = deque(maxlen=max_failures)

    def submit(self, coro: Awaitable[Any], name: str = "background") -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop (scripts, sync callers): run it to completion here.
            try:
                asyncio.run(coro)
            except Exception as exc:
                self._record(name, exc)
            return

        task = loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._record(task.get_name(), exc)

    def _record(self, name: str, exc: BaseException) -> None:
        logger.error("Background task %s failed", name, exc_info=exc)
        self.failures.append((name, exc))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for everything outstanding, including tasks spawned by tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
