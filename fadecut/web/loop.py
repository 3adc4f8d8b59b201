"""Background event loop for running export jobs behind Flask's worker threads."""

import asyncio
import threading
from typing import Callable


class LoopThread:
    """An asyncio loop on a daemon thread.

    Export managers live on this loop; request handlers reach them only
    through :meth:`call`, so each manager is still driven from one thread.
    """

    def __init__(self, name: str = "fadecut-loop"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def call(self, fn: Callable, *args, timeout: float = 10.0):
        """Run ``fn(*args)`` on the loop thread and return its result (or raise its error)."""

        async def invoke():
            return fn(*args)

        return asyncio.run_coroutine_threadsafe(invoke(), self.loop).result(timeout)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)
