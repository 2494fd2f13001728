"""
Module that runs asynchronous cluster interactions on behalf of synchronous callers.

The file system interface is blocking, but exec streams to several containers should be
able to make progress at the same time. The bridge owns one long-lived asyncio event
loop in a background thread. Every public file system call submits a coroutine to that
loop and blocks the calling thread until it has completed, so the asyncio machinery
never leaks into the public interface.

A single bridge may be shared by any number of file systems, in which case they also
share its worker threads.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
import threading
from typing import Any, Coroutine, Optional, TypeVar

from kubefs.errors import NotConnectedError
from kubefs.logger import log

T = TypeVar("T")


class Bridge:
    """
    Blocking gateway to a background asyncio event loop.

    Example:
    ```
    bridge = Bridge()
    result = bridge.run(some_coroutine())
    bridge.shutdown()
    ```
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        workers: Optional[int] = None,
    ):
        """
        Instantiate a bridge and start its event loop.

        If a loop is given then it must already be running in another thread and the
        bridge will never stop it. Otherwise the bridge creates its own loop whose
        default executor (used for blocking exec streams) has the given number of
        worker threads.
        """
        self._owns_loop = loop is None
        self._loop = loop
        self._workers = workers

        self._thread: Optional[threading.Thread] = None

        self._state = threading.Condition()
        self._in_flight = 0
        self._closing = False

        self.start()

    @property
    def closed(self) -> bool:
        """Return whether the bridge refuses new work."""
        with self._state:
            return self._closing

    @property
    def in_flight(self) -> int:
        """Return the number of calls that are currently running."""
        with self._state:
            return self._in_flight

    def start(self) -> None:
        """Start (or restart after shutdown) the event loop of the bridge."""
        with self._state:
            if self._owns_loop and self._thread is None:
                self._loop = asyncio.new_event_loop()
                self._loop.set_default_executor(
                    ThreadPoolExecutor(
                        max_workers=self._workers, thread_name_prefix="kubefs-exec"
                    )
                )

                self._thread = threading.Thread(
                    target=self._run_loop,
                    args=(self._loop,),
                    name="kubefs-bridge",
                    daemon=True,
                )
                self._thread.start()

            self._closing = False

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop) -> None:
        """Run the event loop until it is stopped and then clean it up."""
        asyncio.set_event_loop(loop)

        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.run_until_complete(loop.shutdown_default_executor())
            loop.close()

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """
        Run a coroutine on the event loop and block until it has completed.

        The result of the coroutine is returned, or the exception it raised is raised in
        the calling thread.
        """
        with self._state:
            if self._closing or self._loop is None:
                coro.close()
                raise NotConnectedError("bridge has been shut down")

            if self._thread is not None and threading.current_thread() is self._thread:
                coro.close()
                raise RuntimeError("bridge called from its own event loop")

            self._in_flight += 1
            loop = self._loop

        try:
            return asyncio.run_coroutine_threadsafe(coro, loop).result()
        finally:
            with self._state:
                self._in_flight -= 1
                self._state.notify_all()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop accepting calls, wait for running ones and then stop the event loop.

        Calling shutdown more than once has no effect. A loop that was passed to the
        constructor is left running.
        """
        with self._state:
            self._closing = True

            if not self._state.wait_for(lambda: self._in_flight == 0, timeout):
                log.warning(f"shutting down with {self._in_flight} calls in flight")

            thread = self._thread
            self._thread = None

        if thread is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(self._loop.stop)
            thread.join()

            log.debug("bridge event loop stopped")
