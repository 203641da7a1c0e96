"""The daemon's event loop."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")


def _new_event_loop() -> asyncio.AbstractEventLoop:
    """uvloop's loop if available for better I/O throughput, else asyncio's."""
    try:
        import uvloop

        return uvloop.new_event_loop()
    except ImportError:
        return asyncio.new_event_loop()


class BusLoop:
    """Single cooperative loop the whole daemon runs on.

    ``request_stop`` may be called from anywhere, including while the loop is
    in the middle of a callback: it only flips a flag and wakes the loop
    through its self-pipe.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or _new_event_loop()
        self._stop_requested = False

    @property
    def asyncio_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def run(self) -> None:
        """Run until request_stop(). A stop requested earlier ends the first iteration."""
        self._loop.run_forever()

    def request_stop(self) -> None:
        # one pending stop at most; a stray one would abort run_until_complete later
        if self._stop_requested:
            return
        self._stop_requested = True
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._loop.stop)

    def run_until_complete(self, coro: Coroutine[Any, Any, T]) -> T:
        """Drive *coro* to completion outside of run(); used for setup and teardown."""
        return self._loop.run_until_complete(coro)

    def add_signal_handler(self, sig: int, callback: Callable[..., object], *args: object) -> None:
        """Run *callback* as an ordinary loop callback whenever *sig* arrives."""
        self._loop.add_signal_handler(sig, callback, *args)

    def remove_signal_handler(self, sig: int) -> bool:
        return self._loop.remove_signal_handler(sig)

    def close(self) -> None:
        if self._loop.is_closed():
            return
        logger.debug("Closing event loop")
        pending = asyncio.all_tasks(self._loop)
        for task in pending:
            task.cancel()
        if pending:
            self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        self._loop.close()
