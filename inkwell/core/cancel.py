import asyncio
import logging
from typing import Awaitable, Callable, List, TypeVar

from inkwell.core.exceptions import GenerationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

class CancelToken:
    """
    One-shot cancellation signal shared between a generation and the
    network resources it owns.

    Resources register close callbacks with add_callback(); they run
    synchronously, in registration order, the first time cancel() is called.
    A token that has already fired runs a newly added callback immediately.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Fire the token. Returns False if it had already fired."""
        if self._event.is_set():
            return False
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        logger.debug(f"Cancel token fired ({len(callbacks)} callbacks)")
        return True

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback and return a function that unregisters it."""
        if self._event.is_set():
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def remove():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    async def wait(self) -> None:
        await self._event.wait()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await a network call that the token can interrupt.

        The call runs as its own task, cancelled the moment the token fires,
        so the caller gets GenerationCancelled instead of waiting for the
        server to answer.
        """
        task = asyncio.ensure_future(awaitable)
        remove = self.add_callback(task.cancel)
        try:
            return await task
        except asyncio.CancelledError:
            if self.cancelled and task.cancelled():
                raise GenerationCancelled("Cancelled while waiting for the backend") from None
            raise
        finally:
            remove()
