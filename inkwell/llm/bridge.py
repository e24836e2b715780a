import asyncio
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")

_WAKE = object()


class PushPullBridge(Generic[T]):
    """
    Buffers items pushed by event callbacks so a consumer can pull them with
    ``async for``.

    The producer calls push() for each item and exactly one of close() (normal
    end), fail(exc) (error) or abort() (consumer no longer interested).
    Items pushed before close()/fail() are still delivered, in order; abort()
    ends iteration at the consumer's next pull even if items are queued.
    """

    def __init__(self, maxsize: int = 256):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._finished = False
        self._aborted = False
        self._error: Optional[BaseException] = None

    @property
    def finished(self) -> bool:
        return self._finished

    async def push(self, item: T) -> None:
        if self._finished:
            return
        await self._queue.put(item)

    def close(self) -> None:
        self._finish()

    def fail(self, exc: BaseException) -> None:
        if not self._finished:
            self._error = exc
        self._finish()

    def abort(self) -> None:
        self._aborted = True
        self._finish()

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        # Unblock a consumer parked on an empty queue. A full queue means the
        # consumer is not waiting and will see the flag after draining.
        try:
            self._queue.put_nowait(_WAKE)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> "PushPullBridge[T]":
        return self

    async def __anext__(self) -> T:
        while True:
            if self._aborted:
                raise StopAsyncIteration
            if self._finished and self._queue.empty():
                if self._error is not None:
                    error, self._error = self._error, None
                    raise error
                raise StopAsyncIteration
            item: Any = await self._queue.get()
            if item is _WAKE:
                continue
            return item
