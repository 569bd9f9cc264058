"""Async iterator over one or more triggers: buffers pushed messages until pulled."""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Deque, Iterable, List, Optional, Tuple, Union

from mongo_pubsub.errors import NotFoundError
from mongo_pubsub.observability import get_logger

if TYPE_CHECKING:
    from mongo_pubsub.engine import PubSub


@dataclass(frozen=True)
class IteratorResult:
    """One step of the pull protocol: a value, or done=True once the iterator is closed."""

    value: Any = None
    done: bool = False


DONE = IteratorResult(None, True)


def _current_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _finish(waiter: asyncio.Future) -> None:
    if not waiter.done():
        waiter.set_result(DONE)


class PubSubAsyncIterator:
    """
    Pull adapter over PubSub subscriptions.

    Subscribes to every trigger on construction. Messages that arrive before
    anyone asks are queued in arrival order; a produce_next() on an empty
    queue suspends until the next message or until close_early(). After close
    nothing is buffered and every pull returns done. Subscriptions are only
    released by an explicit close (close_early, aclose or leaving ``async with``).
    """

    def __init__(
        self,
        pubsub: "PubSub",
        triggers: Union[str, Iterable[str]],
        options: Any = None,
    ) -> None:
        self._pubsub = pubsub
        names = [triggers] if isinstance(triggers, str) else list(triggers)
        self._trigger_names: Tuple[str, ...] = tuple(dict.fromkeys(names))
        self._queue: Deque[Any] = deque()
        self._waiter: Optional[asyncio.Future] = None
        self._closed = False
        self._subscription_ids: List[int] = []
        self._logger = get_logger("mongo_pubsub.iterator")
        try:
            for name in self._trigger_names:
                self._subscription_ids.append(pubsub.subscribe(name, self._push_value, options))
        except Exception:
            self._closed = True
            self._unsubscribe_all()
            raise

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def trigger_names(self) -> Tuple[str, ...]:
        return self._trigger_names

    @property
    def subscription_ids(self) -> Tuple[int, ...]:
        return tuple(self._subscription_ids)

    @property
    def buffered(self) -> int:
        return len(self._queue)

    def _push_value(self, message: Any) -> None:
        if self._closed:
            return
        waiter = self._waiter
        if waiter is not None and not waiter.done():
            loop = waiter.get_loop()
            if _current_loop() is not loop:
                loop.call_soon_threadsafe(self._push_value, message)
                return
            self._waiter = None
            waiter.set_result(IteratorResult(message, False))
            return
        self._queue.append(message)

    async def produce_next(self) -> IteratorResult:
        """Return the oldest buffered message, or wait for the next one."""
        if self._closed:
            return DONE
        if self._queue:
            return IteratorResult(self._queue.popleft(), False)
        if self._waiter is not None and not self._waiter.done():
            raise RuntimeError("produce_next() is already waiting; an iterator has a single consumer")
        waiter = asyncio.get_running_loop().create_future()
        self._waiter = waiter
        try:
            return await waiter
        finally:
            if self._waiter is waiter:
                self._waiter = None

    async def close_early(self) -> IteratorResult:
        """Release every subscription, drop the buffer and wake a pending pull with done. Idempotent."""
        if self._closed:
            return DONE
        self._closed = True
        self._unsubscribe_all()
        dropped = len(self._queue)
        self._queue.clear()
        waiter, self._waiter = self._waiter, None
        if waiter is not None and not waiter.done():
            loop = waiter.get_loop()
            if _current_loop() is loop:
                waiter.set_result(DONE)
            else:
                loop.call_soon_threadsafe(_finish, waiter)
        self._logger.info(
            "iterator_closed",
            extra={"triggers": list(self._trigger_names), "dropped": dropped},
        )
        return DONE

    def _unsubscribe_all(self) -> None:
        for sub_id in self._subscription_ids:
            try:
                self._pubsub.unsubscribe(sub_id)
            except NotFoundError:
                self._logger.debug("already_released", extra={"subscription_id": sub_id})
        self._subscription_ids.clear()

    async def athrow(self, error: BaseException) -> None:
        """Close the iterator, then raise error into the caller."""
        await self.close_early()
        raise error

    def __aiter__(self) -> "PubSubAsyncIterator":
        return self

    async def __anext__(self) -> Any:
        result = await self.produce_next()
        if result.done:
            raise StopAsyncIteration
        return result.value

    async def aclose(self) -> None:
        await self.close_early()

    async def __aenter__(self) -> "PubSubAsyncIterator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "active"
        return f"PubSubAsyncIterator(triggers={list(self._trigger_names)!r}, {state}, buffered={len(self._queue)})"
