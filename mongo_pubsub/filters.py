"""Predicate filtering on top of any async iterator (e.g. PubSub.async_iterator)."""

import inspect
from typing import Any, AsyncIterator, Awaitable, Callable, Tuple, Union

Predicate = Callable[..., Union[bool, Awaitable[bool]]]


class FilteredAsyncIterator:
    """Yields only the values of source for which predicate(value, *args) is truthy."""

    def __init__(self, source: AsyncIterator[Any], predicate: Predicate, args: Tuple[Any, ...] = ()) -> None:
        self._source = source
        self._predicate = predicate
        self._args = args

    def __aiter__(self) -> "FilteredAsyncIterator":
        return self

    async def __anext__(self) -> Any:
        while True:
            value = await self._source.__anext__()
            try:
                keep = self._predicate(value, *self._args)
                if inspect.isawaitable(keep):
                    keep = await keep
            except Exception:
                await self.aclose()
                raise
            if keep:
                return value

    async def aclose(self) -> None:
        """Close the source iterator (releases its subscriptions)."""
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> "FilteredAsyncIterator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


def with_filter(
    iterator_fn: Callable[..., AsyncIterator[Any]],
    predicate: Predicate,
) -> Callable[..., FilteredAsyncIterator]:
    """
    Wrap an iterator factory so its values are filtered by predicate.

    The returned callable forwards its positional arguments both to
    iterator_fn and, after the value, to predicate.
    """

    def build(*args: Any) -> FilteredAsyncIterator:
        return FilteredAsyncIterator(iterator_fn(*args), predicate, args)

    return build
