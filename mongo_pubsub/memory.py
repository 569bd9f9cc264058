"""In-memory channel: routes published messages to callbacks in the same process."""

from typing import Any

from mongo_pubsub.channel import Channel
from mongo_pubsub.errors import TransportError
from mongo_pubsub.message import Message


class InMemoryChannel(Channel):
    """Process-local channel; delivery to callbacks happens synchronously inside publish()."""

    def __init__(self, name: str = "memory") -> None:
        super().__init__(name)

    async def publish(self, event: str, message: Any) -> None:
        """Wrap the payload in a Message (errors pass as-is) and deliver it."""
        if self._closed:
            raise TransportError(f"channel {self._name!r} is closed")
        value = message if isinstance(message, BaseException) else Message(event=event, message=message)
        self._deliver(event, value)

    def close(self) -> None:
        self._clear()
