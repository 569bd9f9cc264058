"""Abstract channel contract the pub-sub engine publishes and subscribes through."""

import threading
from abc import ABC, abstractmethod
from itertools import count
from typing import Any, Callable, Dict, List, Tuple

from mongo_pubsub.errors import TransportError
from mongo_pubsub.observability import get_logger

ChannelCallback = Callable[[Any], None]
ConnectionListener = Callable[[str, Any], None]

EVENT_READY = "ready"
EVENT_ERROR = "error"


class ChannelSubscription:
    """Handle for one callback registered on a channel."""

    def __init__(self, channel: "Channel", event: str, token: int) -> None:
        self._channel = channel
        self._event = event
        self._token = token

    @property
    def event(self) -> str:
        return self._event

    def unsubscribe(self) -> None:
        """Detach the callback. Calling it again is a no-op at channel level."""
        self._channel._remove(self._event, self._token)

    def __repr__(self) -> str:
        return f"ChannelSubscription(event={self._event!r}, token={self._token})"


class Channel(ABC):
    """Transport that moves messages between publishers and subscriber callbacks.

    Callbacks receive a ``Message`` for data, or the exception itself when an
    error was published. Subclasses implement ``publish`` and ``close`` and
    hand incoming values to ``_deliver``.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._callbacks: Dict[str, Dict[int, ChannelCallback]] = {}
        self._listeners: Dict[str, List[ConnectionListener]] = {}
        self._tokens = count()
        self._lock = threading.Lock()
        self._closed = False
        self._logger = get_logger(f"mongo_pubsub.channel.{name}")

    @property
    def name(self) -> str:
        return self._name

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    async def publish(self, event: str, message: Any) -> None:
        """Publish a message on an event. Raises TransportError on failure."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the transport. Outstanding handles become inert."""
        pass

    def subscribe(self, event: str, callback: ChannelCallback) -> ChannelSubscription:
        """Register a callback for an event and return its handle."""
        with self._lock:
            if self._closed:
                raise TransportError(f"channel {self._name!r} is closed")
            token = next(self._tokens)
            self._callbacks.setdefault(event, {})[token] = callback
        try:
            self._after_subscribe(event)
        except Exception:
            self._remove(event, token)
            raise
        return ChannelSubscription(self, event, token)

    def _after_subscribe(self, event: str) -> None:
        """Hook for transports that start listening lazily."""

    def _remove(self, event: str, token: int) -> None:
        with self._lock:
            callbacks = self._callbacks.get(event)
            if callbacks is None:
                return
            callbacks.pop(token, None)
            if not callbacks:
                del self._callbacks[event]

    def _clear(self) -> None:
        with self._lock:
            self._closed = True
            self._callbacks.clear()

    def callback_count(self, event: str) -> int:
        with self._lock:
            return len(self._callbacks.get(event, ()))

    def _deliver(self, event: str, value: Any) -> int:
        """Invoke every callback of the event. Copy callbacks under lock, then deliver without holding lock."""
        with self._lock:
            targets: List[Tuple[int, ChannelCallback]] = list(self._callbacks.get(event, {}).items())
        self._logger.debug(
            "delivering",
            extra={"event": event, "callback_count": len(targets)},
        )
        for token, callback in targets:
            try:
                callback(value)
            except Exception as e:
                self._logger.exception(
                    "delivery_failed",
                    extra={"event": event, "token": token, "error": str(e)},
                )
        return len(targets)

    def on(self, event_name: str, listener: ConnectionListener) -> None:
        """Register a connection-event listener ("ready" or "error")."""
        self._listeners.setdefault(event_name, []).append(listener)

    def _emit(self, event_name: str, data: Any) -> None:
        for listener in list(self._listeners.get(event_name, ())):
            try:
                listener(event_name, data)
            except Exception:
                self._logger.exception(
                    "connection_listener_failed",
                    extra={"channel": self._name, "event_name": event_name},
                )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self._name!r}, events={len(self._callbacks)})"
