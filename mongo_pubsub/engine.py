"""Pub-sub engine: the facade publishers and subscribers talk to."""

import dataclasses
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from mongo_pubsub.channel import EVENT_ERROR, EVENT_READY, Channel, ConnectionListener
from mongo_pubsub.config import ChannelOptions
from mongo_pubsub.iterator import PubSubAsyncIterator
from mongo_pubsub.mongo import MongoChannel
from mongo_pubsub.observability import Metrics, get_logger
from mongo_pubsub.registry import SubscriptionRegistry

MessageTransform = Callable[[Any], Any]
OnMessage = Callable[[Any], None]

CHANNEL_READY = "channel ready"

_logger = get_logger("mongo_pubsub.engine")


def default_message_transform(message: Any) -> Any:
    """Identity transform that logs each delivered message."""
    _logger.debug("message_transform", extra={"delivered": repr(message)})
    return message


class PubSub:
    """
    Fan-out engine over a Channel.

    Every subscribe() opens its own channel subscription; the registry tracks
    which ids are bound to which trigger so each one is released exactly once.
    """

    def __init__(
        self,
        channel: Channel,
        message_transform: Optional[MessageTransform] = None,
        connection_listener: Optional[ConnectionListener] = None,
    ) -> None:
        self._channel = channel
        self._message_transform = message_transform or default_message_transform
        self._registry = SubscriptionRegistry()
        self._metrics = Metrics()
        self._logger = _logger
        if connection_listener is not None:
            channel.on(EVENT_ERROR, connection_listener)
            channel.on(EVENT_READY, lambda _event, data: connection_listener(CHANNEL_READY, data))

    @property
    def channel(self) -> Channel:
        return self._channel

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    @property
    def subscription_count(self) -> int:
        return len(self._registry)

    def trigger_refs(self, trigger_name: str) -> frozenset:
        """Subscription ids currently listening on a trigger."""
        return self._registry.refs(trigger_name)

    def stats(self) -> dict:
        return {
            "triggers": self._registry.trigger_stats(),
            **self._metrics.snapshot(),
        }

    async def publish(self, trigger_name: str, payload: Any) -> None:
        """Publish payload on a trigger. Transport failures raise TransportError; no retry."""
        self._logger.info(
            "published",
            extra={"trigger": trigger_name, "payload_type": type(payload).__name__},
        )
        await self._channel.publish(trigger_name, payload)
        self._metrics.increment("published")

    def subscribe(self, trigger_name: str, on_message: OnMessage, options: Any = None) -> int:
        """
        Register on_message for a trigger and return the new subscription id.
        Non-error messages go through the message transform first; options is
        accepted for interface compatibility and not interpreted.
        """

        def open_handle(sub_id: int):
            def callback(message: Any) -> None:
                self._logger.debug(
                    "subscription_callback",
                    extra={"subscription_id": sub_id, "trigger": trigger_name},
                )
                if isinstance(message, BaseException):
                    value = message
                else:
                    value = self._message_transform(message)
                self._metrics.increment("delivered")
                on_message(value)

            return self._channel.subscribe(trigger_name, callback)

        sub_id = self._registry.register(trigger_name, open_handle)
        self._metrics.increment("subscribed")
        self._metrics.set_gauge("subscriptions", len(self._registry))
        self._logger.info(
            "subscribed",
            extra={"subscription_id": sub_id, "trigger": trigger_name},
        )
        return sub_id

    def unsubscribe(self, sub_id: int) -> None:
        """Release a subscription. Raises NotFoundError if the id is unknown or already released."""
        trigger_name = self._registry.release(sub_id)
        self._metrics.increment("unsubscribed")
        self._metrics.set_gauge("subscriptions", len(self._registry))
        self._logger.info(
            "unsubscribed",
            extra={"subscription_id": sub_id, "trigger": trigger_name},
        )

    def async_iterator(
        self,
        triggers: Union[str, Iterable[str]],
        options: Any = None,
    ) -> PubSubAsyncIterator:
        """Return an async iterator over every message published on the given trigger(s)."""
        return PubSubAsyncIterator(self, triggers, options)

    def close(self) -> None:
        """
        Close the channel. Outstanding subscriptions are not released one by one;
        unsubscribe (or close iterators) first if that matters.
        """
        remaining = len(self._registry)
        if remaining:
            self._logger.warning("closing_with_subscriptions", extra={"subscriptions": remaining})
        self._channel.close()
        self._logger.info("closed", extra={"channel": self._channel.name})


class MongoPubSub(PubSub):
    """PubSub whose channel is a capped collection in the given PyMongo AsyncDatabase."""

    def __init__(
        self,
        connection: Any,
        channel_name: Optional[str] = None,
        channel_options: Union[ChannelOptions, Mapping[str, Any], None] = None,
        connection_listener: Optional[ConnectionListener] = None,
        message_transform: Optional[MessageTransform] = None,
    ) -> None:
        if connection is None:
            raise ValueError("MongoPubSub requires a database connection.")
        if channel_options is None:
            options = ChannelOptions()
        elif isinstance(channel_options, ChannelOptions):
            options = channel_options
        else:
            options = ChannelOptions(**channel_options)
        if channel_name:
            options = dataclasses.replace(options, name=channel_name)
        super().__init__(
            MongoChannel(connection, options),
            message_transform=message_transform,
            connection_listener=connection_listener,
        )
