"""Pub-Sub engine over a MongoDB capped-collection channel, with async iterator streams."""

from mongo_pubsub.channel import Channel, ChannelSubscription
from mongo_pubsub.config import ChannelOptions, Settings
from mongo_pubsub.engine import CHANNEL_READY, MongoPubSub, PubSub, default_message_transform
from mongo_pubsub.errors import DeliveredError, NotFoundError, PubSubError, TransportError
from mongo_pubsub.filters import with_filter
from mongo_pubsub.iterator import IteratorResult, PubSubAsyncIterator
from mongo_pubsub.memory import InMemoryChannel
from mongo_pubsub.message import Message
from mongo_pubsub.mongo import MongoChannel
from mongo_pubsub.registry import SubscriptionRegistry

__all__ = [
    "Channel",
    "ChannelSubscription",
    "ChannelOptions",
    "Settings",
    "PubSub",
    "MongoPubSub",
    "CHANNEL_READY",
    "default_message_transform",
    "PubSubError",
    "NotFoundError",
    "TransportError",
    "DeliveredError",
    "with_filter",
    "IteratorResult",
    "PubSubAsyncIterator",
    "InMemoryChannel",
    "Message",
    "MongoChannel",
    "SubscriptionRegistry",
]
