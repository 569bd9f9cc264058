"""
Pytest configuration and fixtures shared by the pub-sub tests.

Provides an in-memory channel, an engine bound to it, and a channel double
that records publish/subscribe/unsubscribe calls the way a mocked transport would.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Tuple
from unittest.mock import MagicMock

import pytest

from mongo_pubsub import InMemoryChannel, PubSub
from mongo_pubsub.channel import Channel


def pytest_configure(config):
    """Load .env.test (if present) before any test module imports settings."""
    from dotenv import load_dotenv

    test_env_path = Path(__file__).parent.parent / ".env.test"
    if test_env_path.exists():
        load_dotenv(test_env_path, override=True)


class RecordingChannel(Channel):
    """Channel double: keeps callbacks in a list and records every call on MagicMocks."""

    def __init__(self) -> None:
        super().__init__("recording")
        self.listeners: List[Tuple[str, Callable[[Any], None]]] = []
        self.publish_mock = MagicMock()
        self.subscribe_mock = MagicMock()
        self.unsubscribe_mock = MagicMock()
        self.close_mock = MagicMock()

    async def publish(self, event: str, message: Any) -> None:
        self.publish_mock(event=event, message=message)
        for listened, callback in list(self.listeners):
            if listened == event:
                callback({"event": event, "message": message})

    def subscribe(self, event: str, callback: Callable[[Any], None]):
        self.subscribe_mock(event=event, callback=callback)
        entry = (event, callback)
        self.listeners.append(entry)
        channel = self

        class _Handle:
            def unsubscribe(self) -> None:
                channel.unsubscribe_mock(event)
                if entry in channel.listeners:
                    channel.listeners.remove(entry)

        return _Handle()

    def close(self) -> None:
        self.close_mock()


@pytest.fixture
def channel() -> InMemoryChannel:
    return InMemoryChannel("test")


@pytest.fixture
def pubsub(channel: InMemoryChannel) -> PubSub:
    return PubSub(channel)


@pytest.fixture
def recording_channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def payload() -> dict:
    """A timestamped payload like the ones posted on the Posts trigger."""
    return {"timestamp": datetime.now(timezone.utc).isoformat()}
