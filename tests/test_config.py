"""Unit tests for environment-driven settings."""

from mongo_pubsub.config import (
    DEFAULT_CHANNEL_NAME,
    DEFAULT_CHANNEL_SIZE,
    DEFAULT_DB_NAME,
    DEFAULT_RETRY_DELAY,
    ChannelOptions,
    Settings,
)

ENV_NAMES = [
    "MONGODB_URI",
    "PUBSUB_DB_NAME",
    "PUBSUB_CHANNEL_NAME",
    "PUBSUB_CHANNEL_SIZE",
    "PUBSUB_CHANNEL_MAX",
    "PUBSUB_RETRY_DELAY",
    "API_KEY",
    "HEARTBEAT_INTERVAL_SEC",
]


def _clear(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_env(monkeypatch):
    _clear(monkeypatch)
    settings = Settings.from_env()
    assert settings.mongodb_uri is None
    assert settings.db_name == DEFAULT_DB_NAME
    assert settings.api_key is None
    assert settings.channel == ChannelOptions(
        name=DEFAULT_CHANNEL_NAME,
        size=DEFAULT_CHANNEL_SIZE,
        max=None,
        retry_delay=DEFAULT_RETRY_DELAY,
    )


def test_reads_env(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("MONGODB_URI", "mongodb://db:27017")
    monkeypatch.setenv("PUBSUB_DB_NAME", "app")
    monkeypatch.setenv("PUBSUB_CHANNEL_NAME", "events")
    monkeypatch.setenv("PUBSUB_CHANNEL_SIZE", "2048")
    monkeypatch.setenv("PUBSUB_CHANNEL_MAX", "100")
    monkeypatch.setenv("PUBSUB_RETRY_DELAY", "2.5")
    monkeypatch.setenv("API_KEY", " secret ")
    monkeypatch.setenv("HEARTBEAT_INTERVAL_SEC", "0")

    settings = Settings.from_env()

    assert settings.mongodb_uri == "mongodb://db:27017"
    assert settings.db_name == "app"
    assert settings.api_key == "secret"
    assert settings.heartbeat_interval_sec == 0
    assert settings.channel == ChannelOptions(name="events", size=2048, max=100, retry_delay=2.5)


def test_malformed_numbers_fall_back_to_defaults(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("PUBSUB_CHANNEL_SIZE", "big")
    monkeypatch.setenv("PUBSUB_CHANNEL_MAX", "")
    monkeypatch.setenv("PUBSUB_RETRY_DELAY", "soon")

    options = ChannelOptions.from_env()

    assert options.size == DEFAULT_CHANNEL_SIZE
    assert options.max is None
    assert options.retry_delay == DEFAULT_RETRY_DELAY
