"""Environment-driven configuration for channels and the demo server."""

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_CHANNEL_NAME = "pubsub"
DEFAULT_CHANNEL_SIZE = 100000
DEFAULT_RETRY_DELAY = 0.5
DEFAULT_DB_NAME = "pubsub"
DEFAULT_HEARTBEAT_INTERVAL_SEC = 30.0


def _env_str(name: str) -> Optional[str]:
    return (os.environ.get(name) or "").strip() or None


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    try:
        return int(os.environ[name])
    except (KeyError, ValueError, TypeError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ[name])
    except (KeyError, ValueError, TypeError):
        return default


@dataclass
class ChannelOptions:
    """Capped collection tuning for MongoChannel."""

    name: str = DEFAULT_CHANNEL_NAME
    size: int = DEFAULT_CHANNEL_SIZE       # capped collection size in bytes
    max: Optional[int] = None              # max documents, None for size-bound only
    retry_delay: float = DEFAULT_RETRY_DELAY  # seconds before re-tailing after an error

    @classmethod
    def from_env(cls) -> "ChannelOptions":
        return cls(
            name=_env_str("PUBSUB_CHANNEL_NAME") or DEFAULT_CHANNEL_NAME,
            size=_env_int("PUBSUB_CHANNEL_SIZE", DEFAULT_CHANNEL_SIZE),
            max=_env_int("PUBSUB_CHANNEL_MAX", None),
            retry_delay=_env_float("PUBSUB_RETRY_DELAY", DEFAULT_RETRY_DELAY),
        )


@dataclass
class Settings:
    """Process settings read from the environment (and .env via python-dotenv)."""

    mongodb_uri: Optional[str] = None
    db_name: str = DEFAULT_DB_NAME
    api_key: Optional[str] = None
    heartbeat_interval_sec: float = DEFAULT_HEARTBEAT_INTERVAL_SEC
    channel: ChannelOptions = field(default_factory=ChannelOptions)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            mongodb_uri=_env_str("MONGODB_URI"),
            db_name=_env_str("PUBSUB_DB_NAME") or DEFAULT_DB_NAME,
            api_key=_env_str("API_KEY"),
            heartbeat_interval_sec=_env_float("HEARTBEAT_INTERVAL_SEC", DEFAULT_HEARTBEAT_INTERVAL_SEC),
            channel=ChannelOptions.from_env(),
        )
