"""Message envelope delivered to subscribers and its channel document encoding."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import count
from typing import Any, Dict, Optional, Union

from mongo_pubsub.errors import DeliveredError

_sequence = count()


@dataclass
class Message:
    """Represents a message published to a trigger.

    ``message`` is the published payload, passed through untouched.
    """

    event: str
    message: Any
    message_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)
        if self.message_id is None:
            self.message_id = f"{self.event}_{next(_sequence)}_{self.timestamp.timestamp()}"

    def to_dict(self) -> dict:
        """Serialize message for logging or transport."""
        return {
            "message_id": self.message_id,
            "event": self.event,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "metadata": self.metadata,
        }


def encode_document(event: str, message: Any) -> Dict[str, Any]:
    """Build the channel document stored for a publish; exceptions keep only type and text."""
    if isinstance(message, BaseException):
        return {
            "event": event,
            "error": {"type": type(message).__name__, "message": str(message)},
        }
    return {"event": event, "message": message}


def decode_document(doc: Dict[str, Any]) -> Union[Message, DeliveredError]:
    """Turn a stored channel document back into what subscribers receive."""
    error = doc.get("error")
    if error is not None:
        return DeliveredError(
            str(error.get("message", "")),
            error_type=str(error.get("type", "Exception")),
        )
    doc_id = doc.get("_id")
    timestamp = None
    generation_time = getattr(doc_id, "generation_time", None)
    if isinstance(generation_time, datetime):
        timestamp = generation_time
    return Message(
        event=doc["event"],
        message=doc.get("message"),
        message_id=str(doc_id) if doc_id is not None else None,
        timestamp=timestamp,
    )
