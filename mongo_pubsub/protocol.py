"""Protocol message shapes for HTTP and WebSocket (health, publish, streams)."""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from mongo_pubsub.errors import DeliveredError
from mongo_pubsub.message import Message


# ---- Health ----

@dataclass
class HealthResponse:
    """Response for GET /health."""
    uptime_sec: float
    triggers: int
    subscriptions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime_sec": int(self.uptime_sec),
            "triggers": self.triggers,
            "subscriptions": self.subscriptions,
        }


# ---- Publish ----

@dataclass
class PublishedResponse:
    """Response for POST /publish (202 Accepted)."""
    status: str = "published"
    trigger: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def stats_response(stats: Dict[str, Any]) -> Dict[str, Any]:
    """Response for GET /stats: { triggers: {name: refs}, counters, gauges }."""
    return {
        "triggers": stats.get("triggers", {}),
        "counters": stats.get("counters", {}),
        "gauges": stats.get("gauges", {}),
    }


# ---- WebSocket: Server → Client ----

# Error codes (use with ws_error)
ERROR_BAD_REQUEST = "BAD_REQUEST"
ERROR_NOT_FOUND = "NOT_FOUND"
ERROR_TRANSPORT = "TRANSPORT"
ERROR_UNAUTHORIZED = "UNAUTHORIZED"
ERROR_INTERNAL = "INTERNAL"


def ws_ts() -> str:
    """Current UTC timestamp in ISO 8601 (e.g. 2025-08-25T10:00:00Z)."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def ws_ack(request_id: Optional[str], ts: str, **fields: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "ack", "status": "ok", "ts": ts}
    if request_id is not None:
        out["request_id"] = request_id
    out.update({k: v for k, v in fields.items() if v is not None})
    return out


def ws_event(subscription_id: str, value: Any, ts: str) -> Dict[str, Any]:
    """Event frame for one value pulled from a stream (data or delivered error)."""
    if isinstance(value, BaseException):
        error_type = value.error_type if isinstance(value, DeliveredError) else type(value).__name__
        return {
            "type": "event",
            "subscription_id": subscription_id,
            "error": {"type": error_type, "message": str(value)},
            "ts": ts,
        }
    if isinstance(value, Message):
        return {
            "type": "event",
            "subscription_id": subscription_id,
            "trigger": value.event,
            "message": {"id": value.message_id, "payload": value.message},
            "ts": ts,
        }
    return {"type": "event", "subscription_id": subscription_id, "message": {"payload": value}, "ts": ts}


def ws_error(request_id: Optional[str], code: str, message: str, ts: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "type": "error",
        "error": {"code": code, "message": message},
        "ts": ts,
    }
    if request_id is not None:
        out["request_id"] = request_id
    return out


def ws_pong(request_id: str, ts: str) -> Dict[str, Any]:
    return {"type": "pong", "request_id": request_id, "ts": ts}


def ws_info(msg: str, ts: str, subscription_id: Optional[str] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "info", "msg": msg, "ts": ts}
    if subscription_id is not None:
        out["subscription_id"] = subscription_id
    return out


def parse_triggers(raw: Any) -> List[str]:
    """Accept a trigger name or a list of names from a client frame; drop blanks."""
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    return [str(t).strip() for t in raw if isinstance(t, str) and t.strip()]
