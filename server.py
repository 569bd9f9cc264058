"""HTTP server: health, stats, publish. WebSocket: ping, subscribe, unsubscribe, publish (streams pulled from async iterators)."""

from dotenv import load_dotenv
load_dotenv()

import asyncio
import json
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo import AsyncMongoClient
from starlette.middleware.base import BaseHTTPMiddleware

from mongo_pubsub import (
    InMemoryChannel,
    MongoPubSub,
    PubSub,
    PubSubAsyncIterator,
    Settings,
    TransportError,
)
from mongo_pubsub.observability import get_logger
from mongo_pubsub.protocol import (
    HealthResponse,
    PublishedResponse,
    parse_triggers,
    stats_response,
    ws_ack,
    ws_error,
    ws_event,
    ws_info,
    ws_pong,
    ws_ts,
    ERROR_BAD_REQUEST,
    ERROR_NOT_FOUND,
    ERROR_TRANSPORT,
    ERROR_UNAUTHORIZED,
    ERROR_INTERNAL,
)

logger = get_logger("mongo_pubsub.server")

engine: Optional[PubSub] = None
_mongo_client: Optional[AsyncMongoClient] = None
_start_time: float = 0.0

# Active WebSocket connections for server-initiated heartbeat
_ws_connections: set = set()
_heartbeat_task: asyncio.Task | None = None


# X-API-Key is compulsory: API_KEY must be set in env (or .env)
def _get_expected_api_key() -> str | None:
    return (os.environ.get("API_KEY") or "").strip() or None


class XAPIKeyMiddleware(BaseHTTPMiddleware):
    """Require X-API-Key header; API_KEY env must be set."""
    async def dispatch(self, request: Request, call_next):
        if request.scope.get("type") == "websocket":
            return await call_next(request)
        expected = _get_expected_api_key()
        if not expected:
            return JSONResponse(
                status_code=503,
                content={"error": "UNAUTHORIZED", "message": "X-API-Key required (API_KEY env not set)"},
            )
        key = (request.headers.get("X-API-Key") or "").strip()
        if key != expected:
            return JSONResponse(
                status_code=401,
                content={"error": "UNAUTHORIZED", "message": "invalid or missing X-API-Key"},
            )
        return await call_next(request)


def _on_connection_event(event_name: str, data: Any) -> None:
    logger.info("channel_event", extra={"event_name": event_name, "data": repr(data)})


def build_engine(settings: Settings) -> Tuple[PubSub, Optional[AsyncMongoClient]]:
    """MongoPubSub when MONGODB_URI is set, otherwise an in-memory PubSub."""
    if settings.mongodb_uri:
        client = AsyncMongoClient(settings.mongodb_uri)
        pubsub = MongoPubSub(
            client[settings.db_name],
            channel_options=settings.channel,
            connection_listener=_on_connection_event,
        )
        return pubsub, client
    return PubSub(InMemoryChannel(), connection_listener=_on_connection_event), None


def _require_engine() -> PubSub:
    if engine is None:
        raise RuntimeError("pub-sub engine is not started")
    return engine


async def _heartbeat_loop(interval: float) -> None:
    """Periodically send info heartbeat (msg: ping) to all connected WebSocket clients."""
    if interval <= 0:
        return
    while True:
        await asyncio.sleep(interval)
        payload = ws_info("ping", ws_ts())
        dead = []
        for ws in _ws_connections:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)
        for ws in dead:
            _ws_connections.discard(ws)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global engine, _mongo_client, _start_time, _heartbeat_task
    settings = Settings.from_env()
    engine, _mongo_client = build_engine(settings)
    _start_time = time.time()
    _heartbeat_task = asyncio.create_task(_heartbeat_loop(settings.heartbeat_interval_sec))
    yield
    if _heartbeat_task is not None:
        _heartbeat_task.cancel()
        try:
            await _heartbeat_task
        except asyncio.CancelledError:
            pass
    engine.close()
    engine = None
    if _mongo_client is not None:
        await _mongo_client.close()
        _mongo_client = None


app = FastAPI(title="Mongo Pub-Sub API", lifespan=lifespan)
app.add_middleware(XAPIKeyMiddleware)

router = APIRouter(prefix="/api/v1")


# ---- Health ----

@router.get("/health")
def health() -> JSONResponse:
    """GET /health → { uptime_sec, triggers, subscriptions }."""
    pubsub = _require_engine()
    body = HealthResponse(
        uptime_sec=time.time() - _start_time,
        triggers=len(pubsub.stats()["triggers"]),
        subscriptions=pubsub.subscription_count,
    ).to_dict()
    return JSONResponse(content=body, status_code=200)


# ---- Stats ----

@router.get("/stats")
def stats() -> JSONResponse:
    """GET /stats → { triggers: { name: refs }, counters, gauges }."""
    body = stats_response(_require_engine().stats())
    return JSONResponse(content=body, status_code=200)


# ---- Publish ----

class PublishBody(BaseModel):
    trigger: str
    payload: Any = None


@router.post("/publish")
async def publish(body: PublishBody) -> JSONResponse:
    """POST /publish { trigger, payload } → 200 { status: published, trigger }, 503 on transport failure."""
    trigger = (body.trigger or "").strip()
    if not trigger:
        return JSONResponse(content={"error": "trigger is required"}, status_code=400)
    try:
        await _require_engine().publish(trigger, body.payload)
    except TransportError as e:
        return JSONResponse(
            content={"error": "transport failure", "trigger": trigger, "message": str(e)},
            status_code=503,
        )
    return JSONResponse(
        content=PublishedResponse(status="published", trigger=trigger).to_dict(),
        status_code=200,
    )


# ---- WebSocket (ping, subscribe, unsubscribe, publish) ----

async def _ws_send(websocket: WebSocket, payload: dict) -> None:
    """Send JSON to client; a dead socket is logged and left to the disconnect path."""
    try:
        await websocket.send_json(payload)
    except Exception as e:
        logger.warning("ws_send_failed", extra={"error": str(e)})


async def _pump(websocket: WebSocket, subscription_id: str, iterator: PubSubAsyncIterator) -> None:
    """Pull every value from the stream and forward it as an event frame until the stream closes."""
    async for value in iterator:
        await _ws_send(websocket, ws_event(subscription_id, value, ws_ts()))


def _ws_api_key_ok(websocket: WebSocket) -> bool:
    """Return True if X-API-Key matches API_KEY env. API_KEY must be set."""
    expected = _get_expected_api_key()
    if not expected:
        return False
    key = (websocket.headers.get("x-api-key") or "").strip()
    return key == expected


async def _close_stream(stream: Tuple[PubSubAsyncIterator, asyncio.Task]) -> None:
    iterator, task = stream
    await iterator.aclose()
    try:
        await task
    except asyncio.CancelledError:
        pass


@router.websocket("/ws")
async def websocket_handler(websocket: WebSocket) -> None:
    """
    WebSocket endpoint. Messages: ping, subscribe, unsubscribe, publish.
    Server replies: pong, ack, event, error, info.
    """
    await websocket.accept()
    if not _ws_api_key_ok(websocket):
        await websocket.send_json(ws_error(
            None, ERROR_UNAUTHORIZED,
            "invalid or missing X-API-Key",
            ws_ts(),
        ))
        await websocket.close()
        return
    pubsub = _require_engine()
    _ws_connections.add(websocket)
    streams: Dict[str, Tuple[PubSubAsyncIterator, asyncio.Task]] = {}
    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json(ws_error(None, ERROR_BAD_REQUEST, "Invalid JSON", ws_ts()))
                continue
            if not isinstance(msg, dict):
                await websocket.send_json(ws_error(None, ERROR_BAD_REQUEST, "Expected a JSON object", ws_ts()))
                continue
            msg_type = msg.get("type")
            request_id = msg.get("request_id")

            if msg_type == "ping":
                await websocket.send_json(ws_pong(msg.get("request_id", ""), ws_ts()))
                continue

            if msg_type == "subscribe":
                triggers = parse_triggers(msg.get("triggers", msg.get("trigger")))
                if not triggers:
                    await websocket.send_json(ws_error(
                        request_id, ERROR_BAD_REQUEST,
                        "subscribe requires triggers",
                        ws_ts(),
                    ))
                    continue
                subscription_id = msg.get("subscription_id") or f"sub_{uuid.uuid4().hex[:8]}"
                if subscription_id in streams:
                    await websocket.send_json(ws_error(
                        request_id, ERROR_BAD_REQUEST,
                        f"subscription {subscription_id!r} already open",
                        ws_ts(),
                    ))
                    continue
                try:
                    iterator = pubsub.async_iterator(triggers)
                except TransportError as e:
                    await websocket.send_json(ws_error(request_id, ERROR_TRANSPORT, str(e), ws_ts()))
                    continue
                task = asyncio.create_task(_pump(websocket, subscription_id, iterator))
                streams[subscription_id] = (iterator, task)
                await websocket.send_json(ws_ack(
                    request_id, ws_ts(),
                    subscription_id=subscription_id,
                    triggers=triggers,
                ))
                continue

            if msg_type == "unsubscribe":
                subscription_id = msg.get("subscription_id")
                stream = streams.pop(subscription_id, None) if subscription_id else None
                if stream is None:
                    await websocket.send_json(ws_error(
                        request_id, ERROR_NOT_FOUND,
                        f"Subscription {subscription_id!r} not found",
                        ws_ts(),
                    ))
                    continue
                await _close_stream(stream)
                await websocket.send_json(ws_ack(request_id, ws_ts(), subscription_id=subscription_id))
                continue

            if msg_type == "publish":
                trigger = (msg.get("trigger") or "").strip() if isinstance(msg.get("trigger"), str) else ""
                if not trigger:
                    await websocket.send_json(ws_error(
                        request_id, ERROR_BAD_REQUEST,
                        "publish requires trigger",
                        ws_ts(),
                    ))
                    continue
                try:
                    await pubsub.publish(trigger, msg.get("payload"))
                except TransportError as e:
                    await websocket.send_json(ws_error(request_id, ERROR_TRANSPORT, str(e), ws_ts()))
                    continue
                await websocket.send_json(ws_ack(request_id, ws_ts(), trigger=trigger))
                continue

            await websocket.send_json(ws_error(
                request_id, ERROR_BAD_REQUEST,
                f"Unknown type: {msg_type!r}",
                ws_ts(),
            ))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.exception("ws_handler_failed", extra={"error": str(e)})
        try:
            await websocket.send_json(ws_error(
                None, ERROR_INTERNAL,
                f"Unexpected server error: {e!s}",
                ws_ts(),
            ))
        except Exception:
            logger.debug("ws_error_frame_not_sent")
    finally:
        for stream in streams.values():
            await _close_stream(stream)
        _ws_connections.discard(websocket)


app.include_router(router)
