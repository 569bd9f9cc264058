"""MongoDB channel: a capped collection tailed with an await-able tailable cursor.

Every publish inserts one document ``{"event": ..., "message": ...}``. A single
listener task per channel tails the collection and hands each new document to
the callbacks subscribed to its event.
"""

import asyncio
from typing import Any, Dict, Optional

from pymongo import CursorType
from pymongo.errors import PyMongoError

from mongo_pubsub.channel import EVENT_ERROR, EVENT_READY, Channel
from mongo_pubsub.config import ChannelOptions
from mongo_pubsub.errors import TransportError
from mongo_pubsub.message import decode_document, encode_document

INIT_DOCUMENT = {"type": "init"}


class MongoChannel(Channel):
    """Channel backed by a capped collection in a PyMongo ``AsyncDatabase``."""

    def __init__(self, db: Any, options: Optional[ChannelOptions] = None) -> None:
        self._options = options or ChannelOptions()
        super().__init__(self._options.name)
        self._db = db
        self._collection: Any = None
        self._collection_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._start_lock = asyncio.Lock()
        self._start_fixed = False
        self._start_id: Any = None

    @property
    def options(self) -> ChannelOptions:
        return self._options

    @property
    def listening(self) -> bool:
        return self._task is not None and not self._task.done()

    async def ensure_collection(self) -> Any:
        """Create the capped collection if missing and seed it so tailing has a start point."""
        async with self._collection_lock:
            if self._collection is not None:
                return self._collection
            name = self._options.name
            existing = await self._db.list_collection_names(filter={"name": name})
            if name not in existing:
                create_opts: Dict[str, Any] = {"capped": True, "size": self._options.size}
                if self._options.max is not None:
                    create_opts["max"] = self._options.max
                await self._db.create_collection(name, **create_opts)
                self._logger.info("collection_created", extra={"collection": name, **create_opts})
            collection = self._db[name]
            options = await collection.options()
            if not options.get("capped"):
                raise TransportError(f"collection {name!r} exists and is not capped")
            if await collection.find_one() is None:
                await collection.insert_one(dict(INIT_DOCUMENT))
            self._collection = collection
            return collection

    async def publish(self, event: str, message: Any) -> None:
        if self._closed:
            raise TransportError(f"channel {self._name!r} is closed")
        doc = encode_document(event, message)
        try:
            collection = await self.ensure_collection()
            if self.listening:
                # the document must land after the point the listener tails from
                await self._tail_start(collection)
            await collection.insert_one(doc)
        except PyMongoError as e:
            raise TransportError(f"publish to {event!r} failed: {e}") from e
        self._logger.debug("inserted", extra={"event": event, "id": str(doc.get("_id"))})

    def _after_subscribe(self, event: str) -> None:
        if self.listening:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise TransportError("MongoChannel.subscribe() needs a running event loop") from e
        self._task = loop.create_task(self._listen())

    def dispatch(self, doc: Dict[str, Any]) -> int:
        """Decode one tailed document and deliver it; returns the number of callbacks reached."""
        event = doc.get("event")
        if event is None:
            return 0
        return self._deliver(event, decode_document(doc))

    async def _tail_start(self, collection: Any) -> Any:
        """The ``_id`` the listener first tails after; read once, by whoever needs it first."""
        async with self._start_lock:
            if not self._start_fixed:
                latest = await collection.find_one(sort=[("$natural", -1)])
                self._start_id = latest["_id"] if latest else None
                self._start_fixed = True
            return self._start_id

    async def _listen(self) -> None:
        last_id = None
        announced = False
        while not self._closed:
            try:
                collection = await self.ensure_collection()
                if last_id is None:
                    last_id = await self._tail_start(collection)
                query = {"_id": {"$gt": last_id}} if last_id is not None else {}
                cursor = collection.find(query, cursor_type=CursorType.TAILABLE_AWAIT)
                if not announced:
                    announced = True
                    self._logger.info("listening", extra={"collection": self._name})
                    self._emit(EVENT_READY, {"name": self._name})
                try:
                    while cursor.alive and not self._closed:
                        async for doc in cursor:
                            last_id = doc["_id"]
                            self.dispatch(doc)
                finally:
                    await cursor.close()
                # cursor died (e.g. capped collection rolled over); re-tail from last_id
                await asyncio.sleep(self._options.retry_delay)
            except PyMongoError as e:
                self._logger.warning("tail_failed", extra={"collection": self._name, "error": str(e)})
                self._emit(EVENT_ERROR, TransportError(str(e)))
                await asyncio.sleep(self._options.retry_delay)
            except TransportError as e:
                self._logger.error("tail_aborted", extra={"collection": self._name, "error": str(e)})
                self._emit(EVENT_ERROR, e)
                return

    def close(self) -> None:
        self._clear()
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._logger.info("closed", extra={"collection": self._name})
