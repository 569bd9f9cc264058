"""Subscription registry: ids, trigger bindings and per-trigger reference sets."""

import threading
from typing import Callable, Dict, FrozenSet, List, Set, Tuple

from mongo_pubsub.channel import ChannelSubscription
from mongo_pubsub.errors import NotFoundError
from mongo_pubsub.observability import get_logger


class SubscriptionRegistry:
    """Maps subscription id -> (trigger, channel handle) and trigger -> set of ids.

    Ids start at 0 and only go up; a released id is never handed out again.
    Both maps are updated under one lock so they never disagree.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[int, Tuple[str, ChannelSubscription]] = {}
        self._refs: Dict[str, Set[int]] = {}
        self._next_id = 0
        self._lock = threading.Lock()
        self._logger = get_logger("mongo_pubsub.registry")

    def register(
        self,
        trigger_name: str,
        open_handle: Callable[[int], ChannelSubscription],
    ) -> int:
        """
        Allocate the next id, open its channel handle via open_handle(id), and record both.
        If open_handle raises, nothing is recorded and the id stays consumed.
        """
        with self._lock:
            sub_id = self._next_id
            self._next_id += 1
            handle = open_handle(sub_id)
            self._subscriptions[sub_id] = (trigger_name, handle)
            self._refs.setdefault(trigger_name, set()).add(sub_id)
        self._logger.debug(
            "registered",
            extra={"subscription_id": sub_id, "trigger": trigger_name},
        )
        return sub_id

    def release(self, sub_id: int) -> str:
        """Unsubscribe the handle and drop the id. Raises NotFoundError for unknown ids."""
        with self._lock:
            entry = self._subscriptions.get(sub_id)
            if entry is None:
                raise NotFoundError(sub_id)
            trigger_name, handle = entry
            handle.unsubscribe()
            refs = self._refs.get(trigger_name)
            if refs is not None:
                refs.discard(sub_id)
                if not refs:
                    del self._refs[trigger_name]
            del self._subscriptions[sub_id]
        self._logger.debug(
            "released",
            extra={"subscription_id": sub_id, "trigger": trigger_name},
        )
        return trigger_name

    def refs(self, trigger_name: str) -> FrozenSet[int]:
        """Ids currently bound to a trigger (empty if none)."""
        with self._lock:
            return frozenset(self._refs.get(trigger_name, ()))

    def trigger_of(self, sub_id: int) -> str:
        with self._lock:
            entry = self._subscriptions.get(sub_id)
        if entry is None:
            raise NotFoundError(sub_id)
        return entry[0]

    def trigger_names(self) -> List[str]:
        with self._lock:
            return list(self._refs)

    def trigger_stats(self) -> Dict[str, int]:
        """Return { trigger_name: live subscription count }."""
        with self._lock:
            return {name: len(ids) for name, ids in self._refs.items()}

    def __contains__(self, sub_id: object) -> bool:
        with self._lock:
            return sub_id in self._subscriptions

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)
