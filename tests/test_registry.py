"""
Unit tests for SubscriptionRegistry.

Covers id allocation, reference sets per trigger, release semantics and the
NotFoundError raised on unknown or already released ids.
"""

from unittest.mock import MagicMock

import pytest

from mongo_pubsub.errors import NotFoundError, TransportError
from mongo_pubsub.registry import SubscriptionRegistry


def _opener(handles):
    def open_handle(sub_id):
        handle = MagicMock(name=f"handle-{sub_id}")
        handles[sub_id] = handle
        return handle
    return open_handle


@pytest.fixture
def registry() -> SubscriptionRegistry:
    return SubscriptionRegistry()


class TestRegister:
    def test_ids_start_at_zero_and_increase(self, registry):
        handles = {}
        ids = [registry.register("Posts", _opener(handles)) for _ in range(3)]
        assert ids == [0, 1, 2]
        assert len(registry) == 3

    def test_open_handle_receives_the_allocated_id(self, registry):
        seen = []
        registry.register("Posts", lambda sub_id: seen.append(sub_id) or MagicMock())
        assert seen == [0]

    def test_reference_set_tracks_live_ids(self, registry):
        handles = {}
        a = registry.register("Posts", _opener(handles))
        b = registry.register("Posts", _opener(handles))
        c = registry.register("Comments", _opener(handles))
        assert registry.refs("Posts") == frozenset({a, b})
        assert registry.refs("Comments") == frozenset({c})
        assert registry.trigger_stats() == {"Posts": 2, "Comments": 1}

    def test_failed_open_records_nothing_and_burns_the_id(self, registry):
        def failing(_sub_id):
            raise TransportError("channel is closed")

        with pytest.raises(TransportError):
            registry.register("Posts", failing)
        assert len(registry) == 0
        assert "Posts" not in registry.trigger_names()
        assert registry.register("Posts", lambda _sub_id: MagicMock()) == 1


class TestRelease:
    def test_release_unsubscribes_handle_and_drops_entry(self, registry):
        handles = {}
        sub_id = registry.register("Posts", _opener(handles))
        assert registry.release(sub_id) == "Posts"
        handles[sub_id].unsubscribe.assert_called_once_with()
        assert sub_id not in registry
        assert len(registry) == 0

    def test_trigger_removed_only_when_last_ref_released(self, registry):
        handles = {}
        a = registry.register("Posts", _opener(handles))
        b = registry.register("Posts", _opener(handles))
        registry.release(a)
        assert registry.refs("Posts") == frozenset({b})
        assert "Posts" in registry.trigger_names()
        registry.release(b)
        assert registry.refs("Posts") == frozenset()
        assert "Posts" not in registry.trigger_names()

    def test_second_release_raises_not_found(self, registry):
        handles = {}
        sub_id = registry.register("Posts", _opener(handles))
        registry.release(sub_id)
        with pytest.raises(NotFoundError, match=f'There is no subscription of id "{sub_id}"'):
            registry.release(sub_id)
        handles[sub_id].unsubscribe.assert_called_once_with()

    def test_unknown_id_raises_not_found(self, registry):
        with pytest.raises(NotFoundError) as exc_info:
            registry.release(123)
        assert exc_info.value.sub_id == 123
        assert str(exc_info.value) == 'There is no subscription of id "123"'

    def test_not_found_is_a_key_error(self, registry):
        with pytest.raises(KeyError):
            registry.release(7)

    def test_ids_are_never_reused(self, registry):
        handles = {}
        first = registry.register("Posts", _opener(handles))
        registry.release(first)
        second = registry.register("Posts", _opener(handles))
        assert second != first
        assert second > first

    def test_ref_count_matches_live_subscriptions(self, registry):
        handles = {}
        live = []
        for step in range(10):
            if step % 3 == 2:
                registry.release(live.pop(0))
            else:
                live.append(registry.register("Posts", _opener(handles)))
            assert len(registry.refs("Posts")) == len(live)
            assert ("Posts" in registry.trigger_names()) == bool(live)

    def test_trigger_of(self, registry):
        sub_id = registry.register("Posts", lambda _sub_id: MagicMock())
        assert registry.trigger_of(sub_id) == "Posts"
        with pytest.raises(NotFoundError):
            registry.trigger_of(sub_id + 1)
