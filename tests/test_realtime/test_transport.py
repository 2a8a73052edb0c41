"""Tests for the in-memory realtime transport."""

from realtime.events import EventKind
from realtime.transport import CHANNEL_ERROR, SUBSCRIBED, InMemoryTransport


class TestInMemoryTransport:

    def test_subscribe_reports_status(self):
        transport = InMemoryTransport(failing={"bad"})
        statuses = []

        transport.channel("good").subscribe(statuses.append)
        transport.channel("bad").subscribe(statuses.append)

        assert statuses == [SUBSCRIBED, CHANNEL_ERROR]

    def test_hold_status_until_released(self):
        transport = InMemoryTransport(hold_status=True)
        statuses = []
        transport.channel("c").subscribe(statuses.append)

        assert statuses == []
        assert transport.release_statuses() == 1
        assert statuses == [SUBSCRIBED]

    def test_broadcast_reaches_kind_handlers(self):
        transport = InMemoryTransport()
        received = []
        handle = transport.channel("c")
        handle.on(EventKind.CREATED, received.append)
        handle.subscribe()

        assert transport.broadcast("c", EventKind.CREATED, {"id": 1}) == 1
        assert transport.broadcast("c", EventKind.DELETED, {"id": 1}) == 0
        assert received == [{"id": 1}]

    def test_removed_channel_gets_nothing(self):
        transport = InMemoryTransport()
        received = []
        handle = transport.channel("c").on(EventKind.CREATED, received.append).subscribe()

        transport.remove_channel(handle)

        assert transport.broadcast("c", EventKind.CREATED, {}) == 0
        assert transport.removed == ["c"]
        assert transport.get_channel_count() == 0
