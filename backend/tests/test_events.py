"""Tests for the event bus and its subscribers."""

import json

import httpx
import pytest

from rms.api.realtime import ConnectionManager, RealtimeBroadcaster, channels_for
from rms.services.events import DomainEvent, EventBus, EventType
from rms.services.notifications import WaitlistNotifier, table_ready_message


def notified_event(**data):
    payload = {
        "entry_id": 7,
        "location_id": 1,
        "guest_name": "Sana",
        "guest_phone": "+923001234567",
        "method": "WHATSAPP",
    }
    payload.update(data)
    return DomainEvent(type=EventType.WAITLIST_NOTIFIED, data=payload)


class TestEventBus:
    def test_delivers_in_subscription_order(self):
        bus = EventBus()
        seen = []
        bus.subscribe(lambda e: seen.append(("a", e.type)))
        bus.subscribe(lambda e: seen.append(("b", e.type)))

        assert bus.emit(EventType.TABLE_COMBINED, primary_table_id=1) == 0
        assert seen == [("a", EventType.TABLE_COMBINED), ("b", EventType.TABLE_COMBINED)]

    def test_subscribe_is_idempotent(self):
        bus = EventBus()
        seen = []

        def handler(event):
            seen.append(event)

        bus.subscribe(handler)
        bus.subscribe(handler)
        bus.emit(EventType.ORDER_STATUS_CHANGED)
        assert len(seen) == 1

        bus.unsubscribe(handler)
        bus.emit(EventType.ORDER_STATUS_CHANGED)
        assert len(seen) == 1

    def test_failing_handler_is_counted_not_raised(self):
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("socket closed")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        assert bus.emit(EventType.PAYMENT_COMPLETED, order_id=1) == 1
        assert len(seen) == 1

    def test_to_dict(self):
        event = DomainEvent(type=EventType.WAITLIST_JOINED, data={"position": 3})
        body = event.to_dict()
        assert body["event"] == "waitlist.joined"
        assert body["data"] == {"position": 3}
        assert "timestamp" in body


class TestWaitlistNotifier:
    def test_posts_table_ready_message(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202, json={"queued": True})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        notifier = WaitlistNotifier(webhook_url="https://relay.test/send", client=client)
        notifier(notified_event())

        assert len(requests) == 1
        assert str(requests[0].url) == "https://relay.test/send"
        assert json.loads(requests[0].content) == {
            "to": "+923001234567",
            "channel": "WHATSAPP",
            "message": table_ready_message("Sana"),
        }

    def test_relay_error_propagates_to_bus(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
        notifier = WaitlistNotifier(webhook_url="https://relay.test/send", client=client)
        with pytest.raises(httpx.HTTPStatusError):
            notifier(notified_event())

        bus = EventBus()
        bus.subscribe(notifier)
        assert bus.publish(notified_event()) == 1

    def test_without_relay_nothing_is_sent(self):
        notifier = WaitlistNotifier(webhook_url="")
        assert notifier.send("+923001234567", "hello") is False

    def test_ignores_other_events(self):
        def fail(request):
            raise AssertionError("no request expected")

        client = httpx.Client(transport=httpx.MockTransport(fail))
        notifier = WaitlistNotifier(webhook_url="https://relay.test/send", client=client)
        notifier(DomainEvent(type=EventType.WAITLIST_SEATED, data={"entry_id": 7}))

    def test_message(self):
        assert table_ready_message("Sana") == (
            "Hi Sana, your table is ready! Please come to the host stand."
        )


class TestChannels:
    @pytest.mark.parametrize(
        "event_type,data,expected",
        [
            (EventType.KITCHEN_ORDER_BUMPED, {"station_id": 4}, ["kitchen", "kitchen:4"]),
            (EventType.KITCHEN_ITEM_UPDATED, {}, ["kitchen"]),
            (EventType.TABLE_SEPARATED, {}, ["tables"]),
            (EventType.WAITLIST_CANCELLED, {}, ["waitlist"]),
            (EventType.PAYMENT_REFUNDED, {}, ["payments"]),
            (EventType.ORDER_DISCOUNT_APPLIED, {}, ["orders"]),
        ],
    )
    def test_channels_for(self, event_type, data, expected):
        assert channels_for(DomainEvent(type=event_type, data=data)) == expected

    def test_broadcaster_without_listeners_is_a_no_op(self):
        manager = ConnectionManager()
        broadcaster = RealtimeBroadcaster(manager)
        broadcaster(DomainEvent(type=EventType.TABLE_COMBINED, data={}))
        assert manager.get_connection_count() == 0
