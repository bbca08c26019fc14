"""Tests for the event relay and the websocket room table."""

import asyncio

import pytest

from src.realtime import InMemoryMessageBus, WebSocketMessageBus, manager, websocket_endpoint
from src.realtime.bus import MessageBus


class ExplodingBus(MessageBus):
    def _publish(self, room, event, message):
        raise ConnectionError("socket gone")


class BrokenSocket:
    """Accepts, joins a room, then fails on the next receive"""

    def __init__(self):
        self.frames = ['{"type": "join-user", "user_id": 9}']

    async def accept(self):
        pass

    async def send_text(self, text):
        pass

    async def receive_text(self):
        if self.frames:
            return self.frames.pop(0)
        raise RuntimeError("connection reset")


class TestMessageBus:
    def test_in_memory_bus_records_envelope(self):
        bus = InMemoryMessageBus()

        bus.publish("company-7", "trip-status-updated", {"tripId": 3, "status": "DELAYED"})

        message = bus.messages[0]
        assert message["event"] == "trip-status-updated"
        assert message["room"] == "company-7"
        assert message["data"] == {"tripId": 3, "status": "DELAYED"}
        assert "timestamp" in message
        assert bus.events_for("company-7") == ["trip-status-updated"]

    def test_failed_delivery_never_reaches_the_caller(self):
        ExplodingBus().publish("user-1", "notification", {"title": "x"})

    def test_websocket_bus_without_loop_drops_events(self):
        WebSocketMessageBus(manager).publish("company-1", "reservation-updated", {"reservationId": 1})


class TestWebSocketEndpoint:
    def test_join_company_room_and_ping(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "join-company", "company_id": 42})
            joined = websocket.receive_json()
            websocket.send_json({"type": "ping"})
            pong = websocket.receive_json()

            assert joined["type"] == "subscription_confirmed"
            assert joined["room"] == "company-42"
            assert manager.room_size("company-42") == 1
            assert pong["type"] == "pong"

    def test_invalid_json_gets_an_error_frame(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_text("not json")

            assert websocket.receive_json()["type"] == "error"

    def test_socket_is_released_when_receive_fails(self):
        socket = BrokenSocket()

        with pytest.raises(RuntimeError):
            asyncio.run(websocket_endpoint(socket))

        assert socket not in manager.active_connections
        assert manager.room_size("user-9") == 0
