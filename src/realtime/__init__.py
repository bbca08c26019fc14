"""
Real-time event relay

Services publish state changes through a `MessageBus` handed to them by the
request handlers. The application wires a `WebSocketMessageBus` backed by the
room table in `websocket.py`; tests swap in `InMemoryMessageBus`.
"""

from fastapi import Request

from .bus import MessageBus, InMemoryMessageBus, WebSocketMessageBus, company_room, user_room
from .websocket import manager, websocket_endpoint


def get_message_bus(request: Request) -> MessageBus:
    return request.app.state.message_bus


__all__ = [
    "MessageBus",
    "InMemoryMessageBus",
    "WebSocketMessageBus",
    "company_room",
    "user_room",
    "manager",
    "websocket_endpoint",
    "get_message_bus",
]
