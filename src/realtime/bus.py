import abc
import asyncio
from typing import Any, Dict, List, Optional

from loguru import logger

from src.database import utcnow


# Event names shared with the dashboards
TRIP_STATUS_UPDATED = "trip-status-updated"
RESERVATION_UPDATED = "reservation-updated"
NOTIFICATION = "notification"
PAYMENT_COMPLETED = "payment-completed"


def company_room(company_id: int) -> str:
    return f"company-{company_id}"


def user_room(user_id: int) -> str:
    return f"user-{user_id}"


class MessageBus(abc.ABC):
    """Best-effort push of state-change events to subscribed rooms.

    Publishing happens after the database commit and never raises into the
    caller: a lost event only means clients re-fetch later.
    """

    def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        message = {"event": event, "room": room, "data": payload, "timestamp": utcnow().isoformat()}
        try:
            self._publish(room, event, message)
        except Exception as e:
            logger.warning(f"Failed to publish {event} to {room}: {e}")

    @abc.abstractmethod
    def _publish(self, room: str, event: str, message: Dict[str, Any]) -> None:
        raise NotImplementedError


class InMemoryMessageBus(MessageBus):
    """Keeps published messages in a list, for tests and single-process development"""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []

    def _publish(self, room: str, event: str, message: Dict[str, Any]) -> None:
        self.messages.append(message)

    def events_for(self, room: str) -> List[str]:
        return [m["event"] for m in self.messages if m["room"] == room]

    def clear(self):
        self.messages.clear()


class WebSocketMessageBus(MessageBus):
    """Relays events to the sockets joined to a room.

    Sync request handlers run in a worker thread, so sends are scheduled on
    the event loop captured at startup.
    """

    def __init__(self, manager, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.manager = manager
        self.loop = loop

    def bind_loop(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop

    def _publish(self, room: str, event: str, message: Dict[str, Any]) -> None:
        if self.loop is None or self.loop.is_closed():
            logger.debug(f"No event loop bound, dropping {event} for {room}")
            return

        coro = self.manager.send_to_room(room, message)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self.loop:
            self.loop.create_task(coro)
        else:
            asyncio.run_coroutine_threadsafe(coro, self.loop)
