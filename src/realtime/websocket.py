import json
from typing import Dict, List, Set

from fastapi import WebSocket, WebSocketDisconnect
from loguru import logger

from src.database import utcnow
from src.realtime.bus import company_room, user_room


class ConnectionManager:
    """Room membership table for connected dashboards"""

    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self.rooms: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

        for members in self.rooms.values():
            members.discard(websocket)

    def join(self, websocket: WebSocket, room: str):
        self.rooms.setdefault(room, set()).add(websocket)

    def leave(self, websocket: WebSocket, room: str):
        if room in self.rooms:
            self.rooms[room].discard(websocket)

    def room_size(self, room: str) -> int:
        return len(self.rooms.get(room, ()))

    async def send_personal_message(self, websocket: WebSocket, message: dict):
        try:
            await websocket.send_text(json.dumps(message, default=str))
        except Exception as e:
            logger.debug(f"Dropping closed socket: {e}")
            self.disconnect(websocket)

    async def send_to_room(self, room: str, message: dict):
        """Send to every socket in a room; closed sockets are removed"""
        members = self.rooms.get(room)
        if not members:
            return

        message_text = json.dumps(message, default=str)
        disconnected = []

        for connection in members.copy():
            try:
                await connection.send_text(message_text)
            except Exception:
                disconnected.append(connection)

        for connection in disconnected:
            self.disconnect(connection)


manager = ConnectionManager()


async def websocket_endpoint(websocket: WebSocket):
    """Event channel: clients join company and user rooms and receive pushes"""
    await manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_personal_message(websocket, {"type": "error", "detail": "invalid json"})
                continue

            message_type = message.get("type")

            if message_type == "join-company" and message.get("company_id") is not None:
                room = company_room(message["company_id"])
            elif message_type == "join-user" and message.get("user_id") is not None:
                room = user_room(message["user_id"])
            elif message_type == "ping":
                await manager.send_personal_message(websocket, {
                    "type": "pong",
                    "timestamp": utcnow().isoformat()
                })
                continue
            else:
                continue

            manager.join(websocket, room)
            await manager.send_personal_message(websocket, {
                "type": "subscription_confirmed",
                "room": room,
                "timestamp": utcnow().isoformat()
            })

    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
