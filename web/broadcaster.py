"""WebSocket fan-out of debate events."""

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionBroadcaster:
    """Delivers debate events to every WebSocket watching that debate.

    Each connection owns a queue drained by a single sender, so a client sees
    events in the order they were broadcast. ``broadcast`` never blocks the
    caller. A short per-debate history is queued ahead of live events for
    clients that connect late, and sockets that fail are dropped.
    """

    def __init__(self, history_size: int = 100):
        self.connections: dict[str, dict[WebSocket, asyncio.Queue[dict[str, Any]]]] = {}
        self._history: dict[str, deque[dict[str, Any]]] = {}
        self._history_size = history_size

    def broadcast(self, debate_id: str, event_type: str, payload: dict[str, Any]) -> None:
        message = {
            "type": event_type,
            "debate_id": debate_id,
            "timestamp": datetime.now().isoformat(),
            "data": payload,
        }
        self._history.setdefault(debate_id, deque(maxlen=self._history_size)).append(message)

        for queue in self.connections.get(debate_id, {}).values():
            queue.put_nowait(message)

    def get_history(self, debate_id: str) -> list[dict[str, Any]]:
        return list(self._history.get(debate_id, ()))

    def add_connection(self, debate_id: str, websocket: WebSocket) -> asyncio.Queue[dict[str, Any]]:
        """Register a connection with the recent history already queued."""
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        for message in self.get_history(debate_id):
            queue.put_nowait(message)
        self.connections.setdefault(debate_id, {})[websocket] = queue
        return queue

    async def stream(self, debate_id: str, websocket: WebSocket) -> None:
        """Send queued events to one connection until it fails or is cancelled."""
        queue = self.add_connection(debate_id, websocket)
        try:
            while True:
                message = await queue.get()
                await websocket.send_json(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"WebSocket send failed for {debate_id}: {e}")
        finally:
            self.remove_connection(debate_id, websocket)

    def remove_connection(self, debate_id: str, websocket: WebSocket) -> None:
        connections = self.connections.get(debate_id)
        if connections is None:
            return
        connections.pop(websocket, None)
        if not connections:
            del self.connections[debate_id]

    def forget(self, debate_id: str) -> None:
        self._history.pop(debate_id, None)
