"""
Canvas broadcast over WebSockets.

A client receives a full ``canvas_state`` snapshot when it connects (or sends
``sync``), then a ``canvas_updated`` summary after every store change. Each
summary carries a revision number so a client can tell when it missed one
and resync.
"""
import asyncio
import json
from typing import Set

import structlog
from fastapi import WebSocket

from canvas_core.store import ElementStore

logger = structlog.get_logger(__name__)


def canvas_summary(store: ElementStore, revision: int) -> dict:
    """The compact change event: enough to refresh toolbars without a fetch."""
    return {
        "type": "canvas_updated",
        "revision": revision,
        "element_count": len(store.elements),
        "selected_ids": store.selected_ids,
        "can_undo": store.can_undo,
        "can_redo": store.can_redo,
        "history_depth": store.history_depth,
    }


def canvas_snapshot(store: ElementStore, revision: int) -> dict:
    return {"type": "canvas_state", "revision": revision, "canvas": store.get_state().to_json_dict()}


class CanvasBroadcaster:
    """Keeps the connected canvas clients in step with one element store."""

    def __init__(self, store: ElementStore):
        self._store = store
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self.revision = 0

    async def connect(self, websocket: WebSocket):
        """Accept a client and send it the current canvas."""
        await websocket.accept()
        await websocket.send_text(json.dumps(canvas_snapshot(self._store, self.revision)))
        async with self._lock:
            self._connections.add(websocket)
        logger.info("websocket connected", connections=len(self._connections))

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self._connections.discard(websocket)
        logger.info("websocket disconnected", connections=len(self._connections))

    async def handle_message(self, websocket: WebSocket, data: str):
        """Answer a client request; unknown messages are ignored."""
        if data == "ping":
            await websocket.send_text(json.dumps({"type": "pong", "revision": self.revision}))
        elif data == "sync":
            await websocket.send_text(json.dumps(canvas_snapshot(self._store, self.revision)))
        else:
            logger.debug("ignoring websocket message", message=data[:50])

    async def broadcast(self, message: dict):
        """Send one message to every client; failed sends drop that connection."""
        if not self._connections:
            return

        message_text = json.dumps(message)
        failed: Set[WebSocket] = set()

        async with self._lock:
            for websocket in self._connections:
                try:
                    await websocket.send_text(message_text)
                except Exception as e:
                    logger.debug("websocket send failed", error=str(e))
                    failed.add(websocket)

            self._connections -= failed

    async def notify_canvas_updated(self):
        """Advance the revision and tell every client what changed."""
        self.revision += 1
        await self.broadcast(canvas_summary(self._store, self.revision))

    @property
    def connection_count(self) -> int:
        return len(self._connections)
